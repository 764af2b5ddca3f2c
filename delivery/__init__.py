from delivery.output import ConsoleSink, Sink, format_item, format_status

__all__ = ["ConsoleSink", "Sink", "format_item", "format_status"]
