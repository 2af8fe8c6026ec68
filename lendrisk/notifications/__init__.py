"""Alert sinks."""
from .queue import LoggingSink, QueueSink
from .telegram import TelegramSink

__all__ = ["LoggingSink", "QueueSink", "TelegramSink"]
