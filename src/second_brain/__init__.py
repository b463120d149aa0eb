"""Second brain: capture, query and update tasks from chat messages."""

__version__ = "0.1.0"
