"""onebridge — OneBot protocol bridge for chat-bot runtimes."""

__version__ = "0.1.0"
