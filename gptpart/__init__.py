"""gptpart - GPT partition table editor."""

__version__ = "0.3.0"
