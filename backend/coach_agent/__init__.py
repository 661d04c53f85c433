"""Coach agent: tool-calling loop and writeback commit client for a health-records backend."""

__version__ = "1.0.0"
