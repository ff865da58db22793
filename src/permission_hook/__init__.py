"""permission-hook: permission and notification hook for AI coding agents."""

__version__ = "0.1.0"
