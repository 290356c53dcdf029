"""Bridge for delivering one-shot commands into a running After Effects session."""

__version__ = "0.3.0"
