"""Market-crash event lifecycle manager for the venue pricing admin console."""

__version__ = "1.0.0"
