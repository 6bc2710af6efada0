"""dnvm - a .NET SDK version manager."""

__version__ = "0.6.0"
