"""mediagate — media delivery backend for a file sharing service."""

__version__ = "0.1.0"
