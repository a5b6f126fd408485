"""Event check-in and guest-list backend."""
__version__ = "0.1.0"
