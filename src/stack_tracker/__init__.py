"""Stack Tracker - precious-metal holdings with offline-first sync."""

__version__ = "0.1.0"
