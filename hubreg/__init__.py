"""Hub-side controllers for managed cluster registration, on an in-memory API store."""

__version__ = "0.1.0"