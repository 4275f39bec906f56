"""donelist: personal task manager with timed archival of completed tasks."""

__version__ = "0.1.0"
