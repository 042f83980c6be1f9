"""Transit sales platform REST API."""

__version__ = "1.0.0"
