"""Form builder backend that keeps responses in sync with Airtable tables."""

__version__ = "0.1.0"
