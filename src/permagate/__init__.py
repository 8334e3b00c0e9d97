"""permagate - approval and cost gate for publishing to permanent storage."""

__version__ = "0.1.0"
