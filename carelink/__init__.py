"""CareLink - role-based healthcare records API."""

__version__ = "1.0.0"
