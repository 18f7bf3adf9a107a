"""User identity service: cache-aside user store with JWT sessions."""

__version__ = "1.0.0"
