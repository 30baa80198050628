"""VaultGate: API key authentication and request rate limiting."""

__version__ = "1.0.0"
