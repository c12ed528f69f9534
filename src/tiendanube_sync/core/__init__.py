"""Core utilities: logging, errors, signatures and monitoring."""
