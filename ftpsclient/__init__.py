"""Command-line client for FTP over explicit TLS."""

__version__ = "0.1.0"
