"""HTTP transport for embedcore."""

from .http_client import HttpClient

__all__ = ["HttpClient"]
