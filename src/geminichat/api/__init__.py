"""Transport layer and wire models."""

from .base import Transport
from .client import GeminiApi
from .mock import MockTransport

__all__ = [
    "GeminiApi",
    "MockTransport",
    "Transport",
]
