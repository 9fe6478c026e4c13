"""Small HTTP-related constants shared across geminichat.

Kept separate to avoid circular imports between the transport and retry layers.
"""

from __future__ import annotations

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
API_VERSION = "v1beta"
API_KEY_HEADER = "x-goog-api-key"

# Retryable status codes shared by transport error mapping and core retry.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})
