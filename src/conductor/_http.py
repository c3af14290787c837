"""Small HTTP-related constants shared across Conductor.

Kept separate so provider error mapping and core retry agree without a
circular import.
"""

from __future__ import annotations

# Retryable status codes shared by provider mapping and core retry.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})
