"""Response error extraction for load test observability.

Parses storefront API error responses into human-readable messages.
Every error body has the shape ``{"message": ..., "kind": ...}``, with
``errors`` for validation and conflict responses and ``failures`` when an
order could not reserve stock.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def extract_error_detail(response: Response) -> str:
    """Extract a human-readable error message from an API error response.

    Returns a compact string suitable for Locust failure messages and log lines.
    Gracefully handles unparseable bodies and missing fields.
    """
    try:
        body = response.json()
    except ValueError:
        # Not JSON, return raw text truncated
        text = getattr(response, "text", "") or ""
        return text[:300] or "(empty response body)"

    if not isinstance(body, dict):
        return str(body)[:300]

    # Reservation failures: one entry per unsatisfiable line
    if isinstance(body.get("failures"), list):
        parts = [f"{f.get('product_id')}: {f.get('reason')} (available {f.get('available')})" for f in body["failures"]]
        return f"{body.get('kind')}: " + " | ".join(parts)

    if "message" in body:
        return f"{body.get('kind', 'error')}: {body['message']}"

    # Unknown shape
    return str(body)[:300]


def is_stock_refusal(response: Response) -> bool:
    """True when the API refused an order because stock ran out."""
    if response.status_code != 409:
        return False
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and bool(body.get("failures"))
