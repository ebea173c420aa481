"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    tenant_id: str | None = None,
    call_id: str | None = None,
    message_id: str | None = None,
    channel: str | None = None,
    event_type: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict."""
    context: dict[str, Any] = {}
    if tenant_id:
        context["tenant_id"] = tenant_id
    if call_id:
        context["call_id"] = call_id
    if message_id:
        context["message_id"] = str(message_id)
    if channel:
        context["channel"] = channel
    if event_type:
        context["event_type"] = event_type
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
