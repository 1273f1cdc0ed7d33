from typing import Any

from app.core.config import SentryConfig

_FILTERED = "[Filtered]"

# credentials (headers and payload keys)
_SECRET_KEYS = frozenset(
    {
        "password",
        "pass",
        "pwd",
        "new_password",
        "newpassword",
        "otp",
        "access_token",
        "refresh_token",
        "token",
        "jwt",
        "authorization",
        "cookie",
        "set-cookie",
        "supabase_key",
        "service_role",
        "service_role_key",
    }
)

# manuscript and review content never leaves the portal
_CONTENT_KEYS = frozenset({"comments", "abstract", "file", "journalfile"})


def _is_filtered_key(key: Any) -> bool:
    k = str(key).strip().lower()
    return k in _SECRET_KEYS or k in _CONTENT_KEYS


def _is_blob(value: Any) -> bool:
    if isinstance(value, (bytes, bytearray)):
        return True
    # long strings are usually pasted manuscript text or base64
    return isinstance(value, str) and len(value) > 5000


def _scrub(value: Any) -> Any:
    """
    Recursively drop credentials, uploaded manuscripts and review text.
    """
    if _is_blob(value):
        return _FILTERED
    if isinstance(value, dict):
        return {str(k): (_FILTERED if _is_filtered_key(k) else _scrub(v)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


def _filter_request(request: dict[str, Any]) -> dict[str, Any]:
    headers = request.get("headers")
    if isinstance(headers, dict):
        request["headers"] = {
            k: v for k, v in headers.items() if str(k).strip().lower() not in _SECRET_KEYS
        }
    # multipart uploads and JSON bodies are never reported
    for field in ("cookies", "data", "body"):
        if field in request:
            request[field] = _FILTERED
    return request


def _before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    request = event.get("request")
    if isinstance(request, dict):
        event["request"] = _filter_request(request)

    for section in ("extra", "contexts"):
        obj = event.get(section)
        if isinstance(obj, dict):
            event[section] = _scrub(obj)
    return event


def init_sentry() -> bool:
    """
    Initialise Sentry when a DSN is configured; returns False when disabled.

    Callers wrap this in try/except so a broken Sentry setup never blocks startup.
    """
    cfg = SentryConfig.from_env()
    if not (cfg.enabled and cfg.dsn):
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=cfg.dsn,
        environment=cfg.environment,
        traces_sample_rate=cfg.traces_sample_rate,
        integrations=[FastApiIntegration()],
        send_default_pii=False,
        before_send=_before_send,
        max_request_body_size="never",
        include_local_variables=False,
    )
    return True
