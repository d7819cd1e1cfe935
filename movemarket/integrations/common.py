from __future__ import annotations


class IntegrationDisabledError(RuntimeError):
    pass


class IntegrationMisconfiguredError(RuntimeError):
    pass


def error_detail(response, default_prefix: str = "HTTP") -> str:
    """Best-effort human readable error from a provider JSON response."""
    try:
        data = response.json() if response.content else {}
    except ValueError:
        data = {}
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict):
            msg = str(err.get("description") or err.get("message") or "").strip()
            if msg:
                return msg
        errors = data.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            msg = str(errors[0].get("message") or "").strip()
            if msg:
                return msg
        msg = str(data.get("message") or "").strip()
        if msg:
            return msg
    return f"{default_prefix} {response.status_code}"
