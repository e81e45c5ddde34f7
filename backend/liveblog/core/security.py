"""Shared-secret gate for the internal sweep endpoints."""
import hmac


def check_cron_secret(provided: str | None, expected: str | None) -> bool:
    """Constant-time compare. An unconfigured secret rejects everything."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
