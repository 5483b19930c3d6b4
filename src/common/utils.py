import typing as t

from django.http import HttpRequest

# Checked in order; the first present header wins.
_CLIENT_IP_HEADERS = ("HTTP_X_REAL_IP", "HTTP_CF_CONNECTING_IP")


def get_client_ip(request: HttpRequest) -> str | None:
    """Best-effort client address for a request behind one or more proxies.

    X-Forwarded-For may carry a chain of hops; the first entry is the original client.
    """
    xff = request.META.get("HTTP_X_FORWARDED_FOR")
    if xff:
        return t.cast(str, xff.split(",")[0].strip()) or None
    for header in _CLIENT_IP_HEADERS:
        value = request.META.get(header)
        if value:
            return t.cast(str, value.strip())
    return t.cast(str | None, request.META.get("REMOTE_ADDR")) or None


def normalize_email(email: str | None) -> str | None:
    """Lower-case and trim an e-mail address; empty values become None."""
    if email is None:
        return None
    return email.strip().lower() or None
