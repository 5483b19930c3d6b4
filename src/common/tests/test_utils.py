import pytest
from django.test import RequestFactory

from common.utils import get_client_ip, normalize_email


@pytest.mark.parametrize(
    "meta,expected",
    [
        ({"HTTP_X_FORWARDED_FOR": "203.0.113.5, 10.0.0.1", "REMOTE_ADDR": "10.0.0.2"}, "203.0.113.5"),
        ({"HTTP_X_REAL_IP": "198.51.100.7", "REMOTE_ADDR": "10.0.0.2"}, "198.51.100.7"),
        ({"HTTP_CF_CONNECTING_IP": "2001:db8::1", "REMOTE_ADDR": "10.0.0.2"}, "2001:db8::1"),
        ({"REMOTE_ADDR": "10.0.0.2"}, "10.0.0.2"),
        ({"REMOTE_ADDR": ""}, None),
    ],
)
def test_get_client_ip(rf: RequestFactory, meta: dict[str, str], expected: str | None) -> None:
    request = rf.get("/")
    request.META.pop("REMOTE_ADDR", None)
    request.META.update(meta)

    assert get_client_ip(request) == expected


@pytest.mark.parametrize(
    "email,expected",
    [(" Buyer@Example.COM ", "buyer@example.com"), ("", None), ("   ", None), (None, None)],
)
def test_normalize_email(email: str | None, expected: str | None) -> None:
    assert normalize_email(email) == expected
