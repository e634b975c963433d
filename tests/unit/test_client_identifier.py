from starlette.requests import Request

from src.api.routes.routes import client_identifier


def _request(headers: dict, peer: str | None = "10.0.0.7") -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/webhook",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": (peer, 51000) if peer else None,
    }
    return Request(scope)


def test_socket_peer_is_used_by_default():
    request = _request({"X-Forwarded-For": "203.0.113.9", "X-Real-IP": "203.0.113.10"})

    assert client_identifier(request) == "ip:10.0.0.7"


def test_missing_peer_is_unknown():
    assert client_identifier(_request({}, peer=None)) == "ip:unknown"


def test_first_forwarded_hop_when_proxy_is_trusted():
    request = _request({"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})

    assert client_identifier(request, trust_proxy_headers=True) == "ip:203.0.113.9"


def test_trusted_proxy_header_fallback_order():
    request = _request({"X-Real-IP": "198.51.100.2", "CF-Connecting-IP": "198.51.100.3"})

    assert client_identifier(request, trust_proxy_headers=True) == "ip:198.51.100.2"

    request = _request({"CF-Connecting-IP": "198.51.100.3"})

    assert client_identifier(request, trust_proxy_headers=True) == "ip:198.51.100.3"


def test_trusted_proxy_without_headers_uses_peer():
    assert client_identifier(_request({}), trust_proxy_headers=True) == "ip:10.0.0.7"
