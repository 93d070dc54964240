import httpx
import pytest
from fastapi.testclient import TestClient

from regexblock.config import Config
from regexblock.errors import ConfigError, NoValidPatterns
from regexblock.proxy import create_app

CONFIG = Config(regex_patterns=(r"\.php$",), block_duration_minutes=60, whitelist=("127.0.0.1",))


def backend(seen):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            201,
            json={"path": request.url.path, "query": request.url.query.decode()},
            headers={"x-backend": "demo"},
        )

    return httpx.MockTransport(handler)


def test_allowed_request_is_forwarded_to_backend():
    seen = []
    app = create_app(CONFIG, backend_base="http://backend.test/", transport=backend(seen))
    client = TestClient(app)

    r = client.post("/search?q=shoes", content=b"payload", headers={"x-trace": "1"})
    assert r.status_code == 201
    assert r.json() == {"path": "/search", "query": "q=shoes"}
    assert r.headers["x-backend"] == "demo"

    assert len(seen) == 1
    forwarded = seen[0]
    assert forwarded.method == "POST"
    assert str(forwarded.url) == "http://backend.test/search?q=shoes"
    assert forwarded.content == b"payload"
    assert forwarded.headers["x-trace"] == "1"


def test_blocked_request_never_reaches_backend():
    seen = []
    client = TestClient(create_app(CONFIG, backend_base="http://backend.test", transport=backend(seen)))

    # TestClient's client host is not an IP, so it cannot be whitelisted
    assert client.get("/xmlrpc.php").status_code == 404
    assert client.get("/search").status_code == 403
    assert seen == []


def test_bad_patterns_fail_when_app_is_created():
    with pytest.raises(NoValidPatterns):
        create_app(Config(regex_patterns=("(",)), backend_base="http://backend.test")


def test_bad_config_file_fails_when_app_is_created(tmp_path, monkeypatch):
    path = tmp_path / "rb.json"
    path.write_text('{"regexPatterns": ["^/x"], "blockDurationMinutes": -5}', encoding="utf-8")
    monkeypatch.setenv("REGEXBLOCK_CONFIG", str(path))
    with pytest.raises(ConfigError):
        create_app(backend_base="http://backend.test")
