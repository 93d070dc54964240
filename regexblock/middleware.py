"""Starlette middleware that blocks clients whose request paths match regex patterns."""

from __future__ import annotations

from typing import Any, Callable, Mapping

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from regexblock.config import Config
from regexblock.core import RequestClassifier, Verdict
from regexblock.errors import ConfigError


def remote_addr(request: Request) -> str:
    """The connection's "host:port", bracketing IPv6 hosts. Empty when unknown."""
    if not request.client:
        return ""
    host, port = request.client.host, request.client.port
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def build_classifier(
    config: Config | Mapping[str, Any] | None,
    name: str = "regexblock",
    clock: Callable[[], float] | None = None,
) -> RequestClassifier:
    """
    Build the classifier up front. Starlette instantiates middleware lazily on
    the first request, so hosts call this before building the app to fail at
    startup on a bad config.
    """
    if config is None:
        raise ConfigError("regexblock middleware needs a config")
    if not isinstance(config, Config):
        config = Config.from_dict(config)
    kwargs = {"clock": clock} if clock is not None else {}
    return RequestClassifier(config, name=name, **kwargs)


class RegexBlockMiddleware(BaseHTTPMiddleware):
    """
    Forward, 403 for clients inside a block window, or 404 on the request
    that starts one. Denials carry no body.
    """

    def __init__(
        self,
        app,
        config: Config | Mapping[str, Any] | None = None,
        name: str = "regexblock",
        clock: Callable[[], float] | None = None,
        classifier: RequestClassifier | None = None,
    ):
        super().__init__(app)
        if classifier is None:
            classifier = build_classifier(config, name=name, clock=clock)
        self.classifier = classifier

    async def dispatch(self, request: Request, call_next):
        verdict = self.classifier.classify(remote_addr(request), request.url.path)
        if verdict is Verdict.ALLOW:
            return await call_next(request)
        return Response(status_code=verdict.status_code)
