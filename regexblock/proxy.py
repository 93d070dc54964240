import os

import httpx
from fastapi import FastAPI, Request, Response

from regexblock.config import Config, load_config
from regexblock.log import configure_logging
from regexblock.middleware import RegexBlockMiddleware, build_classifier

BACKEND_BASE = os.getenv("REGEXBLOCK_BACKEND", "http://127.0.0.1:5000")

# recomputed by the server or meaningless across a proxy hop
DROP_RESPONSE_HEADERS = {
    "connection",
    "keep-alive",
    "transfer-encoding",
    "content-length",
    "content-encoding",
}


async def forward_to_backend(
    request: Request,
    body: bytes,
    backend_base: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Response:
    url = f"{backend_base}{request.url.path}"
    if request.url.query:
        url += f"?{request.url.query}"

    headers = dict(request.headers)
    headers.pop("host", None)

    async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
        resp = await client.request(
            method=request.method,
            url=url,
            headers=headers,
            content=body,
        )

    return Response(
        content=resp.content,
        status_code=resp.status_code,
        headers={k: v for k, v in resp.headers.items() if k.lower() not in DROP_RESPONSE_HEADERS},
    )


def create_app(
    config: Config | None = None,
    backend_base: str | None = None,
    name: str = "regexblock",
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Reverse proxy with RegexBlockMiddleware in front of every route.

        uvicorn --factory regexblock.proxy:create_app
    """
    config = config or load_config()
    backend_base = (backend_base or BACKEND_BASE).rstrip("/")
    configure_logging()
    classifier = build_classifier(config, name=name)

    app = FastAPI(title="RegexBlock Reverse Proxy")
    app.add_middleware(RegexBlockMiddleware, classifier=classifier)

    @app.api_route(
        "/{full_path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    )
    async def proxy(full_path: str, request: Request):
        body = await request.body()
        return await forward_to_backend(request, body, backend_base, transport)

    return app
