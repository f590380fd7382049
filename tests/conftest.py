import json

import httpx
import pytest


def openapi_doc(paths: dict, components: dict | None = None) -> dict:
    """Build a minimal OpenAPI document; ``paths`` maps path -> property schemas."""
    out = {}
    for path, props in paths.items():
        schema = props if "$ref" in props else {"type": "object", "properties": props}
        out[path] = {"post": {"requestBody": {"content": {"application/json": {"schema": schema}}}}}
    doc = {"openapi": "3.1.0", "paths": out}
    if components:
        doc["components"] = components
    return doc


class Recorder:
    """Collects the requests a MockTransport saw."""

    def __init__(self):
        self.requests: list[httpx.Request] = []

    def bodies(self) -> list:
        return [json.loads(r.content) if r.content else None for r in self.requests]

    def posts(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture()
def chute_client(recorder):
    """Factory for an AsyncClient whose chute serves ``schema`` and answers POSTs with ``reply``."""

    def make(schema=None, reply=None):
        def handler(request: httpx.Request) -> httpx.Response:
            recorder.requests.append(request)
            if request.url.path == "/openapi.json":
                if schema is None:
                    return httpx.Response(404, json={"detail": "Not Found"})
                return httpx.Response(200, json=schema)
            if reply is not None:
                return reply(request)
            return httpx.Response(200, json={"ok": True})

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return make
