from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Coroutine, cast

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import Response

from ticketing.api.http_setup import register_exception_handlers, register_http_middleware
from ticketing.auth.errors import CredentialError, NotFoundError, ServerError
from ticketing.core.config import AppConfig
from tests.fakes import app_config

LOGGER = logging.getLogger(__name__)


def _config(**security: object) -> AppConfig:
    return app_config(request_max_bytes=8, **security)


def _app(config: AppConfig | None = None) -> FastAPI:
    config = config or _config()
    app = FastAPI()
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, config=config, logger=LOGGER)
    return app


def _request(path: str, method: str = "GET", headers: list[tuple[bytes, bytes]] | None = None) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": b"",
        "root_path": "",
        "headers": headers or [],
        "client": ("127.0.0.1", 1234),
        "server": ("testserver", 80),
    }

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


def _dispatch_by_name(app: FastAPI, name: str):
    for middleware in app.user_middleware:
        dispatch = middleware.kwargs.get("dispatch")
        if callable(dispatch) and getattr(dispatch, "__name__", "") == name:
            return dispatch
    raise AssertionError(f"Dispatch {name!r} not found")


def _resolve_response(result: Response | Awaitable[Response]) -> Response:
    if inspect.iscoroutine(result):
        return asyncio.run(cast(Coroutine[Any, Any, Response], result))
    return cast(Response, result)


def _body(response: Response) -> dict[str, Any]:
    return json.loads(bytes(response.body))


def test_http_setup_adds_security_headers_and_request_id() -> None:
    app = _app()
    dispatch = _dispatch_by_name(app, "request_logging_middleware")

    request = _request("/ok", headers=[(b"x-request-id", b"req-123")])

    async def call_next(_request: Request) -> Response:
        return Response(content="ok", status_code=200)

    response = asyncio.run(dispatch(request, call_next))
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_http_setup_rejects_large_request_before_handler() -> None:
    app = _app()
    dispatch = _dispatch_by_name(app, "request_size_limit_middleware")
    request = _request("/echo", method="POST", headers=[(b"content-length", b"20")])

    async def call_next(_request: Request) -> Response:
        raise AssertionError("handler must not run")

    response = asyncio.run(dispatch(request, call_next))
    assert response.status_code == 413
    assert _body(response)["error_code"] == "REQUEST_TOO_LARGE"


def test_http_setup_serializes_http_exception_payload() -> None:
    app = _app()
    handler = app.exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(
            _request("/not-found"),
            HTTPException(
                status_code=404,
                detail={"error_code": "ROUTE_NOT_FOUND", "message": "missing"},
            ),
        )
    )
    assert response.status_code == 404
    assert b"ROUTE_NOT_FOUND" in response.body


def test_credential_errors_keep_their_status_and_code() -> None:
    app = _app()
    handler = app.exception_handlers[CredentialError]
    response: Response = _resolve_response(
        handler(_request("/api/users/x"), NotFoundError("User not found", error_code="USER_NOT_FOUND"))
    )

    assert response.status_code == 404
    assert _body(response) == {"error_code": "USER_NOT_FOUND", "message": "User not found"}


def test_server_errors_hide_details_unless_exposed() -> None:
    hidden = _app().exception_handlers[CredentialError]
    exposed = _app(_config(expose_internal_errors=True)).exception_handlers[CredentialError]
    error = ServerError("Credential store unavailable")

    hidden_response: Response = _resolve_response(hidden(_request("/x"), error))
    exposed_response: Response = _resolve_response(exposed(_request("/x"), error))

    assert hidden_response.status_code == exposed_response.status_code == 500
    assert _body(hidden_response)["message"] == "Internal server error"
    assert _body(exposed_response)["message"] == "Credential store unavailable"


def test_http_setup_handles_unexpected_exceptions() -> None:
    app = _app()
    handler = app.exception_handlers[Exception]
    response: Response = _resolve_response(handler(_request("/boom"), RuntimeError("boom")))
    assert response.status_code == 500
    assert _body(response) == {
        "error_code": "INTERNAL_SERVER_ERROR",
        "message": "Internal server error",
    }


def test_http_setup_maps_validation_exception_to_400() -> None:
    app = _app()
    handler = app.exception_handlers[RequestValidationError]
    response: Response = _resolve_response(
        handler(
            _request("/validation"),
            RequestValidationError(
                [{"loc": ("body", "email"), "msg": "Field required", "type": "missing"}]
            ),
        )
    )
    assert response.status_code == 400
    assert _body(response) == {
        "error_code": "VALIDATION_ERROR",
        "message": "Invalid request fields: email",
    }
