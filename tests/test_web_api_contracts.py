from __future__ import annotations

from fastapi.routing import APIRoute

from web_api import app


def _route(path: str) -> APIRoute | None:
    return next(
        (
            candidate
            for candidate in app.routes
            if isinstance(candidate, APIRoute) and candidate.path == path
        ),
        None,
    )


def test_health_endpoint_contract_function() -> None:
    route = _route("/api/health")

    assert route is not None
    payload = route.endpoint()
    assert payload.model_dump() == {"status": "ok"}


def test_user_routes_are_registered() -> None:
    for path in [
        "/api/v1/users/register",
        "/api/v1/users/login",
        "/api/v1/users/logout",
        "/api/v1/users/refresh-token",
        "/api/v1/users/current-user",
    ]:
        assert _route(path) is not None, path


def test_openapi_register_contract_uses_201_and_camel_case_envelope() -> None:
    schema = app.openapi()
    register = schema["paths"]["/api/v1/users/register"]["post"]

    assert "201" in register["responses"]
    assert register["responses"]["409"]["content"]["application/json"]["schema"][
        "$ref"
    ].endswith("ApiErrorResponse")
    error_schema = schema["components"]["schemas"]["ApiErrorResponse"]
    assert {"statusCode", "message", "success", "errors"} <= set(
        error_schema["properties"]
    )


def test_openapi_public_user_never_exposes_credentials() -> None:
    schema = app.openapi()
    properties = set(schema["components"]["schemas"]["PublicUser"]["properties"])

    assert "fullName" in properties
    assert "passwordHash" not in properties
    assert "refreshToken" not in properties


def test_openapi_refresh_contract_declares_unauthorized() -> None:
    schema = app.openapi()
    refresh = schema["paths"]["/api/v1/users/refresh-token"]["post"]

    assert refresh["responses"]["401"]["content"]["application/json"]["schema"][
        "$ref"
    ].endswith("ApiErrorResponse")
