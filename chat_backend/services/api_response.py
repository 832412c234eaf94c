"""JSON envelope shared by every API route: {ok, code, message, data}."""

from __future__ import annotations

from typing import Any

from flask import jsonify

_DEFAULT_SUCCESS = {
    200: ("OK", "OK"),
    201: ("CREATED", "Created."),
}


def _envelope(ok: bool, code: str, message: str, data: Any, status: int):
    return (
        jsonify({"ok": ok, "code": code, "message": message, "data": data}),
        status,
    )


def success_response(
    *,
    data: Any = None,
    status: int = 200,
    code: str | None = None,
    message: str | None = None,
):
    default_code, default_message = _DEFAULT_SUCCESS.get(status, ("OK", "Success."))
    return _envelope(True, code or default_code, message or default_message, data, status)


def error_response(
    *,
    message: str,
    code: str = "INVALID_REQUEST",
    status: int = 400,
    data: Any = None,
):
    return _envelope(False, code, message, data, status)


def not_found(message: str = "Not found."):
    return error_response(message=message, code="NOT_FOUND", status=404)
