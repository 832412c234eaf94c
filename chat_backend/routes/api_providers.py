"""JSON API behind Settings -> Providers & Tools."""

from flask import Blueprint, request

from chat_backend.services.api_response import (
    error_response,
    not_found,
    success_response,
)
from chat_backend.services.db_guard import guard_write_request
from chat_backend.services.provider_store import (
    ProviderConflictError,
    ProviderValidationError,
    create_provider,
    delete_provider,
    get_default_provider,
    get_provider,
    list_providers,
    set_default_provider,
    update_provider,
)
from chat_backend.services.user_scope import attach_current_user, current_user

api_providers_bp = Blueprint("api_providers", __name__, url_prefix="/v1/providers")


@api_providers_bp.before_request
def attach_user():
    return attach_current_user(require=True)


@api_providers_bp.before_request
def guard_read_only():
    return guard_write_request()


def _user_id() -> str:
    return current_user().id


def _serialize(provider, user_id):
    return provider.to_dict(viewer_id=user_id)


def _object_or_none(value):
    return value if isinstance(value, dict) else None


def _conflict(exc: ProviderConflictError):
    return error_response(message=str(exc), code="CONFLICT", status=409)


def _invalid(exc: ProviderValidationError):
    return error_response(message=str(exc), code="INVALID_REQUEST", status=400)


@api_providers_bp.route("", methods=["GET"])
def list_all():
    user_id = _user_id()
    providers = [_serialize(p, user_id) for p in list_providers(user_id)]
    return success_response(data={"providers": providers})


@api_providers_bp.route("/default", methods=["GET"])
def get_default():
    user_id = _user_id()
    provider = get_default_provider(user_id)
    if provider is None:
        return not_found("No default provider configured")
    return success_response(data=_serialize(provider, user_id))


@api_providers_bp.route("/<provider_id>", methods=["GET"])
def get_one(provider_id):
    user_id = _user_id()
    provider = get_provider(provider_id, user_id)
    if provider is None:
        return not_found("Provider not found.")
    return success_response(data=provider)


@api_providers_bp.route("", methods=["POST"])
def create():
    body = request.get_json(silent=True) or {}
    user_id = _user_id()
    try:
        provider = create_provider(
            user_id,
            id=body.get("id"),
            name=str(body.get("name") or ""),
            provider_type=str(body.get("provider_type") or ""),
            api_key=body.get("api_key"),
            base_url=body.get("base_url"),
            enabled=bool(body["enabled"]) if "enabled" in body else True,
            is_default=bool(body.get("is_default")),
            extra_headers=_object_or_none(body.get("extra_headers")),
            metadata=_object_or_none(body.get("metadata")),
        )
    except ProviderValidationError as exc:
        return _invalid(exc)
    except ProviderConflictError as exc:
        return _conflict(exc)
    return success_response(data=_serialize(provider, user_id), status=201)


@api_providers_bp.route("/<provider_id>", methods=["PUT"])
def update(provider_id):
    body = request.get_json(silent=True) or {}
    user_id = _user_id()
    fields = {
        "name": body.get("name"),
        "provider_type": body.get("provider_type"),
        "api_key": body.get("api_key"),
        "base_url": body.get("base_url"),
        "enabled": body.get("enabled"),
        "is_default": body.get("is_default"),
        "extra_headers": _object_or_none(body.get("extra_headers")),
        "metadata": _object_or_none(body.get("metadata")),
    }
    try:
        provider = update_provider(provider_id, user_id, **fields)
    except ProviderValidationError as exc:
        return _invalid(exc)
    except ProviderConflictError as exc:
        return _conflict(exc)
    if provider is None:
        return not_found("Provider not found.")
    return success_response(data=_serialize(provider, user_id))


@api_providers_bp.route("/<provider_id>/default", methods=["POST"])
def make_default(provider_id):
    user_id = _user_id()
    provider = set_default_provider(provider_id, user_id)
    if provider is None:
        return not_found("Provider not found.")
    return success_response(data=_serialize(provider, user_id))


@api_providers_bp.route("/<provider_id>", methods=["DELETE"])
def delete(provider_id):
    if not delete_provider(provider_id, _user_id()):
        return not_found("Provider not found.")
    return success_response(data={"id": provider_id, "deleted": True})
