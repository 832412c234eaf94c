"""User-scoped provider settings.

Reads see the caller's own active providers plus any remaining global ones
(own rows first). Writes only ever touch rows in the caller's own scope;
anonymous callers (user_id=None) operate on the global scope.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from chat_backend import db
from chat_backend.models import Provider, utcnow
from chat_backend.services.transaction import transaction, transactional
from chat_backend.services.user_scope import owned_first, scope_query

logger = logging.getLogger(__name__)

# These provider types always talk to their vendor's default endpoint.
FIXED_ENDPOINT_TYPES = {"gemini", "anthropic"}

UPDATABLE_FIELDS = (
    "name",
    "provider_type",
    "api_key",
    "base_url",
    "enabled",
    "is_default",
    "extra_headers",
    "metadata",
)


class ProviderError(Exception):
    """Base error for provider settings."""


class ProviderValidationError(ProviderError, ValueError):
    pass


class ProviderConflictError(ProviderError):
    pass


def normalize_provider_type(provider_type: str | None) -> str:
    return (provider_type or "openai").strip().lower()


def _plain_dict(value: Any) -> dict:
    if isinstance(value, dict):
        return dict(value)
    return {}


def _own_scope(query, user_id: Optional[str]):
    query = query.filter(Provider.deleted_at.is_(None))
    if user_id is None:
        return query.filter(Provider.user_id.is_(None))
    return query.filter(Provider.user_id == user_id)


def list_providers(user_id: Optional[str]) -> list[Provider]:
    query = scope_query(Provider.query, Provider, user_id, include_global=True)
    ordering = [Provider.is_default.desc(), Provider.updated_at.desc()]
    if user_id is not None:
        ordering.insert(0, owned_first(Provider, user_id))
    return query.order_by(*ordering).all()


def _find_visible(provider_id: str, user_id: Optional[str]) -> Optional[Provider]:
    return (
        scope_query(Provider.query, Provider, user_id, include_global=True)
        .filter(Provider.id == provider_id)
        .first()
    )


def get_provider(
    provider_id: str, user_id: Optional[str], with_api_key: bool = False
) -> Optional[dict]:
    """Serialized provider visible to the caller; the key only on request."""
    provider = _find_visible(provider_id, user_id)
    if provider is None:
        return None
    return provider.to_dict(include_api_key=with_api_key, viewer_id=user_id)


def can_access_provider(provider_id: str, user_id: Optional[str]) -> bool:
    return _find_visible(provider_id, user_id) is not None


def get_default_provider(user_id: Optional[str]) -> Optional[Provider]:
    """The caller's enabled default, falling back to an enabled global one."""
    candidates = []
    if user_id is not None:
        candidates.append(Provider.user_id == user_id)
    candidates.append(Provider.user_id.is_(None))
    for owner_filter in candidates:
        provider = (
            Provider.query.filter(
                owner_filter,
                Provider.deleted_at.is_(None),
                Provider.is_default.is_(True),
                Provider.enabled.is_(True),
            )
            .order_by(Provider.updated_at.desc())
            .first()
        )
        if provider is not None:
            return provider
    return None


def _ensure_unique(provider_id: str, name: str, user_id: Optional[str]) -> None:
    # Soft-deleted rows still hold their id and (user_id, name) slot.
    if db.session.get(Provider, provider_id) is not None:
        raise ProviderConflictError(f"Provider id '{provider_id}' already exists.")
    owner_filter = (
        Provider.user_id.is_(None) if user_id is None else Provider.user_id == user_id
    )
    clash = Provider.query.filter(owner_filter, Provider.name == name).first()
    if clash is not None:
        raise ProviderConflictError(f"Provider named '{name}' already exists.")


def _clear_defaults(user_id: Optional[str], keep_id: str | None = None) -> None:
    query = _own_scope(Provider.query, user_id).filter(Provider.is_default.is_(True))
    if keep_id is not None:
        query = query.filter(Provider.id != keep_id)
    for provider in query.all():
        provider.is_default = False


def create_provider(
    user_id: Optional[str],
    *,
    name: str,
    provider_type: str,
    id: str | None = None,
    api_key: str | None = None,
    base_url: str | None = None,
    enabled: bool = True,
    is_default: bool = False,
    extra_headers: dict | None = None,
    metadata: dict | None = None,
) -> Provider:
    name = (name or "").strip()
    provider_type = (provider_type or "").strip()
    if not name or not provider_type:
        raise ProviderValidationError("name and provider_type are required")
    if normalize_provider_type(provider_type) in FIXED_ENDPOINT_TYPES:
        base_url = None

    provider_id = str(id) if id else str(uuid.uuid4())
    _ensure_unique(provider_id, name, user_id)

    now = utcnow()
    provider = Provider(
        id=provider_id,
        user_id=user_id,
        name=name,
        provider_type=provider_type,
        api_key=api_key,
        base_url=base_url,
        enabled=bool(enabled),
        is_default=bool(is_default),
        extra_headers=_plain_dict(extra_headers),
        provider_metadata=_plain_dict(metadata),
        created_at=now,
        updated_at=now,
    )
    try:
        with transaction():
            db.session.add(provider)
            if provider.is_default:
                provider.enabled = True
                db.session.flush()
                _clear_defaults(user_id, keep_id=provider.id)
    except IntegrityError as exc:
        raise ProviderConflictError("Provider with same id or name exists") from exc

    logger.info("Created provider %s for %s", provider.id, user_id or "global scope")
    return provider


def update_provider(
    provider_id: str, user_id: Optional[str], **fields: Any
) -> Optional[Provider]:
    """Update a provider in the caller's own scope; None when not found."""
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ProviderValidationError(
            f"Unknown provider fields: {', '.join(sorted(unknown))}"
        )

    provider = _own_scope(Provider.query, user_id).filter(Provider.id == provider_id).first()
    if provider is None:
        return None

    changes = {key: value for key, value in fields.items() if value is not None}
    if "name" in changes:
        name = str(changes["name"]).strip()
        if not name:
            raise ProviderValidationError("name must not be empty")
        changes["name"] = name
    if "provider_type" in changes:
        if not str(changes["provider_type"]).strip():
            raise ProviderValidationError("provider_type must not be empty")

    try:
        with transaction():
            for key, value in changes.items():
                if key == "metadata":
                    provider.provider_metadata = _plain_dict(value)
                elif key == "extra_headers":
                    provider.extra_headers = _plain_dict(value)
                elif key in ("enabled", "is_default"):
                    setattr(provider, key, bool(value))
                else:
                    setattr(provider, key, value)
            if normalize_provider_type(provider.provider_type) in FIXED_ENDPOINT_TYPES:
                provider.base_url = None
            provider.updated_at = utcnow()
            if provider.is_default:
                provider.enabled = True
                _clear_defaults(user_id, keep_id=provider.id)
    except IntegrityError as exc:
        raise ProviderConflictError("Provider with same name exists") from exc

    return provider


@transactional
def set_default_provider(provider_id: str, user_id: Optional[str]) -> Optional[Provider]:
    provider = _own_scope(Provider.query, user_id).filter(Provider.id == provider_id).first()
    if provider is None:
        return None
    _clear_defaults(user_id, keep_id=provider.id)
    provider.is_default = True
    provider.enabled = True
    provider.updated_at = utcnow()
    return provider


def delete_provider(provider_id: str, user_id: Optional[str]) -> bool:
    """Soft-delete a provider in the caller's own scope."""
    provider = _own_scope(Provider.query, user_id).filter(Provider.id == provider_id).first()
    if provider is None:
        return False
    now = utcnow()
    with transaction():
        provider.deleted_at = now
        provider.updated_at = now
    logger.info("Soft-deleted provider %s for %s", provider_id, user_id or "global scope")
    return True


def count_active_providers(user_id: str) -> int:
    return _own_scope(Provider.query, user_id).count()

