from __future__ import annotations

from typing import Optional

from flask import g
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException, NoAuthorizationError
from jwt.exceptions import PyJWTError
from sqlalchemy import case, false, or_

from chat_backend import db
from chat_backend.models import User
from chat_backend.services.api_response import error_response as _error_response


def _unauthorized(message: str = "Authentication required."):
    return _error_response(message=message, code="UNAUTHORIZED", status=401)


def _load_active_user(identity) -> Optional[User]:
    if identity is None:
        return None
    user = db.session.get(User, str(identity))
    if user is None or user.deleted_at is not None:
        return None
    return user


def attach_current_user(require: bool = False):
    """Attach current user to request context (g.current_user)."""
    user = None
    error = None

    try:
        verify_jwt_in_request(optional=not require)
    except NoAuthorizationError:
        if require:
            error = _unauthorized()
    except (JWTExtendedException, PyJWTError) as exc:
        error = _unauthorized(str(exc))
    else:
        user = _load_active_user(get_jwt_identity())

    g.current_user = user

    if user is None and error is not None:
        return error
    if require and user is None:
        return _unauthorized()
    return None


def current_user() -> Optional[User]:
    return getattr(g, "current_user", None)


def active_only(query, model):
    return query.filter(model.deleted_at.is_(None))


def scope_query(query, model, user_id: Optional[str], include_global: bool = False):
    """Restrict `query` to active rows the caller may see.

    Anonymous callers only ever see global rows (user_id IS NULL), and only
    when `include_global` is set.
    """
    query = active_only(query, model)
    if user_id is None:
        if include_global:
            return query.filter(model.user_id.is_(None))
        return query.filter(false())
    if include_global:
        return query.filter(or_(model.user_id == user_id, model.user_id.is_(None)))
    return query.filter(model.user_id == user_id)


def owned_first(model, user_id: str):
    """Ordering expression that puts the caller's own rows before globals."""
    return case((model.user_id == user_id, 0), else_=1)

