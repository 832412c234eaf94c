from flask import Blueprint, request
from flask_jwt_extended import (
    create_access_token,
    set_access_cookies,
    unset_jwt_cookies,
)

from chat_backend import db
from chat_backend.models import User, utcnow
from chat_backend.services.api_response import (
    success_response as _ok_response,
    error_response as _api_error_response,
)
from chat_backend.services.provider_seeding import seed_provider_from_env
from chat_backend.services.transaction import transaction
from chat_backend.services.user_scope import attach_current_user, current_user

api_auth_bp = Blueprint('api_auth', __name__)


def _error_response(message: str, code: str, *, status: int = 400):
    return _api_error_response(message=message, code=code, status=status)


@api_auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')
    display_name = (data.get('display_name') or '').strip() or None

    if not email or not password:
        return _error_response(
            "Email and password required",
            "EMAIL_PASSWORD_REQUIRED",
            status=400,
        )

    if User.query.filter_by(email=email).first():
        return _error_response(
            "User already exists",
            "USER_ALREADY_EXISTS",
            status=409,
        )

    user = User(email=email, display_name=display_name)
    user.set_password(password)
    with transaction():
        db.session.add(user)

    seed_provider_from_env(user)

    return _ok_response(
        data=user.to_dict(),
        status=201,
        code="USER_REGISTERED",
        message="User registered successfully",
    )


@api_auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')

    user = User.query.filter_by(email=email).first()
    if not user or user.deleted_at is not None or not user.check_password(password):
        return _error_response(
            "Bad username or password",
            "INVALID_CREDENTIALS",
            status=401,
        )

    with transaction():
        user.last_login_at = utcnow()

    access_token = create_access_token(identity=str(user.id))
    response, status = _ok_response(
        data={
            "access_token": access_token,
            "user": user.to_dict(),
        },
        code="AUTHENTICATED",
        message="Authenticated.",
    )
    set_access_cookies(response, access_token)
    return response, status


@api_auth_bp.route('/logout', methods=['POST'])
def logout():
    response, status = _ok_response(
        data=None,
        code="LOGGED_OUT",
        message="Logged out",
    )
    unset_jwt_cookies(response)
    return response, status


@api_auth_bp.route('/me', methods=['GET'])
def me():
    auth_error = attach_current_user(require=True)
    if auth_error is not None:
        return auth_error

    user = current_user()
    if user is None:
        return _error_response("User not found.", "USER_NOT_FOUND", status=404)

    return _ok_response(
        data=user.to_dict(),
        code="AUTH_USER",
        message="Authenticated user.",
    )
