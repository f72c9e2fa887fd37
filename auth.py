from functools import wraps

from flask import current_app, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from models import db, User

TOKEN_SALT = "manager-auth"


def hash_password(password):
    return generate_password_hash(password)


def verify_password(user, password):
    if not user or not user.password_hash:
        return False
    return check_password_hash(user.password_hash, password)


def _serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(user):
    return _serializer().dumps({"id": user.id})


class AuthError(Exception):
    def __init__(self, message, status_code=401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def resolve_token(token):
    """Return the manager a bearer token belongs to, or raise AuthError."""
    try:
        payload = _serializer().loads(
            token, max_age=current_app.config["TOKEN_MAX_AGE"]
        )
    except SignatureExpired:
        raise AuthError("Token expired")
    except BadSignature:
        raise AuthError("Invalid token")

    user_id = payload.get("id") if isinstance(payload, dict) else None
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or not user.is_manager:
        raise AuthError("User not found")
    return user


def bearer_token():
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def manager_required(view):
    """Resolve the bearer token and hand the manager to the view as `manager`."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        token = bearer_token()
        if token is None:
            return jsonify(message="Unauthenticated"), 401
        try:
            manager = resolve_token(token)
        except AuthError as e:
            return jsonify(message=e.message), e.status_code
        return view(*args, manager=manager, **kwargs)

    return wrapped
