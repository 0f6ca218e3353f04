"""
User Service — account CRUD and password login.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email

from licitaflow.core.exceptions import ConflictError, ValidationError
from licitaflow.models import db
from licitaflow.models.auth import USER_ROLES, User
from licitaflow.models.reference import Department
from licitaflow.services.helpers.lookups import commit_and_dispatch, get_or_raise, require_reference
from licitaflow.services.participation_service import require_admin
from licitaflow.utils.crypto import hash_password, is_legacy_hash, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class AuthenticationError(Exception):
    """Login failure; carries the HTTP status the auth blueprint returns."""
    def __init__(self, message, status_code=401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _normalize_email(email):
    if not email:
        return None
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"})


def _validate_role(role):
    role = (role or "common").strip().lower()
    if role not in USER_ROLES:
        raise ValidationError(
            f"role must be one of: {', '.join(sorted(USER_ROLES))}", details={"role": "invalid"},
        )
    return role


def _validate_password(password):
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"password must have at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too short"},
        )
    return password


# ═══════════════════════════════════════════════════════════════
# User CRUD
# ═══════════════════════════════════════════════════════════════
def create_user(data: dict, acting_user=None) -> User:
    """
    Create an account. ``acting_user`` None means a bootstrap call (seed
    command); otherwise only admins may create users.
    """
    if acting_user is not None:
        require_admin(acting_user, "create users")

    username = (data.get("username") or "").strip()
    if not username:
        raise ValidationError("username is required", details={"username": "required"})
    full_name = (data.get("full_name") or "").strip()
    if not full_name:
        raise ValidationError("full_name is required", details={"full_name": "required"})
    password = _validate_password(data.get("password"))
    role = _validate_role(data.get("role"))
    email = _normalize_email(data.get("email"))
    department_id = None
    if data.get("department_id") not in (None, ""):
        department_id = require_reference(Department, data["department_id"], "department_id").id

    if User.query.filter_by(username=username).first():
        raise ConflictError("User", "username", username)

    user = User(
        username=username,
        full_name=full_name,
        email=email,
        password_hash=hash_password(password),
        department_id=department_id,
        role=role,
        is_active=True,
    )
    db.session.add(user)
    commit_and_dispatch()
    logger.info("User created user_id=%s username=%s role=%s", user.id, username, role)
    return user


def list_users(include_inactive=False) -> list[User]:
    q = User.query
    if not include_inactive:
        q = q.filter(User.is_active.is_(True))
    return q.order_by(User.full_name).all()


def update_user(user_id: int, data: dict, acting_user) -> User:
    """Admins edit anyone; a user may change only their own name, email and password."""
    user = get_or_raise(User, user_id, "User")
    is_self = acting_user.id == user.id
    admin_fields = {"role", "department_id", "is_active", "username"}
    if not acting_user.is_admin and (not is_self or admin_fields & set(data)):
        require_admin(acting_user, "edit this user")

    if "full_name" in data:
        full_name = (data.get("full_name") or "").strip()
        if not full_name:
            raise ValidationError("full_name is required", details={"full_name": "required"})
        user.full_name = full_name
    if "email" in data:
        user.email = _normalize_email(data.get("email"))
    if data.get("password"):
        user.password_hash = hash_password(_validate_password(data["password"]))
    if "role" in data:
        user.role = _validate_role(data.get("role"))
    if "department_id" in data:
        user.department_id = (
            require_reference(Department, data["department_id"], "department_id").id
            if data["department_id"] not in (None, "") else None
        )
    if "is_active" in data:
        user.is_active = bool(data["is_active"])
    if "username" in data:
        username = (data.get("username") or "").strip()
        if not username:
            raise ValidationError("username is required", details={"username": "required"})
        clash = User.query.filter(User.username == username, User.id != user.id).first()
        if clash:
            raise ConflictError("User", "username", username)
        user.username = username

    commit_and_dispatch()
    logger.info("User updated user_id=%s by user_id=%s", user.id, acting_user.id)
    return user


# ═══════════════════════════════════════════════════════════════
# Login
# ═══════════════════════════════════════════════════════════════
def authenticate_user(username: str, password: str) -> User:
    """Authenticate with username + password. Returns User on success."""
    user = User.query.filter_by(username=(username or "").strip()).first()
    if not user:
        raise AuthenticationError("Invalid username or password", 401)

    if not user.is_active:
        raise AuthenticationError("Account is inactive", 403)

    if not verify_password(password or "", user.password_hash):
        raise AuthenticationError("Invalid username or password", 401)

    # Upgrade legacy werkzeug hashes on successful login
    if is_legacy_hash(user.password_hash):
        user.password_hash = hash_password(password)

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user
