from flask_jwt_extended import get_jwt, get_jwt_identity

from rentflow.utils.errors import ApiError

ADMIN_ROLES = ("ADMIN",)


def current_user_id() -> int:
    """User id from the bearer token issued by the identity service."""
    identity = get_jwt_identity()
    try:
        return int(identity)
    except (TypeError, ValueError):
        raise ApiError("Invalid token", 401)


def current_roles() -> list[str]:
    claims = get_jwt() or {}
    return [str(r) for r in (claims.get("roles") or [])]


def is_admin(roles: list[str] | None = None) -> bool:
    roles = current_roles() if roles is None else roles
    return any(str(r).upper() in ADMIN_ROLES for r in roles)


def require_admin() -> int:
    if not is_admin():
        raise ApiError("Not authorized (admin)", 403)
    return current_user_id()
