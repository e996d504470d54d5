from functools import wraps
from flask import g

from services.errors import Forbidden
from utils.auth_context import login_required

def require_roles(*role_names: str):
    """
    Usage: @require_roles("CUSTOMER")
    ADMIN passes every role check.
    """
    def decorator(fn):
        @wraps(fn)
        @login_required
        def wrapper(*args, **kwargs):
            user_roles = {r.name for r in g.user.roles}
            if "ADMIN" not in user_roles and not user_roles.intersection(set(role_names)):
                raise Forbidden("Forbidden")

            return fn(*args, **kwargs)
        return wrapper
    return decorator
