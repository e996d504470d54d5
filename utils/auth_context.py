from functools import wraps
from flask import g
from security.session import bearer_token_from_request, authenticate
from services.errors import AuthError

def load_current_user():
    g.user = None
    g.session = None
    g.token = bearer_token_from_request()
    if not g.token:
        return

    sess = authenticate(g.token)
    if not sess:
        return
    g.session = sess
    g.user = sess.user

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            if getattr(g, "token", None):
                raise AuthError("Invalid or expired token")
            raise AuthError("Authentication required")
        return fn(*args, **kwargs)
    return wrapper
