from __future__ import annotations

from functools import wraps

from flask import abort, g

from app.core.models import UserRole


def require_actor(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "actor", None) is None:
            abort(401)
        return fn(*args, **kwargs)

    return wrapper


def require_roles(*roles: UserRole):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                abort(401)
            if actor.role not in roles:
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
