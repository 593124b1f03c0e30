from __future__ import annotations

import uuid

import structlog
from flask import g, request
from flask_login import current_user


def load_actor_context() -> None:
    g.actor = current_user._get_current_object() if current_user.is_authenticated else None
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12],
        path=request.path,
        actor_id=g.actor.id if g.actor is not None else None,
    )
