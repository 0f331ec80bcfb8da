import os
from typing import Callable, Optional

from fastapi import FastAPI


def add_standard_health(app: FastAPI, env_key: str = "ENV", check: Optional[Callable[[], dict]] = None):
    """
    Mount GET /health. ``check`` may contribute extra keys (e.g. the
    configured upstream) and must not raise.
    """

    @app.get("/health")
    def _health():
        body = {
            "status": "ok",
            "env": os.getenv(env_key, "dev"),
            "service": app.title,
            "version": getattr(app, "version", None),
        }
        if check is not None:
            body.update(check())
        return body
