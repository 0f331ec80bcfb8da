from __future__ import annotations

from typing import Iterable

from fastapi.middleware.cors import CORSMiddleware

# Front-end dev servers for the POS terminals.
DEV_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")


def parse_origins(allowed: str | None) -> list[str]:
    origins = [o.strip().rstrip("/") for o in (allowed or "").split(",")]
    return [o for o in origins if o] or list(DEV_ORIGINS)


def configure_cors(
    app,
    allowed: str | None,
    methods: Iterable[str] = ("GET", "POST", "OPTIONS"),
    expose: Iterable[str] = ("X-Request-ID",),
):
    """
    Install CORS for a comma separated origin list. A ``*`` anywhere in
    the list opens every origin but turns credentials off, since browsers
    reject that combination.
    """
    origins = parse_origins(allowed)
    wildcard = "*" in origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if wildcard else origins,
        allow_credentials=not wildcard,
        allow_methods=list(methods),
        allow_headers=["*"],
        expose_headers=list(expose),
    )
