from collections.abc import Callable

from fastapi import FastAPI


def register_shutdown(app: FastAPI) -> Callable[[Callable], Callable]:
    """
    Register a shutdown hook without FastAPI's deprecated @on_event API.
    Usage:
        @register_shutdown(app)
        def _close(): ...
    """
    def decorator(func: Callable) -> Callable:
        app.router.on_shutdown.append(func)
        return func
    return decorator
