"""
Convenience entrypoint to run the restaurant service with uvicorn.

Example:
  python -m apps.restaurant --reload
"""
import uvicorn
import os


def main() -> None:
    reload = os.getenv("RESTAURANT_RELOAD", "false").lower() == "true"
    host = os.getenv("RESTAURANT_HOST", "0.0.0.0")
    port = int(os.getenv("RESTAURANT_PORT", "8000"))
    uvicorn.run(
        "apps.restaurant.app.main:app",
        host=host,
        port=port,
        reload=reload,
        reload_dirs=["apps", "libs"] if reload else None,
    )


if __name__ == "__main__":
    main()
