"""Tiendanube Sync - Main Entry Point."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env before anything reads the environment (logger reads LOG_LEVEL at import)
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)

from tiendanube_sync.config.settings import settings  # noqa: E402
from tiendanube_sync.server.app import create_app  # noqa: E402

# Create FastAPI application
app = create_app()


def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    reload = os.getenv("RELOAD", "false").lower() == "true"

    uvicorn.run(
        "tiendanube_sync.main:app",
        host=settings.host,
        port=settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=120,
        timeout_keep_alive=5,
        access_log=False,  # structured logging instead
    )


if __name__ == "__main__":
    run()
