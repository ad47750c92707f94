"""Pake GUI web app.

Run with ``pakegui`` (console script) or ``uvicorn pakegui.app:app``.
"""

import logging

from fastapi import FastAPI

from pakegui import __version__
from pakegui.api import router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Pake GUI",
        description="Manage pake-cli projects and build desktop apps from web pages",
        version=__version__,
    )
    app.include_router(router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


app = create_app()


def main() -> None:
    import uvicorn

    from pakegui.config import get_settings

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("Starting Pake GUI on http://%s:%s", settings.web_host, settings.web_port)
    uvicorn.run(app, host=settings.web_host, port=settings.web_port)


if __name__ == "__main__":
    main()
