from __future__ import annotations

from fastapi import FastAPI

from lifeline.api.errors import install_error_handlers
from lifeline.api.routes import router
from lifeline.container import Container, build_container


def create_app(container: Container | None = None) -> FastAPI:
    app = FastAPI(title="Lifeline Emergency Coordinator", version="1.0.0")
    app.state.container = container or build_container()
    install_error_handlers(app)
    app.include_router(router)
    return app
