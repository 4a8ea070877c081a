from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from nora_today.api.events import router as events_router
from nora_today.api.health import router as health_router
from nora_today.api.lessons import router as lessons_router
from nora_today.api.metrics import router as metrics_router
from nora_today.api.today import router as today_router
from nora_today.core.errors import (
    ContentUpdatedError,
    content_updated_handler,
    http_exception_handler,
    request_id_middleware,
    unhandled_exception_handler,
    validation_exception_handler,
)
from nora_today.core.logging import configure_logging
from nora_today.core.settings import settings
from nora_today.runtime.container import Container, build_container


def create_app(container: Container | None = None) -> FastAPI:
    app = FastAPI(title="Nora Today API", version="0.1.0")
    app.state.container = container
    app.include_router(health_router)
    app.include_router(today_router)
    app.include_router(lessons_router)
    app.include_router(events_router)
    app.include_router(metrics_router)
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ContentUpdatedError, content_updated_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.on_event("startup")
    async def on_startup():
        if app.state.container is None:
            app.state.container = build_container(settings)
        await app.state.container.startup()

    @app.on_event("shutdown")
    async def on_shutdown():
        if app.state.container is not None:
            await app.state.container.shutdown()

    return app


configure_logging(settings.log_level)

app = create_app()
