import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

import database
from config import Settings
from errors import StorefrontError
from notifications import NotificationService
from pdf_generator import PDFGenerator
from routes import cart, orders, products, users
from uploads import ImageStore

logger = logging.getLogger("storefront")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="Storefront API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.database_url and settings.database_name:
        database.connect(settings.database_url, settings.database_name)
    if database.db is not None:
        database.ensure_indexes()
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")

    app.state.settings = settings
    app.state.images = ImageStore.from_settings(settings)
    app.state.pdfs = PDFGenerator.from_settings(settings)
    app.state.notifier = NotificationService.from_settings(settings)

    os.makedirs(settings.uploads_dir, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.uploads_dir), name="uploads")

    for module in (users, products, cart, orders):
        app.include_router(module.router, prefix="/api")

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message, "error_type": type(exc).__name__},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": _validation_message(exc), "error_type": "ValidationError"},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "message": "Something went wrong!"})

    @app.get("/")
    def read_root():
        return {"message": "Storefront API running"}

    @app.get("/health")
    def health():
        response = {
            "success": True,
            "backend": "running",
            "database": "not configured",
            "database_name": None,
            "collections": [],
        }
        if database.db is not None:
            response["database_name"] = database.db.name
            try:
                response["collections"] = database.db.list_collection_names()[:10]
                response["database"] = "connected"
            except Exception as e:
                logger.warning("Health check could not list collections: %s", e)
                response["database"] = f"error: {str(e)[:80]}"
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
