"""
Batch Manager - Main Application

FastAPI backend with:
- MongoDB for administrators, users and batches
- JWT authentication (bcrypt password hashing)
- JSON envelope for every error: {"success": false, "message": ...}

Run: uvicorn app.main:app --reload
 or: python -m app.main   (listens on PORT, default 3000)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import api_router
from app.core.config import get_settings
from app.core.errors import AppError, ConflictError, format_validation_errors
from app.db.mongodb import close_mongo_client, init_mongo_indexes, test_mongo_connection

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s %(levelname)s %(name)s %(message)s',
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Create MongoDB indexes on startup, close the client on shutdown."""
    try:
        init_mongo_indexes()
    except Exception:
        logger.exception("mongo_index_init_failed")
    yield
    close_mongo_client()


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    # unknown routes, wrong methods
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None)
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Validation error",
            "details": format_validation_errors(exc.errors())
        }
    )


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    # A unique index caught a race the route's pre-check missed
    logger.info("duplicate_key path=%s", request.url.path)
    conflict = ConflictError()
    return JSONResponse(status_code=conflict.status_code, content=conflict.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s method=%s", request.url.path, request.method)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error", "error": str(exc)}
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Batch Manager",
        description="""
        Classroom batch management backend.

        ## Features
        - **Admins (teachers)**: register, create batches, enroll students, post announcements
        - **Students**: register (parent account created alongside), join batches by code
        - **Parents**: view the batches and announcements of linked students
        """,
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # CORS middleware (allow all for development)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(api_router)

    @app.get("/", tags=["Health"])
    async def root():
        return {"status": "healthy", "app": "Batch Manager"}

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Detailed health check."""
        return {
            "status": "healthy",
            "mongodb": "connected" if test_mongo_connection() else "disconnected"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.port, reload=settings.debug)
