import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi

from drive.shared.config import settings
from drive.shared.db import init_db
from drive.shared.http import install_error_handlers

# Routers Import
from drive.auth.api import router as auth_router
from drive.files.api import router as files_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

TAGS_METADATA = [
    {"name": "Auth", "description": "Google sign-in, session cookie, current user"},
    {"name": "Files", "description": "Upload, list, rename, delete, search, download"},
    {"name": "Health", "description": "Service health"},
]

app = FastAPI(
    title="Drive",
    version="0.1.0",
    description="Personal cloud file storage behind Google sign-in.",
    openapi_tags=TAGS_METADATA,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted({settings.FRONTEND_URL, *settings.CORS_ORIGINS}),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Cookie"],
)

install_error_handlers(app)


@app.on_event("startup")
def _init_db():
    init_db()
    logger.info("env=%s frontend=%s google_login=%s", settings.ENV, settings.FRONTEND_URL, settings.google_configured)

@app.get("/healthz", tags=["Health"])
def healthz():
    return {"ok": True}

# Routers
app.include_router(auth_router, prefix=settings.API_PREFIX)
app.include_router(files_router, prefix=settings.API_PREFIX)

# --- Custom OpenAPI: every /files operation needs the session cookie ---
def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    for path, ops in schema.get("paths", {}).items():
        if not path.startswith(f"{settings.API_PREFIX}/files"):
            continue
        for op in ops.values():
            op.setdefault("security", [{"sessionCookie": []}])
    app.openapi_schema = schema
    return app.openapi_schema

app.openapi = custom_openapi
