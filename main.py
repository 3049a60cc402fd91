import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from hourbook.core.config import settings
from hourbook.core.exceptions import setup_exception_handlers
from hourbook.core.logging import setup_logging
from hourbook.api.v1.timesheets import router as timesheets_router
from hourbook.api.v1.reports import router as reports_router
from hourbook.api.v1.cron import router as cron_router
from hourbook.db.mongo import get_mongo_client, close_mongo_client
from hourbook.db.mongo_indexes import ensure_indexes

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Hourbook Backend")

# Build CORS allowlist from local dev + configured origins
_base_origins = {
    "http://localhost:3000",
    "http://127.0.0.1:3000",
}
if settings.FRONTEND_BASE_URL:
    _base_origins.add(settings.FRONTEND_BASE_URL)
for o in settings.ALLOWED_ORIGINS:
    _base_origins.add(o)
# Origin headers never carry a trailing slash
_allowed_origins = sorted({o.rstrip('/') for o in _base_origins if o})

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_origin_regex=r"^http(s)?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)


@app.get("/")
def read_root():
    return {"message": "Welcome to Hourbook Backend"}


@app.get("/health")
def health_check():
    return {"status": "ok"}


# Mount API routers
app.include_router(timesheets_router, prefix="/api/v1")
app.include_router(reports_router, prefix="/api/v1")
app.include_router(cron_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup():
    get_mongo_client()
    # Create required indexes (non-fatal on failure)
    try:
        await ensure_indexes()
    except Exception as exc:
        logger.warning("Mongo index initialization failed: %s", exc)


@app.on_event("shutdown")
async def on_shutdown():
    close_mongo_client()
