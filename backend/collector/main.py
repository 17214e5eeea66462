import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .db import Base, engine, ensure_schema
from .errors import CollectorError
from .settings import settings
from .routers import health
from .routers import progress
from .routers import scripts
from .routers import uploads

logging.basicConfig(
	level=settings.log_level.upper(),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

app = FastAPI(title="Voice Script Collector API")
app.include_router(health.router)
app.include_router(progress.router)
app.include_router(scripts.router)
app.include_router(uploads.router)


@app.exception_handler(CollectorError)
async def collector_error_handler(request: Request, exc: CollectorError):
	if exc.status_code >= 500:
		logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
	return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/info")
def root():
	return {"status": "ok", "scripts_per_level": settings.scripts_per_level}


@app.on_event("startup")
async def startup_event():
	# Migrate legacy users tables before create_all so existing rows gain the level columns
	ensure_schema()
	Base.metadata.create_all(bind=engine)
	logger.info(
		"Collector ready: %d scripts per level, sheets configured=%s, drive configured=%s",
		settings.scripts_per_level, settings.sheets_configured, settings.drive_configured,
	)


@app.on_event("shutdown")
async def shutdown_event():
	google = getattr(app.state, "google", None)
	if google is not None:
		app.state.google = None
		await google.aclose()
