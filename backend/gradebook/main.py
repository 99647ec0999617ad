from pathlib import Path
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .db import SessionLocal, init_schema
from .cleanup import purge_expired_sessions
from .errors import ApiError
from .settings import settings
from .routers import health
from .routers import auth
from .routers import assessments
from .routers import grading
from .routers import admin
from .routers import blobs

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Gradebook API")
app.add_middleware(
	CORSMiddleware,
	allow_origins=settings.cors_origin_list,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(assessments.router)
app.include_router(grading.router)
app.include_router(admin.router)
app.include_router(blobs.router)

# Static web client at /app (only when a built frontend is configured)
if settings.frontend_dir and Path(settings.frontend_dir).is_dir():
	app.mount("/app", StaticFiles(directory=Path(settings.frontend_dir).resolve(), html=True), name="frontend")

	@app.get("/", include_in_schema=False)
	async def redirect_root_to_app():
		return RedirectResponse(url="/app")


# ---- Error mapping ----

@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
	return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
	issues = jsonable_encoder(exc.errors(), exclude={"ctx", "input", "url"})
	return JSONResponse(status_code=400, content={"ok": False, "error": "Invalid request", "issues": issues})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
	return JSONResponse(
		status_code=exc.status_code,
		content={"ok": False, "error": exc.detail},
		headers=getattr(exc, "headers", None),
	)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
	logger.exception("Unhandled error on %s %s", request.method, request.url.path)
	return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ---- Startup ----

def _purge_sessions() -> None:
	db = SessionLocal()
	try:
		removed = purge_expired_sessions(db)
		if removed:
			logger.info("Purged %d expired sessions", removed)
	finally:
		db.close()


async def _cleanup_watcher():
	while True:
		await asyncio.sleep(24 * 60 * 60)
		try:
			_purge_sessions()
		except Exception:
			logger.exception("Session cleanup failed")


_watcher: asyncio.Task | None = None


@app.on_event("startup")
async def startup_event():
	global _watcher
	init_schema()
	db = SessionLocal()
	try:
		auth.ensure_seed_admin(db)
	finally:
		db.close()
	_purge_sessions()
	# Start periodic cleanup loop
	_watcher = asyncio.create_task(_cleanup_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	if _watcher is not None:
		_watcher.cancel()
