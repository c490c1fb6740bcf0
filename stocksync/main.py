import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stocksync.api import auth, movements, products, realtime
from stocksync.config import settings
from stocksync.database import SessionLocal, init_db
from stocksync.exceptions import StockSyncError
from stocksync.services.auth_service import ensure_default_user
from stocksync.services.broadcast_service import Broadcaster
from stocksync.services.connection_registry import ConnectionRegistry

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    db = SessionLocal()
    try:
        ensure_default_user(db)
    finally:
        db.close()

    registry = ConnectionRegistry(default_room=settings.DEFAULT_ROOM)
    app.state.registry = registry
    app.state.broadcaster = Broadcaster(registry, alert_room=settings.ALERT_ROOM)
    logger.info("WebSocket server ready")
    try:
        yield
    finally:
        await registry.close()


app = FastAPI(
    title="StockSync API",
    description="Warehouse stock tracking with real-time stock updates and low-stock alerts",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StockSyncError)
async def stocksync_error_handler(request: Request, exc: StockSyncError):
    if exc.status_code >= 500:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message or str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are reported as 400 {error}, like the service's own validation errors."""
    problems = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())[1:])
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"error": "; ".join(problems) or "Invalid request"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return JSON for unhandled exceptions so the dashboard can show the error."""
    logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
    return JSONResponse(status_code=500, content={"error": str(exc)})


app.include_router(auth.router, prefix="/api")
app.include_router(products.router, prefix="/api")
app.include_router(movements.router, prefix="/api")
app.include_router(realtime.router)


@app.get("/")
def root():
    return {"message": "StockSync backend with WebSocket running"}


@app.get("/health")
def health():
    return {"status": "ok", "connections": len(app.state.registry) if hasattr(app.state, "registry") else 0}
