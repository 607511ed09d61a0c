import logging
import os
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.config import get_config
from backend.routes import router
from backend.sessions import SessionRegistry
from progress_engine.clock import Clock
from progress_engine.engine import ProgressEngine
from progress_engine.rules import InvariantViolation
from progress_engine.store import DocumentStore, JsonFileStore, MemoryStore, StoreError

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"

logger = logging.getLogger(__name__)


def build_store(config: dict, data_dir: Path) -> DocumentStore:
    attempts = int(config["transaction_max_attempts"])
    if config["store_backend"] == "memory":
        return MemoryStore(max_attempts=attempts)
    return JsonFileStore(data_dir / "store", max_attempts=attempts)


def create_app(
    data_dir: Path | None = None,
    store: DocumentStore | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    config = get_config(resolved)
    logging.basicConfig(
        level=config["log_level"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = ProgressEngine(store or build_store(config, resolved), clock)
    sessions = SessionRegistry(
        engine,
        throttle=timedelta(seconds=float(config["rollover_throttle_seconds"])),
        default_pets=config["default_pets"],
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await sessions.close_all()

    app = FastAPI(title="Pet Progress Engine", lifespan=lifespan)
    app.state.data_dir = resolved
    app.state.engine = engine
    app.state.sessions = sessions
    app.include_router(router, prefix="/api")

    @app.exception_handler(InvariantViolation)
    async def invariant_violation(request: Request, exc: InvariantViolation):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    async def store_error(request: Request, exc: StoreError):
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Store unavailable, try again"})

    logger.info("store=%s data_dir=%s", config["store_backend"], resolved)
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
