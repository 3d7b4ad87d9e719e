import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from scribe_dispatch.api.routes import router as api_router
from scribe_dispatch.config import (
    ALLOWED_ORIGINS,
    DEFAULT_ADAPTER,
    ENV_PATH,
    HOST,
    LOG_LEVEL,
    MAX_CONCURRENT_JOBS,
    MAX_QUEUE_SIZE,
    OUTPUT_ROOT,
    PORT,
    PREPARE_ON_STARTUP,
    get_execution_timeout,
)
from scribe_dispatch.core.factory import create_registry
from scribe_dispatch.services.transcription import TranscriptionService

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("scribe_dispatch.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🌱 System starting up...")
    logger.info(f"📋 Environment root: {ENV_PATH}")
    logger.info(f"📋 Default adapter: {DEFAULT_ADAPTER}")

    registry = create_registry(ENV_PATH)
    service = TranscriptionService(
        registry=registry,
        output_root=OUTPUT_ROOT,
        max_concurrent_jobs=MAX_CONCURRENT_JOBS,
        max_queue_size=MAX_QUEUE_SIZE,
        execution_timeout=get_execution_timeout(),
    )
    app.state.service = service
    app.state.default_adapter = DEFAULT_ADAPTER

    warmup: asyncio.Task | None = None
    if PREPARE_ON_STARTUP:
        warmup = asyncio.create_task(service.prepare_in_background(DEFAULT_ADAPTER))

    logger.info("✅ System ready! Listening for requests...")

    yield

    logger.info("🛑 System shutting down...")
    if warmup is not None and not warmup.done():
        warmup.cancel()
        await asyncio.gather(warmup, return_exceptions=True)


app = FastAPI(title="Scribe Dispatch", version="1.0.0", lifespan=lifespan)

cors_origins = ALLOWED_ORIGINS.split(",") if ALLOWED_ORIGINS != "*" else ["*"]
logger.info(f"🔒 CORS allowed origins: {cors_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware (assigns request_id, logs duration)
@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()
    logger.info(f"[{request_id}] {request.method} {request.url.path}")

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(f"[{request_id}] Completed in {duration:.2f}s - Status: {response.status_code}")

    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "default_adapter": getattr(app.state, "default_adapter", "unknown"),
    }


if __name__ == "__main__":
    uvicorn.run(app, host=HOST, port=PORT)
