import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from fastapi.responses import JSONResponse
from app.exceptions.handlers import (
    application_exception_handler,
    http_exception_handler,
    generic_exception_handler
)
from app.exceptions.errors import ApplicationException
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.database.base import Base
from app.database.connection import engine, AsyncSessionLocal
from app.api.v1.routes import relay_router
from app.api.v1.controllers.relay_controller import RelayController
from app.services.device_store import DeviceStore

from app.core.config import settings
from app.core.logger import get_logger

logger = get_logger("simlink-broker")

APP_VERSION = "1.0.0"

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("SimLink broker is starting...")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured.")

        app.state.relay_controller = RelayController(DeviceStore(AsyncSessionLocal))

    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise e

    yield

    await engine.dispose()
    logger.info("SimLink broker is shutting down...")


app = FastAPI(
    title="SimLink Broker",
    version=APP_VERSION,
    lifespan=lifespan,
    description="""
    Pairing-and-relay broker for SimLink devices.

    ## Websocket

    Devices connect to `/ws` and exchange JSON frames `{"event": ..., "data": {...}}`.
    Device identity is not authenticated: any client presenting a device id is trusted.
    """
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(relay_router)

@app.get("/", include_in_schema=False)
async def root():
    return {
        "message": "SimLink broker is live",
        "websocket": "/ws",
        "version": APP_VERSION
    }

# 404 middleware
@app.middleware("http")
async def catch_all_404_middleware(request: Request, call_next):
    response = await call_next(request)
    if response.status_code == 404:
        return JSONResponse(
            status_code=404,
            content={"error": "Route not found", "path": str(request.url.path)}
        )
    return response

# Exception handlers
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30
    )
