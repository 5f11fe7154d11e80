from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.enums import ClientEvent
from app.exceptions.errors import ApplicationException, StoreUnavailable, UnregisteredSession
from app.schemas.relay_schemas import pairing_error
from app.core.logger import get_logger

logger = get_logger("exception_handlers")

async def application_exception_handler(request: Request, exc: ApplicationException):
    logger.warning(f"Application error: {exc.message}")
    return exc.to_response()

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail}
    )

async def generic_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error: {repr(exc)}")
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred"}
    )


# ============================================================================
# Websocket sessions: per-request error boundary
# ============================================================================

PAIRING_EVENTS = {ClientEvent.GENERATE_PAIRING_CODE.value, ClientEvent.PAIR_WITH_CODE.value}


async def session_exception_handler(session, event: str, exc: Exception) -> None:
    """
    Turn a failed request into what its sender is allowed to see.
    Pairing failures become pairing_error; everything else is only logged.
    """
    if isinstance(exc, UnregisteredSession):
        logger.warning(f"{event} ignored: {exc.message}")
        return

    if isinstance(exc, ApplicationException):
        if isinstance(exc, StoreUnavailable):
            logger.error(f"{event} failed on session {session.id}: {exc.message}")
            client_message = "Pairing is temporarily unavailable"
        else:
            logger.warning(f"{event} rejected on session {session.id}: {exc.message}")
            client_message = exc.message
    else:
        logger.error(f"Unhandled error in {event} on session {session.id}: {repr(exc)}", exc_info=exc)
        client_message = "An unexpected error occurred"

    if event not in PAIRING_EVENTS:
        return
    try:
        await session.send(pairing_error(client_message))
    except Exception as send_exc:
        logger.warning(f"Could not report pairing_error to session {session.id}: {send_exc}")
