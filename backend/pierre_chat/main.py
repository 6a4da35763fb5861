import logging

from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException as StarletteHTTPException

from pierre_chat.api import chat
from pierre_chat.api.cors import json_response, request_settings
from pierre_chat.config import get_settings
from pierre_chat.db.session import create_tables
from pierre_chat.errors import ChatError, MethodNotAllowed
from pierre_chat.models.chat import ErrorResponse

logger = logging.getLogger(__name__)

app = FastAPI(title="TravauxPierre chat")

# CORS is handled per response in api.cors, not with CORSMiddleware: unknown
# origins get the default origin and errors keep their headers.
app.include_router(chat.router, prefix="/api", tags=["chat"])


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    else:
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.public_message)
    return json_response(exc.status_code, ErrorResponse(error=exc.public_message).model_dump(),
                         request.headers.get("origin"), request_settings(request))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    # routing errors (unknown method or path) get the same envelope as ChatError
    if exc.status_code == MethodNotAllowed.status_code:
        message = MethodNotAllowed.default_message
    else:
        message = str(exc.detail)
    logger.info("HTTP %s on %s %s", exc.status_code, request.method, request.url.path)
    resp = json_response(exc.status_code, ErrorResponse(error=message).model_dump(),
                         request.headers.get("origin"), request_settings(request))
    if exc.headers:
        resp.headers.update(exc.headers)
    return resp


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return json_response(500, ErrorResponse(error="server error").model_dump(),
                         request.headers.get("origin"), request_settings(request))


@app.on_event("startup")
def on_startup():
    settings = get_settings()
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("Chat service starting sink=%s relay_mode=%s origins=%s",
                settings.order_sink, settings.relay_mode, list(settings.allowed_origins))
    if settings.order_sink == "sql":
        try:
            create_tables(settings.database_url)
        except Exception as e:
            logger.warning("Failed to create order_request table: %s", e)


@app.get("/")
async def root():
    return {"status": "ok", "service": "travauxpierre-chat"}
