import json
import logging
from functools import lru_cache
from typing import Any, Dict, Union

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from pierre_chat.api.cors import json_response, preflight_response
from pierre_chat.config import Settings, get_settings
from pierre_chat.errors import ValidationError
from pierre_chat.services.chat import ChatService
from pierre_chat.services.order_sink import build_order_sink
from pierre_chat.services.relay import build_relay

logger = logging.getLogger(__name__)
router = APIRouter()


def normalize_body(raw: Union[bytes, str, Dict[str, Any], None]) -> Dict[str, Any]:
    """Decode the request body into a dict. Unparseable input becomes {}."""
    body: Any = raw
    # a JSON document may itself be a JSON-encoded string
    for _ in range(2):
        if isinstance(body, (bytes, bytearray)):
            body = body.decode("utf-8", errors="replace")
        if not isinstance(body, str):
            break
        if not body.strip():
            return {}
        try:
            body = json.loads(body)
        except ValueError:
            logger.debug("Ignoring unparseable request body")
            return {}
    return body if isinstance(body, dict) else {}


def extract_message(body: Dict[str, Any]) -> str:
    value = body.get("message")
    message = "" if value is None else str(value).strip()
    if not message:
        raise ValidationError("Message required")
    return message


@lru_cache(maxsize=4)
def _service_for(settings: Settings) -> ChatService:
    return ChatService(build_order_sink(settings), build_relay(settings), relay_mode=settings.relay_mode)


def get_chat_service(settings: Settings = Depends(get_settings)) -> ChatService:
    return _service_for(settings)


@router.options("/chat")
async def chat_preflight(request: Request, settings: Settings = Depends(get_settings)):
    return preflight_response(request.headers.get("origin"), settings)


@router.post("/chat")
async def chat(request: Request,
               settings: Settings = Depends(get_settings),
               service: ChatService = Depends(get_chat_service)):
    """Answer a chat widget message: `{"message": "..."}` -> `{"reply": "..."}`."""
    origin = request.headers.get("origin")
    body = normalize_body(await request.body())
    message = extract_message(body)
    logger.debug("Chat message received origin=%s length=%s", origin, len(message))

    result = await run_in_threadpool(service.handle, message)
    return json_response(200, result, origin, settings)
