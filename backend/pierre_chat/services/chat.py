import logging
from typing import Any, Dict, Optional

from pierre_chat.errors import ConfigurationError
from pierre_chat.models.chat import ChatReply
from pierre_chat.services.confirmation import order_confirmation
from pierre_chat.services.order_parser import parse_order_message
from pierre_chat.services.order_sink import OrderSink
from pierre_chat.services.relay import ConversationRelay

logger = logging.getLogger(__name__)

RELAY_MODES = ("reply", "intent")


class ChatService:
    """Routes one chat message: order commands go to the sink, the rest to the relay."""

    def __init__(self, sink: OrderSink, relay: Optional[ConversationRelay], relay_mode: str = "reply"):
        if relay_mode not in RELAY_MODES:
            raise ValueError(f"relay_mode must be one of {RELAY_MODES}, got {relay_mode!r}")
        self.sink = sink
        self.relay = relay
        self.relay_mode = relay_mode

    def handle(self, message: str) -> Dict[str, Any]:
        order = parse_order_message(message)
        if order is not None:
            logger.info("Order command detected product=%s quantity=%s",
                        order.product_filename, order.quantity)
            self.sink.insert(order)
            return ChatReply(reply=order_confirmation(order)).model_dump()

        if self.relay is None:
            raise ConfigurationError(detail="OPENAI_API_KEY missing")
        if self.relay_mode == "intent":
            return self.relay.classify(message).model_dump()
        return ChatReply(reply=self.relay.reply(message)).model_dump()
