import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import openai
from openai import OpenAI

from pierre_chat.config import Settings
from pierre_chat.errors import (
    LLMParseError,
    UpstreamEmptyReply,
    UpstreamHTTPError,
    UpstreamTimeout,
)
from pierre_chat.models.chat import IntentResult, SearchFilters, SearchIntent, SmalltalkIntent

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 12
MIN_LIMIT = 1
MAX_LIMIT = 50

SMALLTALK_SUGGESTION = (
    "Je peux vous aider à trouver un produit : essayez par exemple "
    "\"marbre noir\" ou \"carrelage entre 20 et 40 € le m²\"."
)

INTENT_INSTRUCTIONS = """
Classify the user's message for a stone and tile gallery. Respond ONLY with a JSON object:
{
  "intent": "search" | "smalltalk",
  "keywords": "",
  "page": 1,
  "min": null,
  "max": null,
  "limit": 12,
  "answer": ""
}
Use "search" when the user looks for products (keywords, price range min/max in euros, page, limit).
Use "smalltalk" for anything else and put a short French reply in "answer".
"""


def _clean_json_text(text: str) -> str:
    # models sometimes wrap the object in markdown fences or prose
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start:end + 1]
    return text


def clamp_limit(value: Any) -> int:
    try:
        limit = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    return max(MIN_LIMIT, min(MAX_LIMIT, limit))


def _optional_number(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_page(value: Any) -> Optional[int]:
    number = _optional_number(value)
    if number is None or number < 1:
        return None
    return int(number)


def _keywords(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = " ".join(str(v) for v in value if v)
    text = str(value).strip() if value is not None else ""
    return text or None


def normalize_intent(data: Dict[str, Any]) -> IntentResult:
    """Coerce the model's classification into a search or smalltalk result."""
    intent = str(data.get("intent") or "").strip().lower()
    if intent == "search":
        filters = SearchFilters(
            keywords=_keywords(data.get("keywords")),
            page=_optional_page(data.get("page")),
            min=_optional_number(data.get("min")),
            max=_optional_number(data.get("max")),
            limit=DEFAULT_LIMIT if data.get("limit") is None else clamp_limit(data.get("limit")),
        )
        return SearchIntent(filters=filters)
    if intent != "smalltalk":
        logger.warning("Unexpected intent from model: %r, treating as smalltalk", intent)
    answer = str(data.get("answer") or "").strip()
    return SmalltalkIntent(answer=answer or SMALLTALK_SUGGESTION)


class ConversationRelay:
    """Forwards a chat message to the completion API.

    `models` is tried in order and the first success wins: the primary model,
    then its fallback. `timeout` is one budget for the whole sequence: each
    call gets what is left of it, and no call starts once it is spent. The
    SDK applies a per-request timeout to each phase of the request (connect,
    write, read), so a single slow call can overrun the remaining budget by
    up to a few phases; the budget is checked again before the next model.
    """

    def __init__(self, client: Any, models: Sequence[str], system_prompt: str,
                 timeout: float = 15.0, temperature: float = 0.4, max_tokens: int = 400,
                 clock: Callable[[], float] = time.monotonic):
        if not models:
            raise ValueError("at least one model is required")
        self.client = client
        self.models = tuple(models)
        self.system_prompt = system_prompt
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.clock = clock

    def _messages(self, message: str, system_prompt: Optional[str] = None) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt or self.system_prompt},
            {"role": "user", "content": message},
        ]

    def _complete(self, messages: List[Dict[str, str]], **extra: Any) -> str:
        deadline = self.clock() + self.timeout
        last_error: Optional[UpstreamHTTPError] = None

        for model in self.models:
            remaining = deadline - self.clock()
            if remaining <= 0:
                logger.error("Completion budget of %ss exhausted before model=%s", self.timeout, model)
                raise UpstreamTimeout(detail="budget exhausted before %s" % model)
            try:
                logger.debug("Calling completion API model=%s timeout=%.1fs", model, remaining)
                resp = self.client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    timeout=remaining,
                    **extra,
                )
            except openai.APITimeoutError as e:
                logger.error("Completion API timed out model=%s after %ss budget", model, self.timeout)
                raise UpstreamTimeout(detail=str(e)) from e
            except openai.APIStatusError as e:
                body = e.response.text if e.response is not None else None
                logger.error("Completion API error model=%s status=%s body=%s", model, e.status_code, body)
                last_error = UpstreamHTTPError(e.status_code, body)
                continue
            except openai.APIConnectionError as e:
                logger.error("Completion API unreachable model=%s: %s", model, e)
                last_error = UpstreamHTTPError(None, str(e))
                continue

            content = None
            if resp.choices:
                content = resp.choices[0].message.content
            text = (content or "").strip()
            if not text:
                logger.error("Completion API returned no content model=%s", model)
                raise UpstreamEmptyReply(detail="empty completion from %s" % model)
            if model != self.models[0]:
                logger.info("Completion served by fallback model=%s", model)
            return text

        raise last_error

    def reply(self, message: str) -> str:
        return self._complete(self._messages(message))

    def classify(self, message: str) -> IntentResult:
        raw = self._complete(
            self._messages(message, self.system_prompt + "\n" + INTENT_INSTRUCTIONS),
            response_format={"type": "json_object"},
        )
        try:
            data = json.loads(_clean_json_text(raw))
        except ValueError as e:
            logger.error("Failed to parse LLM output to JSON: %s raw=%r", e, raw[:500])
            raise LLMParseError(detail=str(e)) from e
        if not isinstance(data, dict):
            logger.error("LLM output is not a JSON object: %r", raw[:500])
            raise LLMParseError(detail="not an object")
        return normalize_intent(data)


def build_relay(settings: Settings) -> Optional[ConversationRelay]:
    """Relay wired to the OpenAI API, or None when no API key is configured."""
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; conversational messages will fail")
        return None
    # the model chain is the only retry policy
    client = OpenAI(api_key=settings.openai_api_key, max_retries=0)
    return ConversationRelay(
        client,
        settings.model_chain,
        settings.assistant_prompt,
        timeout=settings.llm_timeout_seconds,
        temperature=settings.openai_temperature,
        max_tokens=settings.openai_max_tokens,
    )
