from functools import lru_cache
from typing import List, Optional, Tuple
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

DEFAULT_SITE_ORIGIN = "https://travauxpierre-site.vercel.app"
DEFAULT_EXTRA_ORIGINS = "http://localhost:5173,http://localhost:3000"

DEFAULT_ASSISTANT_PROMPT = (
    "Tu es l'assistant de TravauxPierre, entreprise de pierre naturelle, marbre et carrelage. "
    "Réponds en français, avec des réponses courtes et utiles. "
    "Pour passer commande, le client écrit : "
    "\"Commande: nom=..., tel=..., produit=..., quantite=...\"."
)


class Settings(BaseModel):
    """Process-wide configuration, read from the environment once and never mutated."""

    model_config = ConfigDict(frozen=True)

    allowed_origins: Tuple[str, ...] = (DEFAULT_SITE_ORIGIN,)

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_fallback_model: Optional[str] = "gpt-3.5-turbo"
    openai_temperature: float = 0.4
    openai_max_tokens: int = 400
    llm_timeout_seconds: float = 15.0
    relay_mode: str = "reply"
    assistant_prompt: str = DEFAULT_ASSISTANT_PROMPT

    order_sink: str = "supabase"
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    order_table: str = "order_request"
    store_timeout_seconds: float = 10.0
    database_url: str = "sqlite:///./orders.db"

    log_level: str = "INFO"

    @property
    def model_chain(self) -> Tuple[str, ...]:
        """Model identifiers tried in order, primary first."""
        models = [self.openai_model]
        if self.openai_fallback_model and self.openai_fallback_model not in models:
            models.append(self.openai_fallback_model)
        return tuple(models)

    @classmethod
    def from_env(cls) -> "Settings":
        primary = os.getenv("PUBLIC_SITE_ORIGIN") or DEFAULT_SITE_ORIGIN
        extra = os.getenv("EXTRA_ALLOWED_ORIGINS", DEFAULT_EXTRA_ORIGINS)
        return cls(
            allowed_origins=_origin_list(primary, extra),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_fallback_model=os.getenv("OPENAI_FALLBACK_MODEL", "gpt-3.5-turbo") or None,
            openai_temperature=float(os.getenv("OPENAI_TEMPERATURE", "0.4")),
            openai_max_tokens=int(os.getenv("OPENAI_MAX_TOKENS", "400")),
            llm_timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "15")),
            relay_mode=os.getenv("RELAY_MODE", "reply").strip().lower(),
            assistant_prompt=os.getenv("ASSISTANT_PROMPT") or DEFAULT_ASSISTANT_PROMPT,
            order_sink=os.getenv("ORDER_SINK", "supabase").strip().lower(),
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or None,
            order_table=os.getenv("ORDER_TABLE", "order_request"),
            store_timeout_seconds=float(os.getenv("STORE_TIMEOUT_SECONDS", "10")),
            database_url=os.getenv("DATABASE_URL", "sqlite:///./orders.db"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def _origin_list(primary: str, extra: str) -> Tuple[str, ...]:
    origins: List[str] = [primary.strip()]
    for o in extra.split(","):
        o = o.strip()
        if o and o not in origins:
            origins.append(o)
    return tuple(origins)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv()
    return Settings.from_env()
