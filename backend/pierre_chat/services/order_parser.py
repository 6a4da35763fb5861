import logging
import re
import unicodedata
from typing import Dict, Optional, Tuple

from pierre_chat.models.order import DEFAULT_UNIT, OrderRecord

logger = logging.getLogger(__name__)

# "Commande:" / "commande :" at the start of the message
COMMAND_RE = re.compile(r"^commande\s*:", re.I)
# key = value, value runs to the next comma
PAIR_RE = re.compile(r"(?:^|,)\s*([^=,]+?)\s*=\s*([^,]*)")

# field -> accepted keys, first match wins
FIELD_ALIASES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("customer_name", ("nom", "name")),
    ("phone", ("tel", "telephone", "phone")),
    ("product_filename", ("produit", "product")),
    ("quantity", ("quantite", "qty")),
    ("unit", ("unit", "unite")),
    ("note", ("note",)),
)

REQUIRED_FIELDS = ("phone",)


def _fold_key(key: str) -> str:
    decomposed = unicodedata.normalize("NFKD", key.strip().lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def command_payload(message: str) -> Optional[str]:
    """Return the text after the `commande:` prefix, or None for a conversational message."""
    text = (message or "").strip()
    if not COMMAND_RE.match(text):
        return None
    return COMMAND_RE.sub("", text, count=1).strip()


def parse_pairs(payload: str) -> Dict[str, str]:
    """Split `k=v, k=v` into a dict of folded keys. Repeated keys keep their first value."""
    pairs: Dict[str, str] = {}
    for key, value in PAIR_RE.findall(payload or ""):
        folded = _fold_key(key)
        value = value.strip()
        if folded and value and folded not in pairs:
            pairs[folded] = value
    return pairs


def extract_order(payload: str, raw_message: str) -> Optional[OrderRecord]:
    """Build an OrderRecord from a command payload.

    Returns None when a required field is missing; the caller then treats the
    message as ordinary conversation.
    """
    pairs = parse_pairs(payload)
    fields: Dict[str, Optional[str]] = {}
    for field, keys in FIELD_ALIASES:
        fields[field] = next((pairs[k] for k in keys if k in pairs), None)

    missing = [f for f in REQUIRED_FIELDS if not fields.get(f)]
    if missing:
        logger.info("Order command rejected, missing=%s keys=%s", missing, sorted(pairs))
        return None

    return OrderRecord(
        customer_name=fields["customer_name"],
        phone=fields["phone"],
        product_filename=fields["product_filename"],
        quantity=fields["quantity"],
        quantity_text=fields["quantity"],
        unit=fields["unit"] or DEFAULT_UNIT,
        note=fields["note"],
        raw_message=raw_message,
    )


def parse_order_message(message: str) -> Optional[OrderRecord]:
    payload = command_payload(message)
    if payload is None:
        return None
    return extract_order(payload, raw_message=message.strip())
