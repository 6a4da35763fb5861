from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Field, SQLModel

DEFAULT_UNIT = "m²"

Number = Union[int, float]


def coerce_quantity(value: Any) -> Optional[Number]:
    """Turn a submitted quantity into a number; anything non-numeric becomes None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(" ", "")
        try:
            number = float(text)
        except ValueError:
            return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return int(number) if number.is_integer() else number


class OrderRecord(BaseModel):
    """An order extracted from a `Commande:` chat message."""

    model_config = ConfigDict(frozen=True)

    customer_name: Optional[str] = None
    phone: Optional[str] = None
    product_filename: Optional[str] = None
    quantity: Optional[Number] = None
    quantity_text: Optional[str] = None
    unit: str = DEFAULT_UNIT
    note: Optional[str] = None
    raw_message: str

    @field_validator("quantity", mode="before")
    @classmethod
    def _numeric_quantity(cls, v):
        return coerce_quantity(v)

    def to_row(self) -> Dict[str, Any]:
        # quantity_text is what the customer typed; only the number is stored
        return self.model_dump(exclude={"quantity_text"})


class StoredOrder(OrderRecord):
    id: Optional[Union[int, str]] = None
    created_at: Optional[datetime] = None


class OrderRequest(SQLModel, table=True):
    __tablename__ = "order_request"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    product_filename: Optional[str] = None
    quantity: Optional[float] = None
    unit: str = DEFAULT_UNIT
    note: Optional[str] = None
    raw_message: str
