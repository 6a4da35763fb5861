"""Persistence of captured orders.

The chat service only sees the `OrderSink` capability: `insert(record)` returns
the stored row or raises `PersistenceError`. Each call is a single attempt;
a client retrying after a timeout can create a duplicate row.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional, Protocol

import pydantic
import requests

from pierre_chat.config import Settings
from pierre_chat.db.session import get_session
from pierre_chat.errors import PersistenceError
from pierre_chat.models.order import OrderRecord, OrderRequest, StoredOrder

logger = logging.getLogger(__name__)


class OrderSink(Protocol):
    def insert(self, record: OrderRecord) -> StoredOrder:
        ...


class SupabaseOrderSink:
    """Insert through the hosted store's PostgREST interface with the service-role key."""

    def __init__(self, url: Optional[str], service_key: Optional[str], table: str = "order_request",
                 timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.url = (url or "").rstrip("/")
        self.service_key = service_key
        self.table = table
        self.timeout = timeout
        self.http = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.url}/rest/v1/{self.table}"

    def insert(self, record: OrderRecord) -> StoredOrder:
        if not self.url or not self.service_key:
            logger.error("Order store not configured (SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY missing)")
            raise PersistenceError(detail="order store not configured")

        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        try:
            resp = self.http.post(self.endpoint, json=[record.to_row()], headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            rows = resp.json()
        except requests.HTTPError as e:
            body = e.response.text if e.response is not None else ""
            logger.error("Order insert rejected table=%s status=%s body=%s",
                         self.table, getattr(e.response, "status_code", None), body)
            raise PersistenceError(detail=str(e)) from e
        except (requests.RequestException, ValueError) as e:
            logger.exception("Order insert failed table=%s: %s", self.table, e)
            raise PersistenceError(detail=str(e)) from e

        if isinstance(rows, list):
            row = rows[0] if rows else None
        else:
            row = rows
        if not isinstance(row, dict):
            logger.error("Order insert returned no row table=%s payload=%s", self.table, rows)
            raise PersistenceError(detail="insert returned no row")

        try:
            stored = StoredOrder(**{**record.to_row(), **row})
        except pydantic.ValidationError as e:
            logger.error("Order stored but returned row is unreadable table=%s row=%s: %s", self.table, row, e)
            raise PersistenceError(detail=str(e)) from e
        logger.info("Order stored id=%s table=%s", stored.id, self.table)
        return stored


class SqlOrderSink:
    """Insert into the `order_request` table of a SQL database."""

    def __init__(self, database_url: str):
        self.database_url = database_url

    def insert(self, record: OrderRecord) -> StoredOrder:
        session = None
        try:
            session = get_session(self.database_url)
            row = OrderRequest(**record.to_row())
            session.add(row)
            session.commit()
            session.refresh(row)
            logger.info("Order stored id=%s database", row.id)
            return StoredOrder(**{**record.to_row(), "id": row.id, "created_at": row.created_at})
        except Exception as e:
            logger.exception("Failed to store order in database: %s", e)
            raise PersistenceError(detail=str(e)) from e
        finally:
            if session:
                session.close()


class InMemoryOrderSink:
    """Keeps orders in a list. For local runs and tests."""

    def __init__(self):
        self._lock = threading.Lock()
        self.orders: List[StoredOrder] = []

    def insert(self, record: OrderRecord) -> StoredOrder:
        with self._lock:
            stored = StoredOrder(**record.to_row(), id=len(self.orders) + 1, created_at=datetime.now(timezone.utc))
            self.orders.append(stored)
        logger.info("Order stored id=%s in-memory", stored.id)
        return stored


def build_order_sink(settings: Settings) -> OrderSink:
    kind = settings.order_sink
    if kind == "sql":
        return SqlOrderSink(settings.database_url)
    if kind == "memory":
        return InMemoryOrderSink()
    if kind != "supabase":
        logger.warning("Unknown ORDER_SINK=%s, using supabase", kind)
    return SupabaseOrderSink(
        settings.supabase_url,
        settings.supabase_service_role_key,
        table=settings.order_table,
        timeout=settings.store_timeout_seconds,
    )
