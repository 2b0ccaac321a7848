"""In-memory payment status, shared by the webhook and the status polling route.

Entries live for ``max_age_seconds`` (24h by default) counted from the first save.
"""

import logging
import threading
from dataclasses import dataclass, asdict, replace
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app

from ..helpers import money, now_utc

logger = logging.getLogger(__name__)

STORE_STATUSES = ("pending", "paid", "failed", "expired")
CLEANUP_INTERVAL = timedelta(minutes=30)


@dataclass
class PaymentRecord:
    transaction_id: str
    status: str
    amount: Decimal
    created_at: datetime
    updated_at: datetime
    paid_at: datetime | None = None
    external_id: str = ""

    def to_dict(self):
        data = asdict(self)
        data["amount"] = float(self.amount)
        for k in ("created_at", "updated_at", "paid_at"):
            data[k] = data[k].isoformat() if data[k] else None
        return data


class PaymentStatusStore:
    def __init__(self, max_age_seconds: int = 24 * 60 * 60):
        self.max_age = timedelta(seconds=int(max_age_seconds))
        self._records: dict[str, PaymentRecord] = {}
        self._lock = threading.Lock()
        self._last_prune = now_utc()

    def save(self, transaction_id: str, status: str, amount=0, paid_at=None, external_id: str = "") -> PaymentRecord:
        if status not in STORE_STATUSES:
            raise ValueError(f"Status de pagamento inválido: {status}")

        now = now_utc()
        with self._lock:
            existing = self._records.get(transaction_id)
            record = PaymentRecord(
                transaction_id=transaction_id,
                status=status,
                amount=money(amount),
                paid_at=paid_at,
                external_id=external_id or (existing.external_id if existing else ""),
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            self._records[transaction_id] = record

            if now - self._last_prune >= CLEANUP_INTERVAL:
                self._prune_locked(now)

        logger.info("Status de pagamento salvo: %s -> %s", transaction_id, status)
        return replace(record)

    def get(self, transaction_id: str) -> PaymentRecord | None:
        with self._lock:
            record = self._records.get(transaction_id)
            return replace(record) if record else None

    def get_by_external_id(self, external_id: str) -> PaymentRecord | None:
        if not external_id:
            return None
        with self._lock:
            for record in self._records.values():
                if record.external_id == external_id:
                    return replace(record)
        return None

    def delete(self, transaction_id: str) -> bool:
        with self._lock:
            return self._records.pop(transaction_id, None) is not None

    def all(self) -> list[PaymentRecord]:
        with self._lock:
            return [replace(r) for r in self._records.values()]

    def prune(self, now: datetime | None = None) -> int:
        with self._lock:
            return self._prune_locked(now or now_utc())

    def _prune_locked(self, now: datetime) -> int:
        stale = [tx for tx, r in self._records.items() if now - r.created_at > self.max_age]
        for tx in stale:
            del self._records[tx]
        self._last_prune = now
        if stale:
            logger.info("%d status de pagamento expirados removidos", len(stale))
        return len(stale)

    def __len__(self):
        with self._lock:
            return len(self._records)


def init_store(app):
    store = PaymentStatusStore(app.config.get("PAYMENT_STATUS_MAX_AGE", 24 * 60 * 60))
    app.extensions["payment_store"] = store
    return store

def get_store() -> PaymentStatusStore:
    store = current_app.extensions.get("payment_store")
    if store is None:
        store = init_store(current_app)
    return store
