from __future__ import annotations

import json
import logging
import time
from typing import Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ...core.exceptions import StorageError
from ...models import PendingBookingRecord
from ..kv_store import IKeyValueStore


logger = logging.getLogger(__name__)

KEY_PREFIX = "pendingBooking"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def pending_key(email: str, tour_id: int | str | None) -> str:
    tour_key = "na" if tour_id is None else str(tour_id)
    return f"{KEY_PREFIX}:{normalize_email(email)}:{tour_key}"


def user_prefix(email: str) -> str:
    return f"{KEY_PREFIX}:{normalize_email(email)}:"


class PendingBookingRepository:
    """Recovery pointers to in-flight bookings, one per user and tour.

    Only the booking id is kept, never booking content. Every storage or
    decoding failure is logged and reported as a miss so the booking flow is
    never blocked by the cache.
    """

    def __init__(self, store: IKeyValueStore, ttl: Optional[int] = None):
        self.store = store
        self.ttl = ttl

    async def put(self, email: str, tour_id: int, booking_id: int) -> bool:
        record = PendingBookingRecord(booking_id=booking_id, ts=int(time.time() * 1000))
        key = pending_key(email, tour_id)
        try:
            await self.store.set(key, record.model_dump_json(by_alias=True), ttl=self.ttl)
        except StorageError as exc:
            logger.warning("Could not store pending booking %s: %s", key, exc.message)
            return False
        return True

    async def get(self, email: str, tour_id: int) -> Optional[int]:
        key = pending_key(email, tour_id)
        try:
            raw = await self.store.get(key)
        except StorageError as exc:
            logger.warning("Could not read pending booking %s: %s", key, exc.message)
            return None
        record = _decode(key, raw)
        return record.booking_id if record else None

    async def scan_latest(self, email: str) -> Optional[Tuple[int, int]]:
        """Most recent (booking_id, tour_id) pointer stored for the user"""
        prefix = user_prefix(email)
        try:
            entries = await self.store.scan_prefix(prefix)
        except StorageError as exc:
            logger.warning("Could not scan pending bookings for %s: %s", prefix, exc.message)
            return None

        latest: Optional[Tuple[int, int, int]] = None
        for key, raw in entries.items():
            record = _decode(key, raw)
            if record is None:
                continue
            try:
                tour_id = int(key[len(prefix):])
            except ValueError:
                continue
            if latest is None or record.ts > latest[0]:
                latest = (record.ts, record.booking_id, tour_id)

        if latest is None:
            return None
        return latest[1], latest[2]

    async def purge(self, email: str) -> int:
        """Drop every pointer of the user"""
        prefix = user_prefix(email)
        try:
            entries = await self.store.scan_prefix(prefix)
            removed = await self.store.delete_many(entries.keys())
        except StorageError as exc:
            logger.warning("Could not purge pending bookings for %s: %s", prefix, exc.message)
            return 0
        if removed:
            logger.info("Purged %d pending booking pointer(s) for %s", removed, normalize_email(email))
        return removed


def _decode(key: str, raw: Optional[str]) -> Optional[PendingBookingRecord]:
    if not raw:
        return None
    try:
        return PendingBookingRecord.model_validate(json.loads(raw))
    except (ValueError, PydanticValidationError) as exc:
        logger.warning("Ignoring unreadable pending booking %s: %s", key, exc)
        return None
