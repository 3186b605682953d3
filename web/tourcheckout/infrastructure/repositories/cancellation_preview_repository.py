from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ...core.exceptions import StorageError
from ...models import CancellationPreview
from ..kv_store import IKeyValueStore


logger = logging.getLogger(__name__)

KEY_PREFIX = "cancelPreview"


def preview_key(booking_id: int) -> str:
    return f"{KEY_PREFIX}:{booking_id}"


class CancellationPreviewRepository:
    """Last refund preview shown per booking, expiring after `ttl` seconds.

    A preview that can't be stored or read is treated as never shown, so
    the cancellation itself is not blocked.
    """

    def __init__(self, store: IKeyValueStore, ttl: Optional[int] = None):
        self.store = store
        self.ttl = ttl

    async def save(self, booking_id: int, preview: CancellationPreview) -> None:
        key = preview_key(booking_id)
        try:
            await self.store.set(key, preview.model_dump_json(by_alias=True), ttl=self.ttl)
        except StorageError as exc:
            logger.warning("Could not store cancel preview %s: %s", key, exc.message)

    async def pop(self, booking_id: int) -> Optional[CancellationPreview]:
        key = preview_key(booking_id)
        try:
            raw = await self.store.get(key)
            if raw:
                await self.store.delete_many([key])
        except StorageError as exc:
            logger.warning("Could not read cancel preview %s: %s", key, exc.message)
            return None
        if not raw:
            return None
        try:
            return CancellationPreview.model_validate_json(raw)
        except PydanticValidationError as exc:
            logger.warning("Ignoring unreadable cancel preview %s: %s", key, exc)
            return None
