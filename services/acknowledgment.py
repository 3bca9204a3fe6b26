"""
One-shot "thanks for donating" acknowledgment and the donation-success event.

Both are raised by RecordStore only after commit verification succeeds.
"""

from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import ValidationError

from db import MemoryStorage, StorageBackend
from exceptions import StorageError
from logger import get_logger
from schemas import DonationRecord, ThanksAck

logger = get_logger()

THANKS_KEY = "dms_thanks"

SuccessListener = Callable[[DonationRecord], None]


class AcknowledgmentSlot:
    """
    Holds at most one ThanksAck. The confirmation view calls consume(), which
    returns the ack and clears it, so a second call returns None.
    """

    def __init__(self, storage: Optional[StorageBackend] = None) -> None:
        self.storage = storage if storage is not None else MemoryStorage()

    def post(self, record: DonationRecord) -> Optional[ThanksAck]:
        ack = ThanksAck(
            donation_id=record.id,
            type=record.type,
            committed_at=datetime.now(timezone.utc).isoformat(),
        )
        try:
            self.storage.set_item(THANKS_KEY, ack.model_dump_json(by_alias=True))
        except StorageError as e:
            # The donation stands; only the acknowledgment is lost.
            logger.warning("Could not store acknowledgment for %s: %s", record.id, e)
            return None
        return ack

    def consume(self) -> Optional[ThanksAck]:
        raw = self.storage.get_item(THANKS_KEY)
        if raw is None:
            return None
        self.storage.remove_item(THANKS_KEY)
        try:
            return ThanksAck.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable acknowledgment")
            return None


class SuccessEvents:
    """Subscribers are called with the new record after a committed donation."""

    def __init__(self) -> None:
        self._listeners: List[SuccessListener] = []

    def subscribe(self, listener: SuccessListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SuccessListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def announce(self, record: DonationRecord) -> None:
        for listener in list(self._listeners):
            try:
                listener(record.model_copy())
            except Exception:
                logger.exception("donation success listener failed for %s", record.id)
