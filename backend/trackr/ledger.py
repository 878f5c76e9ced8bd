"""Notification ledger.

Durable record of notifications already issued, keyed on
(subject_type, subject_id, condition, recipient_id). The table's unique
constraint makes reservation first-writer-wins across workers.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .events import DispatchStatus, NotificationKey
from .models import NotificationRecord

logger = logging.getLogger(__name__)

TERMINAL_OUTCOMES = {
    DispatchStatus.SENT,
    DispatchStatus.SKIPPED_NO_ADDRESS,
    DispatchStatus.FAILED,
}


class LedgerUnavailable(RuntimeError):
    """Raised when the ledger store cannot be reached."""


@dataclass(frozen=True)
class Reservation:
    """Result of a reservation attempt."""

    reserved: bool
    key: NotificationKey


class NotificationLedger:
    """Check-and-insert store for notification keys."""

    def __init__(self, db: Session):
        self.db = db

    def _query(self, key: NotificationKey):
        return self.db.query(NotificationRecord).filter(
            NotificationRecord.subject_type == key.subject_type.value,
            NotificationRecord.subject_id == key.subject_id,
            NotificationRecord.condition == key.condition.value,
            NotificationRecord.recipient_id == key.recipient_id,
        )

    def try_reserve(self, key: NotificationKey) -> Reservation:
        """Reserve a key before dispatching.

        Returns reserved=False when a record already exists, including when
        a concurrent worker inserted it first.

        Raises:
            LedgerUnavailable: On any storage failure other than a duplicate
        """
        try:
            if self._query(key).first() is not None:
                logger.debug(f"Already notified: {key.dedupe_key}")
                return Reservation(reserved=False, key=key)

            self.db.add(
                NotificationRecord(
                    subject_type=key.subject_type.value,
                    subject_id=key.subject_id,
                    condition=key.condition.value,
                    recipient_id=key.recipient_id,
                )
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Lost reservation race for {key.dedupe_key}")
            return Reservation(reserved=False, key=key)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerUnavailable(f"Cannot reserve {key.dedupe_key}: {e}") from e

        return Reservation(reserved=True, key=key)

    def record_outcome(
        self,
        key: NotificationKey,
        outcome: DispatchStatus,
        message_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        """Set the terminal outcome of a reserved key.

        Raises:
            ValueError: If outcome is not a ledger outcome
            LedgerUnavailable: If the store cannot be updated
        """
        if outcome not in TERMINAL_OUTCOMES:
            raise ValueError(f"{outcome.value} is not a ledger outcome")

        try:
            record = self._query(key).first()
            if record is None:
                raise LedgerUnavailable(f"No reservation for {key.dedupe_key}")
            record.outcome = outcome.value
            record.message_id = message_id
            record.error_detail = error
            record.updated_at = datetime.utcnow()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerUnavailable(
                f"Cannot record outcome for {key.dedupe_key}: {e}"
            ) from e

    def get(self, key: NotificationKey) -> Optional[NotificationRecord]:
        """Get the ledger entry for a key, if any."""
        return self._query(key).first()
