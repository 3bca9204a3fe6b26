"""
Donation record store over a normalized set of tables.

Master table (dms_donation_records) holds the fields every donation shares;
food, clothes and money sub-tables hold the type-specific fields and point
back with donationId. Each table is read whole, changed in memory and written
whole, newest row first.
"""

import secrets
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, TypeVar

from db import (
    CLOTHES_TABLE,
    FOOD_TABLE,
    MONEY_TABLE,
    NOTIFICATIONS_TABLE,
    RECORDS_TABLE,
    TableRepository,
)
from exceptions import InvalidTargetAgeError, StorageError
from logger import get_logger
from schemas import (
    VALID_AGES,
    ApparelSubRecord,
    DonationDetail,
    DonationRecord,
    DonationType,
    FoodSubRecord,
    InventorySummary,
    MoneySubRecord,
    Notification,
    NotificationType,
    Row,
    StatusCounts,
    UserSession,
)
from services.acknowledgment import AcknowledgmentSlot, SuccessEvents
from services.auth import require_admin

logger = get_logger()

R = TypeVar("R", bound=Row)

SUB_TABLES: Dict[str, str] = {
    "food": FOOD_TABLE,
    "apparel": CLOTHES_TABLE,
    "money": MONEY_TABLE,
}


def _gen_id(prefix: str = "dr") -> str:
    """Prefixed, time-ordered unique id."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(3)[:5]}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_age(age_group: Any) -> int:
    try:
        age = int(age_group)
    except (TypeError, ValueError):
        raise InvalidTargetAgeError(age_group, VALID_AGES) from None
    if age not in VALID_AGES:
        raise InvalidTargetAgeError(age, VALID_AGES)
    return age


class RecordStore:
    def __init__(
        self,
        tables: TableRepository,
        acknowledgments: Optional[AcknowledgmentSlot] = None,
        events: Optional[SuccessEvents] = None,
    ) -> None:
        self.tables = tables
        self.acknowledgments = acknowledgments if acknowledgments is not None else AcknowledgmentSlot()
        self.events = events if events is not None else SuccessEvents()

    def _rows(self, table: str, model: Type[R]) -> List[R]:
        return [model.model_validate(r) for r in self.tables.load(table)]

    def _save(self, table: str, rows: Iterable[Row]) -> None:
        self.tables.replace(table, [r.to_row() for r in rows])

    def _prepend(self, table: str, row: Row) -> None:
        raw = self.tables.load(table)
        raw.insert(0, row.to_row())
        self.tables.replace(table, raw)

    def _remove_where(self, table: str, keep: Callable[[Dict[str, Any]], bool]) -> int:
        raw = self.tables.load(table)
        kept = [r for r in raw if keep(r)]
        removed = len(raw) - len(kept)
        if removed:
            self.tables.replace(table, kept)
        return removed

    def _insert_sub(self, table: str, row: Row) -> bool:
        """
        Prepend a sub-row after its master row is written. A failed write is
        logged and left for commit verification to catch.
        """
        try:
            self._prepend(table, row)
        except StorageError as e:
            logger.warning("Sub-row write to %s failed for %s: %s", table, row.donation_id, e)
            return False
        return True

    def _find_sub(self, table: str, model: Type[R], donation_id: str) -> Optional[R]:
        for row in self._rows(table, model):
            if row.donation_id == donation_id:
                return row
        return None

    def _insert_master(self, user_id: str, donation_type: DonationType) -> DonationRecord:
        record = DonationRecord(
            id=_gen_id("dr"),
            user_id=user_id,
            type=donation_type,
            created_at=_now(),
            approved=None,
            donation_status="pending",
        )
        self._prepend(RECORDS_TABLE, record)
        return record

    def _verify_commit(self, donation_id: str, sub_table: str) -> bool:
        """Read back both the master row and its sub-row."""
        master_exists = self.get_by_id(donation_id) is not None
        sub_exists = any(
            r.get("donationId") == donation_id for r in self.tables.load(sub_table)
        )
        return master_exists and sub_exists

    def _commit(self, record: DonationRecord, sub_table: str) -> bool:
        """
        Acknowledge and announce a finished donation, but only once both rows
        read back. The record is returned to the caller either way.
        """
        if not self._verify_commit(record.id, sub_table):
            logger.warning(
                "Commit verification failed for %s donation %s; no acknowledgment sent",
                record.type,
                record.id,
            )
            return False
        self.acknowledgments.post(record)
        self.events.announce(record)
        return True

    def create_food_donation(self, user_id: str, rice: Any, vegetables: Any) -> DonationRecord:
        rice_qty = int(rice)
        veg_qty = int(vegetables)

        record = self._insert_master(user_id, "food")
        self._insert_sub(
            FOOD_TABLE,
            FoodSubRecord(
                id=_gen_id("fd"),
                donation_id=record.id,
                rice_qty=rice_qty,
                veg_qty=veg_qty,
            ),
        )
        logger.info("Food donation %s saved for %s", record.id, user_id)
        self._commit(record, FOOD_TABLE)
        return record

    def create_apparel_donation(self, user_id: str, age_group: Any) -> DonationRecord:
        target_age = _parse_age(age_group)

        record = self._insert_master(user_id, "apparel")
        self._insert_sub(
            CLOTHES_TABLE,
            ApparelSubRecord(
                id=_gen_id("cd"),
                donation_id=record.id,
                target_age=target_age,
            ),
        )
        logger.info("Apparel donation %s saved for %s", record.id, user_id)
        self._commit(record, CLOTHES_TABLE)
        return record

    def create_pending_money_donation(self, user_id: str, qr_payload: str) -> DonationRecord:
        """
        QR code scanned: payment captured but not confirmed. Call
        complete_money_donation() to finalize or cancel_pending_money_donation()
        to discard.
        """
        transaction_id = f"TXN-{int(time.time() * 1000)}-{secrets.token_hex(2)}"

        record = self._insert_master(user_id, "money")
        self._insert_sub(
            MONEY_TABLE,
            MoneySubRecord(
                id=_gen_id("md"),
                donation_id=record.id,
                transaction_id=transaction_id,
                qr_payload=qr_payload,
                status=False,
            ),
        )
        logger.info("Pending money donation %s (%s) for %s", record.id, transaction_id, user_id)
        record.transaction_id = transaction_id
        return record

    def complete_money_donation(self, donation_id: str) -> Optional[DonationRecord]:
        record = self.get_by_id(donation_id)
        if record is None:
            return None

        rows = self._rows(MONEY_TABLE, MoneySubRecord)
        for row in rows:
            if row.donation_id == donation_id:
                row.status = True
                self._save(MONEY_TABLE, rows)
                record.transaction_id = row.transaction_id
                break
        else:
            logger.warning("Money donation %s has no money row to confirm", donation_id)

        self._commit(record, MONEY_TABLE)
        return record

    def cancel_pending_money_donation(self, donation_id: str) -> None:
        """Discard a scanned money donation. Other donation types are left alone."""
        record = self.get_by_id(donation_id)
        if record is not None and record.type != "money":
            logger.warning("Refusing to cancel %s donation %s as money", record.type, donation_id)
            return
        self._remove_where(RECORDS_TABLE, lambda r: r.get("id") != donation_id)
        self._remove_where(MONEY_TABLE, lambda r: r.get("donationId") != donation_id)
        logger.info("Pending money donation %s cancelled", donation_id)

    def create_and_complete_money_donation(self, user_id: str, qr_payload: str) -> DonationRecord:
        """Older single-step money path; prefer the pending/complete pair."""
        record = self.create_pending_money_donation(user_id, qr_payload)
        self.complete_money_donation(record.id)
        return record

    def list_by_user(self, user_id: str) -> List[DonationRecord]:
        """Donor-facing read: only this user's records."""
        return [r for r in self._rows(RECORDS_TABLE, DonationRecord) if r.user_id == user_id]

    def list_all(self) -> List[DonationRecord]:
        """Every user's records. Callers must only expose this to an admin."""
        return self._rows(RECORDS_TABLE, DonationRecord)

    def get_by_id(self, donation_id: str) -> Optional[DonationRecord]:
        for record in self._rows(RECORDS_TABLE, DonationRecord):
            if record.id == donation_id:
                return record
        return None

    def get_food(self, donation_id: str) -> Optional[FoodSubRecord]:
        return self._find_sub(FOOD_TABLE, FoodSubRecord, donation_id)

    def get_apparel(self, donation_id: str) -> Optional[ApparelSubRecord]:
        return self._find_sub(CLOTHES_TABLE, ApparelSubRecord, donation_id)

    def get_money(self, donation_id: str) -> Optional[MoneySubRecord]:
        return self._find_sub(MONEY_TABLE, MoneySubRecord, donation_id)

    def list_food_rows(self) -> List[FoodSubRecord]:
        return self._rows(FOOD_TABLE, FoodSubRecord)

    def list_apparel_rows(self) -> List[ApparelSubRecord]:
        return self._rows(CLOTHES_TABLE, ApparelSubRecord)

    def list_money_rows(self) -> List[MoneySubRecord]:
        return self._rows(MONEY_TABLE, MoneySubRecord)

    def list_details(self, records: Iterable[DonationRecord]) -> List[DonationDetail]:
        """Join each master row with its sub-row for display."""
        food = {r.donation_id: r for r in reversed(self.list_food_rows())}
        apparel = {r.donation_id: r for r in reversed(self.list_apparel_rows())}
        money = {r.donation_id: r for r in reversed(self.list_money_rows())}
        details = []
        for record in records:
            detail = DonationDetail(record=record)
            if record.type == "food":
                detail.food = food.get(record.id)
            elif record.type == "apparel":
                detail.apparel = apparel.get(record.id)
            elif record.type == "money":
                detail.money = money.get(record.id)
            details.append(detail)
        return details

    def get_detail(self, donation_id: str) -> Optional[DonationDetail]:
        record = self.get_by_id(donation_id)
        if record is None:
            return None
        return self.list_details([record])[0]

    @staticmethod
    def status_counts(records: Iterable[DonationRecord]) -> StatusCounts:
        counts = StatusCounts()
        for r in records:
            counts.total += 1
            if r.approved is None:
                counts.pending += 1
            elif r.approved:
                counts.approved += 1
            else:
                counts.rejected += 1
        return counts

    def approve(self, session: Optional[UserSession], donation_id: str) -> Optional[DonationRecord]:
        admin = require_admin(session)
        rows = self._rows(RECORDS_TABLE, DonationRecord)
        for row in rows:
            if row.id == donation_id:
                row.approved = True
                row.donation_status = "approved"
                row.approved_at = _now()
                row.approved_by = admin.user_id
                row.rejected_at = None
                row.rejected_by = None
                row.rejection_reason = None
                self._save(RECORDS_TABLE, rows)
                logger.info("Donation %s approved by %s", donation_id, admin.user_id)
                return row
        return None

    def reject(
        self, session: Optional[UserSession], donation_id: str, reason: Optional[str]
    ) -> Optional[DonationRecord]:
        admin = require_admin(session)
        rows = self._rows(RECORDS_TABLE, DonationRecord)
        for row in rows:
            if row.id == donation_id:
                row.approved = False
                row.donation_status = "rejected"
                row.rejected_at = _now()
                row.rejected_by = admin.user_id
                row.rejection_reason = (reason or "").strip()
                row.approved_at = None
                row.approved_by = None
                self._save(RECORDS_TABLE, rows)
                logger.info("Donation %s rejected by %s", donation_id, admin.user_id)
                return row
        return None

    def delete_record(self, session: Optional[UserSession], donation_id: str) -> None:
        """Delete the master row and any sub-row in every sub-table."""
        admin = require_admin(session)
        removed = self._remove_where(RECORDS_TABLE, lambda r: r.get("id") != donation_id)
        for table in SUB_TABLES.values():
            removed += self._remove_where(table, lambda r: r.get("donationId") != donation_id)
        if removed:
            logger.info("Donation %s deleted by %s", donation_id, admin.user_id)

    def update_food(
        self, session: Optional[UserSession], donation_id: str, rice: Any, vegetables: Any
    ) -> Optional[FoodSubRecord]:
        require_admin(session)
        rice_qty = int(rice)
        veg_qty = int(vegetables)
        rows = self._rows(FOOD_TABLE, FoodSubRecord)
        for row in rows:
            if row.donation_id == donation_id:
                row.rice_qty = rice_qty
                row.veg_qty = veg_qty
                self._save(FOOD_TABLE, rows)
                return row
        return None

    def update_apparel(
        self, session: Optional[UserSession], donation_id: str, target_age: Any
    ) -> Optional[ApparelSubRecord]:
        require_admin(session)
        age = _parse_age(target_age)
        rows = self._rows(CLOTHES_TABLE, ApparelSubRecord)
        for row in rows:
            if row.donation_id == donation_id:
                row.target_age = age
                self._save(CLOTHES_TABLE, rows)
                return row
        return None

    def update_money(
        self, session: Optional[UserSession], donation_id: str, transaction_id: str
    ) -> Optional[MoneySubRecord]:
        require_admin(session)
        rows = self._rows(MONEY_TABLE, MoneySubRecord)
        for row in rows:
            if row.donation_id == donation_id:
                row.transaction_id = transaction_id
                self._save(MONEY_TABLE, rows)
                return row
        return None

    def notify(
        self,
        user_id: str,
        donation_id: str,
        type: NotificationType,
        message: str,
        reason: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            id=_gen_id("n"),
            user_id=user_id,
            donation_id=donation_id,
            type=type,
            message=message,
            reason=reason.strip() if reason else None,
            created_at=_now(),
            read=False,
        )
        self._prepend(NOTIFICATIONS_TABLE, notification)
        return notification

    def notify_decision(self, record: DonationRecord) -> Optional[Notification]:
        """Tell the donor about an approve/reject decision on their record."""
        if record.approved is True:
            return self.notify(
                record.user_id,
                record.id,
                "approved",
                f"Your {record.type} donation has been approved!",
            )
        if record.approved is False:
            return self.notify(
                record.user_id,
                record.id,
                "rejected",
                f"Your {record.type} donation was rejected.",
                record.rejection_reason,
            )
        return None

    def list_notifications(self, user_id: str) -> List[Notification]:
        return [n for n in self._rows(NOTIFICATIONS_TABLE, Notification) if n.user_id == user_id]

    def count_unread(self, user_id: str) -> int:
        return sum(1 for n in self.list_notifications(user_id) if not n.read)

    def mark_read(self, notification_id: str) -> bool:
        rows = self._rows(NOTIFICATIONS_TABLE, Notification)
        for n in rows:
            if n.id == notification_id:
                n.read = True
                self._save(NOTIFICATIONS_TABLE, rows)
                return True
        return False

    def mark_all_read(self, user_id: str) -> int:
        rows = self._rows(NOTIFICATIONS_TABLE, Notification)
        changed = 0
        for n in rows:
            if n.user_id == user_id and not n.read:
                n.read = True
                changed += 1
        if changed:
            self._save(NOTIFICATIONS_TABLE, rows)
        return changed

    def approved_inventory(self) -> InventorySummary:
        """
        Totals over approved records only. Each sub-table is loaded once and
        indexed by donationId (first row wins, matching lookup order).
        """
        records = [r for r in self.list_all() if r.approved is True]
        food = {r.donation_id: r for r in reversed(self.list_food_rows())}
        apparel = {r.donation_id: r for r in reversed(self.list_apparel_rows())}

        summary = InventorySummary(total=len(records))
        for r in records:
            if r.type == "food":
                sub = food.get(r.id)
                if sub is not None:
                    summary.rice_kg += sub.rice_qty
                    summary.veg_kg += sub.veg_qty
            elif r.type == "apparel":
                sub = apparel.get(r.id)
                if sub is not None:
                    summary.clothes[sub.target_age] = summary.clothes.get(sub.target_age, 0) + 1
            elif r.type == "money":
                summary.money_count += 1
        return summary
