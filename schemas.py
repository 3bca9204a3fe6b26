from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

DonationType = Literal["food", "apparel", "money"]
DonationStatus = Literal["pending", "approved", "rejected"]
NotificationType = Literal["approved", "rejected"]
Role = Literal["user", "admin"]

VALID_AGES = (10, 19, 20, 30, 45)


class Row(BaseModel):
    """Base for stored rows: snake_case in Python, camelCase in storage."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_row(self) -> dict:
        return self.model_dump(by_alias=True)


class DonationRecord(Row):
    id: str
    user_id: str
    type: DonationType
    created_at: str
    approved: Optional[bool] = None
    donation_status: DonationStatus = "pending"

    approved_at: Optional[str] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[str] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    # Set by the money creation path only; never written to the master table.
    transaction_id: Optional[str] = Field(default=None, exclude=True)


class FoodSubRecord(Row):
    id: str
    donation_id: str
    rice_qty: int
    veg_qty: int


class ApparelSubRecord(Row):
    id: str
    donation_id: str
    target_age: int


class MoneySubRecord(Row):
    id: str
    donation_id: str
    transaction_id: str
    qr_payload: str
    status: bool = False


class Notification(Row):
    id: str
    user_id: str
    donation_id: str
    type: NotificationType
    message: str
    reason: Optional[str] = None
    created_at: str
    read: bool = False


class UserAccount(Row):
    id: str
    full_name: str
    email: EmailStr
    password_hash: str
    role: Role = "user"
    joined_at: str


class UserSession(Row):
    """The active login, passed explicitly into administrative calls."""

    user_id: str
    email: EmailStr
    full_name: str
    role: Role = "user"
    login_at: str


class ThanksAck(Row):
    committed: bool = True
    donation_id: str
    type: DonationType
    committed_at: str


class DonationDetail(BaseModel):
    """A master row joined with its type-specific sub-row."""

    record: DonationRecord
    food: Optional[FoodSubRecord] = None
    apparel: Optional[ApparelSubRecord] = None
    money: Optional[MoneySubRecord] = None


class InventorySummary(Row):
    rice_kg: int = 0
    veg_kg: int = 0
    clothes: Dict[int, int] = Field(default_factory=dict)
    money_count: int = 0
    total: int = 0


class StatusCounts(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
