"""
Split session model - one bill shared by a main booker and participants.

Design principles:
- One document per session; participants, bill items, claims and payments
  are embedded so every mutation is a single-document write
- Bill items are immutable; availability is derived from claims
- Payments are append-only
- All amounts in integer cents
"""

from typing import Optional, List
from datetime import datetime
from enum import Enum

from bson import ObjectId
from pydantic import BaseModel, Field, ConfigDict

from partipay.models.base import PyObjectId, VersionedDocument, utcnow


class SplitMode(str, Enum):
    EQUAL = "equal"
    ITEMS = "items"


class SessionStatus(str, Enum):
    OPEN = "open"
    SETTLING = "settling"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentKind(str, Enum):
    MAIN_BOOKER = "main_booker"  # paid the restaurant directly
    PEER = "peer"
    SETTLED_BY_MAIN_BOOKER = "settled_by_main_booker"


_embedded_config = ConfigDict(
    use_enum_values=True,
    validate_default=True,
    arbitrary_types_allowed=True
)


class Participant(BaseModel):
    model_config = _embedded_config

    participant_id: PyObjectId = Field(default_factory=ObjectId)
    name: str
    is_main_booker: bool = False
    has_paid: bool = False
    paid_amount_cents: int = 0
    expected_amount_cents: int = 0
    joined_at: datetime = Field(default_factory=utcnow)


class BillItem(BaseModel):
    model_config = _embedded_config

    item_id: PyObjectId = Field(default_factory=ObjectId)
    name: str
    unit_price_cents: int
    quantity: int

    @property
    def total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


class ItemClaim(BaseModel):
    model_config = _embedded_config

    participant_id: PyObjectId
    bill_item_id: PyObjectId
    quantity: int
    claimed_at: datetime = Field(default_factory=utcnow)


class Payment(BaseModel):
    model_config = _embedded_config

    payment_id: PyObjectId = Field(default_factory=ObjectId)
    participant_id: PyObjectId
    amount_cents: int
    status: PaymentStatus = PaymentStatus.COMPLETED
    kind: PaymentKind = PaymentKind.PEER
    created_at: datetime = Field(default_factory=utcnow)


class LinkedAccount(BaseModel):
    """Payout account of the main booker, display only."""
    iban: str
    account_holder: str
    bank_name: Optional[str] = None
    linked_at: datetime = Field(default_factory=utcnow)


class SplitSession(VersionedDocument):
    restaurant_name: str
    table_number: str
    split_mode: SplitMode
    total_amount_cents: int
    participant_count: Optional[int] = None  # declared divisor for equal mode
    status: SessionStatus = SessionStatus.OPEN
    is_active: bool = True
    main_booker_id: Optional[PyObjectId] = None
    linked_account: Optional[LinkedAccount] = None

    participants: List[Participant] = []
    bill_items: List[BillItem] = []
    item_claims: List[ItemClaim] = []
    payments: List[Payment] = []

    def find_participant(self, participant_id: str) -> Optional[Participant]:
        for participant in self.participants:
            if str(participant.participant_id) == str(participant_id):
                return participant
        return None

    def find_item(self, item_id: str) -> Optional[BillItem]:
        for item in self.bill_items:
            if str(item.item_id) == str(item_id):
                return item
        return None

    def claims_for(self, participant_id: str) -> List[ItemClaim]:
        return [c for c in self.item_claims if str(c.participant_id) == str(participant_id)]

    @property
    def main_booker(self) -> Optional[Participant]:
        for participant in self.participants:
            if participant.is_main_booker:
                return participant
        return None

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED
