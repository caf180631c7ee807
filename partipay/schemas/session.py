from typing import Optional, List
from datetime import datetime

from pydantic import BaseModel, Field

from partipay.models.session import (
    BillItem,
    ItemClaim,
    LinkedAccount,
    Participant,
    Payment,
    SplitMode,
    SplitSession,
)
from partipay.services.split_policy import available_quantity


# Requests

class BillItemBase(BaseModel):
    name: str = Field(..., min_length=1)
    unit_price_cents: int = Field(..., ge=0)  # Integer cents
    quantity: int = Field(..., ge=1)

    model_config = {"from_attributes": True}


class SessionCreate(BaseModel):
    """Create a session with its bill and main booker in one call.

    When ``items`` is omitted the bill is looked up from the POS by
    restaurant name and table number.
    """
    restaurant_name: str = Field(..., min_length=1)
    table_number: str = Field(..., min_length=1)
    split_mode: SplitMode
    participant_count: Optional[int] = None
    main_booker_name: str = Field(..., min_length=1, max_length=100)
    items: Optional[List[BillItemBase]] = None


class JoinRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class ClaimBase(BaseModel):
    bill_item_id: str
    quantity: int = Field(..., ge=0)


class ClaimItemsRequest(BaseModel):
    """Replaces the participant's claims with this set."""
    participant_id: str
    item_claims: List[ClaimBase] = []


class PaymentRequest(BaseModel):
    participant_id: str
    amount_cents: int = Field(..., ge=0)  # 0 for a participant who owes nothing


class PayOutstandingRequest(BaseModel):
    """Main booker settles everyone's remaining balance.

    ``acknowledged_outstanding_cents`` must echo the amount shown by
    GET /outstanding, which confirms the payer saw the current balance.
    """
    participant_id: str
    acknowledged_outstanding_cents: int = Field(..., ge=0)


class LinkBankRequest(BaseModel):
    """Only the main booker may link the payout account."""
    participant_id: str
    bank_id: str
    account_id: str


class BillLookupRequest(BaseModel):
    table_number: str = Field(..., min_length=1)
    restaurant_name: str = Field(..., min_length=1)


# Responses

class BillLookupResponse(BaseModel):
    restaurant_name: str
    table_number: str
    items: List[BillItemBase]
    total_amount_cents: int


class ParticipantResponse(BaseModel):
    id: str
    name: str
    is_main_booker: bool
    has_paid: bool
    paid_amount_cents: int
    expected_amount_cents: int
    joined_at: datetime


class BillItemResponse(BillItemBase):
    id: str
    available_quantity: int


class ItemClaimResponse(BaseModel):
    participant_id: str
    bill_item_id: str
    quantity: int
    claimed_at: datetime


class PaymentResponse(BaseModel):
    id: str
    participant_id: str
    amount_cents: int
    status: str
    kind: str
    created_at: datetime


class LinkedAccountResponse(BaseModel):
    iban: str
    account_holder: str
    bank_name: Optional[str] = None


class SessionResponse(BaseModel):
    id: str
    restaurant_name: str
    table_number: str
    split_mode: SplitMode
    total_amount_cents: int
    participant_count: Optional[int] = None
    status: str
    is_active: bool
    main_booker_id: Optional[str] = None
    linked_account: Optional[LinkedAccountResponse] = None
    version: int
    created_at: datetime
    updated_at: datetime


class SessionSnapshot(BaseModel):
    """Full session state. Clients re-fetch this on every realtime event."""
    session: SessionResponse
    participants: List[ParticipantResponse]
    bill_items: List[BillItemResponse]
    item_claims: List[ItemClaimResponse]
    payments: List[PaymentResponse]


class ClaimItemsResponse(BaseModel):
    claims: List[ItemClaimResponse]
    expected_amount_cents: int


class UnclaimedItem(BaseModel):
    item_id: str
    name: str
    unclaimed_quantity: int
    unclaimed_amount_cents: int


class UnpaidParticipant(BaseModel):
    participant_id: str
    name: str
    expected_amount_cents: int


class OutstandingSummary(BaseModel):
    session_id: str
    split_mode: SplitMode
    status: str
    outstanding_cents: int
    unclaimed_amount_cents: int = 0
    unclaimed_items: List[UnclaimedItem] = []
    unpaid_participants: List[UnpaidParticipant] = []


# Converters

def to_participant_response(participant: Participant) -> ParticipantResponse:
    return ParticipantResponse(
        id=str(participant.participant_id),
        name=participant.name,
        is_main_booker=participant.is_main_booker,
        has_paid=participant.has_paid,
        paid_amount_cents=participant.paid_amount_cents,
        expected_amount_cents=participant.expected_amount_cents,
        joined_at=participant.joined_at
    )


def to_claim_response(claim: ItemClaim) -> ItemClaimResponse:
    return ItemClaimResponse(
        participant_id=str(claim.participant_id),
        bill_item_id=str(claim.bill_item_id),
        quantity=claim.quantity,
        claimed_at=claim.claimed_at
    )


def to_payment_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=str(payment.payment_id),
        participant_id=str(payment.participant_id),
        amount_cents=payment.amount_cents,
        status=payment.status,
        kind=payment.kind,
        created_at=payment.created_at
    )


def to_linked_account_response(account: LinkedAccount) -> LinkedAccountResponse:
    return LinkedAccountResponse(
        iban=account.iban,
        account_holder=account.account_holder,
        bank_name=account.bank_name
    )


def _to_bill_item_response(item: BillItem, session: SplitSession) -> BillItemResponse:
    return BillItemResponse(
        id=str(item.item_id),
        name=item.name,
        unit_price_cents=item.unit_price_cents,
        quantity=item.quantity,
        available_quantity=available_quantity(item, session.item_claims)
    )


def to_session_snapshot(session: SplitSession) -> SessionSnapshot:
    """Convert SplitSession model to the full snapshot schema."""
    return SessionSnapshot(
        session=SessionResponse(
            id=str(session.id),
            restaurant_name=session.restaurant_name,
            table_number=session.table_number,
            split_mode=session.split_mode,
            total_amount_cents=session.total_amount_cents,
            participant_count=session.participant_count,
            status=session.status,
            is_active=session.is_active,
            main_booker_id=str(session.main_booker_id) if session.main_booker_id else None,
            linked_account=(
                to_linked_account_response(session.linked_account)
                if session.linked_account else None
            ),
            version=session.version,
            created_at=session.created_at,
            updated_at=session.updated_at
        ),
        participants=[to_participant_response(p) for p in session.participants],
        bill_items=[_to_bill_item_response(item, session) for item in session.bill_items],
        item_claims=[to_claim_response(c) for c in session.item_claims],
        payments=[to_payment_response(p) for p in session.payments]
    )
