"""
Realtime events pushed to clients subscribed to a session.

Events are hints that the session changed. Clients re-fetch the snapshot
(GET /sessions/{id}) instead of treating a payload as the full state, so
missed events only delay an update, they never corrupt it.
"""
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from partipay.schemas.session import ItemClaimResponse, ParticipantResponse, PaymentResponse


class _SessionEvent(BaseModel):
    session_id: str


class ParticipantJoined(_SessionEvent):
    type: Literal["participant-joined"] = "participant-joined"
    participant: ParticipantResponse


class ItemsClaimed(_SessionEvent):
    type: Literal["items-claimed"] = "items-claimed"
    participant_id: str
    claims: List[ItemClaimResponse]
    expected_amount_cents: int


class PaymentCompleted(_SessionEvent):
    type: Literal["payment-completed"] = "payment-completed"
    participant_id: str
    payment: PaymentResponse


class ParticipantPaymentCompleted(_SessionEvent):
    """A participant was marked paid by the main booker's full settlement."""
    type: Literal["participant-payment-completed"] = "participant-payment-completed"
    participant_id: str
    payment: PaymentResponse


class SessionCompleted(_SessionEvent):
    type: Literal["session-completed"] = "session-completed"


class BankLinked(_SessionEvent):
    type: Literal["bank-linked"] = "bank-linked"
    iban: str
    account_holder: str


SessionEvent = Annotated[
    Union[
        ParticipantJoined,
        ItemsClaimed,
        PaymentCompleted,
        ParticipantPaymentCompleted,
        SessionCompleted,
        BankLinked,
    ],
    Field(discriminator="type"),
]

session_event_adapter = TypeAdapter(SessionEvent)


class SubscribeMessage(BaseModel):
    """Client -> server message on the realtime socket."""
    type: Literal["join-session"]
    session_id: str
