"""
Session state machine: open -> settling -> completed.

Every function here works on an in-memory SplitSession. Validation happens
before the first mutation, so a raised error leaves the session untouched.
Functions return the realtime events describing what changed; persisting
the session and publishing the events is the caller's job.

Transitions:
- open -> settling: first peer payment
- open/settling -> completed: every participant has paid (checked after
  each payment), or the main booker settles the full outstanding balance
- completed is terminal
"""
from typing import Dict, Iterable, List, Optional, Tuple

from partipay.core.exceptions import (
    ConfirmationRequiredError,
    InvalidConfigurationError,
    NotFoundError,
    NotMainBookerError,
    OverClaimedError,
    SessionClosedError,
)
from partipay.models.session import (
    BillItem,
    ItemClaim,
    LinkedAccount,
    Participant,
    Payment,
    PaymentKind,
    PaymentStatus,
    SessionStatus,
    SplitMode,
    SplitSession,
)
from partipay.schemas.events import (
    BankLinked,
    ItemsClaimed,
    ParticipantJoined,
    ParticipantPaymentCompleted,
    PaymentCompleted,
    SessionCompleted,
)
from partipay.schemas.session import (
    BillItemBase,
    OutstandingSummary,
    UnclaimedItem,
    UnpaidParticipant,
    to_claim_response,
    to_participant_response,
    to_payment_response,
)
from partipay.services import split_policy


def _ensure_open(session: SplitSession) -> None:
    if session.is_completed:
        raise SessionClosedError(f"Session {session.id} is completed")


def _get_participant(session: SplitSession, participant_id: str) -> Participant:
    participant = session.find_participant(participant_id)
    if participant is None:
        raise NotFoundError(f"Participant {participant_id} not found in session {session.id}")
    return participant


def require_main_booker(session: SplitSession, participant_id: str, action: str) -> Participant:
    participant = _get_participant(session, participant_id)
    if not participant.is_main_booker:
        raise NotMainBookerError(f"Only the main booker can {action}")
    return participant


def _complete(session: SplitSession) -> List[SessionCompleted]:
    session.status = SessionStatus.COMPLETED.value
    session.is_active = False
    return [SessionCompleted(session_id=str(session.id))]


def _evaluate_status(session: SplitSession) -> list:
    """Re-evaluate status after a payment. Returns the transition events."""
    if session.is_completed:
        return []
    if all(p.has_paid for p in session.participants):
        return _complete(session)
    has_peer_payment = any(
        p.kind == PaymentKind.PEER and p.status == PaymentStatus.COMPLETED
        for p in session.payments
    )
    if has_peer_payment and session.status == SessionStatus.OPEN:
        session.status = SessionStatus.SETTLING.value
    return []


def validate_participant_count(
    split_mode: SplitMode,
    participant_count: Optional[int],
    min_participants: int = 2,
    max_participants: int = 8
) -> None:
    if participant_count is None:
        if split_mode == SplitMode.EQUAL:
            raise InvalidConfigurationError("Equal split requires a participant count")
        return
    if participant_count < min_participants or participant_count > max_participants:
        raise InvalidConfigurationError(
            f"Participant count must be between {min_participants} and {max_participants}, "
            f"got {participant_count}"
        )


def create_session(
    restaurant_name: str,
    table_number: str,
    split_mode: SplitMode,
    items: Iterable[BillItemBase],
    main_booker_name: str,
    participant_count: Optional[int] = None,
    min_participants: int = 2,
    max_participants: int = 8
) -> Tuple[SplitSession, list]:
    """Build a session, its bill catalog and its main booker."""
    validate_participant_count(split_mode, participant_count, min_participants, max_participants)

    bill_items = [
        BillItem(name=item.name, unit_price_cents=item.unit_price_cents, quantity=item.quantity)
        for item in items
    ]
    if not bill_items:
        raise InvalidConfigurationError("Bill has no items")

    session = SplitSession(
        restaurant_name=restaurant_name,
        table_number=table_number,
        split_mode=split_mode,
        participant_count=participant_count,
        total_amount_cents=sum(item.total_cents for item in bill_items),
        bill_items=bill_items
    )
    _, events = join(session, main_booker_name, is_main_booker=True)
    return session, events


def join(session: SplitSession, name: str, is_main_booker: bool = False) -> Tuple[Participant, list]:
    """Add a participant. The main booker is marked paid with the full total."""
    _ensure_open(session)
    if is_main_booker and session.main_booker is not None:
        raise InvalidConfigurationError(f"Session {session.id} already has a main booker")

    participant = Participant(name=name, is_main_booker=is_main_booker)
    if is_main_booker:
        # Pays the restaurant directly, not through peers
        participant.has_paid = True
        participant.paid_amount_cents = session.total_amount_cents
        session.main_booker_id = participant.participant_id
        session.payments.append(Payment(
            participant_id=participant.participant_id,
            amount_cents=session.total_amount_cents,
            status=PaymentStatus.COMPLETED,
            kind=PaymentKind.MAIN_BOOKER
        ))

    session.participants.append(participant)
    split_policy.recompute_expected_amounts(session)

    return participant, [
        ParticipantJoined(
            session_id=str(session.id),
            participant=to_participant_response(participant)
        )
    ]


def claim_items(
    session: SplitSession,
    participant_id: str,
    requested: Iterable[Tuple[str, int]]
) -> Tuple[List[ItemClaim], int, list]:
    """
    Replace a participant's claims with the requested (item id, quantity) set.

    Quantities for a repeated item id are summed. Zero quantities drop the
    claim. Raises OverClaimedError, applying nothing, when any item would be
    claimed beyond what other participants left available.
    """
    _ensure_open(session)
    if session.split_mode != SplitMode.ITEMS:
        raise InvalidConfigurationError(f"Session {session.id} is not in item-claim mode")
    participant = _get_participant(session, participant_id)

    wanted: Dict[str, int] = {}
    for item_id, quantity in requested:
        if session.find_item(item_id) is None:
            raise NotFoundError(f"Bill item {item_id} not found in session {session.id}")
        if quantity < 0:
            raise InvalidConfigurationError(f"Claim quantity must not be negative, got {quantity}")
        wanted[str(item_id)] = wanted.get(str(item_id), 0) + quantity

    claimed_by_others = split_policy.claimed_quantities(
        session.item_claims,
        excluding_participant=str(participant.participant_id)
    )
    available = {
        item_id: session.find_item(item_id).quantity - claimed_by_others.get(item_id, 0)
        for item_id in wanted
    }
    over = [item_id for item_id, quantity in wanted.items() if quantity > available[item_id]]
    if over:
        names = ", ".join(session.find_item(item_id).name for item_id in over)
        raise OverClaimedError(f"Not enough left to claim: {names}", available=available)

    new_claims = [
        ItemClaim(
            participant_id=participant.participant_id,
            bill_item_id=session.find_item(item_id).item_id,
            quantity=quantity
        )
        for item_id, quantity in wanted.items()
        if quantity > 0
    ]
    session.item_claims = [
        claim for claim in session.item_claims
        if str(claim.participant_id) != str(participant.participant_id)
    ] + new_claims
    split_policy.recompute_expected_amounts(session)

    return new_claims, participant.expected_amount_cents, [
        ItemsClaimed(
            session_id=str(session.id),
            participant_id=str(participant.participant_id),
            claims=[to_claim_response(c) for c in new_claims],
            expected_amount_cents=participant.expected_amount_cents
        )
    ]


def _completed_payment_for(session: SplitSession, participant: Participant) -> Optional[Payment]:
    for payment in reversed(session.payments):
        if (
            str(payment.participant_id) == str(participant.participant_id)
            and payment.status == PaymentStatus.COMPLETED
        ):
            return payment
    return None


def record_payment(session: SplitSession, participant_id: str, amount_cents: int) -> Tuple[Payment, list]:
    """
    Record a completed peer payment.

    One completed payment per participant: paying again returns the payment
    already on file without recording anything.
    """
    participant = _get_participant(session, participant_id)
    if participant.has_paid:
        existing = _completed_payment_for(session, participant)
        if existing is not None:
            return existing, []
    _ensure_open(session)
    if amount_cents < 0:
        raise InvalidConfigurationError(f"Payment amount must not be negative, got {amount_cents}")

    payment = Payment(
        participant_id=participant.participant_id,
        amount_cents=amount_cents,
        status=PaymentStatus.COMPLETED,
        kind=PaymentKind.PEER
    )
    session.payments.append(payment)
    participant.has_paid = True
    participant.paid_amount_cents = amount_cents

    events: list = [
        PaymentCompleted(
            session_id=str(session.id),
            participant_id=str(participant.participant_id),
            payment=to_payment_response(payment)
        )
    ]
    events.extend(_evaluate_status(session))
    return payment, events


def compute_outstanding(session: SplitSession) -> int:
    """
    Amount still to be collected, never negative.

    equal: total minus contributions. A peer contributes what they paid; the
    main booker contributes only their own share, since their synthetic
    payment of the full total is what the others reimburse.
    items: unclaimed value plus expected amounts of unpaid participants.
    """
    if session.is_completed:
        return 0

    if session.split_mode == SplitMode.EQUAL:
        contributed = 0
        for participant in session.participants:
            if participant.is_main_booker:
                contributed += participant.expected_amount_cents
            elif participant.has_paid:
                contributed += participant.paid_amount_cents
        return max(session.total_amount_cents - contributed, 0)

    unpaid = sum(p.expected_amount_cents for p in session.participants if not p.has_paid)
    return max(split_policy.unclaimed_amount(session), 0) + unpaid


def outstanding_summary(session: SplitSession) -> OutstandingSummary:
    """Outstanding amount plus who has not paid and, in items mode, what nobody claimed."""
    summary = OutstandingSummary(
        session_id=str(session.id),
        split_mode=session.split_mode,
        status=session.status,
        outstanding_cents=compute_outstanding(session)
    )
    if session.is_completed:
        return summary

    summary.unpaid_participants = [
        UnpaidParticipant(
            participant_id=str(p.participant_id),
            name=p.name,
            expected_amount_cents=p.expected_amount_cents
        )
        for p in session.participants
        if not p.has_paid
    ]
    if session.split_mode == SplitMode.ITEMS:
        summary.unclaimed_amount_cents = max(split_policy.unclaimed_amount(session), 0)
        summary.unclaimed_items = [
            UnclaimedItem(**entry)
            for entry in split_policy.unclaimed_items(session.bill_items, session.item_claims)
        ]
    return summary


def pay_full_outstanding(
    session: SplitSession,
    participant_id: str,
    acknowledged_outstanding_cents: int
) -> Tuple[OutstandingSummary, list]:
    """
    Main booker covers everything still open and closes the session.

    Every unpaid participant is marked paid with their expected amount even
    though no transfer from them happened; unclaimed items are absorbed by
    the main booker. The caller must echo the current outstanding amount.
    Returns the summary of what was settled. Idempotent once completed.
    """
    require_main_booker(session, participant_id, "pay the full outstanding bill")
    if session.is_completed:
        return outstanding_summary(session), []

    summary = outstanding_summary(session)
    if acknowledged_outstanding_cents != summary.outstanding_cents:
        raise ConfirmationRequiredError(
            f"Confirm the outstanding amount of {summary.outstanding_cents} cents",
            summary=summary.model_dump(mode="json")
        )

    events: list = []
    for other in session.participants:
        if other.has_paid:
            continue
        other.has_paid = True
        other.paid_amount_cents = other.expected_amount_cents
        payment = Payment(
            participant_id=other.participant_id,
            amount_cents=other.expected_amount_cents,
            status=PaymentStatus.COMPLETED,
            kind=PaymentKind.SETTLED_BY_MAIN_BOOKER
        )
        session.payments.append(payment)
        events.append(ParticipantPaymentCompleted(
            session_id=str(session.id),
            participant_id=str(other.participant_id),
            payment=to_payment_response(payment)
        ))

    events.extend(_complete(session))
    return summary, events


def link_bank_account(session: SplitSession, participant_id: str, account: LinkedAccount) -> list:
    """Attach the main booker's payout account (display only)."""
    require_main_booker(session, participant_id, "link a payout account")
    session.linked_account = account
    return [
        BankLinked(
            session_id=str(session.id),
            iban=account.iban,
            account_holder=account.account_holder
        )
    ]
