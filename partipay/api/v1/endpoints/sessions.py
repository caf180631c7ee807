from fastapi import APIRouter, Depends, status

from partipay.api.deps import get_settlement_service, to_http_exception
from partipay.core.exceptions import SplitSessionError
from partipay.schemas.session import (
    ClaimItemsRequest,
    ClaimItemsResponse,
    JoinRequest,
    LinkBankRequest,
    LinkedAccountResponse,
    OutstandingSummary,
    ParticipantResponse,
    PaymentRequest,
    PaymentResponse,
    PayOutstandingRequest,
    SessionCreate,
    SessionSnapshot,
    to_claim_response,
    to_linked_account_response,
    to_participant_response,
    to_payment_response,
    to_session_snapshot,
)
from partipay.services.settlement_service import SettlementService

router = APIRouter()


@router.post("", response_model=SessionSnapshot, status_code=status.HTTP_201_CREATED)
async def create_session(
    session_in: SessionCreate,
    service: SettlementService = Depends(get_settlement_service)
):
    """
    Create a session with its bill and main booker.

    - Bill items come from the request, or from the POS when omitted
    - The main booker is marked paid with the full total
    - Equal mode needs a participant count between 2 and 8
    """
    try:
        session = await service.create_session(session_in)
    except SplitSessionError as e:
        raise to_http_exception(e)
    return to_session_snapshot(session)


@router.get("/{session_id}", response_model=SessionSnapshot)
async def get_session(
    session_id: str,
    service: SettlementService = Depends(get_settlement_service)
):
    """Full session snapshot. Safe to poll; clients re-fetch it on every realtime event."""
    try:
        session = await service.get_session(session_id)
    except SplitSessionError as e:
        raise to_http_exception(e)
    return to_session_snapshot(session)


@router.post("/{session_id}/join", response_model=ParticipantResponse, status_code=status.HTTP_201_CREATED)
async def join_session(
    session_id: str,
    join_in: JoinRequest,
    service: SettlementService = Depends(get_settlement_service)
):
    """Join a session through its shared link."""
    try:
        participant = await service.join(session_id, join_in.name)
    except SplitSessionError as e:
        raise to_http_exception(e)
    return to_participant_response(participant)


@router.post("/{session_id}/claim-items", response_model=ClaimItemsResponse)
async def claim_items(
    session_id: str,
    claim_in: ClaimItemsRequest,
    service: SettlementService = Depends(get_settlement_service)
):
    """
    Replace a participant's item claims (item-claim mode only).

    Over-claiming answers 409 with the current availability per item and
    leaves the previous claims in place.
    """
    try:
        claims, expected = await service.claim_items(
            session_id, claim_in.participant_id, claim_in.item_claims
        )
    except SplitSessionError as e:
        raise to_http_exception(e)
    return ClaimItemsResponse(
        claims=[to_claim_response(c) for c in claims],
        expected_amount_cents=expected
    )


@router.post("/{session_id}/pay", response_model=PaymentResponse)
async def pay(
    session_id: str,
    payment_in: PaymentRequest,
    service: SettlementService = Depends(get_settlement_service)
):
    """Record a participant's payment, reported by the banking deep-link flow."""
    try:
        payment = await service.record_payment(
            session_id, payment_in.participant_id, payment_in.amount_cents
        )
    except SplitSessionError as e:
        raise to_http_exception(e)
    return to_payment_response(payment)


@router.get("/{session_id}/outstanding", response_model=OutstandingSummary)
async def get_outstanding(
    session_id: str,
    service: SettlementService = Depends(get_settlement_service)
):
    """Outstanding balance, unpaid participants and unclaimed items."""
    try:
        return await service.compute_outstanding(session_id)
    except SplitSessionError as e:
        raise to_http_exception(e)


@router.post("/{session_id}/pay-outstanding", response_model=OutstandingSummary)
async def pay_outstanding(
    session_id: str,
    pay_in: PayOutstandingRequest,
    service: SettlementService = Depends(get_settlement_service)
):
    """
    Main booker settles everything still outstanding and closes the session.

    The request must echo the amount from GET /outstanding; otherwise the
    answer is 409 with the fresh summary to confirm.
    """
    try:
        return await service.pay_full_outstanding(
            session_id, pay_in.participant_id, pay_in.acknowledged_outstanding_cents
        )
    except SplitSessionError as e:
        raise to_http_exception(e)


@router.post("/{session_id}/link-bank", response_model=LinkedAccountResponse)
async def link_bank(
    session_id: str,
    link_in: LinkBankRequest,
    service: SettlementService = Depends(get_settlement_service)
):
    """Link the main booker's payout account through the mock bank. Other participants get 403."""
    try:
        account = await service.link_bank(
            session_id, link_in.participant_id, link_in.bank_id, link_in.account_id
        )
    except SplitSessionError as e:
        raise to_http_exception(e)
    return to_linked_account_response(account)
