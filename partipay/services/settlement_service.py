"""
Settlement service: the only entry point that mutates sessions.

Each mutation runs load -> validate -> apply -> save -> publish while
holding the session's lock, and the save is version-checked, so two
concurrent claims on the last unit of an item cannot both succeed.
Events are published before the lock is released, keeping their order per
session equal to commit order.
"""
from typing import Callable, List, Optional, Tuple, TypeVar

from partipay.core.config import settings
from partipay.core.exceptions import NotFoundError
from partipay.core.locks import SessionLocks
from partipay.models.session import ItemClaim, LinkedAccount, Participant, Payment, SplitSession
from partipay.realtime.broadcaster import SessionBroadcaster
from partipay.repositories.session_repo import SessionRepository
from partipay.schemas.session import ClaimBase, OutstandingSummary, SessionCreate
from partipay.services import session_state
from partipay.services.bank_service import BankService
from partipay.services.pos_service import PosService

T = TypeVar("T")


class SettlementService:
    def __init__(
        self,
        repo: SessionRepository,
        broadcaster: SessionBroadcaster,
        locks: SessionLocks,
        bank_service: Optional[BankService] = None
    ):
        self.repo = repo
        self.broadcaster = broadcaster
        self.locks = locks
        self.bank_service = bank_service or BankService()

    async def _mutate(
        self,
        session_id: str,
        mutation: Callable[[SplitSession], Tuple[T, list]]
    ) -> Tuple[SplitSession, T]:
        async with self.locks.hold(session_id):
            session = await self.get_session(session_id)
            result, events = mutation(session)
            if not events:
                # Idempotent repeat, nothing changed
                return session, result
            saved = await self.repo.save_session(session)
            await self.broadcaster.publish_all(str(saved.id), events)
            return saved, result

    async def create_session(self, data: SessionCreate) -> SplitSession:
        """Create a session with its bill and main booker. Looks the bill up when no items are given."""
        items = data.items
        if items is None:
            bill = await PosService.lookup_bill(data.table_number, data.restaurant_name)
            items = bill.items

        session, events = session_state.create_session(
            restaurant_name=data.restaurant_name,
            table_number=data.table_number,
            split_mode=data.split_mode,
            items=items,
            main_booker_name=data.main_booker_name,
            participant_count=data.participant_count,
            min_participants=settings.MIN_PARTICIPANTS,
            max_participants=settings.MAX_PARTICIPANTS
        )
        await self.repo.insert_session(session)
        await self.broadcaster.publish_all(str(session.id), events)
        return session

    async def get_session(self, session_id: str) -> SplitSession:
        session = await self.repo.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    async def join(self, session_id: str, name: str) -> Participant:
        _, participant = await self._mutate(
            session_id,
            lambda session: session_state.join(session, name)
        )
        return participant

    async def claim_items(
        self,
        session_id: str,
        participant_id: str,
        claims: List[ClaimBase]
    ) -> Tuple[List[ItemClaim], int]:
        def apply(session: SplitSession):
            new_claims, expected, events = session_state.claim_items(
                session,
                participant_id,
                [(claim.bill_item_id, claim.quantity) for claim in claims]
            )
            return (new_claims, expected), events

        _, result = await self._mutate(session_id, apply)
        return result

    async def record_payment(self, session_id: str, participant_id: str, amount_cents: int) -> Payment:
        _, payment = await self._mutate(
            session_id,
            lambda session: session_state.record_payment(session, participant_id, amount_cents)
        )
        return payment

    async def compute_outstanding(self, session_id: str) -> OutstandingSummary:
        session = await self.get_session(session_id)
        return session_state.outstanding_summary(session)

    async def pay_full_outstanding(
        self,
        session_id: str,
        participant_id: str,
        acknowledged_outstanding_cents: int
    ) -> OutstandingSummary:
        _, summary = await self._mutate(
            session_id,
            lambda session: session_state.pay_full_outstanding(
                session, participant_id, acknowledged_outstanding_cents
            )
        )
        return summary

    async def link_bank(
        self,
        session_id: str,
        participant_id: str,
        bank_id: str,
        account_id: str
    ) -> LinkedAccount:
        """Authenticate with the bank, then store the main booker's payout account on the session."""
        session = await self.get_session(session_id)
        session_state.require_main_booker(session, participant_id, "link a payout account")
        account = await self.bank_service.authenticate(bank_id, account_id)

        def apply(session: SplitSession):
            return account, session_state.link_bank_account(session, participant_id, account)

        _, linked = await self._mutate(session_id, apply)
        return linked
