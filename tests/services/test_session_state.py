"""
Tests for the session state machine.

Covers:
- Main booker auto-settlement at creation
- Joining, claiming (replacement, over-claiming, all-or-nothing)
- Payments, idempotent repeats and status transitions
- Outstanding balance in both modes
- Pay-full-outstanding confirmation and completion monotonicity
"""
import pytest
from bson import ObjectId

from partipay.core.exceptions import (
    ConfirmationRequiredError,
    InvalidConfigurationError,
    NotFoundError,
    NotMainBookerError,
    OverClaimedError,
    SessionClosedError,
)
from partipay.models.session import LinkedAccount, PaymentKind, SessionStatus, SplitMode
from partipay.services import session_state


def _item_id(session, name):
    return str(next(i.item_id for i in session.bill_items if i.name == name))


# Creation

def test_create_equal_session_settles_main_booker(equal_session):
    booker = equal_session.main_booker

    assert equal_session.total_amount_cents == 7340
    assert equal_session.status == SessionStatus.OPEN
    assert equal_session.is_active is True
    assert equal_session.main_booker_id == booker.participant_id
    assert booker.has_paid is True
    assert booker.paid_amount_cents == 7340
    assert booker.expected_amount_cents == 1835
    assert len(equal_session.payments) == 1
    assert equal_session.payments[0].kind == PaymentKind.MAIN_BOOKER
    assert equal_session.payments[0].amount_cents == 7340


def test_create_items_session_main_booker_expects_only_own_claims(items_session):
    booker = items_session.main_booker
    assert booker.has_paid is True
    assert booker.paid_amount_cents == 3150
    assert booker.expected_amount_cents == 0

    session_state.claim_items(
        items_session, str(booker.participant_id), [(_item_id(items_session, "Waterzooi"), 1)]
    )
    assert booker.expected_amount_cents == 1850
    assert booker.paid_amount_cents == 3150


def test_create_session_emits_participant_joined(small_items):
    session, events = session_state.create_session(
        restaurant_name="R", table_number="1", split_mode=SplitMode.ITEMS,
        items=small_items, main_booker_name="Jan"
    )
    assert [e.type for e in events] == ["participant-joined"]
    assert events[0].participant.is_main_booker is True
    assert events[0].session_id == str(session.id)


@pytest.mark.parametrize("count", [None, 0, 1, 9])
def test_create_equal_session_rejects_bad_participant_count(small_items, count):
    with pytest.raises(InvalidConfigurationError):
        session_state.create_session(
            restaurant_name="R", table_number="1", split_mode=SplitMode.EQUAL,
            items=small_items, main_booker_name="Jan", participant_count=count
        )


def test_create_session_rejects_empty_bill():
    with pytest.raises(InvalidConfigurationError):
        session_state.create_session(
            restaurant_name="R", table_number="1", split_mode=SplitMode.ITEMS,
            items=[], main_booker_name="Jan"
        )


# Joining

def test_join_equal_mode_gives_everyone_the_declared_share(equal_session):
    participant, events = session_state.join(equal_session, "Els")

    assert participant.expected_amount_cents == 1835
    assert participant.has_paid is False
    assert all(p.expected_amount_cents == 1835 for p in equal_session.participants)
    assert events[0].type == "participant-joined"


def test_second_main_booker_is_rejected(equal_session):
    with pytest.raises(InvalidConfigurationError):
        session_state.join(equal_session, "Impostor", is_main_booker=True)
    assert len(equal_session.participants) == 1


# Claiming

def test_claim_items_example(items_session):
    alice, _ = session_state.join(items_session, "Alice")
    bob, _ = session_state.join(items_session, "Bob")

    _, alice_expected, _ = session_state.claim_items(
        items_session, str(alice.participant_id), [(_item_id(items_session, "Waterzooi"), 1)]
    )
    _, bob_expected, events = session_state.claim_items(
        items_session, str(bob.participant_id), [(_item_id(items_session, "Frieten"), 2)]
    )

    assert alice_expected == 1850
    assert bob_expected == 1300
    assert events[0].type == "items-claimed"
    assert events[0].expected_amount_cents == 1300


def test_claim_items_replaces_previous_claims(items_session):
    alice, _ = session_state.join(items_session, "Alice")
    pid = str(alice.participant_id)

    session_state.claim_items(items_session, pid, [(_item_id(items_session, "Waterzooi"), 1)])
    session_state.claim_items(items_session, pid, [(_item_id(items_session, "Frieten"), 1)])

    claims = items_session.claims_for(pid)
    assert len(claims) == 1
    assert str(claims[0].bill_item_id) == _item_id(items_session, "Frieten")
    assert alice.expected_amount_cents == 650


def test_claim_items_with_empty_set_clears_claims(items_session):
    alice, _ = session_state.join(items_session, "Alice")
    pid = str(alice.participant_id)
    session_state.claim_items(items_session, pid, [(_item_id(items_session, "Frieten"), 2)])

    session_state.claim_items(items_session, pid, [])

    assert items_session.claims_for(pid) == []
    assert alice.expected_amount_cents == 0


def test_claim_items_sums_repeated_item_ids(items_session):
    alice, _ = session_state.join(items_session, "Alice")
    frieten = _item_id(items_session, "Frieten")

    claims, expected, _ = session_state.claim_items(
        items_session, str(alice.participant_id), [(frieten, 1), (frieten, 1)]
    )

    assert len(claims) == 1
    assert claims[0].quantity == 2
    assert expected == 1300


def test_over_claim_is_rejected_without_partial_changes(items_session):
    alice, _ = session_state.join(items_session, "Alice")
    bob, _ = session_state.join(items_session, "Bob")
    waterzooi = _item_id(items_session, "Waterzooi")
    frieten = _item_id(items_session, "Frieten")
    session_state.claim_items(items_session, str(alice.participant_id), [(waterzooi, 1)])
    session_state.claim_items(items_session, str(bob.participant_id), [(frieten, 1)])

    with pytest.raises(OverClaimedError) as exc_info:
        session_state.claim_items(
            items_session, str(bob.participant_id), [(frieten, 2), (waterzooi, 1)]
        )

    assert exc_info.value.available == {frieten: 2, waterzooi: 0}
    assert exc_info.value.status_code == 409
    # Bob keeps his previous claim
    bob_claims = items_session.claims_for(str(bob.participant_id))
    assert [(str(c.bill_item_id), c.quantity) for c in bob_claims] == [(frieten, 1)]
    assert bob.expected_amount_cents == 650


def test_claimed_quantity_never_exceeds_item_quantity(items_session):
    frieten = _item_id(items_session, "Frieten")
    people = [session_state.join(items_session, name)[0] for name in ("A", "B", "C")]

    granted = 0
    for person in people:
        try:
            session_state.claim_items(items_session, str(person.participant_id), [(frieten, 1)])
            granted += 1
        except OverClaimedError:
            pass

    assert granted == 2
    assert sum(c.quantity for c in items_session.item_claims) == 2


def test_claim_unknown_item_or_participant(items_session):
    alice, _ = session_state.join(items_session, "Alice")
    with pytest.raises(NotFoundError):
        session_state.claim_items(items_session, str(alice.participant_id), [(str(ObjectId()), 1)])
    with pytest.raises(NotFoundError):
        session_state.claim_items(items_session, str(ObjectId()), [])


def test_claim_in_equal_mode_is_rejected(equal_session):
    with pytest.raises(InvalidConfigurationError):
        session_state.claim_items(
            equal_session, str(equal_session.main_booker.participant_id), []
        )


# Payments and transitions

def test_equal_split_example_scenario(equal_session):
    peers = [session_state.join(equal_session, name)[0] for name in ("Els", "Piet", "Mia")]
    assert session_state.compute_outstanding(equal_session) == 5505

    _, events = session_state.record_payment(equal_session, str(peers[0].participant_id), 1835)
    assert equal_session.status == SessionStatus.SETTLING
    assert [e.type for e in events] == ["payment-completed"]

    session_state.record_payment(equal_session, str(peers[1].participant_id), 1835)
    assert session_state.compute_outstanding(equal_session) == 1835

    _, events = session_state.record_payment(equal_session, str(peers[2].participant_id), 1835)
    assert [e.type for e in events] == ["payment-completed", "session-completed"]
    assert equal_session.status == SessionStatus.COMPLETED
    assert equal_session.is_active is False
    assert session_state.compute_outstanding(equal_session) == 0


def test_record_payment_unknown_participant(equal_session):
    with pytest.raises(NotFoundError):
        session_state.record_payment(equal_session, str(ObjectId()), 1835)


def test_repeated_payment_returns_existing_record(equal_session):
    els, _ = session_state.join(equal_session, "Els")
    first, _ = session_state.record_payment(equal_session, str(els.participant_id), 1835)

    again, events = session_state.record_payment(equal_session, str(els.participant_id), 1835)

    assert again.payment_id == first.payment_id
    assert events == []
    assert len([p for p in equal_session.payments if p.kind == PaymentKind.PEER]) == 1


def test_main_booker_payment_is_not_a_peer_payment(equal_session):
    booker = equal_session.main_booker
    payment, events = session_state.record_payment(equal_session, str(booker.participant_id), 100)

    assert payment.kind == PaymentKind.MAIN_BOOKER
    assert events == []
    assert equal_session.status == SessionStatus.OPEN


def test_items_outstanding_example(items_session):
    alice, _ = session_state.join(items_session, "Alice")
    bob, _ = session_state.join(items_session, "Bob")
    session_state.claim_items(
        items_session, str(alice.participant_id), [(_item_id(items_session, "Waterzooi"), 1)]
    )
    session_state.claim_items(
        items_session, str(bob.participant_id), [(_item_id(items_session, "Frieten"), 1)]
    )

    # 6.50 unclaimed + 18.50 + 6.50 unpaid
    assert session_state.compute_outstanding(items_session) == 3150

    session_state.claim_items(
        items_session, str(bob.participant_id), [(_item_id(items_session, "Frieten"), 2)]
    )
    session_state.record_payment(items_session, str(alice.participant_id), 1850)
    session_state.record_payment(items_session, str(bob.participant_id), 1300)

    assert session_state.compute_outstanding(items_session) == 0
    assert items_session.status == SessionStatus.COMPLETED


def test_outstanding_summary_lists_unclaimed_and_unpaid(items_session):
    alice, _ = session_state.join(items_session, "Alice")
    session_state.claim_items(
        items_session, str(alice.participant_id), [(_item_id(items_session, "Frieten"), 1)]
    )

    summary = session_state.outstanding_summary(items_session)

    assert summary.outstanding_cents == 3150
    assert summary.unclaimed_amount_cents == 2500
    assert {i.name: i.unclaimed_quantity for i in summary.unclaimed_items} == {
        "Waterzooi": 1,
        "Frieten": 1,
    }
    assert [p.name for p in summary.unpaid_participants] == ["Alice"]


def test_outstanding_is_never_negative(equal_session):
    els, _ = session_state.join(equal_session, "Els")
    session_state.record_payment(equal_session, str(els.participant_id), 99999)
    assert session_state.compute_outstanding(equal_session) == 0


# Pay full outstanding

def test_pay_full_outstanding_requires_main_booker(equal_session):
    els, _ = session_state.join(equal_session, "Els")
    with pytest.raises(NotMainBookerError):
        session_state.pay_full_outstanding(equal_session, str(els.participant_id), 5505)


def test_pay_full_outstanding_requires_confirmed_amount(equal_session):
    session_state.join(equal_session, "Els")
    booker_id = str(equal_session.main_booker.participant_id)

    with pytest.raises(ConfirmationRequiredError) as exc_info:
        session_state.pay_full_outstanding(equal_session, booker_id, 0)

    assert exc_info.value.summary["outstanding_cents"] == 5505
    assert equal_session.status == SessionStatus.OPEN


def test_pay_full_outstanding_settles_everyone(items_session):
    alice, _ = session_state.join(items_session, "Alice")
    bob, _ = session_state.join(items_session, "Bob")
    session_state.claim_items(
        items_session, str(alice.participant_id), [(_item_id(items_session, "Waterzooi"), 1)]
    )
    booker_id = str(items_session.main_booker.participant_id)

    summary, events = session_state.pay_full_outstanding(items_session, booker_id, 3150)

    assert summary.outstanding_cents == 3150
    assert [i.name for i in summary.unclaimed_items] == ["Frieten"]
    assert items_session.status == SessionStatus.COMPLETED
    assert alice.has_paid and alice.paid_amount_cents == 1850
    assert bob.has_paid and bob.paid_amount_cents == 0
    assert [e.type for e in events] == [
        "participant-payment-completed",
        "participant-payment-completed",
        "session-completed",
    ]
    settled = [p for p in items_session.payments if p.kind == PaymentKind.SETTLED_BY_MAIN_BOOKER]
    assert len(settled) == 2


def test_pay_full_outstanding_is_idempotent_once_completed(equal_session):
    booker_id = str(equal_session.main_booker.participant_id)
    session_state.pay_full_outstanding(equal_session, booker_id, 5505)
    payments_before = len(equal_session.payments)

    summary, events = session_state.pay_full_outstanding(equal_session, booker_id, 12345)

    assert events == []
    assert summary.outstanding_cents == 0
    assert len(equal_session.payments) == payments_before


def test_completed_session_stays_completed(items_session):
    alice, _ = session_state.join(items_session, "Alice")
    booker_id = str(items_session.main_booker.participant_id)
    session_state.pay_full_outstanding(items_session, booker_id, 3150)

    with pytest.raises(SessionClosedError):
        session_state.join(items_session, "Late")
    with pytest.raises(SessionClosedError):
        session_state.claim_items(items_session, str(alice.participant_id), [])

    # Repeat payment of an already settled participant stays a no-op
    _, events = session_state.record_payment(items_session, str(alice.participant_id), 1850)
    assert events == []
    assert items_session.status == SessionStatus.COMPLETED
    assert session_state.compute_outstanding(items_session) == 0


def test_link_bank_account_emits_event(equal_session):
    account = LinkedAccount(iban="BE68539007547034", account_holder="Jan Peeters", bank_name="KBC Bank")
    booker_id = str(equal_session.main_booker.participant_id)
    events = session_state.link_bank_account(equal_session, booker_id, account)

    assert equal_session.linked_account.iban == "BE68539007547034"
    assert events[0].type == "bank-linked"
    assert events[0].account_holder == "Jan Peeters"


def test_only_main_booker_links_bank_account(equal_session):
    els, _ = session_state.join(equal_session, "Els")
    account = LinkedAccount(iban="BE68539007547034", account_holder="Els Claes")

    with pytest.raises(NotMainBookerError):
        session_state.link_bank_account(equal_session, str(els.participant_id), account)
    assert equal_session.linked_account is None


def test_participant_owing_nothing_can_pay_zero(items_session):
    alice, _ = session_state.join(items_session, "Alice")
    bob, _ = session_state.join(items_session, "Bob")
    session_state.claim_items(
        items_session,
        str(alice.participant_id),
        [(_item_id(items_session, "Waterzooi"), 1), (_item_id(items_session, "Frieten"), 2)]
    )
    session_state.record_payment(items_session, str(alice.participant_id), 3150)
    assert items_session.status == SessionStatus.SETTLING
    assert bob.expected_amount_cents == 0

    payment, events = session_state.record_payment(items_session, str(bob.participant_id), 0)

    assert payment.amount_cents == 0
    assert bob.has_paid is True
    assert [e.type for e in events] == ["payment-completed", "session-completed"]
    assert items_session.status == SessionStatus.COMPLETED


def test_negative_payment_is_rejected(equal_session):
    els, _ = session_state.join(equal_session, "Els")
    with pytest.raises(InvalidConfigurationError):
        session_state.record_payment(equal_session, str(els.participant_id), -1)
    assert els.has_paid is False
    assert equal_session.status == SessionStatus.OPEN
