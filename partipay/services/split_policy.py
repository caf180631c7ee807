"""
Split policies: compute what each participant is expected to pay.

Two policies exist:
- equal: total / declared participant count, rounded to the cent. The
  rounded shares may drift from the total by up to one cent per extra
  participant; that drift is accepted.
- items: sum of unit price * claimed quantity over a participant's claims.

Expected amounts are always recomputed from scratch, never incrementally.
"""
from typing import Dict, Iterable, List, Optional

from partipay.core.exceptions import InvalidConfigurationError
from partipay.models.session import BillItem, ItemClaim, SplitMode, SplitSession
from partipay.utils.money import divide_cents, line_total_cents


def equal_share(total_cents: int, declared_count: Optional[int]) -> int:
    """Share of one participant under the equal policy."""
    if declared_count is None or declared_count < 2:
        raise InvalidConfigurationError(
            f"Equal split needs a declared participant count of at least 2, got {declared_count}"
        )
    return divide_cents(total_cents, declared_count)


def claimed_amount(claims: Iterable[ItemClaim], items: Iterable[BillItem]) -> int:
    """Value of one participant's claims."""
    prices = {str(item.item_id): item.unit_price_cents for item in items}
    amount = 0
    for claim in claims:
        price = prices.get(str(claim.bill_item_id))
        if price is None:
            continue
        amount += line_total_cents(price, claim.quantity)
    return amount


def claimed_quantities(
    claims: Iterable[ItemClaim],
    excluding_participant: Optional[str] = None
) -> Dict[str, int]:
    """Claimed quantity per bill item id, optionally ignoring one participant."""
    quantities: Dict[str, int] = {}
    for claim in claims:
        if excluding_participant is not None and str(claim.participant_id) == str(excluding_participant):
            continue
        item_id = str(claim.bill_item_id)
        quantities[item_id] = quantities.get(item_id, 0) + claim.quantity
    return quantities


def available_quantity(
    item: BillItem,
    claims: Iterable[ItemClaim],
    excluding_participant: Optional[str] = None
) -> int:
    claimed = claimed_quantities(claims, excluding_participant).get(str(item.item_id), 0)
    return max(item.quantity - claimed, 0)


def unclaimed_items(items: Iterable[BillItem], claims: Iterable[ItemClaim]) -> List[dict]:
    """Items with at least one unit nobody has claimed."""
    claimed = claimed_quantities(list(claims))
    result = []
    for item in items:
        remaining = item.quantity - claimed.get(str(item.item_id), 0)
        if remaining > 0:
            result.append({
                "item_id": str(item.item_id),
                "name": item.name,
                "unclaimed_quantity": remaining,
                "unclaimed_amount_cents": line_total_cents(item.unit_price_cents, remaining)
            })
    return result


def unclaimed_amount(session: SplitSession) -> int:
    """Total minus the value of every claim in the session."""
    claimed_value = claimed_amount(session.item_claims, session.bill_items)
    return session.total_amount_cents - claimed_value


def recompute_expected_amounts(session: SplitSession) -> None:
    """Write expected_amount_cents for every participant under the session's mode."""
    if session.split_mode == SplitMode.EQUAL:
        share = equal_share(session.total_amount_cents, session.participant_count)
        for participant in session.participants:
            participant.expected_amount_cents = share
        return

    for participant in session.participants:
        participant.expected_amount_cents = claimed_amount(
            session.claims_for(str(participant.participant_id)),
            session.bill_items
        )
