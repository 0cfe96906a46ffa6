"""Household attribution - resolve who paid across a multi-member household"""

from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional

from household_budget.config import settings
from household_budget.domain.models import (
    HouseholdRoster,
    PaidBy,
    PayerTotal,
    PaymentStatus,
    Resolved,
    Unresolved,
)

UNKNOWN_PAYER_ID = "unknown"


def unknown_payer() -> Resolved:
    return Resolved(id=UNKNOWN_PAYER_ID, name=settings.unknown_payer_name)


def paid_by_from_raw(raw: Any) -> Optional[PaidBy]:
    """
    Normalize a stored paid-by value into the tagged union.

    Older records carry a bare member id, newer ones an embedded
    {"_id", "name"} document.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, (Resolved, Unresolved)):
        return raw
    if isinstance(raw, Mapping):
        member_id = raw.get("_id") or raw.get("id")
        if not member_id:
            return None
        name = raw.get("name")
        if name:
            return Resolved(id=str(member_id), name=str(name))
        return Unresolved(id=str(member_id))
    return Unresolved(id=str(raw))


def roster_lookup(roster: Optional[HouseholdRoster]) -> Dict[str, str]:
    """Member id -> display name, including the household creator"""
    if roster is None:
        return {}
    lookup = dict(roster.members)
    if roster.created_by and roster.created_by not in lookup:
        lookup[roster.created_by] = roster.creator_name or roster.created_by
    return lookup


def try_resolve(roster: Optional[HouseholdRoster], raw: Any) -> Optional[Resolved]:
    """Resolve against the roster only; None when the member is not found"""
    paid_by = paid_by_from_raw(raw)
    if paid_by is None:
        return None

    name = roster_lookup(roster).get(paid_by.id)
    if name is None:
        return None
    return Resolved(id=paid_by.id, name=name)


def resolve(roster: Optional[HouseholdRoster], raw: Any) -> Resolved:
    """
    Resolve a paid-by reference to a member of the household.

    Never raises: identifiers that cannot be matched resolve to the
    "Unknown User" placeholder so read models always have a payer.
    """
    resolved = try_resolve(roster, raw)
    if resolved is not None:
        return resolved

    paid_by = paid_by_from_raw(raw)
    # An embedded name from an older record is better than the placeholder
    if isinstance(paid_by, Resolved):
        return paid_by
    return unknown_payer()


def snapshot_payer(snapshot) -> Optional[PaidBy]:
    """Paid-by union for a stored snapshot (cached name means resolved)"""
    if not snapshot.paid_by_id:
        return None
    if snapshot.paid_by_name:
        return Resolved(id=snapshot.paid_by_id, name=snapshot.paid_by_name)
    return Unresolved(id=snapshot.paid_by_id)


def sum_by_payer(snapshots: Iterable, roster: Optional[HouseholdRoster]) -> List[PayerTotal]:
    """
    Group paid snapshots by resolved payer and sum their amounts.

    Returns:
        Payer totals sorted by amount, largest first
    """
    totals: Dict[str, PayerTotal] = {}

    for snapshot in snapshots:
        if snapshot.status != PaymentStatus.PAID.value:
            continue
        payer = resolve(roster, snapshot_payer(snapshot))
        if payer.id not in totals:
            totals[payer.id] = PayerTotal(payer=payer, amount_cents=0, payment_count=0)
        totals[payer.id].amount_cents += snapshot.amount_cents
        totals[payer.id].payment_count += 1

    return sorted(totals.values(), key=lambda t: (-t.amount_cents, t.payer.name))
