# fleet/allocation/ordering.py

"""
FIFO ordering and eligibility shared by both allocation directions.

Payment -> charges and charge -> credit walk their candidates with the same
comparator and the same eligibility predicate, so the two directions can
never disagree about who goes first or who may settle whom.
"""

from dataclasses import dataclass
from datetime import date
from functools import cmp_to_key
from typing import Callable, Iterable, List, Optional, TypeVar

from fleet.ledger.models import EntryType
from fleet.payments.models import PaymentType

T = TypeVar("T")


@dataclass(frozen=True)
class FifoKey:
    """Position of a charge or payment in the settlement queue."""
    due_date: Optional[date]
    entry_date: date
    sequence: int


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def compare_fifo(a: FifoKey, b: FifoKey) -> int:
    """
    Total order: due_date ascending with missing due dates last, then
    entry_date ascending, then insertion sequence.
    """
    if a.due_date != b.due_date:
        if a.due_date is None:
            return 1
        if b.due_date is None:
            return -1
        return _cmp(a.due_date, b.due_date)
    if a.entry_date != b.entry_date:
        return _cmp(a.entry_date, b.entry_date)
    return _cmp(a.sequence, b.sequence)


def charge_fifo_key(charge) -> FifoKey:
    return FifoKey(due_date=charge.due_date, entry_date=charge.entry_date, sequence=charge.id)


def payment_fifo_key(payment) -> FifoKey:
    # A payment is "due" the day it was received.
    return FifoKey(due_date=payment.payment_date, entry_date=payment.payment_date, sequence=payment.id)


def fifo_sorted(items: Iterable[T], key_fn: Callable[[T], FifoKey]) -> List[T]:
    return sorted(items, key=cmp_to_key(lambda x, y: compare_fifo(key_fn(x), key_fn(y))))


def can_settle(payment, charge, scope_by_rental: bool = False) -> bool:
    """
    Whether a payment's credit may be applied to a charge.

    InitialFee payments never enter the matching pool: they are recorded as
    revenue but do not settle charges. Voided charges are closed to
    settlement.
    """
    if payment.payment_type == PaymentType.INITIAL_FEE:
        return False
    if charge.type != EntryType.CHARGE or charge.voided_at is not None:
        return False
    if payment.customer_id != charge.customer_id:
        return False
    if scope_by_rental and payment.rental_id and charge.rental_id != payment.rental_id:
        return False
    return True
