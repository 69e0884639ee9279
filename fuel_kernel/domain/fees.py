"""
FeeCalculator -- pure platform-fee arithmetic.

Responsibility:
    Turns a gross amount and a station fee schedule into a FeeQuote, and
    splits an invoice-level quote across the invoice's member transactions.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Called by the
    InvoiceAggregator only.

Invariants enforced:
    - fee_amount + net_value == amount exactly, for the quote and for every
      allocated member.
    - Member fees and nets sum exactly to the invoice figures, with each
      member's fee rounded on the running gross so no member absorbs more
      than its own rounding.
    - Half-up rounding to the minor unit (never banker's rounding).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from fuel_kernel.db.types import ZERO_MONEY, percent_of, round_money
from fuel_kernel.exceptions import FeeScheduleError, IntegrityViolationError, ValidationError
from fuel_kernel.invariants import LedgerInvariant


@dataclass(frozen=True)
class FeeSchedule:
    """A station's fee percentages at a point in time."""

    base_fee_percent: Decimal
    advance_fee_percent: Decimal

    def percent_for(self, is_advance: bool) -> Decimal:
        if is_advance:
            return self.base_fee_percent + self.advance_fee_percent
        return self.base_fee_percent


@dataclass(frozen=True)
class FeeQuote:
    fee_percent: Decimal
    fee_amount: Decimal
    net_value: Decimal


@dataclass(frozen=True)
class MemberFee:
    """One member's share of an invoice-level FeeQuote."""

    total_value: Decimal
    fee_amount: Decimal
    net_value: Decimal


def apply_fee(amount: Decimal, schedule: FeeSchedule, is_advance: bool) -> FeeQuote:
    """
    Quote the platform fee on ``amount``.

    ``fee_percent = base + (advance if is_advance else 0)``;
    ``fee_amount = round_half_up(amount * fee_percent / 100, 2)``;
    ``net_value = amount - fee_amount``.

    Raises:
        ValidationError: ``amount`` is negative.
    """
    if amount < 0:
        raise ValidationError("amount", f"must not be negative, got {amount}")
    fee_percent = schedule.percent_for(is_advance)
    fee_amount = percent_of(amount, fee_percent)
    return FeeQuote(
        fee_percent=fee_percent,
        fee_amount=fee_amount,
        net_value=round_money(amount) - fee_amount,
    )


def allocate_fee(totals: Sequence[Decimal], quote: FeeQuote) -> tuple[MemberFee, ...]:
    """
    Split ``quote`` across member ``totals`` (in invoice order).

    Fees are rounded on the running gross: member ``i`` gets
    ``percent_of(C_i) - percent_of(C_{i-1})`` where ``C_i`` is the sum of the
    first ``i`` totals.  Each member's rounding difference is carried forward
    rather than piling up on one member, so every fee stays within
    ``[0, total]`` for percentages up to 100 and the last running figure is
    the invoice fee itself.

    Raises:
        ValidationError: ``totals`` is empty.
        IntegrityViolationError: ``quote`` was not computed on the sum of
            ``totals``, or a member fee falls outside ``[0, total]``.
    """
    if not totals:
        raise ValidationError("totals", "at least one member is required")

    shares: list[MemberFee] = []
    running_gross = ZERO_MONEY
    allocated_so_far = ZERO_MONEY
    for total in totals:
        running_gross += total
        cumulative_fee = percent_of(running_gross, quote.fee_percent)
        fee = cumulative_fee - allocated_so_far
        if fee < 0 or fee > total:
            raise IntegrityViolationError(
                LedgerInvariant.FEE_PLUS_NET_EQUALS_TOTAL.value,
                None,
                f"member fee {fee} does not fit member total {total}",
            )
        allocated_so_far = cumulative_fee
        shares.append(MemberFee(total, fee, total - fee))

    if allocated_so_far != quote.fee_amount:
        raise IntegrityViolationError(
            LedgerInvariant.FEE_PLUS_NET_EQUALS_TOTAL.value,
            None,
            f"member fees sum to {allocated_so_far}, invoice fee is {quote.fee_amount}",
        )
    return tuple(shares)


@dataclass(frozen=True)
class FeeBounds:
    """Inclusive bounds a station fee schedule must respect."""

    base_min: Decimal = Decimal("1.5")
    base_max: Decimal = Decimal("15")
    advance_min: Decimal = Decimal("0")
    advance_max: Decimal = Decimal("15")

    def check(self, schedule: FeeSchedule) -> None:
        """
        Raises:
            FeeScheduleError: Either percent falls outside its bounds.
        """
        if not self.base_min <= schedule.base_fee_percent <= self.base_max:
            raise FeeScheduleError(
                "base_fee_percent", schedule.base_fee_percent, self.base_min, self.base_max
            )
        if not self.advance_min <= schedule.advance_fee_percent <= self.advance_max:
            raise FeeScheduleError(
                "advance_fee_percent",
                schedule.advance_fee_percent,
                self.advance_min,
                self.advance_max,
            )
