"""
Unit and property tests for the fee calculator.

Verifies:
- Fee percent is base, or base + advance for advance invoices
- fee_amount + net_value == amount exactly
- Allocation across members sums exactly to the invoice quote
- Fee bounds are inclusive
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from fuel_kernel.domain.fees import FeeBounds, FeeSchedule, allocate_fee, apply_fee
from fuel_kernel.exceptions import FeeScheduleError, IntegrityViolationError, ValidationError

SCHEDULE = FeeSchedule(base_fee_percent=Decimal("5"), advance_fee_percent=Decimal("2.5"))

money = st.integers(min_value=0, max_value=10_000_000).map(lambda c: Decimal(c).scaleb(-2))
percent = st.integers(min_value=0, max_value=1_000_000).map(lambda u: Decimal(u).scaleb(-4))


class TestApplyFee:
    def test_base_fee(self):
        quote = apply_fee(Decimal("150.00"), SCHEDULE, is_advance=False)
        assert quote.fee_percent == Decimal("5")
        assert quote.fee_amount == Decimal("7.50")
        assert quote.net_value == Decimal("142.50")

    def test_advance_fee_adds_surcharge(self):
        quote = apply_fee(Decimal("100.00"), SCHEDULE, is_advance=True)
        assert quote.fee_percent == Decimal("7.5")
        assert quote.fee_amount == Decimal("7.50")
        assert quote.net_value == Decimal("92.50")

    def test_rounds_half_up(self):
        # 0.10 * 5 % = 0.005 -> 0.01
        quote = apply_fee(Decimal("0.10"), SCHEDULE, is_advance=False)
        assert quote.fee_amount == Decimal("0.01")
        assert quote.net_value == Decimal("0.09")

    def test_zero_amount(self):
        quote = apply_fee(Decimal("0.00"), SCHEDULE, is_advance=True)
        assert quote.fee_amount == Decimal("0.00")
        assert quote.net_value == Decimal("0.00")

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            apply_fee(Decimal("-1.00"), SCHEDULE, is_advance=False)

    @given(amount=money, base=percent, advance=percent, is_advance=st.booleans())
    def test_fee_plus_net_equals_amount(self, amount, base, advance, is_advance):
        schedule = FeeSchedule(base, advance)
        quote = apply_fee(amount, schedule, is_advance)
        assert quote.fee_amount + quote.net_value == amount
        assert quote.fee_amount >= 0


class TestAllocateFee:
    def test_even_split(self):
        quote = apply_fee(Decimal("150.00"), SCHEDULE, is_advance=False)
        shares = allocate_fee([Decimal("100.00"), Decimal("50.00")], quote)
        assert [s.fee_amount for s in shares] == [Decimal("5.00"), Decimal("2.50")]
        assert [s.net_value for s in shares] == [Decimal("95.00"), Decimal("47.50")]

    def test_rounding_carried_on_running_gross(self):
        totals = [Decimal("0.10"), Decimal("0.10"), Decimal("0.10")]
        quote = apply_fee(sum(totals), SCHEDULE, is_advance=False)
        # Running gross 0.10, 0.20, 0.30 rounds to cumulative fees 0.01, 0.01, 0.02
        shares = allocate_fee(totals, quote)
        assert [s.fee_amount for s in shares] == [
            Decimal("0.01"),
            Decimal("0.00"),
            Decimal("0.01"),
        ]
        assert sum(s.fee_amount for s in shares) == quote.fee_amount

    @pytest.mark.parametrize(
        "total, count",
        [
            (Decimal("10.10"), 150),
            (Decimal("0.10"), 10),
            (Decimal("0.01"), 300),
            (Decimal("0.09"), 250),
        ],
    )
    def test_many_small_members(self, total, count):
        totals = [total] * count
        quote = apply_fee(sum(totals), SCHEDULE, is_advance=False)
        shares = allocate_fee(totals, quote)

        assert len(shares) == count
        assert sum(s.fee_amount for s in shares) == quote.fee_amount
        assert sum(s.net_value for s in shares) == quote.net_value
        assert all(Decimal("0") <= s.fee_amount <= s.total_value for s in shares)

    def test_monthly_batch_figures(self):
        quote = apply_fee(Decimal("1515.00"), SCHEDULE, is_advance=False)
        shares = allocate_fee([Decimal("10.10")] * 150, quote)
        assert quote.fee_amount == Decimal("75.75")
        # Each share is 0.50 or 0.51 depending on where the running gross rounds
        assert {s.fee_amount for s in shares} <= {Decimal("0.50"), Decimal("0.51")}

    def test_quote_for_other_gross_rejected(self):
        quote = apply_fee(Decimal("200.00"), SCHEDULE, is_advance=False)
        with pytest.raises(IntegrityViolationError):
            allocate_fee([Decimal("100.00"), Decimal("50.00")], quote)

    def test_empty_members_rejected(self):
        quote = apply_fee(Decimal("0.00"), SCHEDULE, is_advance=False)
        with pytest.raises(ValidationError):
            allocate_fee([], quote)

    @settings(max_examples=200, deadline=None)
    @given(
        totals=st.lists(
            st.integers(min_value=1, max_value=500_000).map(lambda c: Decimal(c).scaleb(-2)),
            min_size=1,
            max_size=300,
        ),
        fee_percent=st.integers(min_value=0, max_value=1_000_000).map(
            lambda u: Decimal(u).scaleb(-4)
        ),
    )
    def test_member_sums_match_invoice(self, totals, fee_percent):
        schedule = FeeSchedule(fee_percent, Decimal("0"))
        gross = sum(totals, Decimal("0.00"))
        quote = apply_fee(gross, schedule, is_advance=False)
        shares = allocate_fee(totals, quote)

        assert sum(s.total_value for s in shares) == gross
        assert sum(s.fee_amount for s in shares) == quote.fee_amount
        assert sum(s.net_value for s in shares) == quote.net_value
        for share in shares:
            assert share.fee_amount + share.net_value == share.total_value
            assert Decimal("0") <= share.fee_amount <= share.total_value


class TestFeeBounds:
    def test_defaults_accept_typical_schedule(self):
        FeeBounds().check(SCHEDULE)

    def test_bounds_are_inclusive(self):
        bounds = FeeBounds()
        bounds.check(FeeSchedule(Decimal("1.5"), Decimal("0")))
        bounds.check(FeeSchedule(Decimal("15"), Decimal("15")))

    def test_base_below_minimum(self):
        with pytest.raises(FeeScheduleError) as exc_info:
            FeeBounds().check(FeeSchedule(Decimal("1.4999"), Decimal("0")))
        assert exc_info.value.field == "base_fee_percent"
        assert exc_info.value.code == "FEE_SCHEDULE_OUT_OF_RANGE"

    def test_advance_above_maximum(self):
        with pytest.raises(FeeScheduleError) as exc_info:
            FeeBounds().check(FeeSchedule(Decimal("5"), Decimal("15.0001")))
        assert exc_info.value.field == "advance_fee_percent"
