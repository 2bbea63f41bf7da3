#!/usr/bin/env python3
"""Tests for the realized LP fee calculation."""

from decimal import Decimal

import pytest

from insured_bridge_validator.models import RateModel
from insured_bridge_validator.utils.fee_calculator import (
    calculate_apy_from_utilization,
    calculate_realized_lp_fee_pct,
    instantaneous_rate,
)

ONE = 10 ** 18


@pytest.fixture
def rate_model():
    """Kinked rate model: 0% base, 4% at the 50% kink, 64% at full utilization."""
    return RateModel(u_bar=ONE // 2, r0=0, r1=4 * ONE // 100, r2=60 * ONE // 100)


class TestRateCurve:
    """Tests for the rate curve and its average."""

    def test_instantaneous_rate_below_kink(self, rate_model):
        assert instantaneous_rate(rate_model, Decimal("0.25")) == Decimal("0.02")

    def test_instantaneous_rate_above_kink(self, rate_model):
        assert instantaneous_rate(rate_model, Decimal("0.75")) == Decimal("0.34")

    def test_average_rate_below_kink(self, rate_model):
        """Test the average of the linear segment up to the kink."""
        assert calculate_apy_from_utilization(rate_model, 0, ONE // 2) == Decimal("0.02")

    def test_average_rate_above_kink(self, rate_model):
        """Test the average of the steep segment past the kink."""
        assert calculate_apy_from_utilization(rate_model, ONE // 2, ONE) == Decimal("0.34")

    def test_average_rate_across_kink(self, rate_model):
        """Test the average over the full curve."""
        # Area: 0.01 below the kink plus 0.17 above it
        assert calculate_apy_from_utilization(rate_model, 0, ONE) == Decimal("0.18")

    def test_equal_utilization_uses_instantaneous_rate(self, rate_model):
        utilization = 3 * ONE // 4
        assert calculate_apy_from_utilization(rate_model, utilization, utilization) == Decimal("0.34")

    def test_utilization_is_clamped(self, rate_model):
        """Test utilization above 100% is treated as 100%."""
        assert calculate_apy_from_utilization(rate_model, ONE // 2, 2 * ONE) == Decimal("0.34")


class TestRealizedLpFeePct:
    """Tests for calculate_realized_lp_fee_pct."""

    def test_zero_rate_is_zero_fee(self):
        model = RateModel(u_bar=ONE // 2, r0=0, r1=0, r2=0)
        assert calculate_realized_lp_fee_pct(model, 0, ONE) == 0

    def test_weekly_fee_from_constant_rate(self):
        """Test a flat 2% yearly rate is converted to an exact weekly fee."""
        model = RateModel(u_bar=ONE // 2, r0=2 * ONE // 100, r1=0, r2=0)

        fee = calculate_realized_lp_fee_pct(model, 0, ONE // 10)

        assert isinstance(fee, int)
        assert fee == 380892276744451

    def test_fee_is_truncated_not_rounded(self):
        """Test the fractional wei is dropped rather than rounded."""
        model = RateModel(u_bar=ONE // 2, r0=2 * ONE // 100, r1=0, r2=0)

        # 1.02 ** (1/52) - 1 = 0.000380892276744451663..., so rounding would give ...452
        assert calculate_realized_lp_fee_pct(model, ONE // 4, 3 * ONE // 4) == 380892276744451

    def test_kinked_curve_below_kink(self, rate_model):
        """Test the 2% average rate up to the kink gives the same exact fee as a flat 2%."""
        assert calculate_realized_lp_fee_pct(rate_model, 0, ONE // 2) == 380892276744451

    def test_fee_grows_with_relay_size(self, rate_model):
        small = calculate_realized_lp_fee_pct(rate_model, ONE // 10, ONE // 5)
        large = calculate_realized_lp_fee_pct(rate_model, ONE // 10, 9 * ONE // 10)
        assert 0 < small < large

    def test_fee_is_deterministic(self, rate_model):
        """Test repeated calculations give the same exact integer."""
        first = calculate_realized_lp_fee_pct(rate_model, 123456789, 456789123456789)
        second = calculate_realized_lp_fee_pct(rate_model, 123456789, 456789123456789)
        assert first == second
        assert str(first) == str(second)


class TestRateModel:
    """Tests for rate model validation."""

    def test_from_dict(self):
        model = RateModel.from_dict({"UBar": str(ONE // 2), "R0": "0", "R1": "1", "R2": "2"})
        assert model == RateModel(u_bar=ONE // 2, r0=0, r1=1, r2=2)

    def test_missing_key(self):
        with pytest.raises(ValueError, match="missing key"):
            RateModel.from_dict({"UBar": "1", "R0": "0", "R1": "0"})

    @pytest.mark.parametrize("u_bar", [0, ONE, 2 * ONE])
    def test_u_bar_out_of_range(self, u_bar):
        with pytest.raises(ValueError, match="UBar"):
            RateModel(u_bar=u_bar, r0=0, r1=0, r2=0)

    def test_negative_rate(self):
        with pytest.raises(ValueError, match="R2"):
            RateModel(u_bar=ONE // 2, r0=0, r1=0, r2=-1)
