"""
Realized LP fee calculation for insured bridge deposits.

The LP fee a relay must charge is derived from the pool's rate model and
how much a deposit moves the pool's utilization. The yearly rate is the
average of the rate curve over that utilization interval, converted to a
weekly rate since relays are expected to be repaid within a week.

All arithmetic is exact decimal on 18-decimal fixed-point inputs.
"""

from decimal import ROUND_DOWN, Decimal, localcontext

from ..models import RateModel

FIXED_POINT_DECIMALS = 18
WEEKS_PER_YEAR = 52

_SCALE = Decimal(10) ** FIXED_POINT_DECIMALS
_PRECISION = 50


def _from_fixed(value: int) -> Decimal:
    return Decimal(value) / _SCALE


def _clamp_utilization(value: int) -> Decimal:
    return min(max(_from_fixed(value), Decimal(0)), Decimal(1))


def instantaneous_rate(rate_model: RateModel, utilization: Decimal) -> Decimal:
    """Yearly rate at a utilization point, both as plain decimals."""
    u_bar = _from_fixed(rate_model.u_bar)
    r0, r1, r2 = (_from_fixed(r) for r in (rate_model.r0, rate_model.r1, rate_model.r2))

    before_kink = min(utilization, u_bar) * r1 / u_bar
    after_kink = max(Decimal(0), utilization - u_bar) * r2 / (1 - u_bar)
    return r0 + before_kink + after_kink


def area_under_rate_curve(rate_model: RateModel, utilization: Decimal) -> Decimal:
    """Integral of the rate curve from zero utilization to `utilization`."""
    u_bar = _from_fixed(rate_model.u_bar)
    r0, r1, r2 = (_from_fixed(r) for r in (rate_model.r0, rate_model.r1, rate_model.r2))

    if utilization <= u_bar:
        return r0 * utilization + r1 * utilization ** 2 / (2 * u_bar)

    excess = utilization - u_bar
    return (
        r0 * utilization
        + r1 * u_bar / 2
        + r1 * excess
        + r2 * excess ** 2 / (2 * (1 - u_bar))
    )


def calculate_apy_from_utilization(
    rate_model: RateModel,
    utilization_before: int,
    utilization_after: int
) -> Decimal:
    """
    Average yearly rate between two utilization points.

    Args:
        rate_model: Rate model of the pool
        utilization_before: Pool utilization before the relay (18 decimals)
        utilization_after: Pool utilization after the relay (18 decimals)

    Returns:
        Yearly rate as a plain decimal fraction
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        before = _clamp_utilization(utilization_before)
        after = _clamp_utilization(utilization_after)

        if before == after:
            return instantaneous_rate(rate_model, before)

        area = area_under_rate_curve(rate_model, after) - area_under_rate_curve(rate_model, before)
        return area / (after - before)


def calculate_realized_lp_fee_pct(
    rate_model: RateModel,
    utilization_before: int,
    utilization_after: int
) -> int:
    """
    Compute the realized LP fee percentage for a relay.

    Args:
        rate_model: Rate model of the pool
        utilization_before: Pool utilization before the relay (18 decimals)
        utilization_after: Pool utilization after the relay (18 decimals)

    Returns:
        Weekly fee as an 18-decimal fixed-point integer, truncated
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        apy = calculate_apy_from_utilization(rate_model, utilization_before, utilization_after)
        weekly = (1 + apy) ** (Decimal(1) / WEEKS_PER_YEAR) - 1
        scaled = (weekly * _SCALE).quantize(Decimal(1), rounding=ROUND_DOWN)
        return max(int(scaled), 0)
