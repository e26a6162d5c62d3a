"""
Fee Calculator - service fee and its runner/platform split

Pure functions over Decimal. Rounding is half-up to the centavo.

    spend <= 150  -> flat 20 service fee
    spend  > 150  -> 20% of spend
    runner keeps 85% of the fee, the platform is owed 15%

runner_earnings + platform_commission can differ from service_fee by one
centavo; the drift is absorbed into platform commission. Use
reconciled_commission() where exact reconciliation matters.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Amount = Union[Decimal, int, float, str]

FLAT_FEE_THRESHOLD = Decimal("150")
FLAT_SERVICE_FEE = Decimal("20")
SERVICE_FEE_RATE = Decimal("0.20")
RUNNER_SHARE = Decimal("0.85")
PLATFORM_SHARE = Decimal("0.15")

_CENT = Decimal("0.01")


def to_money(value: Amount) -> Decimal:
    """Decimal rounded half-up to 2 places; floats go through str() to avoid binary noise"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def service_fee(amount: Amount) -> Decimal:
    amount = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
    if amount <= 0:
        return Decimal("0.00")
    if amount <= FLAT_FEE_THRESHOLD:
        return to_money(FLAT_SERVICE_FEE)
    return to_money(amount * SERVICE_FEE_RATE)


def runner_earnings(amount: Amount) -> Decimal:
    return to_money(service_fee(amount) * RUNNER_SHARE)


def platform_commission(amount: Amount) -> Decimal:
    return to_money(service_fee(amount) * PLATFORM_SHARE)


def reconciled_commission(amount: Amount) -> Decimal:
    """service_fee - runner_earnings, exact to the centavo"""
    return service_fee(amount) - runner_earnings(amount)


@dataclass(frozen=True)
class FeeBreakdown:
    original_amount: Decimal
    service_fee: Decimal
    runner_earnings: Decimal
    platform_commission: Decimal
    total_amount: Decimal


def split_fee(amount: Amount) -> FeeBreakdown:
    """All fee figures for an errand spend, as persisted on the payment row"""
    original = to_money(amount)
    fee = service_fee(original)
    return FeeBreakdown(
        original_amount=original,
        service_fee=fee,
        runner_earnings=runner_earnings(original),
        platform_commission=platform_commission(original),
        total_amount=original + fee,
    )
