"""Platform fee arithmetic.

All net-amount computation goes through ``split_gross``; nothing else in the
code base multiplies by a fee rate. Amounts are quantized to the 6 decimal
places USDC carries, rounding the beneficiary's share down so the platform
never pays out more than it holds.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal

AMOUNT_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True)
class FeeSplit:
    gross_amount: Decimal
    fee_rate: Decimal
    fee_amount: Decimal
    net_amount: Decimal


@dataclass(frozen=True)
class FeeSchedule:
    """Fee rate chosen by each settlement path.

    Refund paths may legitimately differ from the payout rate only because
    they are configured to.
    """

    payout: Decimal
    dispute_refund: Decimal
    creator_rejection: Decimal

    @classmethod
    def from_settings(cls, settings) -> FeeSchedule:  # noqa: ANN001
        return cls(
            payout=Decimal(settings.payout_fee_rate),
            dispute_refund=Decimal(settings.dispute_refund_fee_rate),
            creator_rejection=Decimal(settings.creator_rejection_fee_rate),
        )


def split_gross(gross_amount: Decimal, fee_rate: Decimal) -> FeeSplit:
    """Compute ``net = gross * (1 - fee_rate)`` and the fee retained.

    Raises:
        ValueError: If the amount is not positive or the rate is outside [0, 1).
    """
    gross = Decimal(gross_amount)
    rate = Decimal(fee_rate)
    if gross <= 0:
        raise ValueError(f"Gross amount must be positive, got {gross}")
    if not Decimal(0) <= rate < Decimal(1):
        raise ValueError(f"Fee rate must be in [0, 1), got {rate}")

    net = (gross * (Decimal(1) - rate)).quantize(AMOUNT_QUANTUM, rounding=ROUND_DOWN)
    fee = (gross - net).quantize(AMOUNT_QUANTUM)
    return FeeSplit(gross_amount=gross, fee_rate=rate, fee_amount=fee, net_amount=net)
