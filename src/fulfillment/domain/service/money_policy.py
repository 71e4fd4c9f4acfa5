"""Domain service: Money Policy.

Pure functions that split an order total between the platform
(commission), the payment channel (estimated fee) and the seller (net
payout).  Called at order creation and at every re-pricing event; never
touches storage.

The fee side is a ``FeeSchedule`` so each region can plug in its own
provider tariff.  The default schedule is a coarse approximation of
East African mobile-money tariffs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from fulfillment.domain.exceptions import InvalidSettlement, ValidationError
from fulfillment.domain.model.value_objects import Money, PaymentChannel, round_half_up

STANDARD_COMMISSION_PERCENTAGE = 3
# Cash handling carries a one-point premium.
CASH_COMMISSION_PERCENTAGE = 4


@dataclass(frozen=True)
class SettlementBreakdown:
    commission_percentage: int
    commission_amount: Money
    estimated_fee: Money
    net_amount: Money


class FeeSchedule(ABC):

    @abstractmethod
    def estimate(self, total: Money, channel: PaymentChannel) -> Money:
        """Return the provider fee expected for moving ``total`` over ``channel``."""


class TieredMobileMoneyFeeSchedule(FeeSchedule):
    """Flat fee per tier for mobile money, a percentage above the last tier.

    Other channels carry no estimated fee.
    """

    DEFAULT_TIERS: tuple[tuple[Decimal, Decimal], ...] = (
        (Decimal("5000"), Decimal("150")),
        (Decimal("30000"), Decimal("300")),
    )

    def __init__(
        self,
        tiers: tuple[tuple[Decimal, Decimal], ...] = DEFAULT_TIERS,
        overflow_percentage: Decimal = Decimal("1"),
    ) -> None:
        ceilings = [ceiling for ceiling, _ in tiers]
        if ceilings != sorted(ceilings):
            raise ValidationError("Fee tiers must be ordered by ceiling")
        self._tiers = tiers
        self._overflow_percentage = overflow_percentage

    def estimate(self, total: Money, channel: PaymentChannel) -> Money:
        if channel is not PaymentChannel.MOBILE_MONEY:
            return Money.zero(total.currency)
        for ceiling, fee in self._tiers:
            if total.amount <= ceiling:
                return Money(fee, total.currency)
        return total.percentage(self._overflow_percentage)


DEFAULT_FEE_SCHEDULE: FeeSchedule = TieredMobileMoneyFeeSchedule()


def commission_percentage_for(channel: PaymentChannel) -> int:
    if channel is PaymentChannel.CASH_ON_DELIVERY:
        return CASH_COMMISSION_PERCENTAGE
    return STANDARD_COMMISSION_PERCENTAGE


def compute_settlement(
    total_amount: Money,
    channel: PaymentChannel,
    fee_schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE,
) -> SettlementBreakdown:
    """Split ``total_amount`` into commission, estimated fee and net payout.

    Raises InvalidSettlement when commission plus fee would exceed the
    total; the net amount is never clamped to zero.
    """
    if not isinstance(total_amount, Money):
        raise ValidationError("Order total must be a Money amount")

    percentage = commission_percentage_for(channel)
    commission = Money(
        round_half_up(total_amount.amount * percentage / Decimal("100")),
        total_amount.currency,
    )
    fee = fee_schedule.estimate(total_amount, channel)

    net = total_amount.amount - commission.amount - fee.amount
    if net < 0:
        raise InvalidSettlement(
            f"Order total {total_amount} cannot cover commission {commission} "
            f"and estimated {channel.value} fee {fee}"
        )

    return SettlementBreakdown(
        commission_percentage=percentage,
        commission_amount=commission,
        estimated_fee=fee,
        net_amount=Money(net, total_amount.currency),
    )
