"""Platform fee schedule keyed by the organization's subscription plan."""

import typing as t
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from events.models import Subscription

FeeStrategy = t.Callable[[str, int], int]


@dataclass(frozen=True)
class PlatformFee:
    rate: Decimal
    fixed_cents: int


PLATFORM_FEES: dict[str, PlatformFee] = {
    Subscription.Plan.STARTER: PlatformFee(rate=Decimal("0.002"), fixed_cents=3),
    Subscription.Plan.PRO: PlatformFee(rate=Decimal("0.001"), fixed_cents=1),
    Subscription.Plan.ENTERPRISE: PlatformFee(rate=Decimal("0"), fixed_cents=0),
}


def calculate_platform_fee(plan: str, amount_cents: int) -> int:
    """Return the application fee in cents for a charge of ``amount_cents``.

    Unknown plans are charged as starter. The percentage part is rounded half up.
    """
    schedule = PLATFORM_FEES.get(plan, PLATFORM_FEES[Subscription.Plan.STARTER])
    percentage = (Decimal(amount_cents) * schedule.rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, int(percentage) + schedule.fixed_cents)
