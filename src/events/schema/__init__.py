"""Events schema package."""

from .box_office import (
    RecentScanSchema,
    RefundRequestSchema,
    RefundResponseSchema,
    ScanRequestSchema,
    ScanResultSchema,
)
from .checkout import (
    EventTiersSchema,
    PublicEventSchema,
    PurchaseResponseSchema,
    PurchaseSchema,
    ReservationCreateSchema,
    ReservationSchema,
    TicketSchema,
    TierAvailabilitySchema,
)

__all__ = [
    "EventTiersSchema",
    "PublicEventSchema",
    "PurchaseResponseSchema",
    "PurchaseSchema",
    "RecentScanSchema",
    "RefundRequestSchema",
    "RefundResponseSchema",
    "ReservationCreateSchema",
    "ReservationSchema",
    "ScanRequestSchema",
    "ScanResultSchema",
    "TicketSchema",
    "TierAvailabilitySchema",
]
