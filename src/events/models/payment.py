import typing as t
from datetime import datetime

from django.conf import settings
from django.db import models

from common.models import TimeStampedModel

from .organization import Organization
from .ticket import TicketTier


class ChargeRecordQuerySet(models.QuerySet["ChargeRecord"]):
    def stale(self, status: str, before: datetime) -> t.Self:
        return self.filter(status=status, updated_at__lte=before)

    def awaiting_outcome(self, session_id: str, tier: TicketTier, quantity: int, amount_cents: int) -> t.Self:
        """Pending charges of a checkout whose provider call ended without a definite answer."""
        return self.filter(
            status=ChargeRecord.ChargeStatus.PENDING,
            reservation_session_id=session_id,
            tier=tier,
            quantity=quantity,
            amount_cents=amount_cents,
        ).order_by("created_at")


class ChargeRecord(TimeStampedModel):
    """Durable trail of a single checkout charge.

    The record is written before the provider is contacted and its id doubles as the idempotency key.
    A record left in ``pending`` after an ambiguous provider error is reused by a retry of the same checkout.
    A record left in ``captured`` means money moved but tickets were never written: the reconciliation
    task refunds those.
    """

    class ChargeStatus(models.TextChoices):
        PENDING = "pending"
        CAPTURED = "captured"
        COMMITTED = "committed"
        FAILED = "failed"
        REVERSED = "reversed"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="charge_records")
    tier = models.ForeignKey(TicketTier, on_delete=models.SET_NULL, null=True, related_name="charge_records")
    reservation_session_id = models.CharField(max_length=64, db_index=True)
    stripe_account_id = models.CharField(max_length=255)
    customer_email = models.EmailField()
    quantity = models.PositiveIntegerField()
    amount_cents = models.PositiveIntegerField()
    application_fee_cents = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default=settings.DEFAULT_CURRENCY)
    status = models.CharField(
        max_length=20, choices=ChargeStatus.choices, default=ChargeStatus.PENDING, db_index=True
    )
    stripe_payment_intent_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    stripe_charge_id = models.CharField(max_length=255, null=True, blank=True)
    stripe_refund_id = models.CharField(max_length=255, null=True, blank=True)
    failure_reason = models.TextField(null=True, blank=True)

    objects = ChargeRecordQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"ChargeRecord {self.id} ({self.status})"

    @property
    def idempotency_key(self) -> str:
        return f"checkout-{self.id}"

    def transition(self, status: str, **fields: t.Any) -> None:
        """Move the record to a new status, persisting only the touched columns."""
        self.status = status
        for name, value in fields.items():
            setattr(self, name, value)
        self.save(update_fields=["status", "updated_at", *fields.keys()])
