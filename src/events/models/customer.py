from django.db import models

from common.models import TimeStampedModel

from .organization import Organization


class Customer(TimeStampedModel):
    """Running purchase totals of a buyer, one row per organization and email."""

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="customers")
    email = models.EmailField()
    name = models.CharField(max_length=255, null=True, blank=True)
    total_orders = models.PositiveIntegerField(default=0)
    total_spent = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    last_order_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["organization", "email"], name="unique_customer_per_organization"),
        ]
        ordering = ["-last_order_at"]

    def __str__(self) -> str:
        return self.email
