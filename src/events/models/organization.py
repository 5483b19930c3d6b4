import typing as t

from django.conf import settings
from django.db import models

from common.models import TimeStampedModel

if t.TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser, AnonymousUser


class Organization(TimeStampedModel):
    """A merchant selling tickets through its own connected Stripe account."""

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="owned_organizations")
    staff_members = models.ManyToManyField(settings.AUTH_USER_MODEL, related_name="staff_organizations", blank=True)
    stripe_account_id = models.CharField(max_length=255, null=True, blank=True, unique=True)
    stripe_charges_enabled = models.BooleanField(default=False)
    stripe_details_submitted = models.BooleanField(default=False)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    @property
    def is_stripe_connected(self) -> bool:
        """Whether the organization can receive charges on its connected account."""
        return self.stripe_account_id is not None and self.stripe_charges_enabled and self.stripe_details_submitted

    def is_owner_or_staff(self, user: "AbstractBaseUser | AnonymousUser") -> bool:
        """Check whether a user may operate the box office of this organization."""
        if not user.is_authenticated:
            return False
        if self.owner_id == user.pk:
            return True
        return self.staff_members.filter(pk=user.pk).exists()


class SubscriptionQuerySet(models.QuerySet["Subscription"]):
    def current(self) -> t.Self:
        """Subscriptions that currently entitle the organization to their plan."""
        return self.filter(status__in=[Subscription.Status.ACTIVE, Subscription.Status.TRIALING])


class Subscription(TimeStampedModel):
    """The organization's platform plan. Only used to pick the platform fee schedule here."""

    class Plan(models.TextChoices):
        STARTER = "starter", "Starter"
        PRO = "pro", "Pro"
        ENTERPRISE = "enterprise", "Enterprise"

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        TRIALING = "trialing", "Trialing"
        PAST_DUE = "past_due", "Past Due"
        CANCELED = "canceled", "Canceled"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="subscriptions")
    plan = models.CharField(max_length=20, choices=Plan.choices, default=Plan.STARTER)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE, db_index=True)
    current_period_end = models.DateTimeField(null=True, blank=True)

    objects = SubscriptionQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.organization} ({self.plan}, {self.status})"
