"""Lookups about the organization receiving the money."""

from django.conf import settings

from events.models import Organization, Subscription


def get_connected_account_id(organization: Organization) -> str | None:
    """Return the connected Stripe account id if the organization can accept charges."""
    if not organization.is_stripe_connected:
        return None
    return organization.stripe_account_id


def is_platform_account(account_id: str | None) -> bool:
    """Whether the account is the platform's own Stripe account, which pays no fee to itself."""
    return bool(settings.STRIPE_ACCOUNT) and settings.STRIPE_ACCOUNT == account_id


def get_subscription_plan(organization: Organization) -> str:
    """The organization's current plan. Organizations without an active subscription are on starter."""
    plan = (
        Subscription.objects.current()
        .filter(organization=organization)
        .order_by("-created_at")
        .values_list("plan", flat=True)
        .first()
    )
    return plan or Subscription.Plan.STARTER
