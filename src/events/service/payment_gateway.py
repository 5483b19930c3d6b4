"""Stripe Connect calls made on behalf of an organization's connected account.

Stripe errors are translated here, once, into ticketing errors and propagated. Calls against the
platform's own account are made without ``stripe_account`` and without an application fee.
"""

import typing as t
from contextlib import contextmanager
from dataclasses import dataclass

import stripe
import structlog
from django.conf import settings

from events.exceptions import PaymentFailedError, PaymentOutcomeUnknownError, PaymentProviderRejectedError

from .merchant import is_platform_account

logger = structlog.get_logger(__name__)

stripe.api_key = settings.STRIPE_SECRET_KEY


@dataclass(frozen=True)
class ChargeResult:
    status: str
    payment_intent_id: str
    charge_id: str | None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@contextmanager
def translate_stripe_errors(operation: str) -> t.Iterator[None]:
    """Map Stripe exceptions onto payment errors."""
    try:
        yield
    except stripe.CardError as e:
        logger.info("stripe_card_error", operation=operation, code=e.code, decline_code=getattr(e, "decline_code", None))
        raise PaymentFailedError(e.user_message or str(e), status=e.code) from e
    except (stripe.APIConnectionError, stripe.APIError, stripe.IdempotencyError) as e:
        logger.warning("stripe_outcome_unknown", operation=operation, error=str(e), http_status=e.http_status)
        raise PaymentOutcomeUnknownError() from e
    except stripe.StripeError as e:
        logger.error("stripe_error", operation=operation, error=str(e), http_status=e.http_status)
        raise PaymentProviderRejectedError(e.user_message or str(e)) from e


def _request_options(merchant_account_id: str, idempotency_key: str | None) -> dict[str, t.Any]:
    options: dict[str, t.Any] = {}
    if not is_platform_account(merchant_account_id):
        options["stripe_account"] = merchant_account_id
    if idempotency_key:
        options["idempotency_key"] = idempotency_key
    return options


def clone_payment_method(payment_method_id: str, merchant_account_id: str, idempotency_key: str | None = None) -> str:
    """Copy a platform payment method onto the connected account and return the copy's id."""
    if is_platform_account(merchant_account_id):
        return payment_method_id
    with translate_stripe_errors("clone_payment_method"):
        payment_method = stripe.PaymentMethod.create(
            payment_method=payment_method_id,
            **_request_options(merchant_account_id, idempotency_key),
        )
    return t.cast(str, payment_method.id)


def charge(
    *,
    payment_method_id: str,
    amount_cents: int,
    currency: str,
    merchant_account_id: str,
    application_fee_cents: int,
    metadata: dict[str, str],
    receipt_email: str | None = None,
    idempotency_key: str | None = None,
) -> ChargeResult:
    """Create and confirm a PaymentIntent in one call.

    Args:
        payment_method_id: A payment method that lives on the connected account.
        amount_cents: Amount to charge, in minor units.
        currency: ISO 4217 currency code.
        merchant_account_id: The connected account receiving the charge.
        application_fee_cents: Platform fee withheld from the merchant.
        metadata: Tags stored on the PaymentIntent.
        receipt_email: Where Stripe sends its receipt.
        idempotency_key: Stripe idempotency key for the create call.

    Returns:
        The PaymentIntent status with its id and latest charge id.

    Raises:
        PaymentFailedError: If the card was declined.
        PaymentOutcomeUnknownError: If Stripe could not be reached or the outcome is unknown.
        PaymentProviderRejectedError: For any other Stripe error.
    """
    params: dict[str, t.Any] = {
        "amount": amount_cents,
        "currency": currency.lower(),
        "payment_method": payment_method_id,
        "payment_method_types": ["card"],
        "confirm": True,
        "metadata": metadata,
        **_request_options(merchant_account_id, idempotency_key),
    }
    if receipt_email:
        params["receipt_email"] = receipt_email
    if not is_platform_account(merchant_account_id):
        params["application_fee_amount"] = application_fee_cents

    with translate_stripe_errors("charge"):
        intent = stripe.PaymentIntent.create(**params)

    latest_charge = intent.latest_charge
    charge_id = latest_charge if isinstance(latest_charge, str) or latest_charge is None else latest_charge.id
    return ChargeResult(status=intent.status, payment_intent_id=intent.id, charge_id=charge_id)


def refund(
    *,
    amount_cents: int,
    merchant_account_id: str,
    metadata: dict[str, str],
    charge_id: str | None = None,
    payment_intent_id: str | None = None,
    refund_application_fee: bool = False,
    idempotency_key: str | None = None,
) -> str:
    """Refund part or all of a charge on the connected account.

    The application fee is kept unless ``refund_application_fee`` is set, which only compensating
    refunds of sales that never happened do.
    """
    params: dict[str, t.Any] = {
        "amount": amount_cents,
        "reason": "requested_by_customer",
        "metadata": metadata,
        **_request_options(merchant_account_id, idempotency_key),
    }
    if charge_id:
        params["charge"] = charge_id
    else:
        params["payment_intent"] = payment_intent_id
    if refund_application_fee and not is_platform_account(merchant_account_id):
        params["refund_application_fee"] = True

    with translate_stripe_errors("refund"):
        stripe_refund = stripe.Refund.create(**params)
    return t.cast(str, stripe_refund.id)
