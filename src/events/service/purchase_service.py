"""Turns a live reservation into paid tickets.

A purchase claims the reservation, charges the buyer on the organization's connected account and
then writes the tickets in one transaction. The charge and the commit are tracked by a
``ChargeRecord`` so that a charge whose tickets could not be written is refunded by
``reconcile_captured_charges``.
"""

import typing as t
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

import structlog
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from common.utils import normalize_email
from events.exceptions import (
    InsufficientCapacityError,
    PaymentFailedError,
    PaymentOutcomeUnknownError,
    PaymentsNotEnabledError,
    PurchaseCommitError,
    ReservationExpiredOrInvalidError,
    ReservationQuantityMismatchError,
    TicketingError,
    TicketingValidationError,
)
from events.models import ChargeRecord, Customer, Event, Reservation, Ticket, TicketTier
from events.models.ticket import from_cents

from . import capacity_ledger, payment_gateway
from .merchant import get_connected_account_id, get_subscription_plan, is_platform_account
from .platform_fees import FeeStrategy, calculate_platform_fee
from .purchase_limits import IdentityCapPolicy, PurchaseLimitPolicy

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PurchaseResult:
    tickets: list[Ticket]
    total_amount: Decimal
    platform_fee_cents: int
    customer_email: str
    customer_name: str
    payment_intent_id: str | None = None
    charge_id: str | None = None
    charge_record_id: UUID | None = None


class PurchaseService:
    """Finalizes reservations of a single tier."""

    def __init__(
        self,
        event: Event,
        tier: TicketTier,
        limit_policy: PurchaseLimitPolicy | None = None,
        fee_strategy: FeeStrategy = calculate_platform_fee,
    ) -> None:
        """Initialize the purchase service.

        Args:
            event: The published event being purchased.
            tier: The tier named by the buyer. It must belong to ``event``.
            limit_policy: Per-identity cap policy. Defaults to the email/network caps.
            fee_strategy: Computes the platform fee from the organization plan and the total in cents.
        """
        self.event = event
        self.tier = tier
        self.organization = event.organization
        self.limit_policy = limit_policy or IdentityCapPolicy()
        self.fee_strategy = fee_strategy

    def purchase(
        self,
        *,
        session_id: str,
        quantity: int,
        customer_email: str,
        customer_name: str,
        payment_method_id: str | None,
        customer_ip: str | None = None,
    ) -> PurchaseResult:
        """Charge the buyer and issue ``quantity`` tickets against a reservation.

        The price always comes from the tier. Free purchases never reach the payment provider.

        Args:
            session_id: The reservation's session id.
            quantity: Number of tickets. Must not exceed the reserved quantity.
            customer_email: Buyer email, normalized before use.
            customer_name: Name printed on the tickets.
            payment_method_id: Platform payment method to charge. Unused for free tiers.
            customer_ip: Buyer network address, stored on the tickets.

        Returns:
            The issued tickets and the charge references.

        Raises:
            ReservationExpiredOrInvalidError: If the reservation is gone, expired or already being purchased.
            ReservationQuantityMismatchError: If more tickets are requested than were reserved.
            PerCustomerLimitExceededError: If the email already holds too many tickets.
            PaymentsNotEnabledError: If a paid purchase targets an organization without a connected account.
            PaymentFailedError: If the charge did not succeed.
            PaymentProviderRejectedError: If Stripe refused the request.
            PurchaseCommitError: If the charge succeeded but the tickets could not be written.
        """
        email = normalize_email(customer_email)
        if email is None:
            raise TicketingValidationError("A valid email address is required.")
        if quantity < 1:
            raise TicketingValidationError("Quantity must be at least 1.")

        reservation = self._claim_reservation(session_id)
        try:
            if quantity > reservation.quantity:
                raise ReservationQuantityMismatchError(reserved=reservation.quantity, requested=quantity)
            self.limit_policy.check_purchase(self.tier, quantity, email)

            total_cents = self.tier.price_cents * quantity
            record = None
            if total_cents > 0:
                record = self._charge(
                    reservation=reservation,
                    quantity=quantity,
                    total_cents=total_cents,
                    customer_email=email,
                    payment_method_id=payment_method_id,
                )
        except Exception:
            self._release_claim(session_id)
            raise

        fee_cents = record.application_fee_cents if record else 0
        try:
            tickets = self._commit(
                session_id=session_id,
                quantity=quantity,
                customer_email=email,
                customer_name=customer_name,
                customer_ip=customer_ip,
                total_cents=total_cents,
                fee_cents=fee_cents,
                record=record,
            )
        except Exception as e:
            if record is None:
                self._release_claim(session_id)
                raise
            logger.critical(
                "purchase_commit_failed",
                charge_record_id=str(record.id),
                payment_intent_id=record.stripe_payment_intent_id,
                event_id=str(self.event.id),
                tier_id=str(self.tier.id),
                quantity=quantity,
                amount_cents=total_cents,
                error=str(e),
                exc_info=True,
            )
            raise PurchaseCommitError(str(record.id)) from e

        logger.info(
            "tickets_purchased",
            event_id=str(self.event.id),
            tier_id=str(self.tier.id),
            quantity=quantity,
            amount_cents=total_cents,
            platform_fee_cents=fee_cents,
            customer_email=email,
        )
        return PurchaseResult(
            tickets=tickets,
            total_amount=from_cents(total_cents),
            platform_fee_cents=fee_cents,
            customer_email=email,
            customer_name=customer_name,
            payment_intent_id=record.stripe_payment_intent_id if record else None,
            charge_id=record.stripe_charge_id if record else None,
            charge_record_id=record.id if record else None,
        )

    def _claim_reservation(self, session_id: str) -> Reservation:
        """Mark the reservation as being purchased so that only one checkout can charge for it."""
        now = timezone.now()
        claimed = Reservation.objects.filter(
            session_id=session_id, tier=self.tier, expires_at__gt=now, claimed_at__isnull=True
        ).update(claimed_at=now)
        if not claimed:
            raise ReservationExpiredOrInvalidError()
        return Reservation.objects.get(session_id=session_id)

    def _release_claim(self, session_id: str) -> None:
        Reservation.objects.filter(session_id=session_id).update(claimed_at=None)

    def _charge(
        self,
        *,
        reservation: Reservation,
        quantity: int,
        total_cents: int,
        customer_email: str,
        payment_method_id: str | None,
    ) -> ChargeRecord:
        account_id = get_connected_account_id(self.organization)
        if account_id is None:
            raise PaymentsNotEnabledError()
        if not payment_method_id:
            raise TicketingValidationError("A payment method is required.")

        if is_platform_account(account_id):
            fee_cents = 0
        else:
            fee_cents = min(self.fee_strategy(get_subscription_plan(self.organization), total_cents), total_cents)

        # An earlier attempt whose outcome is unknown is retried under the same idempotency key.
        record = ChargeRecord.objects.awaiting_outcome(
            session_id=reservation.session_id, tier=self.tier, quantity=quantity, amount_cents=total_cents
        ).first()
        if record is None:
            record = ChargeRecord.objects.create(
                organization=self.organization,
                tier=self.tier,
                reservation_session_id=reservation.session_id,
                stripe_account_id=account_id,
                customer_email=customer_email,
                quantity=quantity,
                amount_cents=total_cents,
                application_fee_cents=fee_cents,
                currency=self.tier.currency,
            )
        else:
            logger.info("charge_retried", charge_record_id=str(record.id))
        try:
            cloned_method_id = payment_gateway.clone_payment_method(
                payment_method_id, account_id, idempotency_key=f"{record.idempotency_key}-pm"
            )
            result = payment_gateway.charge(
                payment_method_id=cloned_method_id,
                amount_cents=total_cents,
                currency=self.tier.currency,
                merchant_account_id=account_id,
                application_fee_cents=record.application_fee_cents,
                metadata={
                    "event_id": str(self.event.id),
                    "ticket_tier_id": str(self.tier.id),
                    "quantity": str(quantity),
                    "organization_id": str(self.organization.id),
                    "charge_record_id": str(record.id),
                },
                receipt_email=customer_email,
                idempotency_key=record.idempotency_key,
            )
        except PaymentOutcomeUnknownError:
            # Left pending: the charge may exist. Reported by the reconciliation task if never retried.
            logger.warning("charge_outcome_unknown", charge_record_id=str(record.id))
            raise
        except TicketingError as e:
            record.transition(ChargeRecord.ChargeStatus.FAILED, failure_reason=e.message)
            raise

        if not result.succeeded:
            record.transition(
                ChargeRecord.ChargeStatus.FAILED,
                stripe_payment_intent_id=result.payment_intent_id,
                failure_reason=f"PaymentIntent status {result.status}",
            )
            logger.info("payment_not_succeeded", charge_record_id=str(record.id), status=result.status)
            raise PaymentFailedError(status=result.status)

        record.transition(
            ChargeRecord.ChargeStatus.CAPTURED,
            stripe_payment_intent_id=result.payment_intent_id,
            stripe_charge_id=result.charge_id,
        )
        return record

    @transaction.atomic
    def _commit(
        self,
        *,
        session_id: str,
        quantity: int,
        customer_email: str,
        customer_name: str,
        customer_ip: str | None,
        total_cents: int,
        fee_cents: int,
        record: ChargeRecord | None,
    ) -> list[Ticket]:
        tier = TicketTier.objects.select_for_update().get(pk=self.tier.pk)
        # The reservation may have lapsed while the charge was in flight.
        remaining = capacity_ledger.available(tier, exclude_session_id=session_id)
        if remaining is not None and remaining < quantity:
            raise InsufficientCapacityError(available=max(0, remaining))

        tickets = Ticket.objects.bulk_create(
            [
                Ticket(
                    tier=tier,
                    event=self.event,
                    organization=self.organization,
                    customer_email=customer_email,
                    customer_name=customer_name,
                    customer_ip=customer_ip,
                    status=Ticket.TicketStatus.VALID,
                    amount_paid=self.tier.price,
                    platform_fee_cents=fee_cents // quantity,
                    stripe_payment_intent_id=record.stripe_payment_intent_id if record else None,
                    stripe_charge_id=record.stripe_charge_id if record else None,
                )
                for _ in range(quantity)
            ]
        )
        Reservation.objects.filter(session_id=session_id).delete()
        self._upsert_customer(customer_email, customer_name, from_cents(total_cents))
        if record is not None:
            record.transition(ChargeRecord.ChargeStatus.COMMITTED)
        return tickets

    def _upsert_customer(self, email: str, name: str, amount: Decimal) -> None:
        customer, _ = Customer.objects.select_for_update().get_or_create(
            organization=self.organization, email=email, defaults={"name": name}
        )
        updates: dict[str, t.Any] = {
            "total_orders": F("total_orders") + 1,
            "total_spent": F("total_spent") + amount,
            "last_order_at": timezone.now(),
        }
        if name:
            updates["name"] = name
        Customer.objects.filter(pk=customer.pk).update(**updates)
