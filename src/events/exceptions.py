"""Domain errors of the ticket sale engine.

Every error carries the state a client needs to correct itself (current availability, remaining
allowance, provider message) and exposes it through ``to_dict``. The groups below map onto HTTP
statuses in ``api.exception_handlers``.
"""

import typing as t


class TicketingError(Exception):
    """Base class for all ticketing errors."""

    code = "ticketing_error"
    default_message = "The ticketing operation could not be completed."

    def __init__(self, message: str | None = None, **context: t.Any) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict[str, t.Any]:
        return {"detail": self.message, "code": self.code, "context": self.context}


# --- Client input that can never succeed as sent ---


class TicketingValidationError(TicketingError):
    code = "invalid_request"


class OverPerOrderLimitError(TicketingValidationError):
    code = "over_per_order_limit"

    def __init__(self, max_per_order: int) -> None:
        super().__init__(f"Maximum {max_per_order} tickets per order.", max_per_order=max_per_order)


class ReservationQuantityMismatchError(TicketingValidationError):
    code = "reservation_quantity_mismatch"

    def __init__(self, reserved: int, requested: int) -> None:
        super().__init__(
            f"Requested {requested} tickets but only {reserved} are reserved.", reserved=reserved, requested=requested
        )


class PaymentsNotEnabledError(TicketingValidationError):
    code = "payments_not_enabled"
    default_message = "This organization has not enabled payments."


class RefundAmountNotPositiveError(TicketingValidationError):
    code = "refund_amount_not_positive"
    default_message = "Refund amount must be greater than zero."


class RefundAmountExceedsPaidError(TicketingValidationError):
    code = "refund_amount_exceeds_paid"

    def __init__(self, amount_paid: str) -> None:
        super().__init__(f"Refund amount cannot exceed {amount_paid}.", amount_paid=amount_paid)


# --- Lookups ---


class TicketingNotFoundError(TicketingError):
    code = "not_found"


class EventNotFoundError(TicketingNotFoundError):
    code = "event_not_found"
    default_message = "Event not found."


class InvalidTierError(TicketingNotFoundError):
    code = "invalid_tier"
    default_message = "Ticket tier not found or inactive."


class TicketNotFoundError(TicketingNotFoundError):
    code = "ticket_not_found"
    default_message = "Ticket not found."


# --- Expected conflicts with the current state of inventory or of a ticket ---


class TicketingConflictError(TicketingError):
    code = "conflict"


class InsufficientCapacityError(TicketingConflictError):
    code = "insufficient_capacity"

    def __init__(self, available: int) -> None:
        super().__init__(f"Not enough tickets available. Only {available} left.", available=available)


class PerCustomerLimitExceededError(TicketingConflictError):
    code = "per_customer_limit_exceeded"

    def __init__(self, max_per_customer: int, remaining: int) -> None:
        super().__init__(
            f"Maximum {max_per_customer} tickets per customer. You can purchase {remaining} more.",
            max_per_customer=max_per_customer,
            remaining=remaining,
        )


class PerNetworkLimitExceededError(TicketingConflictError):
    code = "per_network_limit_exceeded"
    default_message = "Too many tickets requested from this network. Please try again later."


class ReservationExpiredOrInvalidError(TicketingConflictError):
    code = "reservation_expired_or_invalid"
    default_message = "Ticket reservation expired or invalid. Please start over."


class TicketAlreadyRefundedError(TicketingConflictError):
    code = "ticket_already_refunded"
    default_message = "Ticket has already been refunded."


class TicketAlreadyCancelledError(TicketingConflictError):
    code = "ticket_already_cancelled"
    default_message = "Cannot refund a cancelled ticket."


class TicketNotCancellableError(TicketingConflictError):
    code = "ticket_not_cancellable"

    def __init__(self, status: str) -> None:
        super().__init__(f"Ticket is {status} and cannot be cancelled.", status=status)


# --- External payment capability ---


class PaymentError(TicketingError):
    code = "payment_error"


class PaymentFailedError(PaymentError):
    """The buyer's charge did not settle: declined card, authentication required, ..."""

    code = "payment_failed"

    def __init__(self, message: str | None = None, status: str | None = None) -> None:
        super().__init__(message or "Payment failed.", status=status)


class PaymentProviderRejectedError(PaymentError):
    """The provider refused a request that is not the buyer's fault, e.g. a refund on a disputed charge."""

    code = "payment_provider_rejected"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "The payment provider rejected the request.")


class PaymentOutcomeUnknownError(PaymentProviderRejectedError):
    """The provider could not be reached or answered ambiguously; the charge may or may not exist.

    The charge record stays pending and a retry of the same checkout reuses its idempotency key.
    """

    code = "payment_outcome_unknown"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or "The payment could not be confirmed. Please retry in a moment.")


# --- Money moved without inventory being committed ---


class PurchaseCommitError(TicketingError):
    """Raised when tickets could not be written after the charge was captured.

    Operators reconcile through the referenced charge record; the periodic reconciliation task refunds it.
    """

    code = "purchase_commit_failed"

    def __init__(self, charge_record_id: str) -> None:
        super().__init__(
            "Your payment was received but the tickets could not be issued. It will be refunded automatically.",
            reference=charge_record_id,
        )
