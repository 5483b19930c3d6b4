from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja_extra import NinjaExtraAPI

from common.schema import ResponseOk, VersionResponse
from common.throttling import AnonDefaultThrottle, UserDefaultThrottle
from events.controllers.box_office import BoxOfficeController
from events.controllers.public_checkout import PublicCheckoutController
from events.exceptions import (
    PaymentFailedError,
    PaymentProviderRejectedError,
    PurchaseCommitError,
    TicketingConflictError,
    TicketingNotFoundError,
    TicketingValidationError,
)

from .exception_handlers import (
    handle_django_validation_error,
    handle_general_exception,
    handle_payment_failed_error,
    handle_payment_provider_rejected_error,
    handle_purchase_commit_error,
    handle_ticketing_conflict_error,
    handle_ticketing_not_found_error,
    handle_ticketing_validation_error,
)
from .models import get_version

api = NinjaExtraAPI(
    title="Box Office API",
    docs_url="/docs",
    version=settings.VERSION,
    description=f"Box Office API {settings.VERSION}",
    app_name=f"boxoffice-api-{settings.VERSION}",
    urls_namespace="api",
    servers=[
        {"url": settings.SERVICE_URL, "description": settings.SERVICE_DESCRIPTION},
    ],
    throttle=[AnonDefaultThrottle(), UserDefaultThrottle()],
)


@api.get("/version", tags=["Version"], response={200: VersionResponse})
def version(request: HttpRequest) -> tuple[int, VersionResponse]:
    """Get the API version.

    Args:
        request: The incoming HTTP request.

    Returns:
        The response status code and message.
    """
    return 200, VersionResponse(version=get_version())


@api.get("/healthcheck", tags=["Healthcheck"], response={200: ResponseOk})
def healthcheck(request: HttpRequest) -> tuple[int, ResponseOk]:
    """Check the health of the API.

    Args:
        request: The incoming HTTP request.

    Returns:
        The response status code and message.
    """
    return 200, ResponseOk()


api.register_controllers(
    PublicCheckoutController,
    BoxOfficeController,
)

EXCEPTION_HANDLERS = {
    Exception: handle_general_exception,
    ValidationError: handle_django_validation_error,
    TicketingValidationError: handle_ticketing_validation_error,
    TicketingNotFoundError: handle_ticketing_not_found_error,
    TicketingConflictError: handle_ticketing_conflict_error,
    PaymentFailedError: handle_payment_failed_error,
    PaymentProviderRejectedError: handle_payment_provider_rejected_error,
    PurchaseCommitError: handle_purchase_commit_error,
}

for exc, handler in EXCEPTION_HANDLERS.items():
    api.add_exception_handler(exc, handler)
