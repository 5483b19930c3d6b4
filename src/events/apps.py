from django.apps import AppConfig


class EventsConfig(AppConfig):
    """Ticket inventory, checkout and redemption."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "events"
