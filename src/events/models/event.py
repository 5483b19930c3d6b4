import typing as t

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from common.models import TimeStampedModel

from .organization import Organization


class EventQuerySet(models.QuerySet["Event"]):
    def published(self) -> t.Self:
        """Events that are on sale to the public."""
        return self.filter(status=Event.EventStatus.PUBLISHED)

    def with_organization(self) -> t.Self:
        """Select the related organization."""
        return self.select_related("organization")


class Event(TimeStampedModel):
    class EventStatus(models.TextChoices):
        DRAFT = "draft", "Draft"
        PUBLISHED = "published", "Published"
        CANCELLED = "cancelled", "Cancelled"
        COMPLETED = "completed", "Completed"

    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="events")
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=150, unique=True)
    start = models.DateTimeField(db_index=True)
    end = models.DateTimeField(null=True, blank=True)
    timezone = models.CharField(max_length=64, default="UTC")
    location_name = models.CharField(max_length=255, null=True, blank=True)
    status = models.CharField(
        max_length=20, choices=EventStatus.choices, default=EventStatus.DRAFT, db_index=True
    )
    max_tickets_per_order = models.PositiveIntegerField(
        default=settings.DEFAULT_MAX_TICKETS_PER_ORDER,
        validators=[MinValueValidator(1)],
        help_text="Maximum number of tickets a single reservation may hold.",
    )

    objects = EventQuerySet.as_manager()

    class Meta:
        ordering = ["-start"]

    def __str__(self) -> str:
        return self.name
