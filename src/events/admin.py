from django.contrib import admin

from . import models


class TicketTierInline(admin.TabularInline):
    model = models.TicketTier
    extra = 0
    fields = ["name", "price", "currency", "total_quantity", "max_per_customer", "is_active", "display_order"]


class SubscriptionInline(admin.TabularInline):
    model = models.Subscription
    extra = 0


@admin.register(models.Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "owner", "stripe_account_id", "stripe_charges_enabled"]
    search_fields = ["name", "slug", "stripe_account_id"]
    prepopulated_fields = {"slug": ("name",)}
    filter_horizontal = ["staff_members"]
    inlines = [SubscriptionInline]


@admin.register(models.Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ["name", "organization", "start", "status", "max_tickets_per_order"]
    list_filter = ["status"]
    search_fields = ["name", "slug", "organization__name"]
    prepopulated_fields = {"slug": ("name",)}
    inlines = [TicketTierInline]


@admin.register(models.Reservation)
class ReservationAdmin(admin.ModelAdmin):
    list_display = ["id", "tier", "quantity", "expires_at", "claimed_at"]
    list_select_related = ["tier", "tier__event"]
    readonly_fields = ["session_id", "created_at"]


@admin.register(models.Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ["id", "event", "tier", "customer_email", "status", "amount_paid", "used_at"]
    list_filter = ["status"]
    list_select_related = ["event", "tier"]
    search_fields = ["customer_email", "customer_name", "stripe_payment_intent_id"]
    readonly_fields = ["redemption_code", "stripe_payment_intent_id", "stripe_charge_id", "used_at", "used_by"]


@admin.register(models.Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ["email", "organization", "total_orders", "total_spent", "last_order_at"]
    search_fields = ["email", "name"]


@admin.register(models.ChargeRecord)
class ChargeRecordAdmin(admin.ModelAdmin):
    list_display = ["id", "organization", "status", "amount_cents", "application_fee_cents", "updated_at"]
    list_filter = ["status"]
    search_fields = ["stripe_payment_intent_id", "stripe_charge_id", "reservation_session_id"]
    readonly_fields = ["stripe_payment_intent_id", "stripe_charge_id", "stripe_refund_id", "failure_reason"]
