from decouple import config

# Holds are fixed-length; callers cannot ask for a longer one.
RESERVATION_TTL_MINUTES = 10
DEFAULT_MAX_TICKETS_PER_ORDER = 10
# Network caps are a looser fraud signal than e-mail caps (shared office/school networks).
NETWORK_LIMIT_MULTIPLIER = 2

RESERVATION_SWEEP_GRACE_MINUTES = config("RESERVATION_SWEEP_GRACE_MINUTES", default=60, cast=int)
CHARGE_RECONCILE_AFTER_MINUTES = config("CHARGE_RECONCILE_AFTER_MINUTES", default=15, cast=int)
TICKET_REMINDER_LEAD_HOURS = config("TICKET_REMINDER_LEAD_HOURS", default=24, cast=int)
RECENT_SCANS_DEFAULT_LIMIT = 20
