from decouple import config

DEFAULT_CURRENCY = config("DEFAULT_CURRENCY", "USD")
STRIPE_SECRET_KEY = config("STRIPE_SECRET_KEY", default="sk_test_...")
STRIPE_PUBLISHABLE_KEY = config("STRIPE_PUBLISHABLE_KEY", default="pk_test_...")
# The platform's own account: charges to it carry no application fee
STRIPE_ACCOUNT = config("STRIPE_ACCOUNT", default=None)
