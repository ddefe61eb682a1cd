import stripe
from django.apps import AppConfig
from django.conf import settings


class CommunitiesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'communities'

    def ready(self):
        # Every Stripe call in the project shares these limits; no request
        # waits on the processor longer than STRIPE_API_TIMEOUT_SECONDS.
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES
        stripe.default_http_client = stripe.RequestsClient(
            timeout=settings.STRIPE_API_TIMEOUT_SECONDS
        )
