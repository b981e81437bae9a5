from django.apps import AppConfig


class BookingsConfig(AppConfig):
    name = "apps.bookings"
    verbose_name = "Bookings"

    def ready(self) -> None:
        from apps.bookings.application.command_handlers import register_handlers
        from apps.payments.stripe_service import StripePaymentProcessor
        from shared.application.message_bus import message_bus
        from shared.infrastructure.django_store import DjangoStore

        register_handlers(message_bus, DjangoStore(), StripePaymentProcessor())
