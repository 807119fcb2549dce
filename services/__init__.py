"""Services module for the PaySSD gateway."""

from .email_service import EmailService
from .kyc_service import KycService
from .notification_dispatcher import NotificationDispatcher
from .outbox import NotificationOutbox, OutboxDrainer
from .payment_link_service import PaymentLinkService
from .payment_service import PaymentService
from .payout_service import PayoutService
from .processor_client import ProcessorClient
from .provider_webhook import ProviderWebhookService

__all__ = [
    'EmailService',
    'KycService',
    'NotificationDispatcher',
    'NotificationOutbox',
    'OutboxDrainer',
    'PaymentLinkService',
    'PaymentService',
    'PayoutService',
    'ProcessorClient',
    'ProviderWebhookService'
]
