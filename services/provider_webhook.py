"""
Provider Webhook Service.

Applies the processor's asynchronous status callbacks to payments that
are still pending, and keeps the raw callback in the payment log.
"""

import hmac
import logging
from typing import Optional

from database.db import Database
from errors import ValidationError
from models.payment import (
    LOG_WEBHOOK,
    FlowState,
    Payment,
    PaymentFlow,
    PaymentMode,
    PaymentStatus,
)
from models.requests import ProviderWebhook
from .outbox import NotificationOutbox

logger = logging.getLogger(__name__)

# Processor status -> flow transition
STATUS_TRANSITIONS = {
    'successful': 'confirm',
    'failed': 'decline',
}


class ProviderWebhookService:
    """
    Receives processor callbacks.

    A payment that already left pending is never rewritten. Completed
    live payments credit the merchant's balance.
    """

    def __init__(
        self,
        db: Database,
        outbox: Optional[NotificationOutbox] = None,
        webhook_hash: str = ''
    ):
        """
        Initialize the service.

        Args:
            db: Database instance
            outbox: Outbox for outcome notifications
            webhook_hash: Expected value of the verif-hash header (empty disables the check)
        """
        self.db = db
        self.outbox = outbox
        self.webhook_hash = webhook_hash

    def verify_signature(self, signature: Optional[str]) -> bool:
        """Check the verif-hash header against the configured secret hash."""
        if not self.webhook_hash:
            return True
        return hmac.compare_digest(self.webhook_hash, signature or '')

    async def handle(self, webhook: ProviderWebhook, signature: Optional[str] = None) -> int:
        """
        Apply one callback.

        Args:
            webhook: Parsed callback
            signature: verif-hash header value

        Returns:
            Number of payments moved to a terminal status

        Raises:
            ValidationError: invalid_signature
        """
        if not self.verify_signature(signature):
            logger.warning(f"Rejected webhook for {webhook.reference}: bad signature")
            raise ValidationError('invalid_signature')

        transition = STATUS_TRANSITIONS.get((webhook.status or '').lower())
        payments = await self.db.find_payments_by_reference(webhook.reference)

        if not payments:
            logger.info(f"Webhook for unknown reference {webhook.reference}")

        updated = 0
        for payment_data in payments:
            payment = Payment.from_dict(payment_data)
            await self.db.append_payment_log(payment.id, LOG_WEBHOOK, webhook.raw)

            if payment.status.is_terminal:
                continue

            flow = PaymentFlow(payment.mode, state=FlowState.PROVIDER_CALLED)
            if not transition or not flow.can_fire(transition):
                continue
            status = flow.fire(transition).payment_status

            if not await self.db.set_payment_status(payment.id, status.value):
                continue
            updated += 1

            logger.info(f"Payment {payment.id} is now {status.value} ({webhook.reference})")

            if status is PaymentStatus.COMPLETED:
                if payment.mode is PaymentMode.LIVE:
                    await self.db.adjust_merchant_balance(payment.merchant_id, payment.amount)
                await self._notify('transaction_succeeded', payment, {
                    'amount': payment.amount,
                    'reference': webhook.reference
                })
            else:
                await self._notify('transaction_failed', payment, {
                    'amount': payment.amount,
                    'reference': webhook.reference,
                    'reason': f"Provider status {webhook.status}."
                })

        return updated

    async def _notify(self, event: str, payment: Payment, payload: dict) -> None:
        if self.outbox is not None:
            await self.outbox.enqueue(event, merchant_id=payment.merchant_id, payload=payload)
