"""
Payment Initiation Service.

Creates a payment, chooses test or live credentials, calls the processor
(or simulates success in the sandbox) and records the outcome.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from config import ProcessorConfig
from database.db import Database
from errors import ConfigurationError, DomainError, ProviderUnreachable
from models.merchant import Merchant
from models.payment import (
    LOG_CHARGE_INIT,
    LOG_PROVIDER_UNREACHABLE,
    LOG_TEST_COMPLETE,
    LOG_TEST_FALLBACK_COMPLETE,
    FlowState,
    Payment,
    PaymentFlow,
    PaymentMode,
    build_tx_ref,
    select_mode,
)
from models.requests import PaymentRequest, PaymentResponse
from .outbox import NotificationOutbox
from .processor_client import ProcessorClient

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_EMAIL = 'customer@example.com'


class PaymentService:
    """
    Orchestrates one payment initiation.

    Each call inserts a fresh pending payment, moves it through a
    PaymentFlow and writes exactly one payment_log row. Nothing is retried.
    """

    def __init__(
        self,
        db: Database,
        processor: ProcessorClient,
        processor_config: ProcessorConfig,
        outbox: Optional[NotificationOutbox] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the service.

        Args:
            db: Database instance
            processor: Processor client
            processor_config: Test/live credentials
            outbox: Outbox for outcome notifications
            clock: Returns the current time in seconds
        """
        self.db = db
        self.processor = processor
        self.processor_config = processor_config
        self.outbox = outbox
        self._clock = clock

    def _secret_for(self, mode: PaymentMode) -> str:
        if mode is PaymentMode.LIVE:
            return self.processor_config.live_secret
        return self.processor_config.test_secret

    async def initiate(self, request: PaymentRequest) -> PaymentResponse:
        """
        Initiate a payment.

        Args:
            request: Validated payment request

        Returns:
            PaymentResponse describing the outcome

        Raises:
            ConfigurationError: If the database is not available
            DomainError: merchant_not_found or payments_not_allowed
        """
        if not self.db.is_connected:
            raise ConfigurationError("Database is not connected")

        merchant_data = await self.db.get_merchant(request.merchant_id)
        if not merchant_data:
            raise DomainError('merchant_not_found')

        merchant = Merchant.from_dict(merchant_data)
        if not merchant.can_accept_payments():
            logger.info(f"Refusing payment for rejected merchant {merchant.id}")
            raise DomainError('payments_not_allowed')

        mode = select_mode(merchant.is_verified(), self.processor_config.live_configured)
        secret = self._secret_for(mode)

        payment = Payment.from_dict(await self.db.create_payment(
            merchant_id=merchant.id,
            amount=request.amount,
            currency=request.currency,
            mode=mode.value,
            link_code=request.link_code,
            customer_email=request.customer_email
        ))
        flow = PaymentFlow(mode)
        tx_ref = build_tx_ref(payment.id, int(self._clock() * 1000))

        logger.info(
            f"Created payment {payment.id} for merchant {merchant.id} "
            f"({payment.amount} {payment.currency}, {mode.value} mode)"
        )

        if payment.link_code and not await self.db.increment_payment_link_uses(payment.link_code):
            logger.info(f"Payment {payment.id} references unknown or inactive link {payment.link_code}")

        if mode is PaymentMode.TEST and not secret:
            flow.fire('skip_provider')
            return await self._simulate(payment, flow, LOG_TEST_COMPLETE, {
                'amount': payment.amount,
                'currency': payment.currency
            }, tx_ref)

        charge = {
            'amount': payment.amount,
            'currency': payment.currency,
            'tx_ref': tx_ref,
            'redirect_url': request.redirect_url or '',
            'customer': {'email': request.customer_email or DEFAULT_CUSTOMER_EMAIL}
        }

        try:
            response = await self.processor.create_charge(secret, charge)
        except ProviderUnreachable as e:
            flow.fire('provider_unreachable')
            if flow.state is FlowState.SIMULATED:
                logger.warning(f"Processor unreachable for test payment {payment.id}, simulating")
                return await self._simulate(payment, flow, LOG_TEST_FALLBACK_COMPLETE, {
                    'amount': payment.amount,
                    'currency': payment.currency,
                    'error': e.message
                }, tx_ref)

            await self._fail(payment, flow, LOG_PROVIDER_UNREACHABLE, {'error': e.message},
                             tx_ref, reason='Provider unreachable.')
            return PaymentResponse.failure('provider_unreachable', payment_id=payment.id)

        flow.fire('call_provider')
        reference = response.reference or tx_ref
        await self.db.set_payment_reference(payment.id, reference)

        if not response.ok:
            flow.fire('provider_rejected')
            if flow.state is FlowState.SIMULATED:
                logger.warning(
                    f"Processor rejected test payment {payment.id} "
                    f"with {response.status}, simulating"
                )
                result = await self._simulate(payment, flow, LOG_TEST_FALLBACK_COMPLETE, {
                    'amount': payment.amount,
                    'currency': payment.currency,
                    'status': response.status,
                    'response': response.data
                }, reference)
                result.flutterwave = response.data
                return result

            await self._fail(payment, flow, LOG_CHARGE_INIT, response.data,
                             reference, reason=_provider_message(response.data))
            return PaymentResponse(ok=False, payment_id=payment.id, flutterwave=response.data)

        await self.db.append_payment_log(payment.id, LOG_CHARGE_INIT, response.data)
        logger.info(f"Payment {payment.id} handed to processor as {reference}")

        return PaymentResponse(ok=True, payment_id=payment.id, flutterwave=response.data)

    async def _simulate(
        self,
        payment: Payment,
        flow: PaymentFlow,
        log_event: str,
        log_data: Dict[str, Any],
        reference: str
    ) -> PaymentResponse:
        """Settle a sandbox payment as completed without provider confirmation."""
        flow.fire('settle')
        await self.db.set_payment_status(payment.id, flow.state.payment_status.value)
        await self.db.append_payment_log(payment.id, log_event, log_data)

        await self._notify('transaction_succeeded', payment, {
            'amount': payment.amount,
            'reference': reference
        })

        return PaymentResponse(ok=True, payment_id=payment.id, test_simulated=flow.is_simulated)

    async def _fail(
        self,
        payment: Payment,
        flow: PaymentFlow,
        log_event: str,
        log_data: Any,
        reference: str,
        reason: str
    ) -> None:
        await self.db.set_payment_status(payment.id, flow.state.payment_status.value)
        await self.db.append_payment_log(payment.id, log_event, log_data)
        logger.warning(f"Live payment {payment.id} failed: {reason}")

        await self._notify('transaction_failed', payment, {
            'amount': payment.amount,
            'reference': reference,
            'reason': reason
        })

    async def _notify(self, event: str, payment: Payment, payload: Dict[str, Any]) -> None:
        if self.outbox is not None:
            await self.outbox.enqueue(event, merchant_id=payment.merchant_id, payload=payload)


def _provider_message(data: Any) -> str:
    if isinstance(data, dict) and isinstance(data.get('message'), str):
        return data['message']
    return ''
