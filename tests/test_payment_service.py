"""
Tests for the payment-initiation flow.

Run with: pytest tests/test_payment_service.py -v
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from database.db import Database
from errors import ConfigurationError, DomainError, ProviderUnreachable, ValidationError
from models.requests import PaymentRequest
from services.outbox import NotificationOutbox
from services.payment_service import PaymentService
from services.processor_client import ProviderResponse

from conftest import FakeProcessor, count_rows, outbox_events, processor_config

FIXED_CLOCK = lambda: 1700000000.0  # noqa: E731


def make_service(db, processor, outbox=None, **credentials):
    return PaymentService(
        db=db,
        processor=processor,
        processor_config=processor_config(**credentials),
        outbox=outbox,
        clock=FIXED_CLOCK
    )


def pay(merchant_id='m1', amount=1500, **extra):
    body = {'merchant_id': merchant_id, 'amount': amount, 'currency': 'SSP'}
    body.update(extra)
    return PaymentRequest.from_dict(body)


class TestRequestValidation:
    """Inputs rejected before any write."""

    @pytest.mark.parametrize('body', [
        {'amount': 1500},
        {'merchant_id': 'm1'},
        {'merchant_id': '', 'amount': 1500},
        {'merchant_id': 'm1', 'amount': None},
        {'merchant_id': 'm1', 'amount': 0},
        {'merchant_id': 'm1', 'amount': -10},
        {'merchant_id': 'm1', 'amount': 'abc'},
        {'merchant_id': 'm1', 'amount': 0.004},
    ])
    def test_missing_parameters(self, body):
        with pytest.raises(ValidationError) as exc:
            PaymentRequest.from_dict(body)
        assert exc.value.code == 'missing_parameters'

    def test_non_object_body(self):
        with pytest.raises(ValidationError) as exc:
            PaymentRequest.from_dict(['m1', 1500])
        assert exc.value.code == 'invalid_request'

    def test_defaults(self):
        request = PaymentRequest.from_dict({'merchant_id': 7, 'amount': '250.5'})

        assert request.merchant_id == '7'
        assert request.amount == 250.5
        assert request.currency == 'SSP'
        assert request.customer_email is None

    def test_amount_rounded_to_cents(self):
        request = PaymentRequest.from_dict({'merchant_id': 'm1', 'amount': '10.129'})

        assert request.amount == 10.13


class TestDomainChecks:
    """Inputs rejected after the merchant lookup."""

    @pytest.mark.asyncio
    async def test_unknown_merchant(self, db, fake_processor):
        service = make_service(db, fake_processor)

        with pytest.raises(DomainError) as exc:
            await service.initiate(pay(merchant_id='nobody'))

        assert exc.value.code == 'merchant_not_found'
        assert await count_rows(db, 'payments') == 0

    @pytest.mark.asyncio
    async def test_rejected_merchant(self, db, fake_processor):
        await db.create_merchant('m1', 'shop@example.com', verification_status='rejected')
        service = make_service(db, fake_processor, live_secret='sk_live')

        with pytest.raises(DomainError) as exc:
            await service.initiate(pay())

        assert exc.value.code == 'payments_not_allowed'
        assert await count_rows(db, 'payments') == 0
        assert fake_processor.calls == []

    @pytest.mark.asyncio
    async def test_disconnected_database(self, fake_processor):
        service = make_service(Database('sqlite:///:memory:'), fake_processor)

        with pytest.raises(ConfigurationError) as exc:
            await service.initiate(pay())

        assert exc.value.code == 'server_misconfigured'


class TestModeSelection:

    @pytest.mark.asyncio
    async def test_approved_with_live_secret_is_live(self, db, fake_processor):
        await db.create_merchant('m1', 'shop@example.com', verification_status='approved')
        service = make_service(db, fake_processor, test_secret='sk_test', live_secret='sk_live')

        result = await service.initiate(pay())

        payment = await db.get_payment(result.payment_id)
        assert payment['mode'] == 'live'
        assert fake_processor.calls[0]['secret'] == 'sk_live'

    @pytest.mark.asyncio
    async def test_approved_without_live_secret_is_test(self, db, fake_processor):
        await db.create_merchant('m1', 'shop@example.com', verification_status='approved')
        service = make_service(db, fake_processor, test_secret='sk_test')

        result = await service.initiate(pay())

        payment = await db.get_payment(result.payment_id)
        assert payment['mode'] == 'test'
        assert fake_processor.calls[0]['secret'] == 'sk_test'

    @pytest.mark.asyncio
    async def test_pending_merchant_is_test_even_with_live_secret(self, db, fake_processor):
        await db.create_merchant('m1', 'shop@example.com')
        service = make_service(db, fake_processor, test_secret='sk_test', live_secret='sk_live')

        result = await service.initiate(pay())

        payment = await db.get_payment(result.payment_id)
        assert payment['mode'] == 'test'


class TestSandboxSimulation:

    @pytest.mark.asyncio
    async def test_pending_merchant_without_test_secret(self, db, fake_processor, outbox):
        await db.create_merchant('m1', 'shop@example.com')
        service = make_service(db, fake_processor, outbox=outbox)

        result = await service.initiate(pay())

        assert result.to_dict() == {'ok': True, 'payment_id': result.payment_id, 'test_simulated': True}

        payment = await db.get_payment(result.payment_id)
        assert payment['status'] == 'completed'
        assert payment['mode'] == 'test'
        assert fake_processor.calls == []

        logs = await db.get_payment_logs(result.payment_id)
        assert [log['event'] for log in logs] == ['test_complete']
        assert await outbox_events(db) == ['transaction_succeeded']

    @pytest.mark.asyncio
    async def test_provider_rejection_is_simulated(self, db, outbox):
        await db.create_merchant('m1', 'shop@example.com')
        rejection = {'status': 'error', 'message': 'Invalid currency', 'data': None}
        processor = FakeProcessor(response=ProviderResponse(status=400, data=rejection))
        service = make_service(db, processor, outbox=outbox, test_secret='sk_test')

        result = await service.initiate(pay())

        assert result.ok is True
        assert result.test_simulated is True
        assert result.flutterwave == rejection

        payment = await db.get_payment(result.payment_id)
        assert payment['status'] == 'completed'

        logs = await db.get_payment_logs(result.payment_id)
        assert len(logs) == 1
        assert logs[0]['event'] == 'test_fallback_complete'
        assert logs[0]['data']['status'] == 400
        assert logs[0]['data']['response'] == rejection

    @pytest.mark.asyncio
    async def test_unreachable_provider_is_simulated(self, db, outbox):
        await db.create_merchant('m1', 'shop@example.com')
        processor = FakeProcessor(error=ProviderUnreachable("Connection refused"))
        service = make_service(db, processor, outbox=outbox, test_secret='sk_test')

        result = await service.initiate(pay())

        assert result.ok is True
        assert result.test_simulated is True

        payment = await db.get_payment(result.payment_id)
        assert payment['status'] == 'completed'

        logs = await db.get_payment_logs(result.payment_id)
        assert len(logs) == 1
        assert logs[0]['event'] == 'test_fallback_complete'
        assert logs[0]['data']['error'] == 'Connection refused'

    @pytest.mark.asyncio
    async def test_sandbox_success_stays_pending(self, db, fake_processor):
        await db.create_merchant('m1', 'shop@example.com')
        service = make_service(db, fake_processor, test_secret='sk_test')

        result = await service.initiate(pay(customer_email='buyer@example.com'))

        assert result.ok is True
        assert result.test_simulated is None
        payment = await db.get_payment(result.payment_id)
        assert payment['status'] == 'pending'

        charge = fake_processor.calls[0]['body']
        assert charge['customer'] == {'email': 'buyer@example.com'}
        assert charge['tx_ref'] == f"PSSD_{result.payment_id}_1700000000000"

    @pytest.mark.asyncio
    async def test_charge_matches_stored_amount(self, db, fake_processor):
        await db.create_merchant('m1', 'shop@example.com')
        service = make_service(db, fake_processor, test_secret='sk_test')

        result = await service.initiate(pay(amount=10.129))

        charge = fake_processor.calls[0]['body']
        payment = await db.get_payment(result.payment_id)
        assert charge['amount'] == 10.13
        assert float(payment['amount']) == charge['amount']


class TestLiveMode:

    @pytest.mark.asyncio
    async def test_success_is_pending_with_reference(self, db, outbox):
        await db.create_merchant('m1', 'shop@example.com', verification_status='approved')
        answer = {'status': 'success', 'data': {'link': 'https://pay', 'tx_ref': 'FLW-REF-1'}}
        processor = FakeProcessor(response=ProviderResponse(status=200, data=answer))
        service = make_service(db, processor, outbox=outbox, live_secret='sk_live')

        result = await service.initiate(pay())

        assert result.to_dict() == {'ok': True, 'payment_id': result.payment_id, 'flutterwave': answer}

        payment = await db.get_payment(result.payment_id)
        assert payment['status'] == 'pending'
        assert payment['flutterwave_reference'] == 'FLW-REF-1'

        logs = await db.get_payment_logs(result.payment_id)
        assert [log['event'] for log in logs] == ['charge_init']
        assert await outbox_events(db) == []

    @pytest.mark.asyncio
    async def test_rejection_fails_payment(self, db, outbox):
        await db.create_merchant('m1', 'shop@example.com', verification_status='approved')
        rejection = {'status': 'error', 'message': 'Card declined'}
        processor = FakeProcessor(response=ProviderResponse(status=402, data=rejection))
        service = make_service(db, processor, outbox=outbox, live_secret='sk_live')

        result = await service.initiate(pay())

        assert result.ok is False
        assert result.flutterwave == rejection
        assert result.test_simulated is None

        payment = await db.get_payment(result.payment_id)
        assert payment['status'] == 'failed'

        logs = await db.get_payment_logs(result.payment_id)
        assert [log['event'] for log in logs] == ['charge_init']

        entry = await db.get_outbox_entry(1)
        assert entry['event'] == 'transaction_failed'
        assert 'Card declined' in entry['payload']

    @pytest.mark.asyncio
    async def test_unreachable_fails_payment(self, db, outbox):
        await db.create_merchant('m1', 'shop@example.com', verification_status='approved')
        processor = FakeProcessor(error=ProviderUnreachable("Request timeout"))
        service = make_service(db, processor, outbox=outbox, live_secret='sk_live')

        result = await service.initiate(pay())

        assert result.to_dict() == {
            'ok': False,
            'payment_id': result.payment_id,
            'error': 'provider_unreachable'
        }

        payment = await db.get_payment(result.payment_id)
        assert payment['status'] == 'failed'

        logs = await db.get_payment_logs(result.payment_id)
        assert [log['event'] for log in logs] == ['provider_unreachable']
        assert await outbox_events(db) == ['transaction_failed']


class TestPaymentRows:

    @pytest.mark.asyncio
    async def test_each_call_creates_a_fresh_row(self, db, fake_processor):
        await db.create_merchant('m1', 'shop@example.com')
        service = make_service(db, fake_processor)

        first = await service.initiate(pay())
        second = await service.initiate(pay(amount=99))

        assert first.payment_id != second.payment_id
        assert (await db.get_payment(first.payment_id))['status'] == 'completed'
        assert float((await db.get_payment(first.payment_id))['amount']) == 1500
        assert await count_rows(db, 'payments') == 2
        assert await count_rows(db, 'payment_logs') == 2

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_affect_result(self, db, fake_processor):
        await db.create_merchant('m1', 'shop@example.com')

        broken_db = MagicMock()
        broken_db.enqueue_outbox = AsyncMock(side_effect=RuntimeError("outbox unavailable"))
        service = make_service(db, fake_processor, outbox=NotificationOutbox(broken_db))

        result = await service.initiate(pay())

        assert result.ok is True
        assert result.test_simulated is True
        assert (await db.get_payment(result.payment_id))['status'] == 'completed'

    @pytest.mark.asyncio
    async def test_payment_through_link_counts_use(self, db, fake_processor):
        await db.create_merchant('m1', 'shop@example.com')
        await db.create_payment_link('m1', 'Coffee', 1500, 'SSP', 'PLCOFFEE')
        service = make_service(db, fake_processor)

        await service.initiate(pay(link_code='PLCOFFEE'))
        result = await service.initiate(pay(link_code='PLCOFFEE'))

        assert (await db.get_payment(result.payment_id))['link_code'] == 'PLCOFFEE'
        assert (await db.get_payment_link('PLCOFFEE'))['current_uses'] == 2

    @pytest.mark.asyncio
    async def test_unknown_link_does_not_block_payment(self, db, fake_processor):
        await db.create_merchant('m1', 'shop@example.com')
        service = make_service(db, fake_processor)

        result = await service.initiate(pay(link_code='PLMISSING'))

        assert result.ok is True
        assert (await db.get_payment(result.payment_id))['link_code'] == 'PLMISSING'
