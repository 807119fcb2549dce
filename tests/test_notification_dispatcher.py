"""
Tests for notification templates and the dispatcher.

Run with: pytest tests/test_notification_dispatcher.py -v
"""

import pytest
from aiohttp import test_utils, web

from errors import UnknownEventError
from models.notification import TEMPLATES, render_notification
from models.requests import NotificationRequest
from services.email_service import EmailService
from services.notification_dispatcher import NotificationDispatcher

from conftest import FakeEmailService, count_rows


class TestTemplates:

    def test_known_events(self):
        assert set(TEMPLATES) == {
            'merchant_signup',
            'payment_link_created',
            'transaction_succeeded',
            'transaction_failed',
            'payout_requested',
            'system_alert',
            'kyc_approved',
            'kyc_rejected',
        }

    def test_render_transaction_succeeded(self):
        rendered = render_notification('transaction_succeeded', {'amount': 1500.0, 'reference': 'TXN1'})

        assert rendered.title == 'Payment Received'
        assert rendered.message == 'Payment SSP 1500 received. Ref TXN1.'
        assert rendered.admin_email_subject == '[Admin] Payment Received'

    def test_missing_keys_render_blank(self):
        rendered = render_notification('transaction_failed', {'amount': 20})

        assert rendered.message == 'Payment SSP 20 failed. Ref .'

    def test_payment_link(self):
        rendered = render_notification('payment_link_created', {'title': 'Coffee', 'amount': 12.5})

        assert rendered.message == 'Link "Coffee" created for SSP 12.5.'

    def test_unknown_event(self):
        with pytest.raises(UnknownEventError) as exc:
            render_notification('order_shipped', {})
        assert exc.value.code == 'unknown_event'


class TestNotificationRequest:

    def test_unknown_event_rejected(self):
        with pytest.raises(UnknownEventError):
            NotificationRequest.from_dict({'event': 'nope', 'payload': {}})

    def test_admin_only_must_be_true(self):
        request = NotificationRequest.from_dict({
            'event': 'system_alert',
            'payload': {'message': 'x'},
            'admin_only': 'yes'
        })
        assert request.admin_only is False

    def test_numeric_merchant_id(self):
        request = NotificationRequest.from_dict({'event': 'system_alert', 'merchant_id': 5})
        assert request.merchant_id == '5'
        assert request.payload == {}


class TestNotificationDispatcher:

    @pytest.mark.asyncio
    async def test_transaction_succeeded_for_merchant(self, db, fake_email):
        await db.create_merchant('5', 'Shop@Example.com')
        await db.create_admin('ops@payssd.com')
        await db.create_admin('finance@payssd.com')
        dispatcher = NotificationDispatcher(db, fake_email)

        await dispatcher.publish(NotificationRequest.from_dict({
            'event': 'transaction_succeeded',
            'merchant_id': 5,
            'payload': {'amount': 1500, 'reference': 'TXN1'}
        }))

        merchant_rows = await db.list_notifications('merchant', merchant_id='5')
        admin_rows = await db.list_notifications('admin')
        assert len(merchant_rows) == 1
        assert len(admin_rows) == 1
        assert merchant_rows[0]['message'] == 'Payment SSP 1500 received. Ref TXN1.'
        assert merchant_rows[0]['type'] == 'payment'

        assert fake_email.sent[0]['to'] == ['shop@example.com']
        assert fake_email.sent[0]['subject'] == 'Payment Received'
        assert fake_email.sent[1]['to'] == ['ops@payssd.com', 'finance@payssd.com']
        assert fake_email.sent[1]['subject'] == '[Admin] Payment Received'

    @pytest.mark.asyncio
    async def test_admin_only_skips_merchant(self, db, fake_email):
        await db.create_merchant('5', 'shop@example.com')
        dispatcher = NotificationDispatcher(db, fake_email)

        await dispatcher.publish(NotificationRequest(
            event='payout_requested',
            merchant_id='5',
            payload={'amount': 300},
            admin_only=True
        ))

        assert await db.list_notifications('merchant', merchant_id='5') == []
        assert len(await db.list_notifications('admin')) == 1

    @pytest.mark.asyncio
    async def test_no_merchant_writes_admin_row_only(self, db):
        dispatcher = NotificationDispatcher(db)

        await dispatcher.publish(NotificationRequest(event='system_alert', payload={'message': 'Disk full'}))

        assert await count_rows(db, 'notifications') == 1
        row = (await db.list_notifications('admin'))[0]
        assert row['message'] == 'Disk full'
        assert row['merchant_id'] is None

    @pytest.mark.asyncio
    async def test_email_failure_is_not_raised(self, db):
        await db.create_merchant('5', 'shop@example.com')
        email = FakeEmailService(accept=False)
        dispatcher = NotificationDispatcher(db, email)

        await dispatcher.publish(NotificationRequest(
            event='transaction_succeeded',
            merchant_id='5',
            payload={'amount': 1, 'reference': 'R'}
        ))

        assert await count_rows(db, 'notifications') == 2
        assert dispatcher.get_stats()['emails_failed'] == 1

    @pytest.mark.asyncio
    async def test_unknown_event_writes_nothing(self, db):
        dispatcher = NotificationDispatcher(db)

        with pytest.raises(UnknownEventError):
            await dispatcher.publish(NotificationRequest(event='bogus'))

        assert await count_rows(db, 'notifications') == 0

    @pytest.mark.asyncio
    async def test_email_exception_is_not_raised(self, db):
        await db.create_merchant('5', 'shop@example.com')
        await db.create_admin('ops@payssd.com')
        email = FakeEmailService(error=UnicodeDecodeError('utf-8', b'\xff', 0, 1, 'invalid start byte'))
        dispatcher = NotificationDispatcher(db, email)

        rendered = await dispatcher.publish(NotificationRequest(
            event='transaction_succeeded',
            merchant_id='5',
            payload={'amount': 1, 'reference': 'R'}
        ))

        assert rendered.title == 'Payment Received'
        assert await count_rows(db, 'notifications') == 2
        assert len(email.sent) == 2
        assert dispatcher.get_stats()['emails_failed'] == 2


class TestEmailService:

    @pytest.mark.asyncio
    async def test_disabled_without_key(self):
        email = EmailService('', 'notifications@payssd.com')
        await email.start()

        assert await email.send(['shop@example.com'], 'Hi', 'Body') is False
        assert email.get_stats()['skipped'] == 1

    @pytest.mark.asyncio
    async def test_undecodable_error_body(self):
        async def reject(request):
            return web.Response(
                status=500,
                body=b'\xff\xfe bad',
                content_type='text/plain',
                charset='utf-8'
            )

        app = web.Application()
        app.router.add_post('/emails', reject)

        async with test_utils.TestServer(app) as server:
            email = EmailService('re_test', 'notifications@payssd.com', api_url=str(server.make_url('/emails')))
            await email.start()
            try:
                assert await email.send(['shop@example.com'], 'Hi', 'Body') is False
            finally:
                await email.stop()

        assert email.get_stats()['failed'] == 1
