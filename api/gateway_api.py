"""
Gateway HTTP API.

Provides the payment-initiation and notification endpoints, the
processor webhook receiver, and the admin KYC/payout and notification
inbox endpoints.
"""

import logging
from typing import Any, Dict, Optional

from aiohttp import web

from database.db import Database
from errors import GatewayError, UnknownEventError
from models.notification import Notification, RecipientType
from models.requests import (
    DEFAULT_CURRENCY,
    KycDecisionRequest,
    NotificationRequest,
    PaymentLinkRequest,
    PaymentRequest,
    PaymentResponse,
    PayoutDecisionRequest,
    PayoutRequest,
    ProviderWebhook,
)
from services.kyc_service import KycService
from services.notification_dispatcher import NotificationDispatcher
from services.outbox import OutboxDrainer
from services.payment_link_service import PaymentLinkService
from services.payment_service import PaymentService
from services.payout_service import PayoutService
from services.provider_webhook import ProviderWebhookService

logger = logging.getLogger(__name__)

# Error code -> HTTP status for endpoints that report errors out of band
ERROR_STATUS = {
    'invalid_signature': 401,
    'kyc_required': 403,
    'merchant_not_found': 404,
    'payout_not_found': 404,
    'notification_not_found': 404,
    'payments_not_allowed': 403,
    'payment_link_not_found': 404,
    'payout_already_processed': 409,
    'insufficient_balance': 409,
}


def error_response(code: str, status: Optional[int] = None) -> web.Response:
    return web.json_response(
        {"ok": False, "error": code},
        status=status or ERROR_STATUS.get(code, 400)
    )


async def _read_json(request: web.Request) -> Any:
    """Decode the request body, raising ValueError on malformed JSON."""
    return await request.json()


class GatewayAPI:
    """
    REST API for the gateway.

    Endpoints:
    - POST /functions/pay - Initiate a payment (always HTTP 200)
    - POST /functions/notify - Publish a notification event
    - POST /webhooks/flutterwave - Processor status callback
    - GET /admin/kyc/pending - Merchants awaiting review
    - POST /admin/kyc/decision - Approve or reject a merchant
    - POST /payment-links - Create a payment link
    - GET /payment-links/{link_code} - Resolve an active link
    - DELETE /payment-links/{link_code} - Deactivate a link
    - GET /merchants/{merchant_id}/payment-links - A merchant's links
    - POST /payouts - Request a payout
    - POST /admin/payouts/{payout_id}/decision - Approve or reject a payout
    - GET /merchants/{merchant_id}/notifications - Merchant inbox
    - GET /admin/notifications - Admin inbox
    - POST /notifications/{notification_id}/read - Mark read
    - DELETE /notifications/{notification_id} - Delete
    - GET /api/health - Health check
    - GET /api/stats - Service statistics
    """

    def __init__(
        self,
        db: Database,
        payment_service: PaymentService,
        dispatcher: NotificationDispatcher,
        webhook_service: ProviderWebhookService,
        kyc_service: KycService,
        payout_service: PayoutService,
        drainer: Optional[OutboxDrainer] = None,
        link_service: Optional[PaymentLinkService] = None,
        service_name: str = 'PaySSD',
        default_currency: str = DEFAULT_CURRENCY
    ):
        """
        Initialize the API.

        Args:
            db: Database instance
            payment_service: Payment initiation service
            dispatcher: Notification dispatcher
            webhook_service: Processor webhook service
            kyc_service: KYC review service
            payout_service: Payout service
            drainer: Optional outbox drainer, for statistics
            link_service: Optional payment link service; its routes are
                only registered when given
            service_name: Name reported by the health check
            default_currency: Currency used when a request omits it
        """
        self.db = db
        self.payment_service = payment_service
        self.dispatcher = dispatcher
        self.webhook_service = webhook_service
        self.kyc_service = kyc_service
        self.payout_service = payout_service
        self.drainer = drainer
        self.link_service = link_service
        self.service_name = service_name
        self.default_currency = default_currency

    def setup_routes(self, app: web.Application) -> None:
        """
        Set up API routes.

        Args:
            app: aiohttp web application
        """
        app.router.add_route('*', '/functions/pay', self.pay)
        app.router.add_post('/functions/notify', self.notify)
        app.router.add_post('/webhooks/flutterwave', self.provider_webhook)
        app.router.add_get('/admin/kyc/pending', self.list_pending_kyc)
        app.router.add_post('/admin/kyc/decision', self.decide_kyc)
        app.router.add_post('/payouts', self.request_payout)
        app.router.add_post('/admin/payouts/{payout_id}/decision', self.decide_payout)

        if self.link_service is not None:
            app.router.add_post('/payment-links', self.create_payment_link)
            app.router.add_get('/payment-links/{link_code}', self.get_payment_link)
            app.router.add_delete('/payment-links/{link_code}', self.deactivate_payment_link)
            app.router.add_get('/merchants/{merchant_id}/payment-links', self.merchant_payment_links)

        app.router.add_get('/merchants/{merchant_id}/notifications', self.merchant_notifications)
        app.router.add_get('/admin/notifications', self.admin_notifications)
        app.router.add_post('/notifications/{notification_id}/read', self.mark_notification_read)
        app.router.add_delete('/notifications/{notification_id}', self.delete_notification)
        app.router.add_get('/api/health', self.health_check)
        app.router.add_get('/api/stats', self.get_stats)

    async def pay(self, request: web.Request) -> web.Response:
        """
        Initiate a payment.

        Request body:
        {
            "merchant_id": "m1",
            "amount": 1500,
            "currency": "SSP" (optional),
            "link_code": "..." (optional),
            "customer_email": "..." (optional),
            "redirect_url": "https://..." (optional)
        }

        Always answers HTTP 200. Callers must inspect the "ok" field.
        """
        if request.method != 'POST':
            return web.json_response(PaymentResponse.failure('method_not_allowed').to_dict())

        try:
            body = await _read_json(request)
        except ValueError:
            return web.json_response(PaymentResponse.failure('invalid_json').to_dict())

        try:
            payment_request = PaymentRequest.from_dict(body, self.default_currency)
            result = await self.payment_service.initiate(payment_request)
        except GatewayError as e:
            result = PaymentResponse.failure(e.code)
        except Exception as e:
            logger.error(f"Payment initiation failed: {e}", exc_info=True)
            result = PaymentResponse.failure('invalid_request')

        return web.json_response(result.to_dict())

    async def notify(self, request: web.Request) -> web.Response:
        """
        Publish a notification event.

        Request body:
        {
            "event": "transaction_succeeded",
            "merchant_id": 5 (optional),
            "payload": {"amount": 1500, "reference": "TXN1"},
            "admin_only": false (optional)
        }
        """
        try:
            body = await _read_json(request)
        except ValueError:
            return error_response('invalid_request')

        try:
            notification_request = NotificationRequest.from_dict(body)
            await self.dispatcher.publish(notification_request)
        except UnknownEventError:
            return error_response('unknown_event')
        except GatewayError as e:
            return error_response(e.code)

        return web.json_response({"ok": True})

    async def provider_webhook(self, request: web.Request) -> web.Response:
        """Apply a processor status callback."""
        try:
            body = await _read_json(request)
        except ValueError:
            return error_response('invalid_json')

        try:
            webhook = ProviderWebhook.from_dict(body)
            updated = await self.webhook_service.handle(
                webhook,
                signature=request.headers.get('verif-hash')
            )
        except GatewayError as e:
            return error_response(e.code)

        return web.json_response({"ok": True, "updated": updated})

    async def list_pending_kyc(self, request: web.Request) -> web.Response:
        """Merchants awaiting a verification decision."""
        merchants = await self.kyc_service.list_pending()
        return web.json_response({
            "ok": True,
            "data": [m.to_dict() for m in merchants]
        })

    async def decide_kyc(self, request: web.Request) -> web.Response:
        """
        Approve or reject a merchant.

        Request body:
        {
            "merchant_id": "m1",
            "approve": true,
            "reviewer_admin_id": 1 (optional),
            "notes": "..." (optional)
        }
        """
        try:
            body = await _read_json(request)
        except ValueError:
            return error_response('invalid_request')

        try:
            decision_request = KycDecisionRequest.from_dict(body)
            decision = await self.kyc_service.decide(
                merchant_id=decision_request.merchant_id,
                approve=decision_request.approve,
                reviewer=decision_request.reviewer_admin_id,
                notes=decision_request.notes
            )
        except GatewayError as e:
            return error_response(e.code)

        return web.json_response(decision.to_dict())

    async def request_payout(self, request: web.Request) -> web.Response:
        """Request a payout of part of the merchant's balance."""
        try:
            body = await _read_json(request)
        except ValueError:
            return error_response('invalid_request')

        try:
            payout_request = PayoutRequest.from_dict(body, self.default_currency)
            payout = await self.payout_service.request_payout(
                merchant_id=payout_request.merchant_id,
                amount=payout_request.amount,
                currency=payout_request.currency
            )
        except GatewayError as e:
            return error_response(e.code)

        return web.json_response({"ok": True, "payout_id": payout.id}, status=201)

    async def decide_payout(self, request: web.Request) -> web.Response:
        """Approve or reject a pending payout."""
        payout_id = _int_param(request, 'payout_id')
        if payout_id is None:
            return error_response('invalid_request')

        try:
            body = await _read_json(request)
        except ValueError:
            return error_response('invalid_request')

        try:
            decision = PayoutDecisionRequest.from_dict(body)
            payout = await self.payout_service.decide(payout_id, decision.approve, decision.notes)
        except GatewayError as e:
            return error_response(e.code)

        return web.json_response({"ok": True, "status": payout.status.value})

    async def create_payment_link(self, request: web.Request) -> web.Response:
        """
        Create a payment link.

        Request body:
        {
            "merchant_id": "m1",
            "title": "Coffee beans",
            "amount": 1200,
            "currency": "SSP" (optional),
            "description": "..." (optional)
        }
        """
        try:
            body = await _read_json(request)
        except ValueError:
            return error_response('invalid_request')

        try:
            link_request = PaymentLinkRequest.from_dict(body, self.default_currency)
            link = await self.link_service.create(link_request)
        except GatewayError as e:
            return error_response(e.code)

        return web.json_response({"ok": True, "link": link.to_dict()}, status=201)

    async def get_payment_link(self, request: web.Request) -> web.Response:
        """Resolve an active link for checkout."""
        try:
            link = await self.link_service.get(request.match_info['link_code'])
        except GatewayError as e:
            return error_response(e.code)

        return web.json_response({"ok": True, "link": link.to_dict()})

    async def deactivate_payment_link(self, request: web.Request) -> web.Response:
        try:
            await self.link_service.deactivate(request.match_info['link_code'])
        except GatewayError as e:
            return error_response(e.code)

        return web.json_response({"ok": True})

    async def merchant_payment_links(self, request: web.Request) -> web.Response:
        links = await self.link_service.list_for_merchant(request.match_info['merchant_id'])
        return web.json_response({
            "ok": True,
            "data": [link.to_dict() for link in links]
        })

    async def merchant_notifications(self, request: web.Request) -> web.Response:
        """List a merchant's notifications, newest first."""
        rows = await self.db.list_notifications(
            RecipientType.MERCHANT.value,
            merchant_id=request.match_info['merchant_id'],
            unread_only=request.query.get('unread') == 'true'
        )
        return web.json_response(_notification_list(rows))

    async def admin_notifications(self, request: web.Request) -> web.Response:
        """List admin notifications, newest first."""
        rows = await self.db.list_notifications(
            RecipientType.ADMIN.value,
            unread_only=request.query.get('unread') == 'true'
        )
        return web.json_response(_notification_list(rows))

    async def mark_notification_read(self, request: web.Request) -> web.Response:
        notification_id = _int_param(request, 'notification_id')
        if notification_id is None:
            return error_response('invalid_request')

        if not await self.db.mark_notification_read(notification_id):
            return error_response('notification_not_found')

        return web.json_response({"ok": True})

    async def delete_notification(self, request: web.Request) -> web.Response:
        notification_id = _int_param(request, 'notification_id')
        if notification_id is None:
            return error_response('invalid_request')

        if not await self.db.delete_notification(notification_id):
            return error_response('notification_not_found')

        return web.json_response({"ok": True})

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "healthy" if self.db.is_connected else "degraded",
            "service": self.service_name
        })

    async def get_stats(self, request: web.Request) -> web.Response:
        """Get service statistics."""
        stats: Dict[str, Any] = {"notifications": self.dispatcher.get_stats()}

        if self.dispatcher.email_service:
            stats["email"] = self.dispatcher.email_service.get_stats()
        if self.drainer:
            stats["outbox"] = self.drainer.get_stats()

        return web.json_response(stats)


def _int_param(request: web.Request, name: str) -> Optional[int]:
    try:
        return int(request.match_info[name])
    except (KeyError, ValueError):
        return None


def _notification_list(rows) -> Dict[str, Any]:
    return {
        "ok": True,
        "data": [Notification.from_dict(row).to_dict() for row in rows]
    }


def create_app(api: GatewayAPI) -> web.Application:
    """
    Create and configure the aiohttp web application.

    Args:
        api: Configured API handler

    Returns:
        Configured aiohttp Application
    """
    app = web.Application()

    # Setup routes
    api.setup_routes(app)

    # Add CORS middleware
    @web.middleware
    async def cors_middleware(request, handler):
        if request.method == "OPTIONS":
            response = web.Response(text='ok')
        else:
            response = await handler(request)

        response.headers['Access-Control-Allow-Origin'] = '*'
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, DELETE, OPTIONS'
        response.headers['Access-Control-Allow-Headers'] = (
            'authorization, x-client-info, apikey, content-type, verif-hash'
        )
        return response

    app.middlewares.append(cors_middleware)

    # Error handling middleware
    @web.middleware
    async def error_middleware(request, handler):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except Exception as e:
            logger.error(f"Unhandled error: {e}", exc_info=True)
            return web.json_response(
                {"ok": False, "error": "internal_error"},
                status=500
            )

    app.middlewares.append(error_middleware)

    return app
