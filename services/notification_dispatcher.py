"""
Notification Dispatcher Service.

Renders an event template and fans it out to the merchant and the
admins as notification rows, with a best-effort email alongside.
"""

import logging
from typing import Dict, List, Optional

from database.db import Database
from models.notification import RecipientType, RenderedNotification, render_notification
from models.requests import NotificationRequest
from .email_service import EmailService

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """
    Central dispatcher for user-facing notifications.

    A merchant row is written when the request names a merchant and is
    not admin-only. An admin row is always written. Emails never fail
    the dispatch.
    """

    def __init__(self, db: Database, email_service: Optional[EmailService] = None):
        """
        Initialize the dispatcher.

        Args:
            db: Database instance
            email_service: Optional email service for best-effort delivery
        """
        self.db = db
        self.email_service = email_service
        self._stats = {
            "total_dispatched": 0,
            "merchant_rows": 0,
            "admin_rows": 0,
            "emails_sent": 0,
            "emails_failed": 0
        }

    async def publish(self, request: NotificationRequest) -> RenderedNotification:
        """
        Dispatch one notification event.

        Args:
            request: Validated notification request

        Returns:
            The rendered title and message

        Raises:
            UnknownEventError: If the event has no template
        """
        rendered = render_notification(request.event, request.payload)
        self._stats["total_dispatched"] += 1

        logger.info(
            f"Dispatching {request.event} "
            f"(merchant={request.merchant_id}, admin_only={request.admin_only})"
        )

        if not request.admin_only and request.merchant_id:
            await self.db.insert_notification(
                merchant_id=request.merchant_id,
                notification_type=rendered.type.value,
                title=rendered.title,
                message=rendered.message,
                recipient_type=RecipientType.MERCHANT.value
            )
            self._stats["merchant_rows"] += 1

            merchant_email = await self.db.get_merchant_email(request.merchant_id)
            recipients = [merchant_email] if merchant_email else []
            await self._send_email(recipients, rendered.email_subject, rendered.message)

        admin_emails = await self.db.get_admin_emails()
        await self.db.insert_notification(
            merchant_id=request.merchant_id,
            notification_type=rendered.type.value,
            title=rendered.title,
            message=rendered.message,
            recipient_type=RecipientType.ADMIN.value
        )
        self._stats["admin_rows"] += 1
        await self._send_email(admin_emails, rendered.admin_email_subject, rendered.message)

        return rendered

    async def _send_email(self, recipients: List[str], subject: str, message: str) -> None:
        if not self.email_service or not recipients:
            return

        try:
            sent = await self.email_service.send(recipients, subject, message)
        except Exception as e:
            logger.warning(f"Email '{subject}' raised {type(e).__name__}: {e}", exc_info=True)
            sent = False

        if sent:
            self._stats["emails_sent"] += 1
        else:
            self._stats["emails_failed"] += 1
            logger.warning(f"Email '{subject}' was not delivered to {len(recipients)} recipients")

    def get_stats(self) -> Dict[str, int]:
        """
        Get dispatch statistics.

        Returns:
            Statistics dictionary
        """
        return self._stats.copy()
