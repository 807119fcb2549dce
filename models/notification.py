"""
Notification data models.

Holds the fixed event template table used by the dispatcher and the
notification row model.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from errors import UnknownEventError


class RecipientType(str, Enum):
    MERCHANT = "merchant"
    ADMIN = "admin"


class NotificationType(str, Enum):
    SYSTEM = "system"
    PAYMENT = "payment"
    PAYOUT = "payout"


@dataclass(frozen=True)
class NotificationTemplate:
    """Title and message pattern for one event."""

    title: str
    message: str
    type: NotificationType = NotificationType.SYSTEM

    @property
    def email_subject(self) -> str:
        return self.title

    @property
    def admin_email_subject(self) -> str:
        return f"[Admin] {self.title}"


TEMPLATES: Dict[str, NotificationTemplate] = {
    'merchant_signup': NotificationTemplate(
        title='New Merchant Signup',
        message='Welcome {merchant_name}. Your account has been created.'
    ),
    'payment_link_created': NotificationTemplate(
        title='Payment Link Created',
        message='Link "{title}" created for SSP {amount}.'
    ),
    'transaction_succeeded': NotificationTemplate(
        title='Payment Received',
        message='Payment SSP {amount} received. Ref {reference}.',
        type=NotificationType.PAYMENT
    ),
    'transaction_failed': NotificationTemplate(
        title='Payment Failed',
        message='Payment SSP {amount} failed. Ref {reference}. {reason}',
        type=NotificationType.PAYMENT
    ),
    'payout_requested': NotificationTemplate(
        title='Payout Requested',
        message='Payout request for SSP {amount}.',
        type=NotificationType.PAYOUT
    ),
    'system_alert': NotificationTemplate(
        title='System Alert',
        message='{message}'
    ),
    'kyc_approved': NotificationTemplate(
        title='Verification Approved',
        message='Your account has been verified. Live payments are enabled.'
    ),
    'kyc_rejected': NotificationTemplate(
        title='Verification Rejected',
        message='Your verification was rejected. {reason}'
    ),
}


class _Blank(dict):
    def __missing__(self, key):
        return ''


def _format_value(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class RenderedNotification:
    event: str
    title: str
    message: str
    type: NotificationType
    email_subject: str
    admin_email_subject: str


def render_notification(event: str, payload: Optional[Dict[str, Any]]) -> RenderedNotification:
    """
    Render the title and message for an event.

    Missing payload keys render as empty strings.

    Raises:
        UnknownEventError: If the event has no template
    """
    template = TEMPLATES.get(event)
    if template is None:
        raise UnknownEventError(event)

    values = _Blank({key: _format_value(value) for key, value in (payload or {}).items()})
    message = template.message.format_map(values).strip()

    return RenderedNotification(
        event=event,
        title=template.title,
        message=message,
        type=template.type,
        email_subject=template.email_subject,
        admin_email_subject=template.admin_email_subject
    )


@dataclass
class Notification:
    """A user-facing message row."""

    id: int
    recipient_type: RecipientType
    title: str
    message: str
    type: str = NotificationType.SYSTEM.value
    merchant_id: Optional[str] = None
    is_read: bool = False
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.recipient_type, str):
            self.recipient_type = RecipientType(self.recipient_type)
        self.is_read = bool(self.is_read)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        return cls(
            id=data['id'],
            recipient_type=data['recipient_type'],
            title=data['title'],
            message=data['message'],
            type=data.get('type') or NotificationType.SYSTEM.value,
            merchant_id=data.get('merchant_id'),
            is_read=data.get('is_read', False),
            created_at=data.get('created_at')
        )

    def to_dict(self) -> Dict[str, Any]:
        created_at = self.created_at
        if isinstance(created_at, datetime):
            created_at = created_at.isoformat()
        return {
            'id': self.id,
            'recipient_type': self.recipient_type.value,
            'merchant_id': self.merchant_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'is_read': self.is_read,
            'created_at': created_at
        }
