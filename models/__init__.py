"""Data models for the PaySSD gateway."""

from .merchant import Merchant, VerificationStatus, AccountType
from .payment import (
    Payment,
    PaymentFlow,
    PaymentMode,
    PaymentStatus,
    FlowState,
    InvalidTransition,
    select_mode,
)
from .payment_link import PaymentLink, generate_link_code
from .payout import Payout, PayoutStatus
from .notification import Notification, RecipientType, render_notification

__all__ = [
    'Merchant', 'VerificationStatus', 'AccountType',
    'Payment', 'PaymentFlow', 'PaymentMode', 'PaymentStatus',
    'FlowState', 'InvalidTransition', 'select_mode',
    'PaymentLink', 'generate_link_code',
    'Payout', 'PayoutStatus',
    'Notification', 'RecipientType', 'render_notification',
]
