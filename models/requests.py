"""
Request and response schemas for the HTTP boundary.

Every inbound JSON body is parsed into one of these types before any
business logic runs. Parsing failures raise errors carrying the code
returned to the caller.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from errors import UnknownEventError, ValidationError
from models.notification import TEMPLATES

DEFAULT_CURRENCY = 'SSP'


def _require_object(body: Any) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise ValidationError('invalid_request', "Request body must be a JSON object")
    return body


def _optional_id(value: Any) -> Optional[str]:
    """Accept string or integer identifiers, normalized to str."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _optional_str(body: Dict[str, Any], key: str) -> Optional[str]:
    value = body.get(key)
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        raise ValidationError('invalid_request', f"{key} must be a string")
    return value


def parse_amount(value: Any) -> Optional[float]:
    """
    Parse a positive, finite amount from a number or numeric string.

    Amounts are rounded to cents, the precision they are stored with.

    Returns:
        The amount as float, or None if it is missing or not usable
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        amount = float(value)
    elif isinstance(value, str):
        try:
            amount = float(value.strip())
        except ValueError:
            return None
    else:
        return None

    if math.isnan(amount) or math.isinf(amount):
        return None

    amount = round(amount, 2)
    if amount <= 0:
        return None
    return amount


@dataclass(frozen=True)
class PaymentRequest:
    """Body of the payment-initiation endpoint."""

    merchant_id: str
    amount: float
    currency: str = DEFAULT_CURRENCY
    link_code: Optional[str] = None
    customer_email: Optional[str] = None
    redirect_url: Optional[str] = None

    @classmethod
    def from_dict(cls, body: Any, default_currency: str = DEFAULT_CURRENCY) -> 'PaymentRequest':
        """
        Validate a decoded JSON body.

        Raises:
            ValidationError: missing_parameters or invalid_request
        """
        body = _require_object(body)

        merchant_id = _optional_id(body.get('merchant_id'))
        amount = parse_amount(body.get('amount'))
        if not merchant_id or amount is None:
            raise ValidationError('missing_parameters', "merchant_id and amount are required")

        currency = body.get('currency') or default_currency
        if not isinstance(currency, str):
            raise ValidationError('invalid_request', "currency must be a string")

        return cls(
            merchant_id=merchant_id,
            amount=amount,
            currency=currency,
            link_code=_optional_str(body, 'link_code'),
            customer_email=_optional_str(body, 'customer_email'),
            redirect_url=_optional_str(body, 'redirect_url')
        )


@dataclass
class PaymentResponse:
    """In-band result of a payment initiation. Unset fields are omitted."""

    ok: bool
    payment_id: Optional[int] = None
    test_simulated: Optional[bool] = None
    flutterwave: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str, payment_id: Optional[int] = None) -> 'PaymentResponse':
        return cls(ok=False, payment_id=payment_id, error=error)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'ok': self.ok}
        if self.payment_id is not None:
            data['payment_id'] = self.payment_id
        if self.test_simulated is not None:
            data['test_simulated'] = self.test_simulated
        if self.flutterwave is not None:
            data['flutterwave'] = self.flutterwave
        if self.error is not None:
            data['error'] = self.error
        return data


@dataclass(frozen=True)
class NotificationRequest:
    """Body of the notify endpoint, or one outbox row."""

    event: str
    merchant_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    admin_only: bool = False

    @classmethod
    def from_dict(cls, body: Any) -> 'NotificationRequest':
        """
        Raises:
            UnknownEventError: If the event has no template
            ValidationError: If the body or payload is not an object
        """
        body = _require_object(body)

        event = body.get('event')
        if not isinstance(event, str) or event not in TEMPLATES:
            raise UnknownEventError(str(event))

        payload = body.get('payload')
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationError('invalid_request', "payload must be an object")

        return cls(
            event=event,
            merchant_id=_optional_id(body.get('merchant_id')),
            payload=payload,
            admin_only=body.get('admin_only') is True
        )


@dataclass(frozen=True)
class KycDecisionRequest:
    merchant_id: str
    approve: bool
    reviewer_admin_id: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, body: Any) -> 'KycDecisionRequest':
        body = _require_object(body)

        merchant_id = _optional_id(body.get('merchant_id'))
        if not merchant_id:
            raise ValidationError('missing_merchant_id', "merchant_id is required")

        return cls(
            merchant_id=merchant_id,
            approve=body.get('approve') is True,
            reviewer_admin_id=_optional_id(body.get('reviewer_admin_id')),
            notes=_optional_str(body, 'notes')
        )


@dataclass(frozen=True)
class PayoutRequest:
    merchant_id: str
    amount: float
    currency: str = DEFAULT_CURRENCY

    @classmethod
    def from_dict(cls, body: Any, default_currency: str = DEFAULT_CURRENCY) -> 'PayoutRequest':
        body = _require_object(body)

        merchant_id = _optional_id(body.get('merchant_id'))
        amount = parse_amount(body.get('amount'))
        if not merchant_id or amount is None:
            raise ValidationError('missing_parameters', "merchant_id and amount are required")

        currency = body.get('currency') or default_currency
        if not isinstance(currency, str):
            raise ValidationError('invalid_request', "currency must be a string")

        return cls(merchant_id=merchant_id, amount=amount, currency=currency)


@dataclass(frozen=True)
class PayoutDecisionRequest:
    approve: bool
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, body: Any) -> 'PayoutDecisionRequest':
        body = _require_object(body)
        return cls(
            approve=body.get('approve') is True,
            notes=_optional_str(body, 'notes')
        )


@dataclass(frozen=True)
class ProviderWebhook:
    """Status callback sent by the processor."""

    reference: str
    status: Optional[str]
    raw: Dict[str, Any]

    @classmethod
    def from_dict(cls, body: Any) -> 'ProviderWebhook':
        body = _require_object(body)
        data = body.get('data') if isinstance(body.get('data'), dict) else {}

        reference = data.get('tx_ref') or body.get('tx_ref')
        if not reference or not isinstance(reference, str):
            raise ValidationError('missing_reference', "tx_ref is required")

        status = data.get('status') or body.get('status')
        return cls(
            reference=reference,
            status=status if isinstance(status, str) else None,
            raw=body
        )


@dataclass(frozen=True)
class PaymentLinkRequest:
    """Body of the payment-link creation endpoint."""

    merchant_id: str
    title: str
    amount: float
    currency: str = DEFAULT_CURRENCY
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, body: Any, default_currency: str = DEFAULT_CURRENCY) -> 'PaymentLinkRequest':
        """
        Raises:
            ValidationError: missing_parameters or invalid_request
        """
        body = _require_object(body)

        merchant_id = _optional_id(body.get('merchant_id'))
        title = _optional_str(body, 'title')
        amount = parse_amount(body.get('amount'))
        if not merchant_id or not title or not title.strip() or amount is None:
            raise ValidationError('missing_parameters', "merchant_id, title and amount are required")

        currency = body.get('currency') or default_currency
        if not isinstance(currency, str):
            raise ValidationError('invalid_request', "currency must be a string")

        description = _optional_str(body, 'description')
        if description is not None:
            description = description.strip() or None

        return cls(
            merchant_id=merchant_id,
            title=title.strip(),
            amount=amount,
            currency=currency,
            description=description
        )
