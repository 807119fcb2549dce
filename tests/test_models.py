"""
Unit tests for data models and configuration.

Run with: pytest tests/test_models.py -v
"""

import pytest

from config import load_config
from models.merchant import Merchant, VerificationStatus
from models.payment import (
    FlowState,
    InvalidTransition,
    Payment,
    PaymentFlow,
    PaymentMode,
    PaymentStatus,
    build_tx_ref,
    select_mode,
)
from models.requests import PaymentResponse


class TestModeSelector:

    @pytest.mark.parametrize('verified,live_configured,expected', [
        (True, True, PaymentMode.LIVE),
        (True, False, PaymentMode.TEST),
        (False, True, PaymentMode.TEST),
        (False, False, PaymentMode.TEST),
    ])
    def test_select_mode(self, verified, live_configured, expected):
        assert select_mode(verified, live_configured) is expected

    def test_build_tx_ref(self):
        assert build_tx_ref(12, 1700000000000) == 'PSSD_12_1700000000000'


class TestPaymentFlow:

    def test_sandbox_without_provider(self):
        flow = PaymentFlow(PaymentMode.TEST)

        flow.fire('skip_provider')
        assert flow.state is FlowState.SIMULATED
        assert flow.state.payment_status is PaymentStatus.PENDING

        flow.fire('settle')
        assert flow.state is FlowState.COMPLETED
        assert flow.is_simulated
        assert flow.is_terminal

    def test_live_cannot_skip_provider(self):
        flow = PaymentFlow(PaymentMode.LIVE)

        assert not flow.can_fire('skip_provider')
        with pytest.raises(InvalidTransition):
            flow.fire('skip_provider')
        assert flow.state is FlowState.CREATED

    @pytest.mark.parametrize('mode,expected', [
        (PaymentMode.TEST, FlowState.SIMULATED),
        (PaymentMode.LIVE, FlowState.FAILED),
    ])
    def test_unreachable_provider(self, mode, expected):
        flow = PaymentFlow(mode)
        assert flow.fire('provider_unreachable') is expected

    @pytest.mark.parametrize('mode,expected', [
        (PaymentMode.TEST, FlowState.SIMULATED),
        (PaymentMode.LIVE, FlowState.FAILED),
    ])
    def test_provider_rejection(self, mode, expected):
        flow = PaymentFlow(mode)
        flow.fire('call_provider')
        assert flow.fire('provider_rejected') is expected

    def test_live_never_simulated(self):
        flow = PaymentFlow(PaymentMode.LIVE)
        flow.fire('call_provider')
        flow.fire('provider_rejected')

        assert not flow.can_fire('settle')
        assert not flow.is_simulated
        assert flow.state.payment_status is PaymentStatus.FAILED

    def test_confirmation_from_provider_called(self):
        flow = PaymentFlow(PaymentMode.LIVE, state=FlowState.PROVIDER_CALLED)

        assert flow.fire('confirm').payment_status is PaymentStatus.COMPLETED

    def test_terminal_state_has_no_transitions(self):
        flow = PaymentFlow(PaymentMode.TEST, state=FlowState.COMPLETED)

        for transition in ('skip_provider', 'call_provider', 'confirm', 'decline', 'settle'):
            assert not flow.can_fire(transition)


class TestPaymentModels:

    def test_payment_from_row(self):
        payment = Payment.from_dict({
            'id': 3,
            'merchant_id': 9,
            'amount': 1500,
            'currency': 'SSP',
            'mode': 'live',
            'status': 'failed'
        })

        assert payment.merchant_id == '9'
        assert payment.amount == 1500.0
        assert payment.mode is PaymentMode.LIVE
        assert payment.status.is_terminal

    def test_merchant_gates(self):
        merchant = Merchant.from_dict({'id': 'm1', 'email': 'a@b.c', 'verification_status': 'rejected'})

        assert merchant.verification_status is VerificationStatus.REJECTED
        assert not merchant.can_accept_payments()
        assert not merchant.is_verified()

    def test_response_omits_unset_fields(self):
        assert PaymentResponse.failure('invalid_json').to_dict() == {'ok': False, 'error': 'invalid_json'}


class TestConfig:

    def test_defaults(self):
        config = load_config({})

        assert config.database.url == 'sqlite:///./payssd.db'
        assert config.processor.base_url == 'https://api.flutterwave.com/v3'
        assert not config.processor.live_configured
        assert not config.email.enabled
        assert config.outbox.retry_delays == (1, 5, 15)
        assert config.service.default_currency == 'SSP'
        assert config.is_valid()

    def test_overrides(self):
        config = load_config({
            'DATABASE_URL': 'postgresql://user:pw@localhost/payssd',
            'FLW_BASE_URL': 'https://sandbox.example/v3/',
            'FLW_LIVE_SECRET': 'sk_live',
            'OUTBOX_RETRY_DELAYS': '2, 10',
            'API_PORT': '9000'
        })

        assert config.processor.base_url == 'https://sandbox.example/v3'
        assert config.processor.live_configured
        assert config.outbox.retry_delays == (2, 10)
        assert config.api.port == 9000

    def test_validation(self):
        config = load_config({'DATABASE_URL': 'mysql://x', 'OUTBOX_BATCH_SIZE': '0'})

        errors = config.validate()
        assert "DATABASE_URL must be a postgresql:// or sqlite:/// URL" in errors
        assert "OUTBOX_BATCH_SIZE must be positive" in errors
        assert not config.is_valid()

    def test_config_is_immutable(self):
        config = load_config({})

        with pytest.raises(AttributeError):
            config.api.port = 1
