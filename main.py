#!/usr/bin/env python3
"""
PaySSD Gateway Service.

Main entry point that wires the gateway components together:
- Payment-initiation handler backed by the processor client
- Notification dispatcher, outbox and drainer
- Processor webhook, KYC, payout and payment link services
- REST API server

Usage:
    python main.py

Environment variables:
    See .env.example for all configuration options.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from aiohttp import web

from config import Config, load_config
from database.db import Database
from services.email_service import EmailService
from services.kyc_service import KycService
from services.notification_dispatcher import NotificationDispatcher
from services.outbox import NotificationOutbox, OutboxDrainer
from services.payment_link_service import PaymentLinkService
from services.payment_service import PaymentService
from services.payout_service import PayoutService
from services.processor_client import ProcessorClient
from services.provider_webhook import ProviderWebhookService
from api.gateway_api import GatewayAPI, create_app


def setup_logging(config: Config) -> None:
    """Configure logging based on config."""
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    log_level = getattr(logging, config.logging.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]

    if config.logging.file:
        log_dir = os.path.dirname(config.logging.file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(config.logging.file))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers
    )

    # Reduce noise from third-party libraries
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


class PaymentGatewayService:
    """
    Main service orchestrator.

    Owns every long-lived resource (database, HTTP sessions, outbox
    drainer, API server) and starts and stops them in order.
    """

    def __init__(self, config: Config):
        self.config = config
        self.db: Optional[Database] = None
        self.processor: Optional[ProcessorClient] = None
        self.email_service: Optional[EmailService] = None
        self.dispatcher: Optional[NotificationDispatcher] = None
        self.drainer: Optional[OutboxDrainer] = None
        self.api_runner: Optional[web.AppRunner] = None
        self._shutdown_event = asyncio.Event()
        self._stopping = False

    async def start(self) -> None:
        """Start all services."""
        config = self.config

        logger.info("=" * 60)
        logger.info(f"Starting {config.service.name}")
        logger.info("=" * 60)

        errors = config.validate()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError("Invalid configuration")

        if not config.processor.test_configured:
            logger.warning("FLW_TEST_SECRET not set, sandbox payments are simulated without the processor")
        if not config.processor.live_configured:
            logger.warning("FLW_LIVE_SECRET not set, all payments run in test mode")

        # Initialize database
        logger.info("Initializing database...")
        self.db = Database(config.database.url)
        await self.db.connect()
        await self.db.init_schema()

        # Initialize outbound clients
        logger.info("Initializing services...")
        self.processor = ProcessorClient(
            base_url=config.processor.base_url,
            timeout=config.processor.timeout
        )
        await self.processor.start()

        self.email_service = EmailService(
            api_key=config.email.api_key,
            from_email=config.email.from_email,
            api_url=config.email.api_url,
            timeout=config.email.timeout
        )
        await self.email_service.start()

        # Notifications
        self.dispatcher = NotificationDispatcher(self.db, self.email_service)
        outbox = NotificationOutbox(self.db)
        self.drainer = OutboxDrainer(
            db=self.db,
            dispatcher=self.dispatcher,
            poll_interval=config.outbox.poll_interval,
            batch_size=config.outbox.batch_size,
            retry_delays=config.outbox.retry_delays
        )
        await self.drainer.start()

        # Start API server
        logger.info("Starting API server...")
        api = GatewayAPI(
            db=self.db,
            payment_service=PaymentService(
                db=self.db,
                processor=self.processor,
                processor_config=config.processor,
                outbox=outbox
            ),
            dispatcher=self.dispatcher,
            webhook_service=ProviderWebhookService(
                db=self.db,
                outbox=outbox,
                webhook_hash=config.processor.webhook_hash
            ),
            kyc_service=KycService(self.db, outbox),
            payout_service=PayoutService(self.db, outbox),
            drainer=self.drainer,
            link_service=PaymentLinkService(self.db, outbox),
            service_name=config.service.name,
            default_currency=config.service.default_currency
        )

        self.api_runner = web.AppRunner(
            create_app(api),
            shutdown_timeout=config.service.shutdown_timeout
        )
        await self.api_runner.setup()

        site = web.TCPSite(
            self.api_runner,
            config.api.host,
            config.api.port
        )
        await site.start()

        logger.info("=" * 60)
        logger.info("Service started successfully!")
        logger.info(f"API server running at http://{config.api.host}:{config.api.port}")
        logger.info("=" * 60)

    async def stop(self) -> None:
        """Stop all services gracefully."""
        if self._stopping:
            return
        self._stopping = True

        logger.info("Initiating graceful shutdown...")

        # Stop accepting new requests
        if self.api_runner:
            await self.api_runner.cleanup()

        if self.drainer:
            await self.drainer.stop()

        if self.email_service:
            await self.email_service.stop()

        if self.processor:
            await self.processor.stop()

        if self.db:
            await self.db.disconnect()

        logger.info("Shutdown complete")
        self._shutdown_event.set()

    async def run(self) -> None:
        """Run the service until shutdown signal."""
        await self.start()
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request service shutdown."""
        asyncio.create_task(self.stop())


def handle_signal(service: PaymentGatewayService, sig: signal.Signals) -> None:
    """Handle shutdown signals."""
    logger.info(f"Received signal {sig.name}, initiating shutdown...")
    service.request_shutdown()


async def main() -> None:
    """Main entry point."""
    config = load_config()
    setup_logging(config)

    service = PaymentGatewayService(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda s=sig: handle_signal(service, s)
        )

    try:
        await service.run()
    except Exception as e:
        logger.error(f"Service error: {e}", exc_info=True)
        await service.stop()
        sys.exit(1)


if __name__ == '__main__':
    asyncio.run(main())
