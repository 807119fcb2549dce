"""
Configuration module for the PaySSD gateway service.

Settings are read from environment variables (and a .env file) once at
process start into an immutable Config that is handed to every service.
"""

import os
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from dotenv import load_dotenv


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration."""
    url: str


@dataclass(frozen=True)
class ProcessorConfig:
    """Card/mobile-money processor (Flutterwave) configuration."""
    base_url: str
    test_secret: str
    live_secret: str
    webhook_hash: str
    timeout: int = 30

    @property
    def live_configured(self) -> bool:
        return bool(self.live_secret)

    @property
    def test_configured(self) -> bool:
        return bool(self.test_secret)


@dataclass(frozen=True)
class EmailConfig:
    """Transactional email provider configuration."""
    api_key: str
    from_email: str
    api_url: str
    timeout: int = 10

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class OutboxConfig:
    """Notification outbox drainer configuration."""
    poll_interval: int
    batch_size: int
    retry_delays: Tuple[int, ...]  # Delays in minutes


@dataclass(frozen=True)
class APIConfig:
    """API server configuration."""
    host: str
    port: int


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""
    level: str
    file: Optional[str]


@dataclass(frozen=True)
class ServiceConfig:
    """Service-level configuration."""
    name: str
    default_currency: str
    shutdown_timeout: int


@dataclass(frozen=True)
class Config:
    """
    Aggregates all config sections.

    Usage:
        from config import load_config

        config = load_config()
        print(config.processor.base_url)
    """

    database: DatabaseConfig
    processor: ProcessorConfig
    email: EmailConfig
    outbox: OutboxConfig
    api: APIConfig
    logging: LoggingConfig
    service: ServiceConfig

    def validate(self) -> List[str]:
        """
        Validate required configuration values.

        Returns:
            List of validation error messages (empty if all valid)
        """
        errors = []

        if not self.database.url:
            errors.append("DATABASE_URL is required")
        elif not self.database.url.startswith(('postgresql://', 'postgres://', 'sqlite:///')):
            errors.append("DATABASE_URL must be a postgresql:// or sqlite:/// URL")

        if self.outbox.poll_interval <= 0:
            errors.append("OUTBOX_POLL_INTERVAL must be positive")

        if self.outbox.batch_size <= 0:
            errors.append("OUTBOX_BATCH_SIZE must be positive")

        if self.processor.timeout <= 0:
            errors.append("FLW_TIMEOUT must be positive")

        return errors

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate()) == 0


def _parse_delays(value: str) -> Tuple[int, ...]:
    return tuple(int(d.strip()) for d in value.split(',') if d.strip())


def load_config(environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Build the configuration from environment variables.

    Args:
        environ: Mapping to read from. Defaults to os.environ after
            loading a .env file.

    Returns:
        Immutable Config instance
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    env = environ.get

    return Config(
        database=DatabaseConfig(
            url=env('DATABASE_URL', 'sqlite:///./payssd.db')
        ),
        processor=ProcessorConfig(
            base_url=env('FLW_BASE_URL', 'https://api.flutterwave.com/v3').rstrip('/'),
            test_secret=env('FLW_TEST_SECRET', ''),
            live_secret=env('FLW_LIVE_SECRET', ''),
            webhook_hash=env('FLW_WEBHOOK_HASH', ''),
            timeout=int(env('FLW_TIMEOUT', '30'))
        ),
        email=EmailConfig(
            api_key=env('RESEND_API_KEY', ''),
            from_email=env('NOTIFY_FROM_EMAIL', 'notifications@payssd.com'),
            api_url=env('RESEND_API_URL', 'https://api.resend.com/emails'),
            timeout=int(env('EMAIL_TIMEOUT', '10'))
        ),
        outbox=OutboxConfig(
            poll_interval=int(env('OUTBOX_POLL_INTERVAL', '5')),
            batch_size=int(env('OUTBOX_BATCH_SIZE', '20')),
            retry_delays=_parse_delays(env('OUTBOX_RETRY_DELAYS', '1,5,15'))
        ),
        api=APIConfig(
            host=env('API_HOST', '0.0.0.0'),
            port=int(env('API_PORT', '8000'))
        ),
        logging=LoggingConfig(
            level=env('LOG_LEVEL', 'INFO'),
            file=env('LOG_FILE') or None
        ),
        service=ServiceConfig(
            name=env('SERVICE_NAME', 'PaySSD'),
            default_currency=env('DEFAULT_CURRENCY', 'SSP'),
            shutdown_timeout=int(env('SHUTDOWN_TIMEOUT', '30'))
        )
    )
