"""
Database connection and query module.

Provides a clean interface for database operations with support
for both PostgreSQL and SQLite backends.
"""

import json
import logging
import os
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import asyncpg
import aiosqlite

logger = logging.getLogger(__name__)

_PARAM_RE = re.compile(r'\$(\d+)')


class Database:
    """
    Async database connection manager.

    Supports PostgreSQL (production) and SQLite (development and tests).
    Constructed once at start-up and passed to every service that needs it.
    """

    def __init__(self, database_url: str):
        """
        Initialize database manager.

        Args:
            database_url: Database connection URL
        """
        self.database_url = database_url
        self._pool = None
        self._sqlite_conn = None
        self._is_postgres = database_url.startswith(('postgresql', 'postgres://'))

    @property
    def is_connected(self) -> bool:
        return self._pool is not None or self._sqlite_conn is not None

    async def connect(self) -> None:
        """Establish database connection(s)."""
        if self._is_postgres:
            logger.info("Connecting to PostgreSQL database...")
            self._pool = await asyncpg.create_pool(
                self.database_url,
                min_size=2,
                max_size=10,
                command_timeout=60
            )
        else:
            # SQLite for development
            db_path = self.database_url.replace('sqlite:///', '')
            logger.info(f"Connecting to SQLite database: {db_path}")
            self._sqlite_conn = await aiosqlite.connect(db_path)
            self._sqlite_conn.row_factory = aiosqlite.Row

        logger.info("Database connection established")

    async def disconnect(self) -> None:
        """Close database connection(s)."""
        if self._is_postgres and self._pool:
            await self._pool.close()
            self._pool = None
        elif self._sqlite_conn:
            await self._sqlite_conn.close()
            self._sqlite_conn = None

        logger.info("Database connection closed")

    async def execute(self, query: str, *args) -> int:
        """
        Execute a query without returning results.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            Number of rows affected
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                status = await conn.execute(query, *args)
            last = status.split()[-1] if status else ''
            return int(last) if last.isdigit() else 0
        else:
            sqlite_query, sqlite_args = self._convert_params(query, args)
            cursor = await self._sqlite_conn.execute(sqlite_query, sqlite_args)
            await self._sqlite_conn.commit()
            return cursor.rowcount

    async def insert(self, query: str, *args) -> int:
        """
        Execute an INSERT and return the id of the new row.

        Args:
            query: INSERT statement without a RETURNING clause
            *args: Query parameters
        """
        if self._is_postgres:
            row = await self.fetch_one(f"{query} RETURNING id", *args)
            return row['id']
        else:
            sqlite_query, sqlite_args = self._convert_params(query, args)
            cursor = await self._sqlite_conn.execute(sqlite_query, sqlite_args)
            await self._sqlite_conn.commit()
            return cursor.lastrowid

    async def fetch_one(self, query: str, *args) -> Optional[Dict[str, Any]]:
        """
        Execute a query and fetch one row.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            Row as dictionary or None if no results
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(query, *args)
                return dict(row) if row else None
        else:
            sqlite_query, sqlite_args = self._convert_params(query, args)
            cursor = await self._sqlite_conn.execute(sqlite_query, sqlite_args)
            row = await cursor.fetchone()
            if row:
                columns = [d[0] for d in cursor.description]
                return dict(zip(columns, row))
            return None

    async def fetch_all(self, query: str, *args) -> List[Dict[str, Any]]:
        """
        Execute a query and fetch all rows.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            List of rows as dictionaries
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query, *args)
                return [dict(row) for row in rows]
        else:
            sqlite_query, sqlite_args = self._convert_params(query, args)
            cursor = await self._sqlite_conn.execute(sqlite_query, sqlite_args)
            rows = await cursor.fetchall()
            if rows:
                columns = [d[0] for d in cursor.description]
                return [dict(zip(columns, row)) for row in rows]
            return []

    def _convert_params(self, query: str, args: Sequence[Any]) -> Tuple[str, Tuple[Any, ...]]:
        """
        Convert PostgreSQL $1, $2 style params to SQLite ? style.

        Arguments are re-ordered to follow placeholder order, so a
        placeholder may appear more than once.
        """
        order: List[int] = []

        def replace(match):
            order.append(int(match.group(1)) - 1)
            return '?'

        sqlite_query = _PARAM_RE.sub(replace, query)
        sqlite_args = tuple(self._adapt(args[i]) for i in order)
        return sqlite_query, sqlite_args

    @staticmethod
    def _adapt(value: Any) -> Any:
        # SQLite has no native timestamp type
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    async def init_schema(self) -> None:
        """Initialize database schema from schema.sql file."""
        schema_path = os.path.join(os.path.dirname(__file__), 'schema.sql')

        with open(schema_path, 'r') as f:
            lines = [line for line in f if not line.strip().startswith('--')]

        # Split by semicolons and execute each statement
        statements = [s.strip() for s in ''.join(lines).split(';') if s.strip()]

        for statement in statements:
            if not self._is_postgres:
                statement = statement.replace('SERIAL', 'INTEGER')

            if self._is_postgres:
                async with self._pool.acquire() as conn:
                    await conn.execute(statement)
            else:
                await self._sqlite_conn.execute(statement)

        if not self._is_postgres:
            await self._sqlite_conn.commit()

        logger.info("Database schema initialized")

    # -------------------------------------------------------------------------
    # Merchant Operations
    # -------------------------------------------------------------------------

    async def get_merchant(self, merchant_id: str) -> Optional[Dict[str, Any]]:
        """Get merchant by ID."""
        return await self.fetch_one(
            "SELECT * FROM merchants WHERE id = $1",
            merchant_id
        )

    async def create_merchant(
        self,
        merchant_id: str,
        email: str,
        business_name: Optional[str] = None,
        account_type: str = 'personal',
        verification_status: str = 'pending',
        balance: float = 0
    ) -> Dict[str, Any]:
        """Create a new merchant."""
        now = datetime.utcnow()

        await self.execute(
            """
            INSERT INTO merchants (id, email, business_name, account_type,
                                   verification_status, balance, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $7)
            """,
            merchant_id, email.strip().lower(), business_name, account_type,
            verification_status, balance, now
        )

        return await self.get_merchant(merchant_id)

    async def list_merchants_by_status(self, verification_status: str) -> List[Dict[str, Any]]:
        """Get merchants in a verification status, oldest first."""
        return await self.fetch_all(
            "SELECT * FROM merchants WHERE verification_status = $1 ORDER BY created_at",
            verification_status
        )

    async def update_verification_status(
        self,
        merchant_id: str,
        verification_status: str,
        notes: Optional[str] = None
    ) -> int:
        """Set a merchant's verification status and review note."""
        return await self.execute(
            """
            UPDATE merchants
            SET verification_status = $1, verification_notes = $2, updated_at = $3
            WHERE id = $4
            """,
            verification_status, notes, datetime.utcnow(), merchant_id
        )

    async def adjust_merchant_balance(self, merchant_id: str, delta: float) -> int:
        """Add delta (which may be negative) to a merchant's balance."""
        return await self.execute(
            "UPDATE merchants SET balance = balance + $1, updated_at = $2 WHERE id = $3",
            delta, datetime.utcnow(), merchant_id
        )

    async def debit_merchant_balance(self, merchant_id: str, amount: float) -> bool:
        """
        Subtract amount from a merchant's balance if the balance covers it.

        Returns:
            True if the balance was debited
        """
        updated = await self.execute(
            """
            UPDATE merchants SET balance = balance - $1, updated_at = $2
            WHERE id = $3 AND balance >= $1
            """,
            amount, datetime.utcnow(), merchant_id
        )
        return updated > 0

    async def get_merchant_email(self, merchant_id: str) -> Optional[str]:
        row = await self.fetch_one(
            "SELECT email FROM merchants WHERE id = $1",
            merchant_id
        )
        return row['email'] if row and row.get('email') else None

    # -------------------------------------------------------------------------
    # Admin Operations
    # -------------------------------------------------------------------------

    async def create_admin(self, email: str, name: Optional[str] = None) -> int:
        """Register an admin address."""
        return await self.insert(
            "INSERT INTO admins (email, name, created_at) VALUES ($1, $2, $3)",
            email.strip().lower(), name, datetime.utcnow()
        )

    async def get_admin_emails(self) -> List[str]:
        """Get every admin email address on file."""
        rows = await self.fetch_all("SELECT email FROM admins ORDER BY id")
        return [row['email'] for row in rows if row.get('email')]

    # -------------------------------------------------------------------------
    # Payment Operations
    # -------------------------------------------------------------------------

    async def create_payment(
        self,
        merchant_id: str,
        amount: float,
        currency: str,
        mode: str,
        link_code: Optional[str] = None,
        customer_email: Optional[str] = None
    ) -> Dict[str, Any]:
        """Insert a pending payment and return the stored row."""
        now = datetime.utcnow()

        payment_id = await self.insert(
            """
            INSERT INTO payments (merchant_id, amount, currency, status, mode,
                                  link_code, customer_email, created_at, updated_at)
            VALUES ($1, $2, $3, 'pending', $4, $5, $6, $7, $7)
            """,
            merchant_id, amount, currency, mode, link_code, customer_email, now
        )

        return await self.get_payment(payment_id)

    async def get_payment(self, payment_id: int) -> Optional[Dict[str, Any]]:
        """Get payment by ID."""
        return await self.fetch_one(
            "SELECT * FROM payments WHERE id = $1",
            payment_id
        )

    async def set_payment_status(self, payment_id: int, status: str) -> bool:
        """
        Move a pending payment to a terminal status.

        Returns:
            True if the row was pending and has been updated
        """
        updated = await self.execute(
            """
            UPDATE payments SET status = $1, updated_at = $2
            WHERE id = $3 AND status = 'pending'
            """,
            status, datetime.utcnow(), payment_id
        )
        return updated > 0

    async def set_payment_reference(self, payment_id: int, reference: str) -> None:
        """Store the processor's transaction reference on a payment."""
        await self.execute(
            "UPDATE payments SET flutterwave_reference = $1, updated_at = $2 WHERE id = $3",
            reference, datetime.utcnow(), payment_id
        )

    async def find_payments_by_reference(self, reference: str) -> List[Dict[str, Any]]:
        return await self.fetch_all(
            "SELECT * FROM payments WHERE flutterwave_reference = $1 ORDER BY id",
            reference
        )

    # -------------------------------------------------------------------------
    # Payment Link Operations
    # -------------------------------------------------------------------------

    async def create_payment_link(
        self,
        merchant_id: str,
        title: str,
        amount: float,
        currency: str,
        link_code: str,
        description: Optional[str] = None
    ) -> Dict[str, Any]:
        """Insert an active payment link and return the stored row."""
        now = datetime.utcnow()

        await self.insert(
            """
            INSERT INTO payment_links (merchant_id, title, description, amount, currency,
                                       link_code, is_active, current_uses,
                                       created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, TRUE, 0, $7, $7)
            """,
            merchant_id, title, description, amount, currency, link_code, now
        )

        return await self.get_payment_link(link_code)

    async def get_payment_link(self, link_code: str) -> Optional[Dict[str, Any]]:
        """Get payment link by code, active or not."""
        return await self.fetch_one(
            "SELECT * FROM payment_links WHERE link_code = $1",
            link_code
        )

    async def list_payment_links(self, merchant_id: str) -> List[Dict[str, Any]]:
        """Get a merchant's payment links, newest first."""
        return await self.fetch_all(
            "SELECT * FROM payment_links WHERE merchant_id = $1 ORDER BY id DESC",
            merchant_id
        )

    async def increment_payment_link_uses(self, link_code: str) -> bool:
        """
        Count one more payment against an active link.

        Returns:
            True if an active link with this code exists
        """
        updated = await self.execute(
            """
            UPDATE payment_links SET current_uses = current_uses + 1, updated_at = $1
            WHERE link_code = $2 AND is_active = TRUE
            """,
            datetime.utcnow(), link_code
        )
        return updated > 0

    async def deactivate_payment_link(self, link_code: str) -> bool:
        updated = await self.execute(
            """
            UPDATE payment_links SET is_active = FALSE, updated_at = $1
            WHERE link_code = $2 AND is_active = TRUE
            """,
            datetime.utcnow(), link_code
        )
        return updated > 0

    # -------------------------------------------------------------------------
    # Payment Log Operations
    # -------------------------------------------------------------------------

    async def append_payment_log(
        self,
        payment_id: int,
        event: str,
        data: Optional[Dict[str, Any]] = None
    ) -> int:
        """Append a row to a payment's audit trail."""
        return await self.insert(
            """
            INSERT INTO payment_logs (payment_id, event, data, created_at)
            VALUES ($1, $2, $3, $4)
            """,
            payment_id, event, json.dumps(data, default=str), datetime.utcnow()
        )

    async def get_payment_logs(self, payment_id: int) -> List[Dict[str, Any]]:
        """Get a payment's audit trail with decoded data, oldest first."""
        rows = await self.fetch_all(
            "SELECT * FROM payment_logs WHERE payment_id = $1 ORDER BY id",
            payment_id
        )
        for row in rows:
            row['data'] = json.loads(row['data']) if row.get('data') else None
        return rows

    # -------------------------------------------------------------------------
    # Payout Operations
    # -------------------------------------------------------------------------

    async def create_payout(
        self,
        merchant_id: str,
        amount: float,
        currency: str
    ) -> Dict[str, Any]:
        """Insert a pending payout and return the stored row."""
        now = datetime.utcnow()

        payout_id = await self.insert(
            """
            INSERT INTO payouts (merchant_id, amount, currency, status, created_at, updated_at)
            VALUES ($1, $2, $3, 'pending', $4, $4)
            """,
            merchant_id, amount, currency, now
        )

        return await self.get_payout(payout_id)

    async def get_payout(self, payout_id: int) -> Optional[Dict[str, Any]]:
        """Get payout by ID."""
        return await self.fetch_one(
            "SELECT * FROM payouts WHERE id = $1",
            payout_id
        )

    async def settle_payout(self, payout_id: int, status: str, notes: Optional[str]) -> bool:
        """
        Move a pending payout to a terminal status.

        Returns:
            True if the row was pending and has been updated
        """
        now = datetime.utcnow()
        updated = await self.execute(
            """
            UPDATE payouts SET status = $1, notes = $2, processed_at = $3, updated_at = $3
            WHERE id = $4 AND status = 'pending'
            """,
            status, notes, now, payout_id
        )
        return updated > 0

    # -------------------------------------------------------------------------
    # Notification Operations
    # -------------------------------------------------------------------------

    async def insert_notification(
        self,
        merchant_id: Optional[str],
        notification_type: str,
        title: str,
        message: str,
        recipient_type: str
    ) -> int:
        """Write one notification row."""
        return await self.insert(
            """
            INSERT INTO notifications (merchant_id, type, title, message,
                                       recipient_type, is_read, created_at)
            VALUES ($1, $2, $3, $4, $5, FALSE, $6)
            """,
            merchant_id, notification_type, title, message, recipient_type,
            datetime.utcnow()
        )

    async def list_notifications(
        self,
        recipient_type: str,
        merchant_id: Optional[str] = None,
        unread_only: bool = False
    ) -> List[Dict[str, Any]]:
        """List notifications for a recipient, newest first."""
        query = "SELECT * FROM notifications WHERE recipient_type = $1"
        args: List[Any] = [recipient_type]

        if merchant_id is not None:
            args.append(merchant_id)
            query += f" AND merchant_id = ${len(args)}"

        if unread_only:
            query += " AND is_read = FALSE"

        return await self.fetch_all(query + " ORDER BY id DESC", *args)

    async def mark_notification_read(self, notification_id: int) -> bool:
        updated = await self.execute(
            "UPDATE notifications SET is_read = TRUE WHERE id = $1",
            notification_id
        )
        return updated > 0

    async def delete_notification(self, notification_id: int) -> bool:
        deleted = await self.execute(
            "DELETE FROM notifications WHERE id = $1",
            notification_id
        )
        return deleted > 0

    # -------------------------------------------------------------------------
    # Notification Outbox Operations
    # -------------------------------------------------------------------------

    async def enqueue_outbox(
        self,
        event: str,
        merchant_id: Optional[str],
        payload: Dict[str, Any],
        admin_only: bool = False
    ) -> int:
        """Queue a notification for the background drainer."""
        now = datetime.utcnow()

        return await self.insert(
            """
            INSERT INTO notification_outbox (event, merchant_id, payload, admin_only,
                                             status, attempts, next_attempt_at,
                                             created_at, updated_at)
            VALUES ($1, $2, $3, $4, 'pending', 0, $5, $5, $5)
            """,
            event, merchant_id, json.dumps(payload, default=str), admin_only, now
        )

    async def get_due_outbox(self, limit: int) -> List[Dict[str, Any]]:
        """Get pending outbox rows whose next attempt is due."""
        rows = await self.fetch_all(
            """
            SELECT * FROM notification_outbox
            WHERE status = 'pending' AND next_attempt_at <= $1
            ORDER BY id
            LIMIT $2
            """,
            datetime.utcnow(), limit
        )
        for row in rows:
            row['payload'] = json.loads(row['payload']) if row.get('payload') else {}
            row['admin_only'] = bool(row.get('admin_only'))
        return rows

    async def get_outbox_entry(self, entry_id: int) -> Optional[Dict[str, Any]]:
        return await self.fetch_one(
            "SELECT * FROM notification_outbox WHERE id = $1",
            entry_id
        )

    async def mark_outbox_sent(self, entry_id: int, attempts: int) -> None:
        await self.execute(
            """
            UPDATE notification_outbox
            SET status = 'sent', attempts = $1, last_error = NULL, updated_at = $2
            WHERE id = $3
            """,
            attempts, datetime.utcnow(), entry_id
        )

    async def reschedule_outbox(
        self,
        entry_id: int,
        attempts: int,
        next_attempt_at: datetime,
        error: str
    ) -> None:
        await self.execute(
            """
            UPDATE notification_outbox
            SET attempts = $1, next_attempt_at = $2, last_error = $3, updated_at = $4
            WHERE id = $5
            """,
            attempts, next_attempt_at, error, datetime.utcnow(), entry_id
        )

    async def mark_outbox_dead(self, entry_id: int, attempts: int, error: str) -> None:
        await self.execute(
            """
            UPDATE notification_outbox
            SET status = 'dead', attempts = $1, last_error = $2, updated_at = $3
            WHERE id = $4
            """,
            attempts, error, datetime.utcnow(), entry_id
        )

    # -------------------------------------------------------------------------
    # API Key Operations
    # -------------------------------------------------------------------------

    async def create_api_key(
        self,
        merchant_id: str,
        mode: str,
        public_key: str,
        secret_hash: str
    ) -> int:
        """Store a key pair. Only the hash of the secret is kept."""
        return await self.insert(
            """
            INSERT INTO api_keys (merchant_id, mode, public_key, secret_hash, created_at)
            VALUES ($1, $2, $3, $4, $5)
            """,
            merchant_id, mode, public_key, secret_hash, datetime.utcnow()
        )

    async def get_api_keys(self, merchant_id: str) -> List[Dict[str, Any]]:
        return await self.fetch_all(
            "SELECT * FROM api_keys WHERE merchant_id = $1 ORDER BY id",
            merchant_id
        )

    async def revoke_api_keys(self, merchant_id: str, mode: str) -> int:
        """Delete every key pair a merchant holds in one mode."""
        return await self.execute(
            "DELETE FROM api_keys WHERE merchant_id = $1 AND mode = $2",
            merchant_id, mode
        )
