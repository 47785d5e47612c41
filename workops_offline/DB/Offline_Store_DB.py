# Offline_Store_DB.py
#########################################
# Offline Store Library
# Manages the on-device SQLite store that backs the offline-first sync engine.
#
# This library provides an `OfflineStore` class that encapsulates one SQLite database file
# (or ':memory:'). It handles connection management, schema initialization and migration,
# transactions, the small key/value metadata table the pull engine uses for bookkeeping, and
# the dashboard metrics cache.
#
# Key Features:
# - One table per entity kind, each row carrying business columns plus sync metadata
#   (`pending_sync`, `sync_op`, `sync_error`).
# - Schema Versioning: applies ordered migrations up to `_CURRENT_SCHEMA_VERSION` on open.
# - Sync-state triggers: the database refuses rows where `pending_sync` and `sync_op` disagree.
# - Soft Deletes: rows are tombstoned with `deleted=1`, never physically removed by the engine.
# - Transaction Management: a context manager for per-record atomic writes.
# - Single writer: one connection per store, shared by the cooperative event loop.
####
import sqlite3
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from workops_offline import Constants
from workops_offline.DB.field_mappings import MAPPINGS, SYNC_COLUMNS
#
########################################################################################################################
#
# Functions:

# --- Custom Exceptions ---
class DatabaseError(Exception):
    """Base exception for database related errors."""
    pass


class SchemaError(DatabaseError):
    """Exception for schema version mismatches or migration failures."""
    pass


class SyncStateError(DatabaseError):
    """Raised when a write would break the pending_sync/sync_op pairing."""
    pass


class InputError(ValueError):
    """Custom exception for input validation errors."""
    pass


class ValidationError(InputError):
    """A required field is missing or blank. Nothing was written."""

    def __init__(self, message: str, entity: Optional[str] = None, fields: Iterable[str] = ()):
        super().__init__(message)
        self.entity = entity
        self.fields = tuple(fields)


class RecordNotFoundError(DatabaseError):
    """The addressed record does not exist or is tombstoned."""

    def __init__(self, entity: str, identifier: Any):
        super().__init__(f"{entity} record '{identifier}' not found")
        self.entity = entity
        self.identifier = identifier


class NotYetSyncedError(DatabaseError):
    """A mutation addressed a record that is still waiting for its server id."""

    def __init__(self, message="Record is still waiting for its server id.", entity=None, identifier=None):
        super().__init__(message)
        self.entity = entity
        self.identifier = identifier

    def __str__(self):
        base = super().__str__()
        details = []
        if self.entity:
            details.append(f"Entity: {self.entity}")
        if self.identifier:
            details.append(f"ID: {self.identifier}")
        return f"{base} ({', '.join(details)})" if details else base


# --- Client-temporary ids ---
def is_client_temp_id(record_id: Any) -> bool:
    return isinstance(record_id, str) and record_id.startswith(Constants.TEMP_ID_PREFIXES)


def new_client_temp_id(tag: str, prefix: str = Constants.CLIENT_TEMP_ID_PREFIX) -> str:
    """`client-<tag>-<epoch ms>-<random>`; the random suffix keeps ids unique within one millisecond."""
    return f"{prefix}{tag}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'


def _sync_columns_sql() -> str:
    return """
        id TEXT PRIMARY KEY NOT NULL,
        client_id TEXT,
        created_by TEXT,
        deleted INTEGER NOT NULL DEFAULT 0,
        created_at TEXT,
        updated_at TEXT"""


# --- Database Class ---
class OfflineStore:
    _CURRENT_SCHEMA_VERSION = 4

    _TABLES_SQL_V1 = f"""
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY NOT NULL
    );
    INSERT OR IGNORE INTO schema_version (version) VALUES (0);

    CREATE TABLE IF NOT EXISTS customers ({_sync_columns_sql()},
        customer_name TEXT NOT NULL,
        phone_number TEXT,
        whatsapp_number TEXT,
        address TEXT
    );

    CREATE TABLE IF NOT EXISTS work_orders ({_sync_columns_sql()},
        customer_id TEXT,
        work_order_number TEXT,
        note TEXT,
        schedule_date TEXT,
        has_scheduled_time INTEGER NOT NULL DEFAULT 0,
        schedule_time TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        completed_at TEXT,
        notification_sent INTEGER NOT NULL DEFAULT 0,
        bill_id TEXT
    );

    CREATE TABLE IF NOT EXISTS bills ({_sync_columns_sql()},
        customer_id TEXT,
        bill_number TEXT,
        subtotal REAL NOT NULL DEFAULT 0,
        discount REAL NOT NULL DEFAULT 0,
        total_amount REAL NOT NULL DEFAULT 0,
        received_payment REAL NOT NULL DEFAULT 0,
        due_amount REAL NOT NULL DEFAULT 0,
        payment_method TEXT NOT NULL DEFAULT 'cash',
        status TEXT NOT NULL DEFAULT 'pending',
        work_order_id TEXT
    );

    CREATE TABLE IF NOT EXISTS bill_items ({_sync_columns_sql()},
        bill_id TEXT NOT NULL,
        item_type TEXT,
        item_id TEXT,
        item_name TEXT,
        serial_number TEXT,
        qty INTEGER NOT NULL DEFAULT 1,
        price REAL NOT NULL DEFAULT 0,
        purchase_price REAL NOT NULL DEFAULT 0,
        amount REAL NOT NULL DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS payment_history ({_sync_columns_sql()},
        bill_id TEXT NOT NULL,
        amount REAL NOT NULL DEFAULT 0,
        paid_at TEXT,
        note TEXT
    );

    CREATE TABLE IF NOT EXISTS items ({_sync_columns_sql()},
        item_type TEXT,
        item_name TEXT NOT NULL,
        unit TEXT,
        warranty TEXT,
        mrp REAL NOT NULL DEFAULT 0,
        purchase_price REAL NOT NULL DEFAULT 0,
        sale_price REAL NOT NULL DEFAULT 0,
        stock_qty INTEGER NOT NULL DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS serial_numbers ({_sync_columns_sql()},
        item_id TEXT NOT NULL,
        serial_no TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'available',
        customer_name TEXT,
        bill_number TEXT,
        added_at TEXT
    );

    CREATE TABLE IF NOT EXISTS stock_history ({_sync_columns_sql()},
        item_id TEXT NOT NULL,
        qty INTEGER NOT NULL DEFAULT 0,
        added_at TEXT
    );

    CREATE TABLE IF NOT EXISTS services ({_sync_columns_sql()},
        service_name TEXT NOT NULL,
        service_price REAL NOT NULL DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS bank_accounts ({_sync_columns_sql()},
        bank_name TEXT NOT NULL,
        account_number TEXT NOT NULL,
        ifsc_code TEXT,
        account_holder_name TEXT,
        upi_id TEXT,
        is_primary INTEGER NOT NULL DEFAULT 0
    );

    UPDATE schema_version SET version = 1 WHERE version = 0;
    """

    # Tables that carry sync metadata; every entity table does.
    _SYNCED_TABLES = tuple(m.table for m in MAPPINGS.values())

    @classmethod
    def _sync_columns_sql_v2(cls) -> str:
        parts = []
        for table in cls._SYNCED_TABLES:
            parts.append(f"""
    ALTER TABLE {table} ADD COLUMN pending_sync INTEGER NOT NULL DEFAULT 0;
    ALTER TABLE {table} ADD COLUMN sync_op TEXT
        CHECK (sync_op IS NULL OR sync_op IN ('create', 'update', 'delete', 'set_primary'));
    ALTER TABLE {table} ADD COLUMN sync_error TEXT;

    CREATE INDEX IF NOT EXISTS idx_{table}_deleted ON {table}(deleted);
    CREATE INDEX IF NOT EXISTS idx_{table}_updated_at ON {table}(updated_at DESC);
    CREATE INDEX IF NOT EXISTS idx_{table}_pending_sync ON {table}(pending_sync);
    CREATE INDEX IF NOT EXISTS idx_{table}_sync_op ON {table}(sync_op);
    CREATE INDEX IF NOT EXISTS idx_{table}_created_by ON {table}(created_by);

    DROP TRIGGER IF EXISTS {table}_validate_sync_insert;
    CREATE TRIGGER {table}_validate_sync_insert BEFORE INSERT ON {table}
    BEGIN
        SELECT RAISE(ABORT, 'Sync Error ({table}): pending_sync and sync_op must be set together.')
        WHERE (NEW.pending_sync = 1) IS NOT (NEW.sync_op IS NOT NULL);
    END;

    DROP TRIGGER IF EXISTS {table}_validate_sync_update;
    CREATE TRIGGER {table}_validate_sync_update BEFORE UPDATE ON {table}
    BEGIN
        SELECT RAISE(ABORT, 'Sync Error ({table}): pending_sync and sync_op must be set together.')
        WHERE (NEW.pending_sync = 1) IS NOT (NEW.sync_op IS NOT NULL);
    END;
""")
        parts.append("""
    CREATE INDEX IF NOT EXISTS idx_work_orders_status ON work_orders(status);
    CREATE INDEX IF NOT EXISTS idx_bills_customer_id ON bills(customer_id);
    CREATE INDEX IF NOT EXISTS idx_bill_items_bill_id ON bill_items(bill_id);
    CREATE INDEX IF NOT EXISTS idx_payment_history_bill_id ON payment_history(bill_id);
    CREATE INDEX IF NOT EXISTS idx_serial_numbers_item_id ON serial_numbers(item_id);
    CREATE INDEX IF NOT EXISTS idx_stock_history_item_id ON stock_history(item_id);

    UPDATE schema_version SET version = 2 WHERE version = 1;
""")
        return "".join(parts)

    _TABLES_SQL_V3 = """
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY NOT NULL,
        value TEXT,
        updated_at TEXT
    );

    UPDATE schema_version SET version = 3 WHERE version = 2;
    """

    # Server-authoritative dashboard figures, cached per filter key; never pushed.
    _TABLES_SQL_V4 = """
    CREATE TABLE IF NOT EXISTS dashboard_metrics (
        key TEXT PRIMARY KEY NOT NULL,
        payload TEXT,
        updated_at TEXT
    );
    CREATE INDEX IF NOT EXISTS idx_dashboard_metrics_updated_at ON dashboard_metrics(updated_at DESC);

    UPDATE schema_version SET version = 4 WHERE version = 3;
    """

    def __init__(self, db_path: Union[str, Path], clock: Optional[Callable[[], datetime]] = None):
        """
        Opens (or creates) the offline store and brings its schema up to date.

        Args:
            db_path (Union[str, Path]): The path to the SQLite database file or ':memory:'.
            clock (Optional[Callable[[], datetime]]): Source of "now" for timestamps. Defaults to UTC wall time.

        Raises:
            DatabaseError: If database initialization or schema setup fails.
        """
        if isinstance(db_path, Path):
            self.is_memory_db = str(db_path) == ':memory:'
            self.db_path = db_path if self.is_memory_db else db_path.resolve()
        else:
            self.is_memory_db = (db_path == ':memory:')
            self.db_path = Path(":memory:") if self.is_memory_db else Path(db_path).resolve()
        self.db_path_str = ':memory:' if self.is_memory_db else str(self.db_path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._conn: Optional[sqlite3.Connection] = None

        if not self.is_memory_db:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise DatabaseError(f"Failed to create database directory {self.db_path.parent}: {e}") from e

        logger.info(f"Initializing OfflineStore for path: {self.db_path_str}")
        try:
            self._initialize_schema()
        except (DatabaseError, sqlite3.Error) as e:
            logger.critical(f"FATAL: Offline store initialization failed for {self.db_path_str}: {e}")
            self.close_connection()
            if isinstance(e, DatabaseError):
                raise
            raise DatabaseError(f"Offline store initialization failed: {e}") from e
        logger.debug(f"OfflineStore initialization completed successfully for {self.db_path_str}")

    # --- Connection Management ---
    def get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                # Autocommit mode; `transaction()` issues BEGIN/COMMIT explicitly.
                conn = sqlite3.connect(self.db_path_str, isolation_level=None, timeout=10)
                conn.row_factory = sqlite3.Row
                if not self.is_memory_db:
                    conn.execute("PRAGMA journal_mode=WAL;")
                self._conn = conn
                logger.debug(f"Opened SQLite connection to {self.db_path_str}")
            except sqlite3.Error as e:
                logger.error(f"Failed to connect to database at {self.db_path_str}: {e}")
                raise DatabaseError(f"Failed to connect to database '{self.db_path_str}': {e}") from e
        return self._conn

    def close_connection(self):
        if self._conn is not None:
            conn, self._conn = self._conn, None
            try:
                conn.close()
                logger.debug(f"Closed connection to {self.db_path_str}.")
            except sqlite3.Error as e:
                logger.warning(f"Error closing connection: {e}")

    # --- Query Execution ---
    def execute_query(self, query: str, params: Optional[tuple] = None) -> sqlite3.Cursor:
        conn = self.get_connection()
        try:
            logger.trace(f"Executing Query: {query[:200]}... Params: {str(params)[:100]}...")
            return conn.execute(query, params or ())
        except sqlite3.IntegrityError as e:
            if "sync error" in str(e).lower():
                logger.error(f"Sync state validation failed: {e}")
                raise SyncStateError(str(e)) from e
            logger.error(f"Integrity error: {query[:200]}... Error: {e}")
            raise DatabaseError(f"Integrity constraint violation: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"Query failed: {query[:200]}... Error: {e}")
            raise DatabaseError(f"Query execution failed: {e}") from e

    def fetch_one(self, query: str, params: Optional[tuple] = None) -> Optional[Dict[str, Any]]:
        row = self.execute_query(query, params).fetchone()
        return dict(row) if row else None

    def fetch_all(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        return [dict(row) for row in self.execute_query(query, params).fetchall()]

    def insert_row(self, table: str, row: Dict[str, Any], allowed_columns: Iterable[str]) -> None:
        allowed = set(allowed_columns)
        unknown = [column for column in row if column not in allowed]
        if unknown:
            raise InputError(f"Unknown columns for table '{table}': {unknown}")
        columns = list(row.keys())
        placeholders = ", ".join("?" for _ in columns)
        self.execute_query(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(row[column] for column in columns),
        )

    # --- Transaction Context ---
    @contextmanager
    def transaction(self):
        conn = self.get_connection()
        in_outer = conn.in_transaction
        try:
            if not in_outer:
                conn.execute("BEGIN")
                logger.trace("Started transaction.")
            yield conn
            if not in_outer:
                conn.execute("COMMIT")
                logger.trace("Committed transaction.")
        except Exception as e:
            if not in_outer:
                logger.error(f"Transaction failed, rolling back: {type(e).__name__} - {e}")
                try:
                    conn.execute("ROLLBACK")
                except sqlite3.Error as rb_err:
                    logger.error(f"Rollback FAILED: {rb_err}")
            raise

    # --- Schema Initialization and Migration ---
    def _get_db_version(self, conn: sqlite3.Connection) -> int:
        try:
            result = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            return result['version'] if result else 0
        except sqlite3.Error as e:
            if "no such table: schema_version" in str(e).lower():
                return 0
            raise DatabaseError(f"Could not determine schema version: {e}") from e

    def _migrations(self) -> Dict[int, Tuple[str, str]]:
        """Target version -> (description, script)."""
        return {
            1: ("base entity tables", self._TABLES_SQL_V1),
            2: ("sync columns, indexes and sync-state triggers", self._sync_columns_sql_v2()),
            3: ("metadata table", self._TABLES_SQL_V3),
            4: ("dashboard metrics cache", self._TABLES_SQL_V4),
        }

    def _apply_migration(self, conn: sqlite3.Connection, version: int, description: str, script: str):
        logger.info(f"[Schema V{version}] Applying {description} to DB: {self.db_path_str}...")
        try:
            # executescript runs its own statements; wrap them so a failure leaves the previous version intact.
            conn.executescript(f"BEGIN;\n{script}\nCOMMIT;")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.error(f"[Schema V{version}] Application failed: {e}")
            raise SchemaError(f"DB schema V{version} setup failed: {e}") from e
        if self._get_db_version(conn) != version:
            raise SchemaError(f"Schema version update to {version} did not take effect.")
        logger.info(f"[Schema V{version}] applied for DB: {self.db_path_str}.")

    def _initialize_schema(self):
        conn = self.get_connection()
        current_db_version = self._get_db_version(conn)
        target_version = self._CURRENT_SCHEMA_VERSION
        logger.info(f"Checking DB schema. Current: {current_db_version}, Code supports: {target_version}")

        if current_db_version > target_version:
            raise SchemaError(
                f"DB schema version ({current_db_version}) is newer than supported ({target_version}).")
        if current_db_version == target_version:
            logger.debug("Database schema is up to date.")
            return

        migrations = self._migrations()
        for version in range(current_db_version + 1, target_version + 1):
            description, script = migrations[version]
            self._apply_migration(conn, version, description, script)
        logger.info(f"Database schema initialized/migrated to version {target_version}.")

    def get_schema_version(self) -> int:
        return self._get_db_version(self.get_connection())

    # --- Internal Helpers ---
    def now(self) -> str:
        return utc_timestamp(self._clock())

    # --- Metadata ---
    def get_metadata(self, key: str) -> Optional[str]:
        row = self.fetch_one("SELECT value FROM metadata WHERE key = ?", (key,))
        return row['value'] if row else None

    def set_metadata(self, key: str, value: Optional[str]) -> None:
        self.execute_query(
            "INSERT INTO metadata (key, value, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
            (key, value, self.now()),
        )
        logger.debug(f"Metadata '{key}' set to '{value}'")

    def delete_metadata(self, key: str) -> None:
        self.execute_query("DELETE FROM metadata WHERE key = ?", (key,))

    # --- Store-wide queries ---
    def is_database_empty(self, tables: Optional[Iterable[str]] = None) -> bool:
        """True when none of the top-level entity tables holds a row (tombstones included)."""
        for table in tables or ("customers", "work_orders", "bills", "items", "services", "bank_accounts"):
            if self.fetch_one(f"SELECT 1 AS present FROM {table} LIMIT 1"):
                return False
        return True

    def count_pending(self) -> Dict[str, int]:
        counts = {}
        for table in self._SYNCED_TABLES:
            row = self.fetch_one(f"SELECT COUNT(*) AS n FROM {table} WHERE pending_sync = 1")
            counts[table] = row['n'] if row else 0
        return counts


__all__ = [
    "OfflineStore", "DatabaseError", "SchemaError", "SyncStateError", "InputError", "ValidationError",
    "RecordNotFoundError", "NotYetSyncedError", "is_client_temp_id", "new_client_temp_id", "utc_timestamp",
    "SYNC_COLUMNS",
]

#
# End of Offline_Store_DB.py
########################################################################################################################
