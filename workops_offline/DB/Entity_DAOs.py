# Entity_DAOs.py
# Description: Entity access objects over the offline store: local CRUD plus the per-record sync state machine.
#
# Every entity row moves through the same states:
#   synced   (pending_sync=0, sync_op=NULL)
#   pending  (pending_sync=1, sync_op in create|update|delete|set_primary), optionally with a sync_error
# Local edits move a row to pending; `mark_synced` moves it back; pulls merge remote rows by last-write-wins.
#
# Imports
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from workops_offline import Constants
from workops_offline.DB.field_mappings import (
    EntityMapping, MAPPINGS, BANK_ACCOUNTS, BILLS, CUSTOMERS, ITEMS, SERVICES, WORK_ORDERS,
)
from workops_offline.DB.Offline_Store_DB import (
    OfflineStore, InputError, ValidationError, RecordNotFoundError, NotYetSyncedError,
    is_client_temp_id, new_client_temp_id,
)
from workops_offline.DB.update_builder import UpdateBuilder
#
########################################################################################################################
#
# Functions:

MERGE_OVERWRITE = "overwrite"
MERGE_SKIP_PENDING = "skip_pending"
MERGE_PRESERVE_SYNC_STATE = "preserve_sync_state"
MERGE_POLICIES = (MERGE_OVERWRITE, MERGE_SKIP_PENDING, MERGE_PRESERVE_SYNC_STATE)

# Columns a pull leaves alone on pending rows under MERGE_PRESERVE_SYNC_STATE.
_SYNC_STATE_COLUMNS = ("pending_sync", "sync_op", "sync_error", "deleted")


@dataclass(frozen=True)
class PageSpec:
    limit: int = 50
    offset: int = 0

    def __post_init__(self):
        if self.limit < 1:
            raise ValueError("Page limit must be >= 1")
        if self.offset < 0:
            raise ValueError("Page offset must be >= 0")

    @classmethod
    def for_page(cls, page: int, per_page: int = 50) -> "PageSpec":
        if page < 1:
            raise ValueError("Page number must be >= 1")
        return cls(limit=per_page, offset=(page - 1) * per_page)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class EntityDAO:
    """Access object for one entity table. Subclasses pick the mapping and add entity-specific queries."""

    mapping: EntityMapping = None
    temp_id_tag = "record"
    temp_id_prefix = Constants.CLIENT_TEMP_ID_PREFIX

    def __init__(self, store: OfflineStore, merge_policy: str = MERGE_OVERWRITE,
                 mapping: Optional[EntityMapping] = None):
        if merge_policy not in MERGE_POLICIES:
            raise ValueError(f"Unknown merge policy '{merge_policy}'. Expected one of {MERGE_POLICIES}")
        if mapping is not None:
            self.mapping = mapping
        if self.mapping is None:
            raise ValueError(f"{type(self).__name__} has no entity mapping")
        self.store = store
        self.merge_policy = merge_policy
        self.entity = self.mapping.entity
        self.table = self.mapping.table
        self.columns = self.mapping.columns
        self.children: Dict[str, "ChildRecordDAO"] = {
            child.attribute: ChildRecordDAO(store, MAPPINGS[child.entity], merge_policy)
            for child in self.mapping.children
        }

    def _builder(self) -> UpdateBuilder:
        return UpdateBuilder(self.table, self.columns)

    def _execute(self, builder: UpdateBuilder) -> int:
        sql, params = builder.build()
        return self.store.execute_query(sql, params).rowcount

    # --- Read Methods ---
    def _list_filters(self, **filters) -> Tuple[List[str], List[Any]]:
        """Per-entity WHERE fragments for `list`/`count`. The base table supports none."""
        if filters:
            raise InputError(f"Unsupported filters for {self.entity}: {sorted(filters)}")
        return [], []

    def list(self, page: Optional[PageSpec] = None, **filters) -> List[Dict[str, Any]]:
        """Non-deleted records, most recently updated first."""
        page = page or PageSpec()
        clauses, params = self._list_filters(**{k: v for k, v in filters.items() if v is not None})
        where = " AND ".join(["deleted = 0"] + clauses)
        query = (f"SELECT * FROM {self.table} WHERE {where} "
                 f"ORDER BY updated_at DESC, rowid DESC LIMIT ? OFFSET ?")
        return self.store.fetch_all(query, tuple(params) + (page.limit, page.offset))

    def count(self, **filters) -> int:
        clauses, params = self._list_filters(**{k: v for k, v in filters.items() if v is not None})
        where = " AND ".join(["deleted = 0"] + clauses)
        row = self.store.fetch_one(f"SELECT COUNT(*) AS n FROM {self.table} WHERE {where}", tuple(params))
        return row['n'] if row else 0

    def get_by_id(self, record_id: str, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        query = f"SELECT * FROM {self.table} WHERE id = ?"
        if not include_deleted:
            query += " AND deleted = 0"
        return self.store.fetch_one(query, (record_id,))

    def get_pending(self) -> List[Dict[str, Any]]:
        """Pending records, oldest edit first."""
        return self.store.fetch_all(
            f"SELECT * FROM {self.table} WHERE pending_sync = 1 ORDER BY updated_at ASC, rowid ASC")

    # --- Local writes ---
    def _validate_required(self, record: Dict[str, Any], only_present: bool = False) -> None:
        missing = []
        for column in self.mapping.required:
            if only_present and column not in record:
                continue
            if _is_blank(record.get(column)):
                missing.append(column)
        if missing:
            raise ValidationError(f"{self.entity}: required fields are blank: {', '.join(missing)}",
                                  entity=self.entity, fields=missing)

    def _check_known_fields(self, record: Dict[str, Any], allowed: Iterable[str]) -> None:
        allowed = set(allowed)
        unknown = sorted(k for k in record if k not in allowed)
        if unknown:
            raise ValidationError(f"{self.entity}: unknown fields: {', '.join(unknown)}",
                                  entity=self.entity, fields=unknown)

    def _new_local_row(self, record: Dict[str, Any]) -> Dict[str, Any]:
        now = self.store.now()
        row = {k: v for k, v in record.items() if k in self.mapping.business_columns}
        row["id"] = record.get("id") or new_client_temp_id(self.temp_id_tag, self.temp_id_prefix)
        row["client_id"] = record.get("client_id") or row["id"]
        row["created_by"] = record.get("created_by")
        row["created_at"] = record.get("created_at") or now
        row["updated_at"] = record.get("updated_at") or now
        row["deleted"] = 0
        row["pending_sync"] = 1
        row["sync_op"] = Constants.SYNC_OP_CREATE
        row["sync_error"] = None
        return row

    def insert_local(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Writes a brand-new local record queued for remote creation."""
        self._check_known_fields(record, self.columns + tuple(self.children))
        self._validate_required(record)
        row = self._new_local_row(record)
        with self.store.transaction():
            self.store.insert_row(self.table, row, self.columns)
            self._insert_children_local(row, record)
        logger.info(f"Inserted local {self.entity} record {row['id']} (pending create)")
        return self.get_by_id(row["id"])

    def _insert_children_local(self, row: Dict[str, Any], record: Dict[str, Any]) -> None:
        for attribute, child_dao in self.children.items():
            for child in record.get(attribute) or []:
                child_dao.insert_local({**child, child_dao.mapping.parent_column: row["id"]})

    def _record_rejection(self, record_id: str, message: str) -> None:
        """Stores a local rejection message without touching the row's fields or sync state."""
        self._execute(self._builder().set("sync_error", message).where("id", record_id))

    def _guard_server_id(self, record_id: str, op: str) -> None:
        if is_client_temp_id(record_id):
            message = Constants.WAITING_FOR_SERVER_ID.get(op, Constants.WAITING_FOR_SERVER_ID[Constants.SYNC_OP_UPDATE])
            self._record_rejection(record_id, message)
            logger.warning(f"Rejected {op} on {self.entity} {record_id}: {message}")
            raise NotYetSyncedError(message, entity=self.entity, identifier=record_id)

    @staticmethod
    def _coalesce_op(existing_op: Optional[str], new_op: str) -> str:
        """Folds a new local edit into whatever operation is already pending on the row."""
        if existing_op == Constants.SYNC_OP_CREATE:
            return Constants.SYNC_OP_CREATE
        if existing_op == Constants.SYNC_OP_UPDATE and new_op == Constants.SYNC_OP_SET_PRIMARY:
            # The update payload already carries the primary flag.
            return Constants.SYNC_OP_UPDATE
        return new_op

    def mark_pending_update(self, record_id: str, changes: Dict[str, Any],
                            op: str = Constants.SYNC_OP_UPDATE) -> Dict[str, Any]:
        if op not in Constants.GUARDED_SYNC_OPS:
            raise InputError(f"Unsupported pending operation '{op}'")
        self._guard_server_id(record_id, op)
        self._check_known_fields(changes, self.mapping.business_columns)
        self._validate_required(changes, only_present=True)

        existing = self.get_by_id(record_id)
        if existing is None:
            raise RecordNotFoundError(self.entity, record_id)
        new_op = self._coalesce_op(existing["sync_op"], op)
        builder = (self._builder()
                   .set_many(changes)
                   .set("pending_sync", 1)
                   .set("sync_op", new_op)
                   .set("sync_error", None)
                   .set("updated_at", self.store.now())
                   .where("id", record_id))
        self._execute(builder)
        logger.info(f"Marked {self.entity} {record_id} pending {new_op} ({', '.join(changes) or 'no fields'})")
        return self.get_by_id(record_id)

    def mark_pending_delete(self, record_id: str) -> None:
        self._guard_server_id(record_id, Constants.SYNC_OP_DELETE)
        if self.get_by_id(record_id) is None:
            raise RecordNotFoundError(self.entity, record_id)
        builder = (self._builder()
                   .set("deleted", 1)
                   .set("pending_sync", 1)
                   .set("sync_op", Constants.SYNC_OP_DELETE)
                   .set("sync_error", None)
                   .set("updated_at", self.store.now())
                   .where("id", record_id))
        self._execute(builder)
        logger.info(f"Marked {self.entity} {record_id} pending delete")

    # --- Sync writes ---
    def _merge_columns(self, existing: Dict[str, Any], incoming: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Columns to write for a pull merge, or None when the existing row wins."""
        existing_ts = existing.get("updated_at")
        incoming_ts = incoming.get("updated_at")
        if existing_ts and not (incoming_ts and incoming_ts >= existing_ts):
            return None

        pending = bool(existing.get("pending_sync"))
        if pending and self.merge_policy == MERGE_SKIP_PENDING:
            return None
        columns = {k: v for k, v in incoming.items() if k != "id"}
        if pending and self.merge_policy == MERGE_PRESERVE_SYNC_STATE:
            columns = {k: v for k, v in columns.items() if k not in _SYNC_STATE_COLUMNS}
        return columns

    def upsert_one(self, record: Dict[str, Any]) -> bool:
        """
        Merges one local-shaped record from the server. Returns True when it was written.

        The incoming row wins when the stored row has no `updated_at` or the incoming `updated_at` is
        greater than or equal to it. Rows with pending local edits follow `merge_policy`.
        """
        record_id = record.get("id")
        if not record_id:
            raise InputError(f"Cannot upsert {self.entity} record without an id")
        row = {k: v for k, v in record.items() if k in self.columns}
        if row.get("sync_op") is None:
            row["pending_sync"] = 0
            row["sync_op"] = None
        else:
            row["pending_sync"] = 1

        with self.store.transaction():
            existing = self.get_by_id(record_id, include_deleted=True)
            if existing is None:
                row.setdefault("client_id", record_id)
                row.setdefault("deleted", 0)
                self.store.insert_row(self.table, row, self.columns)
                written = True
            else:
                columns = self._merge_columns(existing, row)
                written = columns is not None
                if columns:
                    self._execute(self._builder().set_many(columns).where("id", record_id))
            if written:
                self._merge_children(record_id, record)

        if not written:
            logger.debug(f"Kept local {self.entity} {record_id}; incoming copy is older or the row is pending")
        return written

    def _merge_children(self, parent_id: str, record: Dict[str, Any]) -> None:
        """Server-authoritative child lists: merge incoming rows and drop synced rows the server no longer has."""
        for attribute, child_dao in self.children.items():
            if attribute not in record:
                continue
            incoming_rows = record.get(attribute) or []
            for child in incoming_rows:
                child_dao.upsert_one({**child, child_dao.mapping.parent_column: parent_id})
            child_dao.prune_synced(parent_id, keep_ids=[child["id"] for child in incoming_rows])

    def upsert_many(self, remote_records: Iterable[Dict[str, Any]]) -> int:
        """Maps remote documents through the entity's field table and merges them one by one."""
        merged = 0
        for remote in remote_records:
            try:
                record = self.mapping.from_remote(remote)
            except ValueError as e:
                logger.warning(f"Skipping remote {self.entity} record: {e}")
                continue
            if self.upsert_one(record):
                merged += 1
        logger.info(f"Merged {merged} remote {self.entity} record(s)")
        return merged

    def mark_synced(self, local_id: str, server_id: Optional[str] = None) -> Dict[str, Any]:
        """Clears the pending state; when the server issued a new id, rewrites the row and its references."""
        server_id = server_id or local_id
        with self.store.transaction():
            if self.get_by_id(local_id, include_deleted=True) is None:
                raise RecordNotFoundError(self.entity, local_id)
            builder = (self._builder()
                       .set("pending_sync", 0)
                       .set("sync_op", None)
                       .set("sync_error", None))
            if server_id != local_id:
                if self.get_by_id(server_id, include_deleted=True) is not None:
                    # A pull already stored the server copy; the acknowledged local row replaces it.
                    logger.warning(f"{self.entity} {server_id} already stored; replacing it with acknowledged {local_id}")
                    self.store.execute_query(f"DELETE FROM {self.table} WHERE id = ?", (server_id,))
                builder.set("id", server_id)
                for table, column in self.mapping.references:
                    self.store.execute_query(f"UPDATE {table} SET {column} = ? WHERE {column} = ?",
                                             (server_id, local_id))
            self._execute(builder.where("id", local_id))
        logger.info(f"Marked {self.entity} {local_id} synced as {server_id}")
        return self.get_by_id(server_id, include_deleted=True)

    def mark_sync_error(self, record_id: str, message: Optional[str] = None) -> None:
        """Records a failed attempt. The row stays pending so the next cycle retries it."""
        message = message or Constants.DEFAULT_SYNC_ERROR
        builder = (self._builder()
                   .set("sync_error", message)
                   .set_expression("pending_sync", "CASE WHEN sync_op IS NULL THEN 0 ELSE 1 END")
                   .where("id", record_id))
        if self._execute(builder) == 0:
            logger.warning(f"mark_sync_error: {self.entity} {record_id} not found")
        else:
            logger.warning(f"Sync error on {self.entity} {record_id}: {message}")


class ChildRecordDAO(EntityDAO):
    """Rows owned by a parent record (bill items, payments, serial numbers, stock additions)."""

    def __init__(self, store: OfflineStore, mapping: EntityMapping, merge_policy: str = MERGE_OVERWRITE):
        super().__init__(store, merge_policy, mapping=mapping)
        self.parent_column = mapping.parent_column
        self.temp_id_tag = mapping.entity.replace("_", "")

    def list_for_parent(self, parent_id: str) -> List[Dict[str, Any]]:
        return self.store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {self.parent_column} = ? AND deleted = 0 "
            f"ORDER BY created_at ASC, rowid ASC", (parent_id,))

    def get_pending_for_parent(self, parent_id: str) -> List[Dict[str, Any]]:
        return self.store.fetch_all(
            f"SELECT * FROM {self.table} WHERE {self.parent_column} = ? AND pending_sync = 1 "
            f"ORDER BY updated_at ASC, rowid ASC", (parent_id,))

    def prune_synced(self, parent_id: str, keep_ids: List[str]) -> int:
        placeholders = ", ".join("?" for _ in keep_ids)
        query = f"DELETE FROM {self.table} WHERE {self.parent_column} = ? AND pending_sync = 0"
        if keep_ids:
            query += f" AND id NOT IN ({placeholders})"
        removed = self.store.execute_query(query, (parent_id, *keep_ids)).rowcount
        if removed:
            logger.debug(f"Removed {removed} stale {self.entity} row(s) for {parent_id}")
        return removed


class CustomersDAO(EntityDAO):
    mapping = CUSTOMERS
    temp_id_tag = "customer"

    def _list_filters(self, search: Optional[str] = None, **filters) -> Tuple[List[str], List[Any]]:
        clauses, params = super()._list_filters(**filters)
        if search:
            term = f"%{search.strip()}%"
            clauses.append("(customer_name LIKE ? OR phone_number LIKE ?)")
            params.extend([term, term])
        return clauses, params


class WorkOrdersDAO(EntityDAO):
    mapping = WORK_ORDERS
    temp_id_tag = "workorder"

    def _list_filters(self, status: Optional[str] = None, customer_id: Optional[str] = None,
                      **filters) -> Tuple[List[str], List[Any]]:
        clauses, params = super()._list_filters(**filters)
        if status:
            clauses.append("status = ?")
            params.append(status)
        if customer_id:
            clauses.append("customer_id = ?")
            params.append(customer_id)
        return clauses, params

    def count_by_status(self) -> Dict[str, int]:
        rows = self.store.fetch_all(
            f"SELECT status, COUNT(*) AS n FROM {self.table} WHERE deleted = 0 GROUP BY status")
        return {row["status"]: row["n"] for row in rows}


class BillsDAO(EntityDAO):
    mapping = BILLS
    temp_id_tag = "local"
    temp_id_prefix = Constants.BILL_TEMP_ID_PREFIX

    def _list_filters(self, customer_id: Optional[str] = None, status: Optional[str] = None,
                      **filters) -> Tuple[List[str], List[Any]]:
        clauses, params = super()._list_filters(**filters)
        if customer_id:
            clauses.append("customer_id = ?")
            params.append(customer_id)
        if status:
            clauses.append("status = ?")
            params.append(status)
        return clauses, params

    @property
    def items(self) -> ChildRecordDAO:
        return self.children["items"]

    @property
    def payments(self) -> ChildRecordDAO:
        return self.children["payment_history"]

    def get_by_id(self, record_id: str, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        bill = super().get_by_id(record_id, include_deleted)
        if bill is not None:
            bill["items"] = self.items.list_for_parent(record_id)
            bill["payment_history"] = self.payments.list_for_parent(record_id)
        return bill

    def mark_pending_update(self, record_id: str, changes: Dict[str, Any],
                            op: str = Constants.SYNC_OP_UPDATE) -> Dict[str, Any]:
        # The service only accepts payments against an existing bill; see record_payment.
        raise InputError(f"Bill {record_id} cannot be edited; record a payment instead")

    @staticmethod
    def _status_for(total: float, received: float) -> str:
        due = total - received
        if total > 0 and due <= 0:
            return "paid"
        if received > 0:
            return "partial"
        return "pending"

    def _new_local_row(self, record: Dict[str, Any]) -> Dict[str, Any]:
        row = super()._new_local_row(record)
        items = record.get("items") or []
        if "subtotal" not in row:
            row["subtotal"] = sum(float(i.get("amount") or (i.get("qty") or 1) * (i.get("price") or 0))
                                  for i in items)
        discount = float(row.get("discount") or 0)
        if "total_amount" not in row:
            row["total_amount"] = max(float(row["subtotal"]) - discount, 0.0)
        received = float(row.get("received_payment") or 0)
        if "due_amount" not in row:
            row["due_amount"] = max(float(row["total_amount"]) - received, 0.0)
        if "status" not in row:
            row["status"] = self._status_for(float(row["total_amount"]), received)
        return row

    def record_payment(self, bill_id: str, amount: float, note: Optional[str] = None,
                       paid_at: Optional[str] = None) -> Dict[str, Any]:
        """Stores a payment locally and queues the bill for an update push."""
        self._guard_server_id(bill_id, Constants.SYNC_OP_UPDATE)
        if amount is None or float(amount) <= 0:
            raise ValidationError("Payment amount must be greater than zero", entity=self.entity, fields=["amount"])
        bill = super().get_by_id(bill_id)
        if bill is None:
            raise RecordNotFoundError(self.entity, bill_id)

        received = float(bill["received_payment"] or 0) + float(amount)
        total = float(bill["total_amount"] or 0)
        now = self.store.now()
        with self.store.transaction():
            self.payments.insert_local({
                "bill_id": bill_id,
                "amount": float(amount),
                "note": note,
                "paid_at": paid_at or now,
            })
            builder = (self._builder()
                       .set("received_payment", received)
                       .set("due_amount", max(total - received, 0.0))
                       .set("status", "paid" if total - received <= 0 else "partial")
                       .set("pending_sync", 1)
                       .set("sync_op", self._coalesce_op(bill["sync_op"], Constants.SYNC_OP_UPDATE))
                       .set("sync_error", None)
                       .set("updated_at", now)
                       .where("id", bill_id))
            self._execute(builder)
        logger.info(f"Recorded payment of {amount} on bill {bill_id}")
        return self.get_by_id(bill_id)

    def get_due_totals_by_customer_ids(self, customer_ids: List[str]) -> Dict[str, float]:
        if not customer_ids:
            return {}
        placeholders = ", ".join("?" for _ in customer_ids)
        rows = self.store.fetch_all(
            f"SELECT customer_id, SUM(due_amount) AS total_due FROM {self.table} "
            f"WHERE deleted = 0 AND customer_id IN ({placeholders}) GROUP BY customer_id",
            tuple(customer_ids))
        return {row["customer_id"]: row["total_due"] or 0 for row in rows}


class ItemsDAO(EntityDAO):
    mapping = ITEMS
    temp_id_tag = "item"

    def _list_filters(self, item_type: Optional[str] = None, **filters) -> Tuple[List[str], List[Any]]:
        clauses, params = super()._list_filters(**filters)
        if item_type:
            clauses.append("item_type = ?")
            params.append(item_type)
        return clauses, params

    @property
    def serial_numbers(self) -> ChildRecordDAO:
        return self.children["serial_numbers"]

    @property
    def stock_history(self) -> ChildRecordDAO:
        return self.children["stock_history"]

    def record_stock_addition(self, item_id: str, qty: Optional[int] = None,
                              serial_numbers: Optional[List[str]] = None) -> Dict[str, Any]:
        """Adds stock locally, either as a quantity or as individual serial numbers."""
        self._guard_server_id(item_id, Constants.SYNC_OP_UPDATE)
        serials = [s.strip() for s in (serial_numbers or []) if s and s.strip()]
        if not serials and (qty is None or int(qty) <= 0):
            raise ValidationError("Provide a positive quantity or at least one serial number",
                                  entity=self.entity, fields=["qty", "serial_numbers"])
        item = self.get_by_id(item_id)
        if item is None:
            raise RecordNotFoundError(self.entity, item_id)

        now = self.store.now()
        with self.store.transaction():
            if serials:
                for serial in serials:
                    self.serial_numbers.insert_local({"item_id": item_id, "serial_no": serial, "added_at": now})
                added = len(serials)
            else:
                added = int(qty)
                self.stock_history.insert_local({"item_id": item_id, "qty": added, "added_at": now})
            # Stock travels through the stock endpoint; the item row itself stays in its current sync state.
            self._execute(self._builder().set("stock_qty", int(item["stock_qty"] or 0) + added).where("id", item_id))
        logger.info(f"Recorded stock addition of {added} on item {item_id}")
        return self.get_by_id(item_id)


class ServicesDAO(EntityDAO):
    mapping = SERVICES
    temp_id_tag = "service"


class BankAccountsDAO(EntityDAO):
    mapping = BANK_ACCOUNTS
    temp_id_tag = "bank"

    def mark_pending_set_primary(self, record_id: str) -> Dict[str, Any]:
        return self.mark_pending_update(record_id, {"is_primary": 1}, op=Constants.SYNC_OP_SET_PRIMARY)

    def get_primary(self, created_by: Optional[str] = None) -> Optional[Dict[str, Any]]:
        query = f"SELECT * FROM {self.table} WHERE deleted = 0 AND is_primary = 1"
        params: Tuple[Any, ...] = ()
        if created_by:
            query += " AND created_by = ?"
            params = (created_by,)
        return self.store.fetch_one(query + " ORDER BY updated_at DESC LIMIT 1", params)


class DashboardMetricsDAO:
    """
    Key/payload cache of the server's dashboard figures.

    Rows are keyed by filter (`period:1month`, `monthYear:5-2024`) and hold the JSON payload exactly as the
    server sent it. The server is authoritative: an upsert always replaces the cached payload, and nothing
    here is ever pushed.
    """

    table = "dashboard_metrics"

    def __init__(self, store: OfflineStore):
        self.store = store

    def upsert(self, key: str, payload: Optional[Dict[str, Any]]) -> None:
        if not key:
            raise InputError("Dashboard metrics key must not be empty")
        self.store.execute_query(
            f"INSERT INTO {self.table} (key, payload, updated_at) VALUES (?, ?, ?) "
            f"ON CONFLICT(key) DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at",
            (key, json.dumps(payload if payload is not None else {}), self.store.now()),
        )
        logger.debug(f"Cached dashboard metrics under '{key}'")

    def get_by_key(self, key: str) -> Optional[Dict[str, Any]]:
        """The cached row with its payload decoded, or None. An unreadable payload decodes to None."""
        row = self.store.fetch_one(f"SELECT * FROM {self.table} WHERE key = ?", (key,))
        if row is None:
            return None
        try:
            row["payload"] = json.loads(row["payload"]) if row["payload"] else None
        except json.JSONDecodeError as e:
            logger.warning(f"Cached dashboard metrics '{key}' are not valid JSON: {e}")
            row["payload"] = None
        return row


@dataclass
class StoreDAOs:
    """The access objects for one store, created once at startup and passed to the sync engine."""
    store: OfflineStore
    customers: CustomersDAO
    work_orders: WorkOrdersDAO
    bills: BillsDAO
    items: ItemsDAO
    services: ServicesDAO
    bank_accounts: BankAccountsDAO
    dashboard_metrics: DashboardMetricsDAO

    @property
    def serial_numbers(self) -> ChildRecordDAO:
        return self.items.serial_numbers

    @property
    def stock_history(self) -> ChildRecordDAO:
        return self.items.stock_history

    def all_pending_counts(self) -> Dict[str, int]:
        return self.store.count_pending()


def create_daos(store: OfflineStore, merge_policy: str = MERGE_OVERWRITE) -> StoreDAOs:
    return StoreDAOs(
        store=store,
        customers=CustomersDAO(store, merge_policy),
        work_orders=WorkOrdersDAO(store, merge_policy),
        bills=BillsDAO(store, merge_policy),
        items=ItemsDAO(store, merge_policy),
        services=ServicesDAO(store, merge_policy),
        bank_accounts=BankAccountsDAO(store, merge_policy),
        dashboard_metrics=DashboardMetricsDAO(store),
    )

#
# End of Entity_DAOs.py
########################################################################################################################
