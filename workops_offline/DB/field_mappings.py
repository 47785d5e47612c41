# field_mappings.py
# Description: One explicit, bidirectional field-mapping table per entity (local snake_case <-> remote camelCase).
#
# The remote service identifies records by `_id` and names fields in camelCase; the local store uses
# snake_case columns. Every translation between the two goes through the tables below, in both directions.
#
# Imports
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple
#
# Local Imports
from workops_offline import Constants
#
########################################################################################################################
#
# Functions:

KIND_TEXT = "text"
KIND_NUMBER = "number"
KIND_INTEGER = "integer"
KIND_FLAG = "flag"
KIND_REFERENCE = "reference"
KIND_TIMESTAMP = "timestamp"

REMOTE_ID_KEY = "_id"

# Columns every synced table carries, in table order.
SYNC_COLUMNS = ("id", "client_id", "created_by", "deleted", "created_at", "updated_at",
                "pending_sync", "sync_op", "sync_error")


def normalize_timestamp(value: Any) -> Any:
    """Renders ISO-8601 timestamps as `YYYY-MM-DDTHH:MM:SS.mmmZ` so they compare correctly as strings."""
    if not isinstance(value, str) or not value:
        return value
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z'


def _value_from_remote(kind: str, value: Any) -> Any:
    if value is None:
        return None
    if kind == KIND_TIMESTAMP:
        return normalize_timestamp(value)
    if kind == KIND_FLAG:
        return 1 if value else 0
    if kind == KIND_NUMBER:
        return float(value) if value != "" else None
    if kind == KIND_INTEGER:
        return int(value) if value != "" else None
    if kind == KIND_REFERENCE:
        # Populated references arrive as embedded documents.
        if isinstance(value, Mapping):
            ref = value.get(REMOTE_ID_KEY)
            return str(ref) if ref is not None else None
        return str(value)
    if kind == KIND_TEXT:
        return str(value)
    return value


def _value_to_remote(kind: str, value: Any) -> Any:
    if value is None:
        return None
    if kind == KIND_FLAG:
        return bool(value)
    if kind == KIND_NUMBER:
        return float(value)
    if kind == KIND_INTEGER:
        return int(value)
    return value


@dataclass(frozen=True)
class FieldMapping:
    local: str
    remote: str
    kind: str = KIND_TEXT
    # Whether the field is part of the create/update payload.
    push: bool = True
    # Key to read on pull when the server returns the field under a different name (e.g. a populated `customer`).
    pull_remote: Optional[str] = None

    @property
    def pull_key(self) -> str:
        return self.pull_remote or self.remote


@dataclass(frozen=True)
class ChildMapping:
    """Child rows embedded in a parent's remote document (bill items, payments, serials, stock history)."""
    remote_key: str
    attribute: str
    entity: str
    parent_column: str


@dataclass(frozen=True)
class EntityMapping:
    entity: str
    table: str
    record_key: Optional[str]
    collection_key: Optional[str]
    fields: Tuple[FieldMapping, ...]
    required: Tuple[str, ...] = ()
    # (table, column) pairs that hold this entity's id and follow it through an id rewrite.
    references: Tuple[Tuple[str, str], ...] = ()
    # (local column, entity label) pairs that must hold a server id before this record can be created remotely.
    dependencies: Tuple[Tuple[str, str], ...] = ()
    children: Tuple[ChildMapping, ...] = ()
    # Column holding the parent id for child entities.
    parent_column: Optional[str] = None
    common_fields: Tuple[FieldMapping, ...] = field(default=(
        FieldMapping("client_id", "clientId", push=False),
        FieldMapping("created_by", "createdBy", KIND_REFERENCE, push=False),
        FieldMapping("created_at", "createdAt", KIND_TIMESTAMP, push=False),
        FieldMapping("updated_at", "updatedAt", KIND_TIMESTAMP, push=False),
    ))

    @property
    def business_columns(self) -> Tuple[str, ...]:
        return tuple(f.local for f in self.fields)

    @property
    def columns(self) -> Tuple[str, ...]:
        return SYNC_COLUMNS + self.business_columns

    def field_for(self, local_name: str) -> FieldMapping:
        for f in self.fields + self.common_fields:
            if f.local == local_name:
                return f
        raise KeyError(f"No mapping for local field '{local_name}' on {self.entity}")

    def from_remote(self, remote: Mapping[str, Any], fallback_id: Optional[str] = None) -> Dict[str, Any]:
        """Translates one remote document into a local row dict (sync state cleared, children translated)."""
        remote_id = remote.get(REMOTE_ID_KEY)
        if remote_id is None:
            if fallback_id is None:
                raise ValueError(f"Remote {self.entity} record has no '{REMOTE_ID_KEY}'")
            remote_id = fallback_id
        record: Dict[str, Any] = {"id": str(remote_id)}
        for f in self.common_fields + self.fields:
            if f.pull_key in remote:
                record[f.local] = _value_from_remote(f.kind, remote[f.pull_key])
        if not record.get("client_id"):
            record["client_id"] = record["id"]
        record["deleted"] = 1 if remote.get("deleted") else 0
        record["pending_sync"] = 0
        record["sync_op"] = None
        record["sync_error"] = None

        for child in self.children:
            child_docs = remote.get(child.remote_key)
            if not isinstance(child_docs, list):
                continue
            child_mapping = MAPPINGS[child.entity]
            rows: List[Dict[str, Any]] = []
            for index, doc in enumerate(child_docs):
                if not isinstance(doc, Mapping):
                    continue
                # Children without their own id get a stable one so repeated pulls update rather than duplicate.
                row = child_mapping.from_remote(doc, fallback_id=f"{record['id']}:{child.remote_key}:{index}")
                row[child.parent_column] = record["id"]
                if "created_at" not in row and "created_at" in record:
                    row["created_at"] = record["created_at"]
                if "updated_at" not in row and "updated_at" in record:
                    row["updated_at"] = record["updated_at"]
                rows.append(row)
            record[child.attribute] = rows
        return record

    def to_remote(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Builds the normalized push payload from a local row."""
        payload: Dict[str, Any] = {}
        for f in self.fields:
            if f.push and f.local in record:
                payload[f.remote] = _value_to_remote(f.kind, record[f.local])
        return payload


CUSTOMERS = EntityMapping(
    entity=Constants.ENTITY_CUSTOMERS,
    table="customers",
    record_key="customer",
    collection_key="customers",
    fields=(
        FieldMapping("customer_name", "customerName"),
        FieldMapping("phone_number", "phoneNumber"),
        FieldMapping("whatsapp_number", "whatsappNumber"),
        FieldMapping("address", "address"),
    ),
    required=("customer_name", "phone_number"),
    references=(("work_orders", "customer_id"), ("bills", "customer_id")),
)

WORK_ORDERS = EntityMapping(
    entity=Constants.ENTITY_WORK_ORDERS,
    table="work_orders",
    record_key="workOrder",
    collection_key="workOrders",
    fields=(
        FieldMapping("customer_id", "customerId", KIND_REFERENCE, pull_remote="customer"),
        FieldMapping("work_order_number", "workOrderNumber", push=False),
        FieldMapping("note", "note"),
        FieldMapping("schedule_date", "scheduleDate"),
        FieldMapping("has_scheduled_time", "hasScheduledTime", KIND_FLAG),
        FieldMapping("schedule_time", "scheduleTime"),
        FieldMapping("status", "status"),
        FieldMapping("completed_at", "completedAt", KIND_TIMESTAMP, push=False),
        FieldMapping("notification_sent", "notificationSent", KIND_FLAG, push=False),
        FieldMapping("bill_id", "billId", KIND_REFERENCE, push=False, pull_remote="bill"),
    ),
    required=("customer_id", "schedule_date"),
    references=(("bills", "work_order_id"),),
    dependencies=(("customer_id", "customer"),),
)

BILL_ITEMS = EntityMapping(
    entity=Constants.ENTITY_BILL_ITEMS,
    table="bill_items",
    record_key=None,
    collection_key=None,
    fields=(
        FieldMapping("bill_id", "billId", KIND_REFERENCE, push=False),
        FieldMapping("item_type", "itemType"),
        FieldMapping("item_id", "itemId", KIND_REFERENCE),
        FieldMapping("item_name", "itemName", push=False),
        FieldMapping("serial_number", "serialNumber"),
        FieldMapping("qty", "qty", KIND_INTEGER),
        FieldMapping("price", "price", KIND_NUMBER, push=False),
        FieldMapping("purchase_price", "purchasePrice", KIND_NUMBER, push=False),
        FieldMapping("amount", "amount", KIND_NUMBER, push=False),
    ),
    required=("bill_id",),
    parent_column="bill_id",
)

PAYMENTS = EntityMapping(
    entity=Constants.ENTITY_PAYMENTS,
    table="payment_history",
    record_key=None,
    collection_key=None,
    fields=(
        FieldMapping("bill_id", "billId", KIND_REFERENCE, push=False),
        FieldMapping("amount", "amount", KIND_NUMBER),
        FieldMapping("paid_at", "paidAt", KIND_TIMESTAMP, push=False),
        FieldMapping("note", "note"),
    ),
    required=("bill_id",),
    parent_column="bill_id",
)

BILLS = EntityMapping(
    entity=Constants.ENTITY_BILLS,
    table="bills",
    record_key="bill",
    collection_key="bills",
    fields=(
        FieldMapping("customer_id", "customerId", KIND_REFERENCE, pull_remote="customer"),
        FieldMapping("bill_number", "billNumber", push=False),
        FieldMapping("subtotal", "subtotal", KIND_NUMBER, push=False),
        FieldMapping("discount", "discount", KIND_NUMBER),
        FieldMapping("total_amount", "totalAmount", KIND_NUMBER, push=False),
        FieldMapping("received_payment", "receivedPayment", KIND_NUMBER),
        FieldMapping("due_amount", "dueAmount", KIND_NUMBER, push=False),
        FieldMapping("payment_method", "paymentMethod"),
        FieldMapping("status", "status", push=False),
        FieldMapping("work_order_id", "workOrderId", KIND_REFERENCE),
    ),
    required=("customer_id",),
    references=(("bill_items", "bill_id"), ("payment_history", "bill_id"), ("work_orders", "bill_id")),
    dependencies=(("customer_id", "customer"), ("work_order_id", "work order")),
    children=(
        ChildMapping("items", "items", Constants.ENTITY_BILL_ITEMS, "bill_id"),
        ChildMapping("paymentHistory", "payment_history", Constants.ENTITY_PAYMENTS, "bill_id"),
    ),
)

SERIAL_NUMBERS = EntityMapping(
    entity=Constants.ENTITY_SERIAL_NUMBERS,
    table="serial_numbers",
    record_key=None,
    collection_key=None,
    fields=(
        FieldMapping("item_id", "itemId", KIND_REFERENCE, push=False),
        FieldMapping("serial_no", "serialNo"),
        FieldMapping("status", "status", push=False),
        FieldMapping("customer_name", "customerName", push=False),
        FieldMapping("bill_number", "billNumber", push=False),
        FieldMapping("added_at", "addedAt", KIND_TIMESTAMP, push=False),
    ),
    required=("item_id", "serial_no"),
    parent_column="item_id",
)

STOCK_HISTORY = EntityMapping(
    entity=Constants.ENTITY_STOCK_HISTORY,
    table="stock_history",
    record_key=None,
    collection_key=None,
    fields=(
        FieldMapping("item_id", "itemId", KIND_REFERENCE, push=False),
        FieldMapping("qty", "qty", KIND_INTEGER),
        FieldMapping("added_at", "addedAt", KIND_TIMESTAMP, push=False),
    ),
    required=("item_id",),
    parent_column="item_id",
)

ITEMS = EntityMapping(
    entity=Constants.ENTITY_ITEMS,
    table="items",
    record_key="item",
    collection_key="items",
    fields=(
        FieldMapping("item_type", "itemType"),
        FieldMapping("item_name", "itemName"),
        FieldMapping("unit", "unit"),
        FieldMapping("warranty", "warranty"),
        FieldMapping("mrp", "mrp", KIND_NUMBER),
        FieldMapping("purchase_price", "purchasePrice", KIND_NUMBER),
        FieldMapping("sale_price", "salePrice", KIND_NUMBER),
        FieldMapping("stock_qty", "stockQty", KIND_INTEGER, push=False),
    ),
    required=("item_name",),
    references=(("serial_numbers", "item_id"), ("stock_history", "item_id"), ("bill_items", "item_id")),
    children=(
        ChildMapping("serialNumbers", "serial_numbers", Constants.ENTITY_SERIAL_NUMBERS, "item_id"),
        ChildMapping("stockHistory", "stock_history", Constants.ENTITY_STOCK_HISTORY, "item_id"),
    ),
)

SERVICES = EntityMapping(
    entity=Constants.ENTITY_SERVICES,
    table="services",
    record_key="service",
    collection_key="services",
    fields=(
        FieldMapping("service_name", "serviceName"),
        FieldMapping("service_price", "servicePrice", KIND_NUMBER),
    ),
    required=("service_name",),
)

BANK_ACCOUNTS = EntityMapping(
    entity=Constants.ENTITY_BANK_ACCOUNTS,
    table="bank_accounts",
    record_key="bankAccount",
    collection_key="bankAccounts",
    fields=(
        FieldMapping("bank_name", "bankName"),
        FieldMapping("account_number", "accountNumber"),
        FieldMapping("ifsc_code", "ifscCode"),
        FieldMapping("account_holder_name", "accountHolderName"),
        FieldMapping("upi_id", "upiId"),
        FieldMapping("is_primary", "isPrimary", KIND_FLAG),
    ),
    required=("bank_name", "account_number", "account_holder_name"),
)

MAPPINGS: Dict[str, EntityMapping] = {
    m.entity: m for m in (CUSTOMERS, WORK_ORDERS, BILLS, BILL_ITEMS, PAYMENTS, ITEMS,
                          SERIAL_NUMBERS, STOCK_HISTORY, SERVICES, BANK_ACCOUNTS)
}

#
# End of field_mappings.py
########################################################################################################################
