# push_engine.py
# Description: Drains each entity's pending-operation queue against the remote service.
#
# Records are pushed one at a time, oldest pending first. A failed record is marked with `sync_error` and the
# batch moves on; only an AuthenticationError stops the batch, because every later call would fail the same way.
#
# Imports
import abc
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from workops_offline import Constants
from workops_offline.DB.Entity_DAOs import ChildRecordDAO, EntityDAO, StoreDAOs
from workops_offline.DB.Offline_Store_DB import is_client_temp_id
from workops_offline.DB.field_mappings import MAPPINGS
from workops_offline.workops_api.client import WorkOpsAPIClient
from workops_offline.workops_api.exceptions import APIBusinessError, AuthenticationError
from workops_offline.workops_api.schemas import ApiEnvelope, StockUpdateRequest
from workops_offline.Sync.sync_errors import SyncError, is_transient_error
#
########################################################################################################################
#
# Functions:

@dataclass
class PushReport:
    entity: str
    pushed: int = 0
    failed: int = 0
    # Records held back on purpose (waiting for a server id); not failures.
    deferred: int = 0
    # Failures a later attempt may get past (network, 5xx). Subset of `failed`.
    transient: int = 0

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    def add(self, other: "PushReport") -> "PushReport":
        self.pushed += other.pushed
        self.failed += other.failed
        self.deferred += other.deferred
        self.transient += other.transient
        return self

    def __str__(self):
        return (f"{self.entity}: pushed={self.pushed} failed={self.failed} transient={self.transient} "
                f"deferred={self.deferred}")


def _ensure_success(envelope: ApiEnvelope, entity: str, operation: str) -> None:
    if not envelope.success:
        raise APIBusinessError(envelope.message or f"{entity} {operation} failed",
                               response_data=envelope.model_dump())


class EntityPusher:
    """
    Pushes the pending records of one entity table.

    Subclasses override `build_create_payload` / `build_update_payload` or the individual `push_*` steps
    where the remote contract differs from the plain create/update/delete/set_primary endpoints.
    """

    def __init__(self, dao: EntityDAO, client: WorkOpsAPIClient):
        self.dao = dao
        self.client = client
        self.mapping = dao.mapping
        self.entity = dao.entity

    # --- Payloads ---
    def build_create_payload(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return self.mapping.to_remote(record)

    def build_update_payload(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return self.mapping.to_remote(record)

    # --- Deferral ---
    def deferral_reason(self, record: Dict[str, Any]) -> Optional[str]:
        """The message to record when the record cannot be sent yet, or None."""
        op = record["sync_op"]
        if op in Constants.GUARDED_SYNC_OPS and is_client_temp_id(record["id"]):
            return Constants.WAITING_FOR_SERVER_ID[op]
        if op != Constants.SYNC_OP_DELETE:
            for column, label in self.mapping.dependencies:
                if is_client_temp_id(record.get(column)):
                    return Constants.WAITING_FOR_REFERENCE.format(entity=label)
        return None

    # --- Remote operations ---
    async def push_create(self, record: Dict[str, Any]) -> str:
        envelope = await self.client.call(self.entity, "create", payload=self.build_create_payload(record))
        _ensure_success(envelope, self.entity, "create")
        server_id = envelope.record_id(self.mapping.record_key)
        if not server_id:
            raise APIBusinessError(f"{self.entity} create response has no '{self.mapping.record_key}._id'",
                                   response_data=envelope.model_dump())
        self.dao.mark_synced(record["id"], server_id)
        return server_id

    async def push_update(self, record: Dict[str, Any]) -> None:
        envelope = await self.client.call(self.entity, "update", record_id=record["id"],
                                          payload=self.build_update_payload(record))
        _ensure_success(envelope, self.entity, "update")
        self.dao.mark_synced(record["id"], record["id"])

    async def push_delete(self, record: Dict[str, Any]) -> None:
        envelope = await self.client.call(self.entity, "delete", record_id=record["id"])
        _ensure_success(envelope, self.entity, "delete")
        self.dao.mark_synced(record["id"], record["id"])

    async def push_set_primary(self, record: Dict[str, Any]) -> None:
        envelope = await self.client.call(self.entity, "set_primary", record_id=record["id"])
        _ensure_success(envelope, self.entity, "set_primary")
        self.dao.mark_synced(record["id"], record["id"])

    async def _dispatch(self, record: Dict[str, Any]) -> None:
        op = record["sync_op"]
        if op == Constants.SYNC_OP_CREATE:
            server_id = await self.push_create(record)
            logger.info(f"Created {self.entity} {record['id']} remotely as {server_id}")
        elif op == Constants.SYNC_OP_UPDATE:
            await self.push_update(record)
        elif op == Constants.SYNC_OP_DELETE:
            await self.push_delete(record)
        elif op == Constants.SYNC_OP_SET_PRIMARY:
            await self.push_set_primary(record)
        else:
            raise SyncError(f"Unknown sync_op '{op}' on {self.entity} {record['id']}")

    # --- Batch ---
    async def push_pending(self) -> PushReport:
        report = PushReport(self.entity)
        pending = self.dao.get_pending()
        if not pending:
            return report
        logger.info(f"Pushing {len(pending)} pending {self.entity} record(s)")
        for record in pending:
            await self._push_one(record, report)
        logger.info(f"Push finished: {report}")
        return report

    async def _push_one(self, record: Dict[str, Any], report: PushReport) -> None:
        record_id = record["id"]
        reason = self.deferral_reason(record)
        if reason:
            self.dao.mark_sync_error(record_id, reason)
            report.deferred += 1
            return
        try:
            await self._dispatch(record)
            report.pushed += 1
        except AuthenticationError as e:
            self.dao.mark_sync_error(record_id, str(e) or Constants.ALERT_AUTH_REQUIRED)
            raise
        except Exception as e:
            logger.error(f"Push of {self.entity} {record_id} ({record['sync_op']}) failed: {e}")
            self.dao.mark_sync_error(record_id, str(e) or Constants.DEFAULT_SYNC_ERROR)
            report.failed += 1
            if is_transient_error(e):
                report.transient += 1


class CustomersPusher(EntityPusher):
    pass


class WorkOrdersPusher(EntityPusher):
    pass


class BillsPusher(EntityPusher):
    """
    Bills create with their line items; an update sends the bill's pending payments.
    The service has no bill delete, so a pending delete stays local with a sync_error.
    """

    def deferral_reason(self, record: Dict[str, Any]) -> Optional[str]:
        reason = super().deferral_reason(record)
        if reason is None and record["sync_op"] == Constants.SYNC_OP_DELETE:
            return Constants.DELETE_NOT_SUPPORTED
        if reason is None and record["sync_op"] == Constants.SYNC_OP_CREATE:
            for item in self.dao.items.list_for_parent(record["id"]):
                if is_client_temp_id(item.get("item_id")):
                    return Constants.WAITING_FOR_REFERENCE.format(entity="item")
        return reason

    def build_create_payload(self, record: Dict[str, Any]) -> Dict[str, Any]:
        payload = self.mapping.to_remote(record)
        payload["discount"] = payload.get("discount") or 0
        payload["receivedPayment"] = payload.get("receivedPayment") or 0
        payload["paymentMethod"] = payload.get("paymentMethod") or "cash"
        item_mapping = MAPPINGS[Constants.ENTITY_BILL_ITEMS]
        items = []
        for item in self.dao.items.list_for_parent(record["id"]):
            line = item_mapping.to_remote(item)
            line["qty"] = line.get("qty") or 1
            items.append(line)
        payload["items"] = items
        return payload

    async def push_create(self, record: Dict[str, Any]) -> str:
        server_id = await super().push_create(record)
        # Child rows were re-pointed at the server id by mark_synced and travelled inside the create body.
        for child_dao in (self.dao.items, self.dao.payments):
            for child in child_dao.get_pending_for_parent(server_id):
                child_dao.mark_synced(child["id"])
        return server_id

    async def push_update(self, record: Dict[str, Any]) -> None:
        payments = self.dao.payments
        for payment in payments.get_pending_for_parent(record["id"]):
            envelope = await self.client.call(self.entity, "payment", record_id=record["id"], payload={
                "amount": payment["amount"],
                "note": payment.get("note") or "",
            })
            _ensure_success(envelope, self.entity, "payment")
            payments.mark_synced(payment["id"])
        self.dao.mark_synced(record["id"], record["id"])


class ItemsPusher(EntityPusher):
    pass


class ServicesPusher(EntityPusher):
    pass


class BankAccountsPusher(EntityPusher):
    pass


class StockPusher(abc.ABC):
    """
    Sends pending stock additions for one child table, batched per item through the stock endpoint.
    Additions for items that are still waiting for their server id are deferred.
    """

    entity = "stock"

    def __init__(self, dao: ChildRecordDAO, client: WorkOpsAPIClient):
        self.dao = dao
        self.client = client

    @abc.abstractmethod
    def build_request(self, rows: List[Dict[str, Any]]) -> Optional[StockUpdateRequest]:
        """The stock request for one item's pending rows, or None when nothing needs sending."""

    async def push_pending(self) -> PushReport:
        report = PushReport(self.dao.entity)
        by_item: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
        for row in self.dao.get_pending():
            if is_client_temp_id(row["item_id"]):
                self.dao.mark_sync_error(row["id"], Constants.WAITING_FOR_REFERENCE.format(entity="item"))
                report.deferred += 1
                continue
            by_item.setdefault(row["item_id"], []).append(row)

        for item_id, rows in by_item.items():
            try:
                request = self.build_request(rows)
                if request is not None:
                    envelope = await self.client.call(Constants.ENTITY_ITEMS, "stock", record_id=item_id,
                                                      payload=request.to_payload())
                    _ensure_success(envelope, Constants.ENTITY_ITEMS, "stock")
                for row in rows:
                    self.dao.mark_synced(row["id"])
                report.pushed += len(rows)
            except AuthenticationError as e:
                for row in rows:
                    self.dao.mark_sync_error(row["id"], str(e) or Constants.ALERT_AUTH_REQUIRED)
                raise
            except Exception as e:
                logger.error(f"Stock push for item {item_id} ({self.dao.entity}) failed: {e}")
                for row in rows:
                    self.dao.mark_sync_error(row["id"], str(e) or Constants.DEFAULT_SYNC_ERROR)
                report.failed += len(rows)
                if is_transient_error(e):
                    report.transient += len(rows)
        if by_item or report.deferred:
            logger.info(f"Push finished: {report}")
        return report


class SerialNumbersPusher(StockPusher):
    def build_request(self, rows: List[Dict[str, Any]]) -> Optional[StockUpdateRequest]:
        return StockUpdateRequest(serial_numbers=[row["serial_no"] for row in rows])


class StockHistoryPusher(StockPusher):
    def build_request(self, rows: List[Dict[str, Any]]) -> Optional[StockUpdateRequest]:
        total = sum(int(row.get("qty") or 0) for row in rows)
        if total <= 0:
            # Nothing to send; the rows are acknowledged locally.
            return None
        return StockUpdateRequest(stock_qty=total)


class InventoryPusher:
    """Items, then services, then serial numbers, then stock quantities."""

    entity = "inventory"

    def __init__(self, pushers: List[Any]):
        self.pushers = pushers

    async def push_pending(self) -> PushReport:
        report = PushReport(self.entity)
        for pusher in self.pushers:
            report.add(await pusher.push_pending())
        return report


def build_pushers(daos: StoreDAOs, client: WorkOpsAPIClient) -> List[Any]:
    """Pushers in cycle order: customers, work orders, bills, inventory, bank accounts."""
    return [
        CustomersPusher(daos.customers, client),
        WorkOrdersPusher(daos.work_orders, client),
        BillsPusher(daos.bills, client),
        InventoryPusher([
            ItemsPusher(daos.items, client),
            ServicesPusher(daos.services, client),
            SerialNumbersPusher(daos.serial_numbers, client),
            StockHistoryPusher(daos.stock_history, client),
        ]),
        BankAccountsPusher(daos.bank_accounts, client),
    ]

#
# End of push_engine.py
########################################################################################################################
