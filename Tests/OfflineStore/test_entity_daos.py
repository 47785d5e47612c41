# test_entity_daos.py
import unittest

from workops_offline import Constants
from workops_offline.DB.Entity_DAOs import (
    create_daos,
    PageSpec,
    MERGE_OVERWRITE,
    MERGE_SKIP_PENDING,
    MERGE_PRESERVE_SYNC_STATE,
)
from workops_offline.DB.Offline_Store_DB import (
    OfflineStore,
    ValidationError,
    RecordNotFoundError,
    NotYetSyncedError,
    InputError,
)


def _assert_sync_pairing(testcase, row):
    if row["pending_sync"]:
        testcase.assertIsNotNone(row["sync_op"])
    else:
        testcase.assertIsNone(row["sync_op"])


class BaseDAOTestCase(unittest.TestCase):
    merge_policy = MERGE_OVERWRITE

    def setUp(self):
        self.store = OfflineStore(':memory:')
        self.daos = create_daos(self.store, merge_policy=self.merge_policy)

    def tearDown(self):
        self.store.close_connection()

    def _synced_customer(self, customer_id="cust-1", name="Asha", updated_at="2024-01-01T00:00:00.000Z"):
        self.daos.customers.upsert_one({
            "id": customer_id, "customer_name": name, "phone_number": "555-0100",
            "created_at": updated_at, "updated_at": updated_at,
        })
        return self.daos.customers.get_by_id(customer_id)


class TestInsertLocal(BaseDAOTestCase):

    def test_insert_local_marks_pending_create(self):
        record = self.daos.customers.insert_local({"customer_name": "Asha", "phone_number": "555-0100"})
        self.assertTrue(record["id"].startswith("client-customer-"))
        self.assertEqual(record["client_id"], record["id"])
        self.assertEqual(record["pending_sync"], 1)
        self.assertEqual(record["sync_op"], Constants.SYNC_OP_CREATE)
        self.assertIsNone(record["sync_error"])
        self.assertIsNotNone(record["created_at"])
        self.assertEqual(record["created_at"], record["updated_at"])

    def test_insert_local_keeps_given_id(self):
        record = self.daos.bank_accounts.insert_local({
            "id": "client-bank-1700000000000", "bank_name": "First Bank",
            "account_number": "0001", "account_holder_name": "Asha",
        })
        self.assertEqual(record["id"], "client-bank-1700000000000")

    def test_blank_required_field_writes_nothing(self):
        with self.assertRaises(ValidationError) as ctx:
            self.daos.customers.insert_local({"customer_name": "  ", "phone_number": "555"})
        self.assertIn("customer_name", ctx.exception.fields)
        self.assertEqual(self.daos.customers.count(), 0)

    def test_unknown_field_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.daos.services.insert_local({"service_name": "Fix", "colour": "red"})

    def test_bill_ids_use_bill_prefix_and_totals(self):
        bill = self.daos.bills.insert_local({
            "customer_id": "cust-1",
            "discount": 10,
            "received_payment": 40,
            "items": [
                {"item_type": "item", "item_id": "item-1", "qty": 2, "price": 30},
                {"item_type": "service", "item_id": "svc-1", "qty": 1, "price": 50, "amount": 50},
            ],
        })
        self.assertTrue(bill["id"].startswith(Constants.BILL_TEMP_ID_PREFIX))
        self.assertEqual(bill["subtotal"], 110)
        self.assertEqual(bill["total_amount"], 100)
        self.assertEqual(bill["due_amount"], 60)
        self.assertEqual(bill["status"], "partial")
        self.assertEqual(len(bill["items"]), 2)
        self.assertTrue(all(item["bill_id"] == bill["id"] for item in bill["items"]))
        self.assertTrue(all(item["sync_op"] == Constants.SYNC_OP_CREATE for item in bill["items"]))


class TestListAndGet(BaseDAOTestCase):

    def test_list_orders_by_updated_at_desc_and_skips_tombstones(self):
        self._synced_customer("c1", "Old", "2024-01-01T00:00:00.000Z")
        self._synced_customer("c2", "New", "2024-03-01T00:00:00.000Z")
        self._synced_customer("c3", "Mid", "2024-02-01T00:00:00.000Z")
        self.daos.customers.mark_pending_delete("c3")

        names = [c["customer_name"] for c in self.daos.customers.list()]
        self.assertEqual(names, ["New", "Old"])
        self.assertEqual(self.daos.customers.count(), 2)

    def test_pagination(self):
        for i in range(5):
            self._synced_customer(f"c{i}", f"Name {i}", f"2024-01-0{i + 1}T00:00:00.000Z")
        first = self.daos.customers.list(PageSpec.for_page(1, per_page=2))
        second = self.daos.customers.list(PageSpec.for_page(2, per_page=2))
        third = self.daos.customers.list(PageSpec.for_page(3, per_page=2))
        self.assertEqual([c["id"] for c in first], ["c4", "c3"])
        self.assertEqual([c["id"] for c in second], ["c2", "c1"])
        self.assertEqual([c["id"] for c in third], ["c0"])

    def test_page_spec_validation(self):
        with self.assertRaises(ValueError):
            PageSpec(limit=0)
        with self.assertRaises(ValueError):
            PageSpec.for_page(0)

    def test_filters(self):
        self._synced_customer("c1", "Asha Rao")
        self._synced_customer("c2", "Ben Lee")
        self.assertEqual([c["id"] for c in self.daos.customers.list(search="asha")], ["c1"])
        with self.assertRaises(InputError):
            self.daos.services.list(colour="red")

    def test_get_by_id_hides_tombstones_unless_asked(self):
        self._synced_customer("c1")
        self.daos.customers.mark_pending_delete("c1")
        self.assertIsNone(self.daos.customers.get_by_id("c1"))
        self.assertEqual(self.daos.customers.get_by_id("c1", include_deleted=True)["deleted"], 1)

    def test_get_pending_is_oldest_first(self):
        self._synced_customer("c1", updated_at="2024-01-01T00:00:00.000Z")
        self.daos.customers.upsert_one({"id": "c2", "customer_name": "B", "updated_at": "2023-06-01T00:00:00.000Z",
                                        "sync_op": Constants.SYNC_OP_UPDATE})
        self.daos.customers.upsert_one({"id": "c3", "customer_name": "C", "updated_at": "2023-01-01T00:00:00.000Z",
                                        "sync_op": Constants.SYNC_OP_UPDATE})
        self.assertEqual([c["id"] for c in self.daos.customers.get_pending()], ["c3", "c2"])


class TestPendingMutations(BaseDAOTestCase):

    def test_mark_pending_update_writes_only_given_fields(self):
        before = self._synced_customer("c1", "Asha")
        after = self.daos.customers.mark_pending_update("c1", {"address": "12 Main St"})
        self.assertEqual(after["customer_name"], "Asha")
        self.assertEqual(after["address"], "12 Main St")
        self.assertEqual(after["pending_sync"], 1)
        self.assertEqual(after["sync_op"], Constants.SYNC_OP_UPDATE)
        self.assertGreater(after["updated_at"], before["updated_at"])

    def test_mark_pending_update_clears_sync_error(self):
        self._synced_customer("c1")
        self.daos.customers.mark_pending_update("c1", {"address": "A"})
        self.daos.customers.mark_sync_error("c1", "HTTP 500")
        after = self.daos.customers.mark_pending_update("c1", {"address": "B"})
        self.assertIsNone(after["sync_error"])

    def test_edit_of_pending_create_stays_create(self):
        self.daos.customers.upsert_one({"id": "c9", "customer_name": "Asha", "phone_number": "1",
                                        "updated_at": "2024-01-01T00:00:00.000Z",
                                        "sync_op": Constants.SYNC_OP_CREATE})
        edited = self.daos.customers.mark_pending_update("c9", {"address": "A"})
        self.assertEqual(edited["sync_op"], Constants.SYNC_OP_CREATE)

    def test_repeated_updates_stay_update(self):
        self._synced_customer("c1")
        self.daos.customers.mark_pending_update("c1", {"address": "A"})
        second = self.daos.customers.mark_pending_update("c1", {"address": "B"})
        self.assertEqual(second["sync_op"], Constants.SYNC_OP_UPDATE)
        self.assertEqual(second["address"], "B")
        self.assertEqual(len(self.daos.customers.get_pending()), 1)

    def test_update_of_missing_record(self):
        with self.assertRaises(RecordNotFoundError):
            self.daos.customers.mark_pending_update("nope", {"address": "A"})

    def test_update_rejects_blank_required_field(self):
        self._synced_customer("c1")
        with self.assertRaises(ValidationError):
            self.daos.customers.mark_pending_update("c1", {"customer_name": ""})

    def test_mark_pending_delete_tombstones(self):
        self._synced_customer("c1")
        self.daos.customers.mark_pending_delete("c1")
        row = self.daos.customers.get_by_id("c1", include_deleted=True)
        self.assertEqual((row["deleted"], row["pending_sync"], row["sync_op"]), (1, 1, Constants.SYNC_OP_DELETE))

    def test_set_primary(self):
        self.daos.bank_accounts.upsert_one({"id": "acct-1", "bank_name": "X", "account_number": "1",
                                            "is_primary": 0, "updated_at": "2024-01-01T00:00:00.000Z"})
        row = self.daos.bank_accounts.mark_pending_set_primary("acct-1")
        self.assertEqual(row["is_primary"], 1)
        self.assertEqual(row["sync_op"], Constants.SYNC_OP_SET_PRIMARY)
        self.assertEqual(self.daos.bank_accounts.get_primary()["id"], "acct-1")

    def test_set_primary_after_update_stays_update(self):
        self.daos.bank_accounts.upsert_one({"id": "acct-1", "bank_name": "X", "account_number": "1",
                                            "updated_at": "2024-01-01T00:00:00.000Z"})
        self.daos.bank_accounts.mark_pending_update("acct-1", {"upi_id": "x@upi"})
        row = self.daos.bank_accounts.mark_pending_set_primary("acct-1")
        self.assertEqual(row["sync_op"], Constants.SYNC_OP_UPDATE)
        self.assertEqual(row["is_primary"], 1)


class TestTempIdGuard(BaseDAOTestCase):

    def setUp(self):
        super().setUp()
        self.account = self.daos.bank_accounts.insert_local({
            "id": "client-bank-1700000000000", "bank_name": "First Bank",
            "account_number": "0001", "account_holder_name": "Asha",
        })

    def _assert_unchanged_except_error(self, message):
        row = self.daos.bank_accounts.get_by_id(self.account["id"], include_deleted=True)
        self.assertEqual(row["sync_error"], message)
        for column in ("bank_name", "deleted", "is_primary", "pending_sync", "sync_op", "updated_at"):
            self.assertEqual(row[column], self.account[column], column)

    def test_update_on_temp_id(self):
        with self.assertRaises(NotYetSyncedError) as ctx:
            self.daos.bank_accounts.mark_pending_update(self.account["id"], {"bank_name": "Other"})
        self.assertEqual(ctx.exception.identifier, self.account["id"])
        self._assert_unchanged_except_error("Waiting for server id to update")

    def test_delete_on_temp_id(self):
        with self.assertRaises(NotYetSyncedError):
            self.daos.bank_accounts.mark_pending_delete(self.account["id"])
        self._assert_unchanged_except_error("Waiting for server id to delete")

    def test_set_primary_on_temp_id(self):
        with self.assertRaises(NotYetSyncedError):
            self.daos.bank_accounts.mark_pending_set_primary(self.account["id"])
        self._assert_unchanged_except_error("Waiting for server id to set primary")


class TestSyncTransitions(BaseDAOTestCase):

    def test_mark_synced_rewrites_id(self):
        self.daos.bank_accounts.insert_local({
            "id": "client-bank-1700000000000", "bank_name": "First Bank",
            "account_number": "0001", "account_holder_name": "Asha",
        })
        row = self.daos.bank_accounts.mark_synced("client-bank-1700000000000", "abc123")
        self.assertEqual(row["id"], "abc123")
        self.assertEqual(row["client_id"], "client-bank-1700000000000")
        self.assertEqual((row["pending_sync"], row["sync_op"], row["sync_error"]), (0, None, None))
        self.assertIsNone(self.daos.bank_accounts.get_by_id("client-bank-1700000000000"))

    def test_mark_synced_repoints_references(self):
        customer = self.daos.customers.insert_local({"customer_name": "Asha", "phone_number": "1"})
        order = self.daos.work_orders.insert_local({"customer_id": customer["id"], "schedule_date": "2024-05-01"})
        bill = self.daos.bills.insert_local({"customer_id": customer["id"], "work_order_id": order["id"]})

        self.daos.customers.mark_synced(customer["id"], "cust-srv")
        self.assertEqual(self.daos.work_orders.get_by_id(order["id"])["customer_id"], "cust-srv")
        self.assertEqual(self.daos.bills.get_by_id(bill["id"])["customer_id"], "cust-srv")

        self.daos.work_orders.mark_synced(order["id"], "wo-srv")
        self.assertEqual(self.daos.bills.get_by_id(bill["id"])["work_order_id"], "wo-srv")

    def test_mark_synced_replaces_pulled_duplicate(self):
        local = self.daos.services.insert_local({"service_name": "Fix", "service_price": 10})
        self.daos.services.upsert_one({"id": "svc-srv", "service_name": "Fix (server)",
                                       "updated_at": "2024-01-01T00:00:00.000Z"})
        self.daos.services.mark_synced(local["id"], "svc-srv")
        rows = self.store.fetch_all("SELECT * FROM services")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["service_name"], "Fix")

    def test_mark_synced_missing(self):
        with self.assertRaises(RecordNotFoundError):
            self.daos.services.mark_synced("nope", "x")

    def test_mark_sync_error_keeps_pending(self):
        self._synced_customer("c1")
        self.daos.customers.mark_pending_update("c1", {"address": "A"})
        self.daos.customers.mark_sync_error("c1")
        row = self.daos.customers.get_by_id("c1")
        self.assertEqual(row["sync_error"], Constants.DEFAULT_SYNC_ERROR)
        self.assertEqual(row["pending_sync"], 1)
        _assert_sync_pairing(self, row)


class TestUpsertMerge(BaseDAOTestCase):

    def test_newer_incoming_wins(self):
        self._synced_customer("c1", "Local", "2024-01-01T00:00:00.000Z")
        self.assertTrue(self.daos.customers.upsert_one(
            {"id": "c1", "customer_name": "Remote", "updated_at": "2024-01-02T00:00:00.000Z"}))
        self.assertEqual(self.daos.customers.get_by_id("c1")["customer_name"], "Remote")

    def test_tie_favors_incoming(self):
        self._synced_customer("c1", "Local", "2024-01-01T00:00:00.000Z")
        self.daos.customers.upsert_one({"id": "c1", "customer_name": "Remote", "updated_at": "2024-01-01T00:00:00.000Z"})
        self.assertEqual(self.daos.customers.get_by_id("c1")["customer_name"], "Remote")

    def test_older_incoming_loses(self):
        self._synced_customer("c1", "Local", "2024-01-02T00:00:00.000Z")
        self.assertFalse(self.daos.customers.upsert_one(
            {"id": "c1", "customer_name": "Remote", "updated_at": "2024-01-01T00:00:00.000Z"}))
        self.assertEqual(self.daos.customers.get_by_id("c1")["customer_name"], "Local")

    def test_existing_without_timestamp_is_overwritten(self):
        self.store.execute_query("INSERT INTO customers (id, customer_name) VALUES ('c1', 'Local')")
        self.daos.customers.upsert_one({"id": "c1", "customer_name": "Remote", "updated_at": "2020-01-01T00:00:00.000Z"})
        self.assertEqual(self.daos.customers.get_by_id("c1")["customer_name"], "Remote")

    def test_overwrite_policy_resets_pending_row(self):
        self._synced_customer("c1", "Local", "2024-01-01T00:00:00.000Z")
        edited = self.daos.customers.mark_pending_update("c1", {"customer_name": "Edited"})
        self.daos.customers.upsert_one({"id": "c1", "customer_name": "Remote", "updated_at": edited["updated_at"]})
        row = self.daos.customers.get_by_id("c1")
        self.assertEqual(row["customer_name"], "Remote")
        self.assertEqual((row["pending_sync"], row["sync_op"]), (0, None))

    def test_upsert_many_maps_remote_documents(self):
        merged = self.daos.work_orders.upsert_many([
            {"_id": "wo-1", "customer": {"_id": "cust-9", "customerName": "Asha"}, "scheduleDate": "2024-05-01",
             "hasScheduledTime": True, "status": "pending", "updatedAt": "2024-05-01T10:00:00Z"},
            {"customerId": "no id here"},
        ])
        self.assertEqual(merged, 1)
        row = self.daos.work_orders.get_by_id("wo-1")
        self.assertEqual(row["customer_id"], "cust-9")
        self.assertEqual(row["has_scheduled_time"], 1)
        self.assertEqual(row["updated_at"], "2024-05-01T10:00:00.000Z")

    def test_upsert_bill_children_are_server_authoritative(self):
        doc = {"_id": "b-100", "customer": "cust-1", "totalAmount": 100, "updatedAt": "2024-01-01T00:00:00Z",
               "items": [{"_id": "li-1", "itemName": "Pump", "qty": 1}, {"_id": "li-2", "itemName": "Pipe"}],
               "paymentHistory": [{"amount": 40, "paidAt": "2024-01-01T00:00:00Z"}]}
        self.daos.bills.upsert_many([doc])
        bill = self.daos.bills.get_by_id("b-100")
        self.assertEqual({i["id"] for i in bill["items"]}, {"li-1", "li-2"})
        self.assertEqual([p["id"] for p in bill["payment_history"]], ["b-100:paymentHistory:0"])

        doc = dict(doc, updatedAt="2024-01-02T00:00:00Z", items=[{"_id": "li-1", "itemName": "Pump", "qty": 3}])
        self.daos.bills.upsert_many([doc])
        bill = self.daos.bills.get_by_id("b-100")
        self.assertEqual([(i["id"], i["qty"]) for i in bill["items"]], [("li-1", 3)])
        # Repeated pulls update the fallback-id payment in place.
        self.assertEqual(len(bill["payment_history"]), 1)


class TestSkipPendingPolicy(BaseDAOTestCase):
    merge_policy = MERGE_SKIP_PENDING

    def test_pending_row_is_left_alone(self):
        self._synced_customer("c1", "Local", "2024-01-01T00:00:00.000Z")
        self.daos.customers.mark_pending_update("c1", {"customer_name": "Edited"})
        written = self.daos.customers.upsert_one(
            {"id": "c1", "customer_name": "Remote", "updated_at": "2099-01-01T00:00:00.000Z"})
        self.assertFalse(written)
        row = self.daos.customers.get_by_id("c1")
        self.assertEqual((row["customer_name"], row["sync_op"]), ("Edited", Constants.SYNC_OP_UPDATE))


class TestPreserveSyncStatePolicy(BaseDAOTestCase):
    merge_policy = MERGE_PRESERVE_SYNC_STATE

    def test_business_columns_merge_but_sync_state_survives(self):
        self._synced_customer("c1", "Local", "2024-01-01T00:00:00.000Z")
        self.daos.customers.mark_pending_update("c1", {"customer_name": "Edited"})
        self.daos.customers.upsert_one({"id": "c1", "customer_name": "Remote", "updated_at": "2099-01-01T00:00:00.000Z"})
        row = self.daos.customers.get_by_id("c1")
        self.assertEqual(row["customer_name"], "Remote")
        self.assertEqual((row["pending_sync"], row["sync_op"]), (1, Constants.SYNC_OP_UPDATE))


class TestBillsAndInventory(BaseDAOTestCase):

    def _synced_bill(self):
        self.daos.bills.upsert_one({"id": "b-1", "customer_id": "cust-1", "total_amount": 100.0,
                                    "received_payment": 20.0, "due_amount": 80.0, "status": "partial",
                                    "updated_at": "2024-01-01T00:00:00.000Z"})

    def test_record_payment(self):
        self._synced_bill()
        bill = self.daos.bills.record_payment("b-1", 30, note="cash")
        self.assertEqual((bill["received_payment"], bill["due_amount"], bill["status"]), (50.0, 50.0, "partial"))
        self.assertEqual(bill["sync_op"], Constants.SYNC_OP_UPDATE)
        self.assertEqual(len(self.daos.bills.payments.get_pending_for_parent("b-1")), 1)

        bill = self.daos.bills.record_payment("b-1", 50)
        self.assertEqual((bill["due_amount"], bill["status"]), (0.0, "paid"))

    def test_record_payment_validation(self):
        self._synced_bill()
        with self.assertRaises(ValidationError):
            self.daos.bills.record_payment("b-1", 0)
        local = self.daos.bills.insert_local({"customer_id": "cust-1"})
        with self.assertRaises(NotYetSyncedError):
            self.daos.bills.record_payment(local["id"], 10)

    def test_bill_field_edit_is_rejected(self):
        self._synced_bill()
        with self.assertRaises(InputError):
            self.daos.bills.mark_pending_update("b-1", {"discount": 50})
        bill = self.daos.bills.get_by_id("b-1")
        self.assertEqual((bill["discount"], bill["pending_sync"], bill["sync_op"]), (0, 0, None))
        self.assertEqual(self.daos.bills.get_pending(), [])

    def test_due_totals_by_customer(self):
        self._synced_bill()
        self.daos.bills.upsert_one({"id": "b-2", "customer_id": "cust-1", "due_amount": 5.0,
                                    "updated_at": "2024-01-01T00:00:00.000Z"})
        self.daos.bills.upsert_one({"id": "b-3", "customer_id": "cust-2", "due_amount": 7.0,
                                    "updated_at": "2024-01-01T00:00:00.000Z"})
        self.assertEqual(self.daos.bills.get_due_totals_by_customer_ids(["cust-1", "cust-2"]),
                         {"cust-1": 85.0, "cust-2": 7.0})
        self.assertEqual(self.daos.bills.get_due_totals_by_customer_ids([]), {})

    def test_record_stock_addition(self):
        self.daos.items.upsert_one({"id": "item-1", "item_name": "Pump", "stock_qty": 2,
                                    "updated_at": "2024-01-01T00:00:00.000Z"})
        item = self.daos.items.record_stock_addition("item-1", qty=3)
        self.assertEqual(item["stock_qty"], 5)
        self.assertEqual(item["pending_sync"], 0)
        item = self.daos.items.record_stock_addition("item-1", serial_numbers=["SN1", " ", "SN2"])
        self.assertEqual(item["stock_qty"], 7)
        self.assertEqual(len(self.daos.serial_numbers.get_pending()), 2)
        self.assertEqual(len(self.daos.stock_history.get_pending()), 1)
        with self.assertRaises(ValidationError):
            self.daos.items.record_stock_addition("item-1")

    def test_work_order_counts_by_status(self):
        for i, status in enumerate(["pending", "pending", "completed"]):
            self.daos.work_orders.upsert_one({"id": f"wo-{i}", "customer_id": "c", "schedule_date": "2024-01-01",
                                              "status": status, "updated_at": "2024-01-01T00:00:00.000Z"})
        self.assertEqual(self.daos.work_orders.count_by_status(), {"pending": 2, "completed": 1})
        self.assertEqual(self.daos.work_orders.count(status="pending"), 2)



class TestDashboardMetricsCache(BaseDAOTestCase):

    def test_upsert_replaces_payload_per_key(self):
        dao = self.daos.dashboard_metrics
        self.assertIsNone(dao.get_by_key("period:1month"))

        dao.upsert("period:1month", {"totalRevenue": 100, "availableMonths": [1, 2]})
        dao.upsert("monthYear:5-2024", {"totalRevenue": 40})
        dao.upsert("period:1month", {"totalRevenue": 250})

        row = dao.get_by_key("period:1month")
        self.assertEqual(row["payload"], {"totalRevenue": 250})
        self.assertIsNotNone(row["updated_at"])
        self.assertEqual(dao.get_by_key("monthYear:5-2024")["payload"], {"totalRevenue": 40})
        self.assertEqual(self.store.fetch_one("SELECT COUNT(*) AS n FROM dashboard_metrics")["n"], 2)

    def test_missing_payload_is_stored_as_empty_object(self):
        self.daos.dashboard_metrics.upsert("period:7days", None)
        self.assertEqual(self.daos.dashboard_metrics.get_by_key("period:7days")["payload"], {})

    def test_unreadable_payload_decodes_to_none(self):
        self.store.execute_query("INSERT INTO dashboard_metrics (key, payload) VALUES ('period:1year', '{not json')")
        self.assertIsNone(self.daos.dashboard_metrics.get_by_key("period:1year")["payload"])

    def test_blank_key_is_rejected(self):
        with self.assertRaises(InputError):
            self.daos.dashboard_metrics.upsert("", {})
        self.assertEqual(self.store.count_pending(), {table: 0 for table in OfflineStore._SYNCED_TABLES})

if __name__ == '__main__':
    unittest.main()
