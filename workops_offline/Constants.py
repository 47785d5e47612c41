# Constants.py
# Description: Constants shared by the offline store and the sync engine
#
# Imports
#
# 3rd-Party Imports
#
# Local Imports
#
########################################################################################################################
#
# Functions:

# --- Sync operations ---
SYNC_OP_CREATE = "create"
SYNC_OP_UPDATE = "update"
SYNC_OP_DELETE = "delete"
SYNC_OP_SET_PRIMARY = "set_primary"
ALL_SYNC_OPS = (SYNC_OP_CREATE, SYNC_OP_UPDATE, SYNC_OP_DELETE, SYNC_OP_SET_PRIMARY)
# Operations that address an existing server record and therefore need a server id.
GUARDED_SYNC_OPS = (SYNC_OP_UPDATE, SYNC_OP_DELETE, SYNC_OP_SET_PRIMARY)

# --- Client-temporary ids ---
CLIENT_TEMP_ID_PREFIX = "client-"
BILL_TEMP_ID_PREFIX = "bill-"
TEMP_ID_PREFIXES = (CLIENT_TEMP_ID_PREFIX, BILL_TEMP_ID_PREFIX)

# --- Entity kinds, in push order ---
ENTITY_CUSTOMERS = "customers"
ENTITY_WORK_ORDERS = "work_orders"
ENTITY_BILLS = "bills"
ENTITY_BILL_ITEMS = "bill_items"
ENTITY_PAYMENTS = "payment_history"
ENTITY_ITEMS = "items"
ENTITY_SERIAL_NUMBERS = "serial_numbers"
ENTITY_STOCK_HISTORY = "stock_history"
ENTITY_SERVICES = "services"
ENTITY_BANK_ACCOUNTS = "bank_accounts"

# --- Sync error messages recorded on records ---
DEFAULT_SYNC_ERROR = "Sync error"
WAITING_FOR_SERVER_ID = {
    SYNC_OP_UPDATE: "Waiting for server id to update",
    SYNC_OP_DELETE: "Waiting for server id to delete",
    SYNC_OP_SET_PRIMARY: "Waiting for server id to set primary",
}
WAITING_FOR_REFERENCE = "Waiting for {entity} sync"
DELETE_NOT_SUPPORTED = "Delete not supported via sync yet"

# --- User-facing status messages ---
MSG_SAVED_SYNCING = "Saved locally. Syncing…"
MSG_SAVED_OFFLINE = "Saved offline. Will sync when online."
MSG_SYNC_SUCCESS = "All changes synced with cloud."
MSG_SYNC_FAILED = "Sync failed. Will retry."
MSG_OFFLINE = "You are offline. Will sync when online."
MSG_LOGIN_REQUIRED = "Please login to sync data"
MSG_SESSION_EXPIRED = "Session expired. Please login again."
ALERT_AUTH_REQUIRED = "Authentication required. Please login."

# --- Notice severities ---
SEVERITY_INFO = "info"
SEVERITY_SUCCESS = "success"
SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"

#
# End of Constants.py
########################################################################################################################
