# workops_offline/workops_api/endpoints.py
# Description: One endpoint + method pair per (entity, operation).
#
# Imports
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
#
#######################################################################################################################
#
# Functions:

@dataclass(frozen=True)
class Endpoint:
    method: str
    path: str

    def path_for(self, record_id: Optional[str] = None) -> str:
        if "{id}" in self.path:
            if not record_id:
                raise ValueError(f"Endpoint {self.method} {self.path} needs a record id")
            return self.path.replace("{id}", str(record_id))
        return self.path


HEALTH_CHECK = Endpoint("GET", "/api/health")

ENDPOINTS: Dict[Tuple[str, str], Endpoint] = {
    ("customers", "create"): Endpoint("POST", "/api/customer"),
    ("customers", "update"): Endpoint("PUT", "/api/customer/{id}"),
    ("customers", "delete"): Endpoint("DELETE", "/api/customer/{id}"),
    ("customers", "list"): Endpoint("GET", "/api/customers"),

    ("work_orders", "create"): Endpoint("POST", "/api/workorder"),
    ("work_orders", "update"): Endpoint("PUT", "/api/workorder/{id}"),
    ("work_orders", "delete"): Endpoint("DELETE", "/api/workorder/{id}"),
    ("work_orders", "list_pending"): Endpoint("GET", "/api/workorders/pending"),
    ("work_orders", "list_completed"): Endpoint("GET", "/api/workorders/completed"),

    ("bills", "create"): Endpoint("POST", "/api/bill"),
    ("bills", "payment"): Endpoint("PUT", "/api/bill/{id}/payment"),
    ("bills", "list"): Endpoint("GET", "/api/bills"),

    ("items", "create"): Endpoint("POST", "/api/inventory/item"),
    ("items", "update"): Endpoint("PUT", "/api/inventory/item/{id}"),
    ("items", "delete"): Endpoint("DELETE", "/api/inventory/item/{id}"),
    ("items", "stock"): Endpoint("POST", "/api/inventory/item/{id}/stock"),
    ("items", "list"): Endpoint("GET", "/api/inventory/items"),

    ("services", "create"): Endpoint("POST", "/api/inventory/service"),
    ("services", "update"): Endpoint("PUT", "/api/inventory/service/{id}"),
    ("services", "delete"): Endpoint("DELETE", "/api/inventory/service/{id}"),
    ("services", "list"): Endpoint("GET", "/api/inventory/services"),

    ("bank_accounts", "create"): Endpoint("POST", "/api/bank-account"),
    ("bank_accounts", "update"): Endpoint("PUT", "/api/bank-account/{id}"),
    ("bank_accounts", "delete"): Endpoint("DELETE", "/api/bank-account/{id}"),
    ("bank_accounts", "set_primary"): Endpoint("PUT", "/api/bank-account/{id}/primary"),
    ("bank_accounts", "list"): Endpoint("GET", "/api/bank-accounts"),

    ("dashboard_metrics", "get"): Endpoint("GET", "/api/dashboard/metrics"),
}


def get_endpoint(entity: str, operation: str) -> Endpoint:
    try:
        return ENDPOINTS[(entity, operation)]
    except KeyError:
        raise KeyError(f"No remote endpoint for {entity}.{operation}") from None

#
# End of workops_offline/workops_api/endpoints.py
########################################################################################################################
