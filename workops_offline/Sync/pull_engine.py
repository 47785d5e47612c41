# pull_engine.py
# Description: Fetches remote collections and merges them into the offline store (last-write-wins).
#
# Imports
import abc
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from workops_offline import Constants
from workops_offline.config import SyncSettings
from workops_offline.DB.Entity_DAOs import DashboardMetricsDAO, EntityDAO, StoreDAOs
from workops_offline.workops_api.client import WorkOpsAPIClient
from workops_offline.workops_api.exceptions import WorkOpsAPIError
from workops_offline.workops_api.schemas import ApiEnvelope
from workops_offline.workops_api.utils import page_params
from workops_offline.Sync.auth_gate import AuthGate, run_with_auth
from workops_offline.Sync.sync_errors import PullError, SyncError
#
########################################################################################################################
#
# Functions:

class EntityPuller(abc.ABC):
    """Pulls one entity's remote collection and merges it through the entity's DAO."""

    def __init__(self, dao: EntityDAO, client: WorkOpsAPIClient, page_size: int = 200, bulk_limit: int = 5000):
        self.dao = dao
        self.client = client
        self.page_size = page_size
        self.bulk_limit = bulk_limit
        self.entity = dao.entity
        self.collection_key = dao.mapping.collection_key

    @property
    def metadata_key(self) -> str:
        return f"{self.entity}_last_pull"

    def last_pull(self) -> Optional[str]:
        return self.dao.store.get_metadata(self.metadata_key)

    async def _fetch_page(self, operation: str, page: int, limit: int) -> Tuple[ApiEnvelope, List[Dict[str, Any]]]:
        envelope = await self.client.call(self.entity, operation, params=page_params(page, limit))
        if not envelope.success:
            raise PullError(envelope.message or f"{self.entity} pull failed", entity=self.entity)
        if not isinstance(envelope.payload(self.collection_key), list):
            raise PullError(f"{self.entity} pull returned invalid payload (no '{self.collection_key}' list)",
                            entity=self.entity)
        return envelope, envelope.records(self.collection_key)

    @abc.abstractmethod
    async def fetch_remote(self) -> List[Dict[str, Any]]:
        """Every remote record of the entity, in server shape."""

    async def pull(self) -> int:
        remote_records = await self.fetch_remote()
        logger.info(f"Fetched {len(remote_records)} remote {self.entity} record(s)")
        merged = self.dao.upsert_many(remote_records)
        self.dao.store.set_metadata(self.metadata_key, self.dao.store.now())
        return merged


class BulkPuller(EntityPuller):
    """One request per listing endpoint, asking for everything at once."""

    operations: Tuple[str, ...] = ("list",)

    async def fetch_remote(self) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        for operation in self.operations:
            _, records = await self._fetch_page(operation, 1, self.bulk_limit)
            results.extend(records)
        return results


class PagedPuller(EntityPuller):
    """Walks `pagination.hasMore`/`currentPage` until the server reports the last page."""

    async def fetch_remote(self) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        page = 1
        while True:
            envelope, records = await self._fetch_page("list", page, self.page_size)
            results.extend(records)
            pagination = envelope.pagination
            if pagination is None or not pagination.has_more or not records:
                break
            page = (pagination.current_page or page) + 1
        return results


class CustomersPuller(BulkPuller):
    pass


class WorkOrdersPuller(BulkPuller):
    # The service lists work orders by status only.
    operations = ("list_pending", "list_completed")


class BillsPuller(BulkPuller):
    pass


class ItemsPuller(PagedPuller):
    pass


class ServicesPuller(PagedPuller):
    pass


class BankAccountsPuller(PagedPuller):
    pass


DASHBOARD_FILTER_PERIOD = "period"
DASHBOARD_FILTER_MONTH_YEAR = "monthYear"
DASHBOARD_FILTER_TYPES = (DASHBOARD_FILTER_PERIOD, DASHBOARD_FILTER_MONTH_YEAR)


@dataclass(frozen=True)
class DashboardMetricsFilter:
    """Which slice of the dashboard to fetch: a rolling period (`1month`) or a calendar month/year."""
    filter_type: str = DASHBOARD_FILTER_PERIOD
    period: str = "1month"
    month: Optional[int] = None
    year: Optional[int] = None

    def __post_init__(self):
        if self.filter_type not in DASHBOARD_FILTER_TYPES:
            raise ValueError(f"Unknown dashboard filter type '{self.filter_type}'. "
                             f"Expected one of {DASHBOARD_FILTER_TYPES}")

    @property
    def cache_key(self) -> str:
        if self.filter_type == DASHBOARD_FILTER_MONTH_YEAR:
            return f"monthYear:{self.month or ''}-{self.year or ''}"
        return f"period:{self.period or '1month'}"

    def params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"filterType": self.filter_type}
        if self.filter_type == DASHBOARD_FILTER_PERIOD:
            params["period"] = self.period
        else:
            if self.month:
                params["month"] = self.month
            if self.year:
                params["year"] = self.year
        return params


class DashboardMetricsPuller:
    """Fetches the server-computed dashboard figures and caches them per filter. Nothing is merged."""

    entity = "dashboard_metrics"

    def __init__(self, dao: DashboardMetricsDAO, client: WorkOpsAPIClient):
        self.dao = dao
        self.client = client

    async def pull(self, metrics_filter: Optional[DashboardMetricsFilter] = None) -> Tuple[str, Dict[str, Any]]:
        metrics_filter = metrics_filter or DashboardMetricsFilter()
        envelope = await self.client.call(self.entity, "get", params=metrics_filter.params())
        if not envelope.success:
            raise PullError(envelope.message or "Dashboard metrics pull failed", entity=self.entity)
        payload = dict(envelope.record("data") or {})
        payload["availableMonths"] = payload.get("availableMonths") or []
        payload["availableYears"] = payload.get("availableYears") or []
        self.dao.upsert(metrics_filter.cache_key, payload)
        return metrics_filter.cache_key, payload


PULLER_CLASSES = {
    Constants.ENTITY_CUSTOMERS: CustomersPuller,
    Constants.ENTITY_WORK_ORDERS: WorkOrdersPuller,
    Constants.ENTITY_BILLS: BillsPuller,
    Constants.ENTITY_ITEMS: ItemsPuller,
    Constants.ENTITY_SERVICES: ServicesPuller,
    Constants.ENTITY_BANK_ACCOUNTS: BankAccountsPuller,
}


class PullEngine:
    """Runs the entity pullers in a fixed order and keeps the per-entity `<entity>_last_pull` bookkeeping."""

    def __init__(self, pullers: Iterable[EntityPuller], store,
                 metrics_puller: Optional[DashboardMetricsPuller] = None):
        self.pullers: Dict[str, EntityPuller] = {p.entity: p for p in pullers}
        self.store = store
        self.metrics_puller = metrics_puller

    @classmethod
    def from_daos(cls, daos: StoreDAOs, client: WorkOpsAPIClient,
                  settings: Optional[SyncSettings] = None) -> "PullEngine":
        settings = settings or SyncSettings()
        pullers = []
        for entity in settings.pull_entities:
            puller_cls = PULLER_CLASSES[entity]
            pullers.append(puller_cls(getattr(daos, entity), client,
                                      page_size=settings.pull_page_size, bulk_limit=settings.bulk_pull_limit))
        return cls(pullers, daos.store, metrics_puller=DashboardMetricsPuller(daos.dashboard_metrics, client))

    @property
    def entities(self) -> List[str]:
        return list(self.pullers)

    async def pull_entity(self, entity: str) -> int:
        try:
            puller = self.pullers[entity]
        except KeyError:
            raise KeyError(f"No puller configured for '{entity}'") from None
        return await puller.pull()

    async def pull_all(self) -> Dict[str, int]:
        merged = {}
        for entity, puller in self.pullers.items():
            merged[entity] = await puller.pull()
        logger.info(f"Pull finished: {merged}")
        return merged

    async def ensure_pulled(self, entity: str) -> bool:
        """Pulls `entity` only if it was never pulled before. Returns True when a pull ran."""
        if self.pullers[entity].last_pull():
            return False
        await self.pull_entity(entity)
        return True

    def is_database_empty(self) -> bool:
        return self.store.is_database_empty()

    async def pull_dashboard_metrics(self, metrics_filter: Optional[DashboardMetricsFilter] = None
                                     ) -> Tuple[str, Dict[str, Any]]:
        """Fetches and caches the dashboard figures for `metrics_filter` (default: the last month)."""
        if self.metrics_puller is None:
            raise PullError("No dashboard metrics puller configured", entity=DashboardMetricsPuller.entity)
        return await self.metrics_puller.pull(metrics_filter)

    async def _hydrate(self) -> Dict[str, int]:
        merged = await self.pull_all()
        if self.metrics_puller is not None:
            # A failed metrics pull does not fail hydration.
            try:
                await self.pull_dashboard_metrics()
            except (SyncError, WorkOpsAPIError) as e:
                logger.warning(f"Dashboard metrics pull failed (non-blocking): {e}")
        return merged

    async def initial_pull_all(self, auth_gate: AuthGate) -> Dict[str, int]:
        """First-run hydration: every entity, then the default dashboard metrics. Nothing is fetched unless
        the auth gate resolves."""
        logger.info("Running initial pull of all entities")
        return await run_with_auth(auth_gate, self._hydrate)

#
# End of pull_engine.py
########################################################################################################################
