from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from ..logging import get_logger
from ..normalize.schema import (
    ApplicationGateway,
    InventoryRow,
    LoadBalancer,
    NetworkInterface,
    NetworkSecurityGroup,
    PublicIpAddress,
    Subscription,
    SubscriptionResources,
    VirtualNetwork,
)
from ..util.concurrency import bounded_map
from ..util.errors import ConfigError
from .aggregator import InventoryAggregator
from .registry import PublicIpRegistry
from .walker import TopologyObserver, TopologyWalker

LOG = get_logger(__name__)

MIN_PARALLELISM = 1
MAX_PARALLELISM = 20
DEFAULT_PARALLELISM = 5

STATUS_OK = "OK"
STATUS_ERROR = "ERROR"


class NetworkDataSource(Protocol):
    """Read-only listing calls scoped to one subscription session."""

    def list_virtual_networks(self) -> Sequence[VirtualNetwork]: ...

    def list_network_interfaces(self) -> Sequence[NetworkInterface]: ...

    def list_public_ip_addresses(self) -> Sequence[PublicIpAddress]: ...

    def list_network_security_groups(self) -> Sequence[NetworkSecurityGroup]: ...

    def list_load_balancers(self) -> Sequence[LoadBalancer]: ...

    def list_application_gateways(self) -> Sequence[ApplicationGateway]: ...


SourceFactory = Callable[[Subscription], NetworkDataSource]


def fetch_subscription_resources(source: NetworkDataSource) -> SubscriptionResources:
    return SubscriptionResources(
        virtual_networks=tuple(source.list_virtual_networks()),
        network_interfaces=tuple(source.list_network_interfaces()),
        public_ip_addresses=tuple(source.list_public_ip_addresses()),
        network_security_groups=tuple(source.list_network_security_groups()),
        load_balancers=tuple(source.list_load_balancers()),
        application_gateways=tuple(source.list_application_gateways()),
    )


def validate_parallelism(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Parallelism must be an integer between {MIN_PARALLELISM} and {MAX_PARALLELISM}")
    if not MIN_PARALLELISM <= value <= MAX_PARALLELISM:
        raise ConfigError(
            f"Parallelism must be between {MIN_PARALLELISM} and {MAX_PARALLELISM} (got {value})"
        )
    return value


@dataclass(frozen=True)
class SubscriptionOutcome:
    subscription: Subscription
    status: str
    row_count: int
    error: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


class SubscriptionWorkerPool:
    """
    Processes subscriptions on at most max_workers threads.

    Every worker opens its own data-source session through source_factory,
    walks its subscription and hands the rows to the shared aggregator. A
    failing subscription is logged and reported in its outcome; it never
    stops the other workers. run() returns once all workers are done.
    """

    def __init__(
        self,
        source_factory: SourceFactory,
        registry: PublicIpRegistry,
        aggregator: InventoryAggregator,
        *,
        max_workers: int = DEFAULT_PARALLELISM,
        observer: Optional[TopologyObserver] = None,
        on_complete: Optional[Callable[[SubscriptionOutcome], None]] = None,
    ) -> None:
        self.source_factory = source_factory
        self.registry = registry
        self.aggregator = aggregator
        self.max_workers = validate_parallelism(max_workers)
        self.observer = observer
        self.on_complete = on_complete

    def run(self, subscriptions: Iterable[Subscription]) -> List[SubscriptionOutcome]:
        return bounded_map(self._process, list(subscriptions), max_workers=self.max_workers)

    def _process(self, subscription: Subscription) -> SubscriptionOutcome:
        started = perf_counter()
        rows: List[InventoryRow] = []
        error: Optional[str] = None
        LOG.info(
            f"Subscription collection started {subscription.name}",
            extra={
                "step": "collect",
                "phase": "start",
                "subscription": subscription.name,
                "subscription_id": subscription.id,
            },
        )
        try:
            source = self.source_factory(subscription)
            resources = fetch_subscription_resources(source)
            walker = TopologyWalker(subscription, resources, self.registry, observer=self.observer)
            for row in walker.iter_rows():
                rows.append(row)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            LOG.warning(
                f"Subscription collection failed; keeping partial results for {subscription.name}",
                extra={
                    "step": "collect",
                    "phase": "error",
                    "subscription": subscription.name,
                    "subscription_id": subscription.id,
                    "error": error,
                    "rows": len(rows),
                },
            )
        finally:
            self.aggregator.extend(rows)

        duration_ms = int((perf_counter() - started) * 1000)
        outcome = SubscriptionOutcome(
            subscription=subscription,
            status=STATUS_OK if error is None else STATUS_ERROR,
            row_count=len(rows),
            error=error,
            duration_ms=duration_ms,
        )
        if error is None:
            LOG.info(
                f"Subscription collection complete {subscription.name}",
                extra={
                    "step": "collect",
                    "phase": "complete",
                    "subscription": subscription.name,
                    "subscription_id": subscription.id,
                    "rows": len(rows),
                    "duration_ms": duration_ms,
                },
            )
        if self.on_complete is not None:
            self.on_complete(outcome)
        return outcome
