"""viewfold - real-time view materialization over a keyed event stream."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("viewfold")
except PackageNotFoundError:
    __version__ = "0+local"
from viewfold.client import ProjectionClient
from viewfold.config import EngineConfig
from viewfold.engine import ProjectionEngine
from viewfold.exceptions import (
    ViewfoldConfigError,
    ViewfoldError,
    ViewfoldStreamError,
    ViewfoldTransportError,
)
from viewfold.ingestion.routing import DEFAULT_ROUTES, EventRoute, RouteTable
from viewfold.ingestion.snapshot import SnapshotLayout, fold_snapshot
from viewfold.notify import CallbackDispatcher, LoggingDispatcher, NotificationDispatcher, NullDispatcher
from viewfold.state.events import InboundEvent, NotificationClass, ReducerKind
from viewfold.state.records import AggregateRecord, Payment
from viewfold.state.store import AggregateStore

__all__ = [
    "__version__",
    "AggregateRecord",
    "AggregateStore",
    "CallbackDispatcher",
    "DEFAULT_ROUTES",
    "EngineConfig",
    "EventRoute",
    "InboundEvent",
    "LoggingDispatcher",
    "NotificationClass",
    "NotificationDispatcher",
    "NullDispatcher",
    "Payment",
    "ProjectionClient",
    "ProjectionEngine",
    "ReducerKind",
    "RouteTable",
    "SnapshotLayout",
    "ViewfoldConfigError",
    "ViewfoldError",
    "ViewfoldStreamError",
    "ViewfoldTransportError",
    "fold_snapshot",
]
