"""pycrowdmap - Async live occupancy tracking for event maps."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pycrowdmap")
except PackageNotFoundError:
    __version__ = "0+local"
from pycrowdmap.catalog import LocationCatalog, filter_locations, load_catalog
from pycrowdmap.client import CrowdMapClient
from pycrowdmap.clustering import cluster_locations
from pycrowdmap.config import CrowdMapConfig, SimulationMode
from pycrowdmap.density import DensityLevel, density_level, occupancy_percentage
from pycrowdmap.exceptions import (
    CrowdMapApiError,
    CrowdMapConfigError,
    CrowdMapError,
    CrowdMapNotConnectedError,
    CrowdMapTransportError,
    MalformedInputError,
    UnknownLocationError,
)
from pycrowdmap.models import (
    Coordinates,
    LiveCount,
    Location,
    MapEntity,
    Position,
    Snapshot,
)
from pycrowdmap.qr import QrScanResult, parse_qr_payload
from pycrowdmap.reconciler import ConnectionStatus, StateReconciler
from pycrowdmap.tracking import CheckInState, CheckInTransition, GeoFenceTracker

__all__ = [
    "__version__",
    "CheckInState",
    "CheckInTransition",
    "ConnectionStatus",
    "Coordinates",
    "CrowdMapApiError",
    "CrowdMapClient",
    "CrowdMapConfig",
    "CrowdMapConfigError",
    "CrowdMapError",
    "CrowdMapNotConnectedError",
    "CrowdMapTransportError",
    "DensityLevel",
    "GeoFenceTracker",
    "LiveCount",
    "Location",
    "LocationCatalog",
    "MalformedInputError",
    "MapEntity",
    "Position",
    "QrScanResult",
    "SimulationMode",
    "Snapshot",
    "StateReconciler",
    "UnknownLocationError",
    "cluster_locations",
    "density_level",
    "filter_locations",
    "load_catalog",
    "occupancy_percentage",
    "parse_qr_payload",
]
