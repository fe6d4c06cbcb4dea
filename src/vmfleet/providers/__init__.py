import shutil

from ..logger import logger
from ..registry import ProviderRegistry
from .gce import GCEProvider, GCEProviderFlags
from .local import LocalProvider
from .unavailable import UnavailableProvider

GCLOUD_MISSING = (
    "please install the gcloud CLI utilities (https://cloud.google.com/sdk/downloads)"
)


def init_providers(registry: ProviderRegistry) -> ProviderRegistry:
    """Registers every known backend. Call once at startup, before dispatching."""
    registry.register(LocalProvider())

    if shutil.which("gcloud"):
        registry.register(GCEProvider())
    else:
        logger.debug("gcloud not found; GCE provider unavailable")
        registry.register(UnavailableProvider("gce", GCEProviderFlags(), GCLOUD_MISSING))

    return registry
