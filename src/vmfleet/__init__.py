import warnings

# google-api-core warns about interpreter deprecations on import, which
# would otherwise show up in the output of every CLI command.
warnings.filterwarnings("ignore", category=FutureWarning, module="google.api_core")
warnings.filterwarnings("ignore", category=FutureWarning, module="google.cloud")

from .accounts import AccountResolver  # noqa: E402
from .dispatch import (  # noqa: E402
    fan_out,
    for_provider,
    providers_parallel,
    providers_sequential,
)
from .models import VM, CreateOpts, VMList  # noqa: E402
from .provider import Provider, ProviderFlags  # noqa: E402
from .registry import ProviderRegistry  # noqa: E402

__all__ = [
    "VM",
    "AccountResolver",
    "CreateOpts",
    "Provider",
    "ProviderFlags",
    "ProviderRegistry",
    "VMList",
    "fan_out",
    "for_provider",
    "providers_parallel",
    "providers_sequential",
]
