import re
from datetime import timedelta

from tenacity import stop_after_attempt, wait_exponential

# Shared retry configuration for cloud API calls
# usage: @retry(**RETRY_CONFIG)
RETRY_CONFIG = {
    "stop": stop_after_attempt(3),
    "wait": wait_exponential(multiplier=1, min=4, max=10),
    "reraise": True,
}

# Zone value reserved for VMs that are the local machine
LOCAL_ZONE = "local"

DEFAULT_LIFETIME = timedelta(hours=12)

# RFC1035 label, which is what every supported backend accepts as a VM name
VM_NAME_RE = re.compile(r"^[a-z]([-a-z0-9]*[a-z0-9])?$")

# e.g. us-east1-b -> us-east1, westus2a -> westus2
REGION_RE = re.compile(r"(.*[^-])-?[a-z]$")

# GCE defaults
GCE_DEFAULT_MACHINE_TYPE = "n1-standard-4"
GCE_DEFAULT_IMAGE = "projects/ubuntu-os-cloud/global/images/family/ubuntu-2204-lts"
GCE_DEFAULT_ZONES = ["us-east1-b", "us-west1-b", "europe-west2-b"]
GCE_LABEL = "vmfleet"

_DURATION_RE = re.compile(r"(\d+)([hms])")
_DURATION_UNITS = {"h": "hours", "m": "minutes", "s": "seconds"}


def parse_duration(value: str) -> timedelta:
    """
    Parses durations such as "12h", "90m" or "1h30m0s".
    Raises ValueError on anything else.
    """
    value = value.strip()
    parts = _DURATION_RE.findall(value)
    if not value or "".join(n + u for n, u in parts) != value:
        raise ValueError(f"invalid duration: {value!r}")

    kwargs: dict[str, int] = {}
    for amount, unit in parts:
        key = _DURATION_UNITS[unit]
        kwargs[key] = kwargs.get(key, 0) + int(amount)
    return timedelta(**kwargs)


def format_duration(value: timedelta) -> str:
    """Inverse of parse_duration: timedelta(hours=12) -> "12h0m0s"."""
    total = int(value.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours}h{minutes}m{seconds}s"
