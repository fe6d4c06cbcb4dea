from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, Field

from .core import DEFAULT_LIFETIME, LOCAL_ZONE, REGION_RE
from .errors import MalformedZoneError, VMErrorKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VM(BaseModel):
    name: str
    provider: str = Field(description="Name of the backend hosting this instance")
    created_at: datetime = Field(default_factory=_utcnow)
    lifetime: timedelta = timedelta(0)
    dns: str = Field(default="", description="Provider-internal DNS name")
    private_ip: str = ""
    public_ip: str = ""
    zone: str = ""
    # If non-empty, some or all of the data above is missing or invalid.
    errors: list[VMErrorKind] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def expires_at(self) -> datetime:
        return self.created_at + self.lifetime

    def is_local(self) -> bool:
        """True if the VM represents the local host."""
        return self.zone == LOCAL_ZONE

    def locality(self) -> str:
        """
        Returns "region=<R>,zone=<Z>" for this VM.
        Raises MalformedZoneError when a non-local zone has no region part.
        """
        if self.is_local():
            region = self.zone
        else:
            match = REGION_RE.match(self.zone)
            if not match:
                raise MalformedZoneError(self.zone, provider=self.provider)
            region = match.group(1)
        return f"region={region},zone={self.zone}"


class VMList(list[VM]):
    """An ordered collection of VMs, sortable by name."""

    def less(self, i: int, j: int) -> bool:
        return self[i].name < self[j].name

    def swap(self, i: int, j: int) -> None:
        self[i], self[j] = self[j], self[i]

    def sort_by_name(self) -> "VMList":
        # list.sort is stable, so equal names keep their relative order
        self.sort(key=lambda vm: vm.name)
        return self

    def names(self) -> list[str]:
        return [vm.name for vm in self]

    def zones(self) -> list[str]:
        return [vm.zone for vm in self]

    def by_provider(self) -> dict[str, "VMList"]:
        """Groups VMs by owning provider, keeping their relative order."""
        groups: dict[str, VMList] = {}
        for vm in self:
            groups.setdefault(vm.provider, VMList()).append(vm)
        return groups


class CreateOpts(BaseModel):
    """Options shared by every backend when creating VMs."""

    use_local_ssd: bool = False
    lifetime: timedelta = DEFAULT_LIFETIME
    geo_distributed: bool = False
    vm_providers: list[str] = Field(
        default_factory=list, description="Restrict creation to these backends"
    )

    def eligible_providers(self, all_names: Iterable[str]) -> list[str]:
        if self.vm_providers:
            return list(self.vm_providers)
        return sorted(all_names)
