import argparse
import socket
import threading
from datetime import timedelta

from ..core import LOCAL_ZONE, VM_NAME_RE
from ..errors import VMErrorKind, VMFleetError
from ..logger import logger
from ..models import VM, CreateOpts, VMList
from ..provider import Provider, ProviderFlags

PROVIDER_NAME = "local"
LOCAL_HOST_NAME = "local"


class LocalProviderFlags(ProviderFlags):
    def configure_create_flags(self, parser: argparse.ArgumentParser) -> None:
        # The local machine has nothing to configure at creation time
        pass


class LocalProvider(Provider):
    """
    VMs that are the machine we are running on.

    The local host itself is always listed. VMs created through this provider
    live in memory for the life of the process only.
    """

    def __init__(self) -> None:
        self.host = VM(
            name=LOCAL_HOST_NAME,
            provider=PROVIDER_NAME,
            dns=socket.gethostname(),
            private_ip="127.0.0.1",
            public_ip="127.0.0.1",
            zone=LOCAL_ZONE,
        )
        self._vms: dict[str, VM] = {}
        self._lock = threading.Lock()
        self._flags = LocalProviderFlags()

    @property
    def name(self) -> str:
        return PROVIDER_NAME

    def clean_ssh(self) -> None:
        pass

    def config_ssh(self) -> None:
        pass

    def create(self, names: list[str], opts: CreateOpts) -> None:
        with self._lock:
            for name in names:
                errors = [] if VM_NAME_RE.match(name) else [VMErrorKind.INVALID_NAME]
                self._vms[name] = VM(
                    name=name,
                    provider=PROVIDER_NAME,
                    lifetime=opts.lifetime,
                    dns=socket.gethostname(),
                    private_ip="127.0.0.1",
                    public_ip="127.0.0.1",
                    zone=LOCAL_ZONE,
                    errors=errors,
                )
        logger.debug(f"Created {len(names)} local VMs")

    def delete(self, vms: VMList) -> None:
        if any(vm.name == LOCAL_HOST_NAME for vm in vms):
            raise VMFleetError(
                "the local machine cannot be deleted",
                provider=PROVIDER_NAME,
                operation="delete",
            )
        with self._lock:
            for vm in vms:
                self._vms.pop(vm.name, None)

    def extend(self, vms: VMList, lifetime: timedelta) -> None:
        with self._lock:
            for vm in vms:
                if vm.name in self._vms:
                    self._vms[vm.name].lifetime = lifetime

    def find_active_account(self) -> str:
        # The local machine never has an opinion on the cloud account
        return ""

    def flags(self) -> ProviderFlags:
        return self._flags

    def list(self) -> VMList:
        with self._lock:
            vms = VMList([self.host.model_copy()])
            vms.extend(vm.model_copy() for vm in self._vms.values())
            return vms
