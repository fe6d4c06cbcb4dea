from datetime import timedelta
from typing import NoReturn

from ..errors import ProviderUnavailableError
from ..models import CreateOpts, VMList
from ..provider import Provider, ProviderFlags


class UnavailableProvider(Provider):
    """
    Stands in for a backend that could not be initialised.

    Its flags are still registered so the CLI accepts them, but every
    operation fails with the reason the backend is unavailable.
    """

    def __init__(self, name: str, flags: ProviderFlags, reason: str) -> None:
        self._name = name
        self._flags = flags
        self.reason = reason

    @property
    def name(self) -> str:
        return self._name

    def _fail(self, operation: str) -> NoReturn:
        raise ProviderUnavailableError(
            self.reason, provider=self._name, operation=operation
        )

    def clean_ssh(self) -> None:
        # Nothing was configured, so there is nothing to clean
        pass

    def config_ssh(self) -> None:
        pass

    def create(self, names: list[str], opts: CreateOpts) -> None:
        self._fail("create")

    def delete(self, vms: VMList) -> None:
        self._fail("delete")

    def extend(self, vms: VMList, lifetime: timedelta) -> None:
        self._fail("extend")

    def find_active_account(self) -> str:
        return ""

    def flags(self) -> ProviderFlags:
        return self._flags

    def list(self) -> VMList:
        return VMList()
