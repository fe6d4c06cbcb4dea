import argparse
import threading
import time
from datetime import timedelta

import pytest

from vmfleet.models import VM, CreateOpts, VMList
from vmfleet.provider import Provider, ProviderFlags
from vmfleet.registry import ProviderRegistry


class FakeFlags(ProviderFlags):
    def __init__(self, name: str) -> None:
        self.prefix = name
        self.loaded = None

    def configure_create_flags(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(f"--{self.prefix}-size", default="small")

    def load_create_flags(self, args: argparse.Namespace) -> None:
        self.loaded = getattr(args, f"{self.prefix}_size")


class FakeProvider(Provider):
    """In-memory provider that records every call made to it."""

    def __init__(self, name, account="", error=None, delay=0.0):
        self._name = name
        self.account = account
        self.error = error
        self.delay = delay
        self.calls: list[tuple] = []
        self.vms = VMList()
        self._flags = FakeFlags(name)
        self._lock = threading.Lock()

    @property
    def name(self):
        return self._name

    def _record(self, *call):
        if self.delay:
            time.sleep(self.delay)
        with self._lock:
            self.calls.append(call)
        if self.error is not None:
            raise self.error

    def clean_ssh(self):
        self._record("clean_ssh")

    def config_ssh(self):
        self._record("config_ssh")

    def create(self, names, opts: CreateOpts):
        self._record("create", tuple(names))
        for n in names:
            self.vms.append(
                VM(name=n, provider=self._name, zone="us-east1-b", lifetime=opts.lifetime)
            )

    def delete(self, vms):
        self._record("delete", tuple(vms.names()))

    def extend(self, vms, lifetime: timedelta):
        self._record("extend", tuple(vms.names()), lifetime)

    def find_active_account(self):
        self._record("find_active_account")
        return self.account

    def flags(self):
        return self._flags

    def list(self):
        self._record("list")
        return VMList(self.vms)

    def count(self, method):
        return sum(1 for c in self.calls if c[0] == method)


def make_registry(*providers):
    registry = ProviderRegistry()
    for p in providers:
        registry.register(p)
    return registry


@pytest.fixture
def aws():
    return FakeProvider("aws")


@pytest.fixture
def gcp():
    return FakeProvider("gcp")


@pytest.fixture
def registry(aws, gcp):
    return make_registry(aws, gcp)
