"""Capability interface every VM backend implements."""

import abc
import argparse
from datetime import timedelta

from .models import CreateOpts, VMList


class ProviderFlags(abc.ABC):
    """
    Hook point for backends to supply their own command-line options.

    Flag names should be prefixed with the provider's name (e.g. --gce-zones)
    so that similar options from different backends do not collide.
    """

    @abc.abstractmethod
    def configure_create_flags(self, parser: argparse.ArgumentParser) -> None:
        """Registers options relevant to the `create` command."""

    def load_create_flags(self, args: argparse.Namespace) -> None:
        """Copies parsed values back onto the flags object."""


class Provider(abc.ABC):
    """A source of virtual machines running on some hosting platform."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Canonical name, also the key in the provider registry."""

    @abc.abstractmethod
    def clean_ssh(self) -> None: ...

    @abc.abstractmethod
    def config_ssh(self) -> None: ...

    @abc.abstractmethod
    def create(self, names: list[str], opts: CreateOpts) -> None:
        """Provisions one VM per name. A single error covers the batch."""

    @abc.abstractmethod
    def delete(self, vms: VMList) -> None: ...

    @abc.abstractmethod
    def extend(self, vms: VMList, lifetime: timedelta) -> None: ...

    @abc.abstractmethod
    def find_active_account(self) -> str:
        """Account the backend is authenticated as; "" means no opinion."""

    @abc.abstractmethod
    def flags(self) -> ProviderFlags: ...

    @abc.abstractmethod
    def list(self) -> VMList: ...
