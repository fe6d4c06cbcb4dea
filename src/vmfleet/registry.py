from collections.abc import Iterator

from .errors import UnknownProviderError
from .logger import logger
from .provider import Provider


class ProviderRegistry:
    """
    Maps provider names to live Provider instances.
    Populated once at startup; only read afterwards, so lookups take no lock.
    """

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}

    def register(self, provider: Provider) -> None:
        if provider.name in self._providers:
            logger.warning(f"Replacing registered provider: {provider.name}")
        self._providers[provider.name] = provider

    def get(self, name: str) -> Provider:
        try:
            return self._providers[name]
        except KeyError:
            raise UnknownProviderError(
                f"unknown vm provider: {name}", provider=name
            ) from None

    def all_provider_names(self) -> list[str]:
        """Names of all registered providers, in no particular order."""
        return list(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def __iter__(self) -> Iterator[Provider]:
        return iter(self._providers.values())
