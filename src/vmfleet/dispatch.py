"""
Routes a logical operation to one, many or all registered providers.

Actions signal failure by raising. The parallel helpers run every task to
completion and then raise the first failure observed; the sequential helper
stops at the first failure.
"""

from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed

from .errors import ProviderError, UnknownProviderError, VMFleetError
from .logger import logger
from .models import VMList
from .provider import Provider
from .registry import ProviderRegistry

ProviderAction = Callable[[Provider], None]
BatchAction = Callable[[Provider, VMList], None]


def _wrap(name: str, operation: str | None, exc: Exception) -> VMFleetError:
    return ProviderError(
        f"in provider: {name}", provider=name, operation=operation, cause=exc
    )


def _wait_first_error(futures: dict[Future[None], str]) -> None:
    """Waits for every future and raises the first exception to arrive."""
    first: BaseException | None = None
    for future in as_completed(futures):
        exc = future.exception()
        if exc is None:
            continue
        logger.debug(f"Task for provider {futures[future]} failed: {exc}")
        if first is None:
            first = exc
    if first is not None:
        raise first


def fan_out(
    registry: ProviderRegistry,
    vms: VMList,
    action: BatchAction,
    operation: str | None = None,
) -> None:
    """
    Collates VMs by their provider and invokes the action once per provider,
    in parallel, with that provider's share of the list.
    """
    groups = VMList(vms).by_provider()
    if not groups:
        return

    def _run(name: str, group: VMList) -> None:
        if name not in registry:
            raise UnknownProviderError(
                f"unknown provider name: {name}", provider=name, operation=operation
            )
        try:
            action(registry.get(name), group)
        except Exception as e:
            raise _wrap(name, operation, e) from e

    with ThreadPoolExecutor(max_workers=len(groups)) as executor:
        futures = {
            executor.submit(_run, name, group): name for name, group in groups.items()
        }
        _wait_first_error(futures)


def for_provider(
    registry: ProviderRegistry,
    named: str,
    action: ProviderAction,
    operation: str | None = None,
) -> None:
    """Resolves the named provider and executes the action against it."""
    provider = registry.get(named)
    try:
        action(provider)
    except Exception as e:
        raise _wrap(named, operation, e) from e


def providers_parallel(
    registry: ProviderRegistry,
    named: Iterable[str],
    action: ProviderAction,
    operation: str | None = None,
) -> None:
    """Concurrently executes the action for each named provider."""
    names = list(named)
    if not names:
        return

    with ThreadPoolExecutor(max_workers=len(names)) as executor:
        futures = {
            executor.submit(for_provider, registry, name, action, operation): name
            for name in names
        }
        _wait_first_error(futures)


def providers_sequential(
    registry: ProviderRegistry,
    named: Iterable[str],
    action: ProviderAction,
    operation: str | None = None,
) -> None:
    """Executes the action for each named provider in order, stopping on error."""
    for name in named:
        for_provider(registry, name, action, operation)
