import threading
from collections import Counter

from .dispatch import providers_sequential
from .errors import AccountMismatchError, NoActiveAccountError
from .logger import logger
from .provider import Provider
from .registry import ProviderRegistry


class AccountResolver:
    """
    Finds the single account every provider agrees the user is acting as.

    The answer is memoized. Concurrent first callers are serialised so only
    one resolution queries the providers; failures are not cached.
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self.registry = registry
        self._cached = ""
        self._lock = threading.Lock()

    def find_active_account(self) -> str:
        if self._cached:
            return self._cached

        with self._lock:
            if not self._cached:
                self._cached = self._resolve()
            return self._cached

    def _resolve(self) -> str:
        accounts: dict[str, str] = {}

        def _collect(p: Provider) -> None:
            accounts[p.name] = p.find_active_account()

        providers_sequential(
            self.registry,
            self.registry.all_provider_names(),
            _collect,
            operation="find_active_account",
        )
        logger.debug(f"Provider accounts: {accounts}")

        # Providers with no opinion return "" and do not vote
        counts = Counter(acct for acct in accounts.values() if acct)
        if not counts:
            raise NoActiveAccountError(
                "no Providers returned any active accounts",
                operation="find_active_account",
            )
        if len(counts) > 1:
            raise AccountMismatchError(accounts)

        (account,) = counts
        return account
