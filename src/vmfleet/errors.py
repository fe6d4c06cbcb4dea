from enum import Enum


class VMErrorKind(str, Enum):
    """Problems recorded on a VM whose backend data is incomplete."""

    BAD_NETWORK = "could not determine network information"
    INVALID_NAME = "invalid VM name"
    NO_EXPIRATION = "could not determine expiration"


class VMFleetError(Exception):
    """
    Base error for the orchestration layer.
    Carries the provider and operation it happened in, plus the wrapped cause.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        operation: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.operation = operation
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class UnknownProviderError(VMFleetError):
    """No backend is registered under the requested name."""


class ProviderError(VMFleetError):
    """A backend operation failed; the backend's own exception is the cause."""


class ProviderUnavailableError(VMFleetError):
    """The backend is registered but could not be initialised."""


class NoActiveAccountError(VMFleetError):
    pass


class AccountMismatchError(VMFleetError):
    def __init__(self, accounts: dict[str, str]) -> None:
        super().__init__(
            f"multiple active Provider accounts detected: {accounts}",
            operation="find_active_account",
        )
        self.accounts = dict(accounts)


class MalformedZoneError(VMFleetError):
    def __init__(self, zone: str, provider: str | None = None) -> None:
        super().__init__(
            f"unable to parse region from zone {zone!r}", provider=provider
        )
        self.zone = zone
