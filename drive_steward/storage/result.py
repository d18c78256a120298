from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from ..exceptions import ItemNotFoundError, ProviderTransportError

T = TypeVar("T")


class CallStatus(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class CallResult(Generic[T]):
    """
    Outcome of a single call to the storage provider.

    Providers never raise for expected failures. A missing item is reported
    as NOT_FOUND and anything else that went wrong on the wire (auth, quota,
    5xx, network) as TRANSPORT_ERROR. Callers decide whether to abort or
    continue, usually by calling `unwrap()`.
    """

    status: CallStatus
    value: Optional[T] = None
    target: Optional[str] = None
    error: Optional[str] = None
    http_status: Optional[int] = None

    @classmethod
    def success(cls, value: Optional[T] = None, target: Optional[str] = None) -> "CallResult[T]":
        return cls(CallStatus.SUCCESS, value=value, target=target)

    @classmethod
    def not_found(cls, target: str, error: str = "") -> "CallResult[T]":
        return cls(CallStatus.NOT_FOUND, target=target, error=error, http_status=404)

    @classmethod
    def transport_error(
        cls, error: str, target: Optional[str] = None, http_status: Optional[int] = None
    ) -> "CallResult[T]":
        return cls(
            CallStatus.TRANSPORT_ERROR,
            target=target,
            error=error,
            http_status=http_status,
        )

    @property
    def ok(self) -> bool:
        return self.status is CallStatus.SUCCESS

    @property
    def is_not_found(self) -> bool:
        return self.status is CallStatus.NOT_FOUND

    def unwrap(self) -> T:
        """
        Returns the value of a successful call.

        :raises ItemNotFoundError: If the provider reported the target as missing.
        :raises ProviderTransportError: For any other failure.
        """
        if self.status is CallStatus.SUCCESS:
            return self.value
        if self.status is CallStatus.NOT_FOUND:
            raise ItemNotFoundError(self.target or "unknown", self.error or "")
        raise ProviderTransportError(
            self.error or "Google Drive request failed.", status=self.http_status
        )
