from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


class FailureReason(str, Enum):
    NO_APPLICATION = "no_application"
    NO_TOKEN = "no_token"
    REFRESH_FAILED = "refresh_failed"
    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    DECODE = "decode"
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    ok = True


@dataclass(frozen=True)
class Failure:
    reason: FailureReason
    message: str = ""
    status: Optional[int] = None

    ok = False

    def __str__(self) -> str:
        text = self.reason.value
        if self.status is not None:
            text = f"{text} (HTTP {self.status})"
        if self.message:
            text = f"{text}: {self.message}"
        return text


Outcome = Union[Success[T], Failure]
