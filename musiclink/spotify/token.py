from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from musiclink.utils.time import human_timestamp, now as clock_now


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


def _mask(secret: str) -> str:
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}…{secret[-4:]}"


@dataclass
class Token:
    """Access/refresh token pair with expiry bookkeeping.

    ``issued_at`` is stamped on construction and reset by ``apply_refresh``;
    it is not part of the persisted record.
    """

    access_token: str
    expires_in: int
    refresh_token: str
    token_type: str
    issued_at: float = field(default_factory=lambda: clock_now(), compare=False)

    @classmethod
    def from_record(cls, record: Optional[Mapping[str, Any]]) -> "Token":
        """Build a token from a persisted record. Never raises."""
        if not isinstance(record, Mapping):
            record = {}
        return cls(
            access_token=_as_str(record.get("access_token")),
            expires_in=_as_int(record.get("expires_in")),
            refresh_token=_as_str(record.get("refresh_token")),
            token_type=_as_str(record.get("token_type")),
        )

    from_response = from_record

    def to_record(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "expires_in": self.expires_in,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
        }

    @property
    def is_valid(self) -> bool:
        return bool(
            self.access_token
            and self.expires_in != 0
            and self.refresh_token
            and self.token_type
        )

    def is_expired(self, now: Optional[float] = None) -> bool:
        current = clock_now() if now is None else now
        return current - self.issued_at > self.expires_in

    def apply_refresh(self, access_token: str, *, now: Optional[float] = None) -> None:
        self.access_token = access_token
        self.issued_at = clock_now() if now is None else now

    def describe(self) -> str:
        return (
            f"Access token:  {_mask(self.access_token)}\n"
            f"Expires in:    {self.expires_in}\n"
            f"Refresh token: {_mask(self.refresh_token)}\n"
            f"Token type:    {self.token_type}\n"
            f"Issued at:     {human_timestamp(self.issued_at)}"
        )
