from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Carrier(str, Enum):
    MOBILE = "MOBILE"
    UNICOM = "UNICOM"
    TELECOM = "TELECOM"
    LOCAL = "LOCAL"

    @property
    def token(self) -> str:
        return CARRIER_TOKENS[self]

    @classmethod
    def parse(cls, raw: Any) -> "Carrier":
        """Accept a carrier name or its wire token; anything else is rejected."""
        if isinstance(raw, Carrier):
            return raw
        if not isinstance(raw, str):
            raise ValueError(f"carrierSuffix must be a string, got {type(raw).__name__}")
        value = raw.strip()
        if value.upper() in cls.__members__:
            return cls[value.upper()]
        carrier = TOKEN_CARRIERS.get(value.lower())
        if carrier is None:
            raise ValueError(f"unknown carrierSuffix: {raw!r}")
        return carrier


CARRIER_TOKENS: dict[Carrier, str] = {
    Carrier.MOBILE: "@yd",
    Carrier.UNICOM: "@lt",
    Carrier.TELECOM: "@dx",
    Carrier.LOCAL: "@hsd",
}
TOKEN_CARRIERS: dict[str, Carrier] = {token: carrier for carrier, token in CARRIER_TOKENS.items()}


@dataclass(frozen=True)
class Credentials:
    id: str
    password: str
    carrier: Carrier

    @property
    def login_id(self) -> str:
        return self.id + self.carrier.token

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "password": self.password, "carrierSuffix": self.carrier.value}

    @classmethod
    def from_dict(cls, data: Any) -> "Credentials":
        if not isinstance(data, dict):
            raise ValueError("credentials must be a JSON object")
        missing = [k for k in ("id", "password", "carrierSuffix") if k not in data]
        if missing:
            raise ValueError(f"credentials missing required keys: {', '.join(missing)}")
        user_id = data["id"]
        password = data["password"]
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValueError("id must be a non-empty string")
        if not isinstance(password, str):
            raise ValueError("password must be a string")
        return cls(id=user_id, password=password, carrier=Carrier.parse(data["carrierSuffix"]))

    def __repr__(self) -> str:
        return f"Credentials(id={self.id!r}, carrier={self.carrier.value})"


@dataclass(frozen=True)
class PortalEntry:
    entry_url: str
    origin_root: str
    prefilled_args: list[tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class AuthEndpoints:
    auth_submit_url: str
    logout_root_host: str
    campus_code: str


@dataclass(frozen=True)
class LoginResult:
    entry: PortalEntry
    endpoints: AuthEndpoints
