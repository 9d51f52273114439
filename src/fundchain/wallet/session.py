"""
Explicit wallet session.

A session is created when a wallet connects and cleared when it disconnects.
It is passed into every operation that needs the viewer's identity; nothing
reads an ambient "current account".
"""

import re
from dataclasses import dataclass, field
from uuid import uuid4

from fundchain.shared.exceptions import ValidationError

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def validate_address(address: str) -> str:
    candidate = address.strip()
    if not ADDRESS_PATTERN.match(candidate):
        raise ValidationError(
            f"Invalid account address: {address!r}",
            details={"address": address},
        )
    return candidate


@dataclass
class WalletSession:
    """Identity of the connected viewer, if any."""

    account: str | None = None
    session_id: str = field(default_factory=lambda: uuid4().hex)

    def __post_init__(self) -> None:
        if self.account is not None:
            self.account = validate_address(self.account)

    @classmethod
    def anonymous(cls) -> "WalletSession":
        return cls()

    @property
    def connected(self) -> bool:
        return self.account is not None

    def connect(self, account: str) -> None:
        self.account = validate_address(account)

    def disconnect(self) -> None:
        self.account = None

    def is_account(self, address: str) -> bool:
        return self.account is not None and self.account.lower() == address.lower()
