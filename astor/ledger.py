"""Tamper-evident, hash-chained ledger of currency operations."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Union

from .errors import LedgerError

U64_MAX = 2**64 - 1
GENESIS_HASH = "genesis"


def hash_data(data: bytes) -> str:
    """Return the hex SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class Issuance:
    transaction_id: str
    issuer: str
    recipient: str
    amount: int


@dataclass(frozen=True)
class Transfer:
    transaction_id: str
    from_account: str
    to_account: str
    amount: int


@dataclass(frozen=True)
class AccountCreation:
    account_id: str


@dataclass(frozen=True)
class AdminAction:
    admin_id: str
    action: str
    target: str


EntryType = Union[Issuance, Transfer, AccountCreation, AdminAction]


@dataclass(frozen=True)
class LedgerEntry:
    id: str
    entry_type: EntryType
    timestamp: datetime
    hash: str
    previous_hash: str


def _entry_hash(
    previous_hash: str, entry_id: str, entry_type: EntryType, timestamp: datetime
) -> str:
    entry_data = f"{entry_id}{entry_type!r}{timestamp.isoformat()}"
    return hash_data(f"{previous_hash}{entry_data}".encode())


class Ledger:
    """Append-only ledger tracking balances and total supply."""

    def __init__(self) -> None:
        self._entries: list[LedgerEntry] = []
        self._balances: dict[str, int] = {}
        self._total_supply = 0

    def record_issuance(
        self, transaction_id: str, issuer: str, recipient: str, amount: int
    ) -> None:
        """Record newly issued units credited to ``recipient``."""
        self._add_entry(Issuance(transaction_id, issuer, recipient, amount))

        new_supply = self._total_supply + amount
        if new_supply > U64_MAX:
            raise LedgerError("Total supply overflow")
        self._total_supply = new_supply

        self._credit(recipient, amount)

    def record_transfer(
        self, transaction_id: str, from_account: str, to_account: str, amount: int
    ) -> None:
        """Record a transfer, moving ``amount`` between two balances."""
        self._add_entry(Transfer(transaction_id, from_account, to_account, amount))

        from_balance = self._balances.setdefault(from_account, 0)
        if from_balance < amount:
            raise LedgerError("Insufficient balance in ledger")
        self._balances[from_account] = from_balance - amount

        self._credit(to_account, amount)

    def record_account_creation(self, account_id: str) -> None:
        self._add_entry(AccountCreation(account_id))

    def record_admin_action(self, admin_id: str, action: str, target: str) -> None:
        self._add_entry(AdminAction(admin_id, action, target))

    def verify_integrity(self) -> bool:
        """Check the hash chain over all entries."""
        expected_previous = GENESIS_HASH
        for entry in self._entries:
            if entry.previous_hash != expected_previous:
                return False
            expected = _entry_hash(
                entry.previous_hash, entry.id, entry.entry_type, entry.timestamp
            )
            if entry.hash != expected:
                return False
            expected_previous = entry.hash
        return True

    @property
    def entries(self) -> tuple[LedgerEntry, ...]:
        return tuple(self._entries)

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance(self, account_id: str) -> int:
        return self._balances.get(account_id, 0)

    def _credit(self, account_id: str, amount: int) -> None:
        new_balance = self._balances.get(account_id, 0) + amount
        if new_balance > U64_MAX:
            raise LedgerError("Account balance overflow")
        self._balances[account_id] = new_balance

    def _last_hash(self) -> str:
        return self._entries[-1].hash if self._entries else GENESIS_HASH

    def _add_entry(self, entry_type: EntryType) -> None:
        entry_id = str(uuid.uuid4())
        timestamp = datetime.now(timezone.utc)
        previous_hash = self._last_hash()
        self._entries.append(
            LedgerEntry(
                id=entry_id,
                entry_type=entry_type,
                timestamp=timestamp,
                hash=_entry_hash(previous_hash, entry_id, entry_type, timestamp),
                previous_hash=previous_hash,
            )
        )