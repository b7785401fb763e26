"""Cross-chain bridges and the transfers that pass through them."""

from __future__ import annotations

import enum
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from .errors import InvalidInputError, NotFoundError

DEFAULT_MIN_CONFIRMATIONS = 12
DEFAULT_FEE_RATE = 0.001


class TransactionStatus(enum.Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


@dataclass
class CrossChainBridge:
    id: uuid.UUID
    name: str
    source_chain: str
    target_chain: str
    bridge_contract: str
    validators: list[str]
    min_confirmations: int = DEFAULT_MIN_CONFIRMATIONS
    fee_rate: float = DEFAULT_FEE_RATE
    active: bool = True


@dataclass
class CrossChainTransaction:
    id: uuid.UUID
    bridge_id: uuid.UUID
    source_tx_hash: str
    from_address: str
    to_address: str
    amount: int
    target_tx_hash: Optional[str] = None
    status: TransactionStatus = TransactionStatus.PENDING
    confirmations: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None


class InteroperabilityManager:
    """Registers bridges and drives cross-chain transfers to completion."""

    def __init__(self) -> None:
        self._bridges: dict[uuid.UUID, CrossChainBridge] = {}
        self._transactions: dict[uuid.UUID, CrossChainTransaction] = {}

    @property
    def bridges(self) -> dict[uuid.UUID, CrossChainBridge]:
        return dict(self._bridges)

    async def create_bridge(
        self,
        name: str,
        source_chain: str,
        target_chain: str,
        bridge_contract: str,
        validators: list[str],
    ) -> uuid.UUID:
        bridge_id = uuid.uuid4()
        self._bridges[bridge_id] = CrossChainBridge(
            id=bridge_id,
            name=name,
            source_chain=source_chain,
            target_chain=target_chain,
            bridge_contract=bridge_contract,
            validators=list(validators),
        )
        return bridge_id

    async def initiate_cross_chain_transfer(
        self,
        bridge_id: uuid.UUID,
        from_address: str,
        to_address: str,
        amount: int,
        source_tx_hash: str,
    ) -> uuid.UUID:
        """Open a pending transfer over an active bridge and return its id."""
        bridge = self._bridges.get(bridge_id)
        if bridge is None:
            raise NotFoundError("Bridge not found")
        if not bridge.active:
            raise InvalidInputError("Bridge is inactive")

        tx_id = uuid.uuid4()
        self._transactions[tx_id] = CrossChainTransaction(
            id=tx_id,
            bridge_id=bridge_id,
            source_tx_hash=source_tx_hash,
            from_address=from_address,
            to_address=to_address,
            amount=amount,
        )
        return tx_id

    async def process_confirmations(self, tx_id: uuid.UUID, confirmations: int) -> None:
        """Record confirmations; once the bridge's minimum is met, execute the transfer."""
        transaction = self._transactions.get(tx_id)
        if transaction is None:
            return
        transaction.confirmations = confirmations
        bridge = self._bridges[transaction.bridge_id]
        if confirmations >= bridge.min_confirmations:
            transaction.status = TransactionStatus.CONFIRMED
            await self._execute_cross_chain_transfer(transaction)

    def get_transaction(self, tx_id: uuid.UUID) -> CrossChainTransaction:
        try:
            return self._transactions[tx_id]
        except KeyError:
            raise NotFoundError(f"Transaction {tx_id} not found") from None

    async def _execute_cross_chain_transfer(self, transaction: CrossChainTransaction) -> None:
        transaction.status = TransactionStatus.PROCESSING
        transaction.target_tx_hash = await self._submit_to_target_chain(transaction)
        transaction.status = TransactionStatus.COMPLETED
        transaction.completed_at = datetime.now(timezone.utc)

    async def _submit_to_target_chain(self, transaction: CrossChainTransaction) -> str:
        return f"0x{secrets.randbits(64):x}"