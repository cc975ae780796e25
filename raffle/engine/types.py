from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

UINT128_MAX = 2**128 - 1


class SelectionMode(str, Enum):
    WITH_REPLACEMENT = "with_replacement"
    WITHOUT_REPLACEMENT = "without_replacement"


class RemainderPolicy(str, Enum):
    CARRY_OVER = "carry_over"
    LARGEST_SHARE = "largest_share"
    RETURN_TO_ADMIN = "return_to_admin"


class SettlementStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    SETTLED = "settled"
    FAILED = "failed"


@dataclass(frozen=True)
class Coin:
    amount: int
    denom: str


@dataclass(frozen=True)
class BlockContext:
    """Deterministic execution context supplied with every call."""

    height: int
    time: int


@dataclass(frozen=True)
class TransferInstruction:
    round_id: int
    index: int
    recipient: str
    amount: int
    tx_hash: Optional[str] = None
    raw_tx: Optional[str] = None


@dataclass
class Settlement:
    recipient: str
    amount: int
    status: SettlementStatus = SettlementStatus.PENDING
    tx_hash: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None
    raw_tx: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient": self.recipient,
            "amount": self.amount,
            "status": self.status.value,
            "tx_hash": self.tx_hash,
            "attempts": self.attempts,
            "error": self.error,
            "raw_tx": self.raw_tx,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settlement":
        return cls(
            recipient=data["recipient"],
            amount=int(data["amount"]),
            status=SettlementStatus(data.get("status", SettlementStatus.PENDING.value)),
            tx_hash=data.get("tx_hash"),
            attempts=int(data.get("attempts", 0)),
            error=data.get("error"),
            raw_tx=data.get("raw_tx"),
        )


@dataclass
class Round:
    id: int
    begin_time: int
    end_time: int
    minimum_stake: int
    distribution: List[int]
    players: List[str] = field(default_factory=list)
    winners: List[str] = field(default_factory=list)
    payouts: List[int] = field(default_factory=list)
    active: bool = True
    remainder: int = 0
    settlements: List[Settlement] = field(default_factory=list)

    def has_player(self, identity: str) -> bool:
        return identity in self.players

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "begin_time": self.begin_time,
            "end_time": self.end_time,
            "minimum_stake": self.minimum_stake,
            "distribution": list(self.distribution),
            "players": list(self.players),
            "winners": list(self.winners),
            "payouts": list(self.payouts),
            "active": self.active,
            "remainder": self.remainder,
            "settlements": [s.to_dict() for s in self.settlements],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Round":
        return cls(
            id=int(data["id"]),
            begin_time=int(data["begin_time"]),
            end_time=int(data["end_time"]),
            minimum_stake=int(data["minimum_stake"]),
            distribution=[int(s) for s in data["distribution"]],
            players=list(data.get("players", [])),
            winners=list(data.get("winners", [])),
            payouts=[int(p) for p in data.get("payouts", [])],
            active=bool(data.get("active", True)),
            remainder=int(data.get("remainder", 0)),
            settlements=[Settlement.from_dict(s) for s in data.get("settlements", [])],
        )


@dataclass(frozen=True)
class FinalizeResult:
    round_id: int
    winners: Sequence[str]
    payouts: Sequence[int]
    remainder: int
    transfers: Sequence[TransferInstruction]
