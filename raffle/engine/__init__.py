from .admins import AdminRegistry
from .counter import CounterAllocator
from .entropy import DeterministicStream, EntropySource
from .lifecycle import RoundLifecycleController
from .payouts import PayoutCalculator
from .registration import RegistrationLedger
from .selection import WinnerSelector
from .stakes import StakeReceipts
from .store import RoundStore
from .types import (
    BlockContext,
    Coin,
    FinalizeResult,
    RemainderPolicy,
    Round,
    SelectionMode,
    Settlement,
    SettlementStatus,
    TransferInstruction,
)

__all__ = [
    "AdminRegistry",
    "BlockContext",
    "Coin",
    "CounterAllocator",
    "DeterministicStream",
    "EntropySource",
    "FinalizeResult",
    "PayoutCalculator",
    "RegistrationLedger",
    "RemainderPolicy",
    "Round",
    "RoundLifecycleController",
    "RoundStore",
    "SelectionMode",
    "Settlement",
    "SettlementStatus",
    "StakeReceipts",
    "TransferInstruction",
    "WinnerSelector",
]
