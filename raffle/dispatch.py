"""Route decoded request messages to the contract.

Each message type maps to exactly one contract operation; responses are
plain JSON-ready dicts with amounts rendered as decimal strings.
"""
from __future__ import annotations

from typing import Any, Callable, Dict

from .contract import RaffleContract
from .engine import BlockContext, Coin, FinalizeResult, Round, Settlement
from .errors import InvalidStake
from .schemas import (
    CustodyResponse,
    FinalizeResponse,
    FinalizeRoundMsg,
    GetAdminsQuery,
    GetCounterQuery,
    GetRoundQuery,
    GetTotalCustodiedQuery,
    InitMsg,
    JoinRoundMsg,
    ListRoundsQuery,
    OpenRoundMsg,
    RecordSettlementMsg,
    RoundResponse,
    SettlementResponse,
    TransferResponse,
)
from .services.chain import StakeTransfer

CustodyReader = Callable[[], int]
StakeReader = Callable[[str], StakeTransfer]


def settlement_to_response(settlement: Settlement) -> SettlementResponse:
    return SettlementResponse(
        recipient=settlement.recipient,
        amount=str(settlement.amount),
        status=settlement.status.value,
        tx_hash=settlement.tx_hash,
        attempts=settlement.attempts,
        error=settlement.error,
    )


def round_to_response(raffle_round: Round) -> RoundResponse:
    return RoundResponse(
        id=raffle_round.id,
        begin_time=raffle_round.begin_time,
        end_time=raffle_round.end_time,
        minimum_stake=str(raffle_round.minimum_stake),
        distribution=list(raffle_round.distribution),
        players=list(raffle_round.players),
        winners=list(raffle_round.winners),
        payouts=[str(p) for p in raffle_round.payouts],
        active=raffle_round.active,
        remainder=str(raffle_round.remainder),
        settlements=[settlement_to_response(s) for s in raffle_round.settlements],
    )


def finalize_to_response(result: FinalizeResult) -> FinalizeResponse:
    return FinalizeResponse(
        round_id=result.round_id,
        winners=list(result.winners),
        payouts=[str(p) for p in result.payouts],
        remainder=str(result.remainder),
        transfers=[
            TransferResponse(round_id=t.round_id, index=t.index, recipient=t.recipient, amount=str(t.amount))
            for t in result.transfers
        ],
    )


def custody_to_response(contract: RaffleContract, balance: int) -> CustodyResponse:
    outstanding = contract.outstanding_settlements()
    return CustodyResponse(
        denom=contract.settings.staking_denom,
        total=str(balance),
        outstanding=str(outstanding),
        available=str(max(balance - outstanding, 0)),
    )


def execute(
    contract: RaffleContract,
    caller: str,
    block: BlockContext,
    msg: Any,
    custody_balance: CustodyReader,
    stake_transfer: StakeReader,
) -> Dict[str, Any]:
    """Apply one execute message.

    ``custody_balance`` is only read by finalization and ``stake_transfer`` only
    by registration, whose stake is the verified deposit rather than anything
    the request claims.
    """
    if isinstance(msg, InitMsg):
        return {"admins": contract.init(msg.admins)}
    if isinstance(msg, OpenRoundMsg):
        round_id = contract.open_round(caller, block, msg.end_time, msg.minimum_stake, msg.distribution)
        return {"round_id": round_id}
    if isinstance(msg, JoinRoundMsg):
        stake = stake_transfer(msg.stake_tx)
        if stake.sender.lower() != caller.lower():
            raise InvalidStake(f"Stake transaction {msg.stake_tx} was sent by {stake.sender}, not {caller}")
        funds = [Coin(amount=stake.value, denom=contract.settings.staking_denom)]
        raffle_round = contract.join_round(caller, block, msg.round_id, funds, stake_reference=msg.stake_tx)
        return {"round_id": raffle_round.id, "players": len(raffle_round.players)}
    if isinstance(msg, FinalizeRoundMsg):
        result = contract.finalize_round(
            caller, block, msg.round_id, custody_balance(), extra_entropy=msg.entropy_bytes()
        )
        return finalize_to_response(result).model_dump()
    if isinstance(msg, RecordSettlementMsg):
        settlement = contract.record_settlement(
            caller, msg.round_id, msg.index, tx_hash=msg.tx_hash, error=msg.error
        )
        return settlement_to_response(settlement).model_dump()
    raise TypeError(f"Unsupported execute message: {type(msg).__name__}")


def query(contract: RaffleContract, msg: Any, custody_balance: CustodyReader) -> Any:
    if isinstance(msg, GetRoundQuery):
        return round_to_response(contract.get_round(msg.round_id)).model_dump()
    if isinstance(msg, ListRoundsQuery):
        return [round_to_response(r).model_dump() for r in contract.list_rounds(active=msg.active)]
    if isinstance(msg, GetCounterQuery):
        return {"next_round_id": contract.get_counter()}
    if isinstance(msg, GetTotalCustodiedQuery):
        return custody_to_response(contract, custody_balance()).model_dump()
    if isinstance(msg, GetAdminsQuery):
        return {"admins": contract.get_admins()}
    raise TypeError(f"Unsupported query message: {type(msg).__name__}")
