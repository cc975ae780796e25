from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator
from web3 import Web3


# ============ Execute messages ============

class InitMsg(BaseModel):
    op: Literal["init"]
    admins: List[str] = Field(..., description="Identities allowed to open and finalize rounds.")

    @field_validator("admins")
    @classmethod
    def checksum_admins(cls, value: List[str]) -> List[str]:
        try:
            return [Web3.to_checksum_address(admin.strip()) for admin in value]
        except (TypeError, ValueError) as exc:
            raise ValueError("admins must be account addresses") from exc


class OpenRoundMsg(BaseModel):
    op: Literal["open_round"]
    end_time: int = Field(..., ge=0)
    minimum_stake: int = Field(..., ge=0)
    distribution: List[int] = Field(..., description="Payout shares, one per winner slot.")


class JoinRoundMsg(BaseModel):
    op: Literal["join_round"]
    round_id: int = Field(..., ge=0)
    stake_tx: str = Field(..., min_length=1, description="Hash of the caller's deposit into custody.")

    @field_validator("stake_tx")
    @classmethod
    def normalize_stake_tx(cls, value: str) -> str:
        hex_value = value.lower()
        hex_value = hex_value[2:] if hex_value.startswith("0x") else hex_value
        try:
            raw = bytes.fromhex(hex_value)
        except ValueError as exc:
            raise ValueError("stake_tx must be a hex transaction hash") from exc
        if len(raw) != 32:
            raise ValueError("stake_tx must be a 32-byte transaction hash")
        return "0x" + hex_value


class FinalizeRoundMsg(BaseModel):
    op: Literal["finalize_round"]
    round_id: int = Field(..., ge=0)
    entropy: Optional[str] = Field(None, description="Optional hex-encoded extra entropy bytes.")

    @field_validator("entropy")
    @classmethod
    def validate_entropy(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        hex_value = value[2:] if value.startswith("0x") else value
        try:
            bytes.fromhex(hex_value)
        except ValueError as exc:
            raise ValueError("entropy must be a hex string") from exc
        return hex_value

    def entropy_bytes(self) -> bytes:
        return bytes.fromhex(self.entropy) if self.entropy else b""


class RecordSettlementMsg(BaseModel):
    op: Literal["record_settlement"]
    round_id: int = Field(..., ge=0)
    index: int = Field(..., ge=0)
    tx_hash: Optional[str] = None
    error: Optional[str] = None


ExecuteMsg = Annotated[
    Union[InitMsg, OpenRoundMsg, JoinRoundMsg, FinalizeRoundMsg, RecordSettlementMsg],
    Field(discriminator="op"),
]


class ExecuteRequest(BaseModel):
    msg: ExecuteMsg
    nonce: int = Field(..., ge=0, description="Per-caller counter; must exceed the last accepted nonce.")


# ============ Query messages ============

class GetRoundQuery(BaseModel):
    op: Literal["get_round"]
    round_id: int = Field(..., ge=0)


class ListRoundsQuery(BaseModel):
    op: Literal["list_rounds"]
    active: Optional[bool] = None


class GetCounterQuery(BaseModel):
    op: Literal["get_counter"]


class GetTotalCustodiedQuery(BaseModel):
    op: Literal["get_total_custodied"]


class GetAdminsQuery(BaseModel):
    op: Literal["get_admins"]


QueryMsg = Annotated[
    Union[GetRoundQuery, ListRoundsQuery, GetCounterQuery, GetTotalCustodiedQuery, GetAdminsQuery],
    Field(discriminator="op"),
]


class QueryRequest(BaseModel):
    msg: QueryMsg


# ============ Responses ============

class SettlementResponse(BaseModel):
    recipient: str
    amount: str
    status: str
    tx_hash: Optional[str] = None
    attempts: int = 0
    error: Optional[str] = None


class RoundResponse(BaseModel):
    id: int
    begin_time: int
    end_time: int
    minimum_stake: str
    distribution: List[int]
    players: List[str]
    winners: List[str]
    payouts: List[str]
    active: bool
    remainder: str
    settlements: List[SettlementResponse]


class TransferResponse(BaseModel):
    round_id: int
    index: int
    recipient: str
    amount: str


class FinalizeResponse(BaseModel):
    round_id: int
    winners: List[str]
    payouts: List[str]
    remainder: str
    transfers: List[TransferResponse]


class CustodyResponse(BaseModel):
    denom: str
    total: str
    outstanding: str
    available: str
