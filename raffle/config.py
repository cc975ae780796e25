from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

from .engine.entropy import DEFAULT_DOMAIN
from .engine.types import RemainderPolicy, SelectionMode


@dataclass(frozen=True)
class FlaskSettings:
    secret_key: str = "raffle-dev-secret"


@dataclass(frozen=True)
class ChainSettings:
    rpc_url: str
    custody_address: str
    settlement_signer: Optional[str] = None
    chain_id: Optional[int] = None
    gas_limit: int = 21000


@dataclass(frozen=True)
class EngineSettings:
    staking_denom: str = "wei"
    entropy_domain: str = DEFAULT_DOMAIN
    selection_mode: SelectionMode = SelectionMode.WITH_REPLACEMENT
    remainder_policy: RemainderPolicy = RemainderPolicy.CARRY_OVER


@dataclass(frozen=True)
class AppSettings:
    flask: FlaskSettings
    chain: ChainSettings
    database_url: str
    engine: EngineSettings = field(default_factory=EngineSettings)


def _require(key: str) -> str:
    value = os.getenv(key)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {key}")
    return value


def _optional_int(key: str) -> Optional[int]:
    value = os.getenv(key)
    return int(value) if value else None


def load_engine_settings() -> EngineSettings:
    return EngineSettings(
        staking_denom=os.getenv("STAKING_DENOM", "wei"),
        entropy_domain=os.getenv("ENTROPY_DOMAIN", DEFAULT_DOMAIN),
        selection_mode=SelectionMode(os.getenv("SELECTION_MODE", SelectionMode.WITH_REPLACEMENT.value)),
        remainder_policy=RemainderPolicy(os.getenv("REMAINDER_POLICY", RemainderPolicy.CARRY_OVER.value)),
    )


def load_chain_settings() -> ChainSettings:
    return ChainSettings(
        rpc_url=_require("RPC_URL"),
        custody_address=_require("CUSTODY_ADDRESS"),
        settlement_signer=os.getenv("SETTLEMENT_SIGNER"),
        chain_id=_optional_int("CHAIN_ID"),
        gas_limit=int(os.getenv("GAS_LIMIT", "21000")),
    )


@lru_cache(maxsize=1)
def load_settings(dotenv_path: Optional[str] = None) -> AppSettings:
    if dotenv_path:
        load_dotenv(dotenv_path)
    else:
        load_dotenv()

    flask_settings = FlaskSettings(
        secret_key=os.getenv("FLASK_SECRET_KEY", "raffle-dev-secret"),
    )

    return AppSettings(
        flask=flask_settings,
        chain=load_chain_settings(),
        database_url=os.getenv("DATABASE_URL", "sqlite:///raffle.db"),
        engine=load_engine_settings(),
    )
