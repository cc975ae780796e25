from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

from raffle.config import ChainSettings, EngineSettings, load_engine_settings


def _bool_from_env(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_from_env(value: Optional[str], default: int) -> int:
    if value is None or value == "":
        return default
    return int(value)


def _require_env(key: str) -> str:
    value = os.getenv(key)
    if value is None or value == "":
        raise RuntimeError(f"Missing required environment variable: {key}")
    return value


@dataclass(frozen=True)
class SettlerSettings:
    chain: ChainSettings
    operator_identity: str
    database_url: str = "sqlite:///raffle.db"
    poll_interval_seconds: int = 30
    settle_only_once: bool = False
    max_attempts: int = 3
    engine: EngineSettings = EngineSettings()

    def copy(self, **updates) -> "SettlerSettings":
        return replace(self, **updates)


def load_from_environment() -> SettlerSettings:
    chain_id = os.getenv("CHAIN_ID")
    chain = ChainSettings(
        rpc_url=_require_env("RPC_URL"),
        custody_address=_require_env("CUSTODY_ADDRESS"),
        settlement_signer=_require_env("SETTLEMENT_SIGNER"),
        chain_id=int(chain_id) if chain_id else None,
        gas_limit=_int_from_env(os.getenv("GAS_LIMIT"), 21000),
    )

    return SettlerSettings(
        chain=chain,
        operator_identity=_require_env("OPERATOR_IDENTITY"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///raffle.db"),
        poll_interval_seconds=_int_from_env(os.getenv("POLL_INTERVAL_SECONDS"), 30),
        settle_only_once=_bool_from_env(os.getenv("SETTLE_ONCE"), False),
        max_attempts=_int_from_env(os.getenv("MAX_ATTEMPTS"), 3),
        engine=load_engine_settings(),
    )


@lru_cache(maxsize=1)
def load_config(dotenv_path: Optional[str] = None) -> SettlerSettings:
    if dotenv_path:
        load_dotenv(dotenv_path)
    else:
        default_path = pathlib.Path(".env")
        if default_path.exists():
            load_dotenv(default_path)
    return load_from_environment()
