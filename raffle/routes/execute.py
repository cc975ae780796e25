from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Any, Awaitable, Callable

from flask import Blueprint, current_app, jsonify, request

from .. import dispatch
from ..config import load_settings
from ..contract import RaffleContract
from ..errors import ChainUnavailable, RaffleError
from ..schemas import ExecuteRequest, QueryRequest
from ..services.chain import RaffleChainClient, StakeTransfer

bp = Blueprint("execute", __name__)

CALLER_HEADER = "X-Caller-Identity"
SIGNATURE_HEADER = "X-Caller-Signature"


@lru_cache(maxsize=1)
def get_chain_client() -> RaffleChainClient:
    settings = load_settings()
    return RaffleChainClient.from_settings(settings.chain)


def get_contract() -> RaffleContract:
    return current_app.extensions["raffle.contract"]


def run_chain_call(call: Callable[[RaffleChainClient], Awaitable[Any]], description: str) -> Any:
    """Run one chain client coroutine; node failures surface as :class:`ChainUnavailable`."""
    try:
        return asyncio.run(call(get_chain_client()))
    except RaffleError:
        raise
    except Exception as exc:
        current_app.logger.exception("Failed to read %s from chain: %s", description, exc)
        raise ChainUnavailable(f"failed to read {description}") from exc


def read_custody_balance() -> int:
    return run_chain_call(lambda client: client.custody_balance(), "custody balance")


def read_stake_transfer(tx_hash: str) -> StakeTransfer:
    return run_chain_call(lambda client: client.stake_transfer(tx_hash), "stake transaction")


@bp.post("/execute")
def execute():
    body = request.get_data()
    payload = request.get_json(force=True, silent=True) or {}
    data = ExecuteRequest(**payload)

    block = run_chain_call(lambda client: client.latest_block(), "block context")

    with current_app.extensions["raffle.lock"]:
        caller = current_app.extensions["raffle.auth"].authenticate(
            (request.headers.get(CALLER_HEADER) or "").strip(),
            (request.headers.get(SIGNATURE_HEADER) or "").strip(),
            body,
            data.nonce,
        )
        result = dispatch.execute(
            get_contract(), caller, block, data.msg, read_custody_balance, read_stake_transfer
        )
    current_app.logger.info("%s executed %s at height %s", caller, data.msg.op, block.height)
    return jsonify(result)


@bp.post("/query")
def query():
    payload = request.get_json(force=True, silent=True) or {}
    data = QueryRequest(**payload)
    return jsonify(dispatch.query(get_contract(), data.msg, read_custody_balance))
