from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..dispatch import custody_to_response, round_to_response
from .execute import get_contract, read_custody_balance

bp = Blueprint("rounds", __name__)


@bp.get("/rounds")
def list_rounds():
    active_param = request.args.get("active")
    active = None if active_param is None else active_param.lower() in {"1", "true", "yes"}
    rounds = get_contract().list_rounds(active=active)
    return jsonify([round_to_response(r).model_dump() for r in rounds])


@bp.get("/rounds/<int:round_id>")
def get_round(round_id: int):
    return jsonify(round_to_response(get_contract().get_round(round_id)).model_dump())


@bp.get("/counter")
def get_counter():
    return jsonify({"next_round_id": get_contract().get_counter()})


@bp.get("/custody")
def get_custody():
    balance = read_custody_balance()
    return jsonify(custody_to_response(get_contract(), balance).model_dump())
