"""Caller authentication for the execute endpoint.

Callers sign the exact request body with their account key (EIP-191
``personal_sign``). The recovered address is the caller identity handed to the
engine; the claimed identity header only has to agree with it. Each body
carries a per-caller nonce that must increase, so a captured request cannot be
replayed.
"""
from __future__ import annotations

from eth_account import Account
from eth_account.messages import encode_defunct

from .errors import Unauthenticated
from .storage import StateStore


def nonce_key(identity: str) -> str:
    return f"nonce:{identity.lower()}"


def recover_signer(body: bytes, signature: str) -> str:
    try:
        return Account.recover_message(encode_defunct(primitive=body), signature=signature)
    except Exception as exc:
        raise Unauthenticated("Request signature is malformed") from exc


class CallerAuthenticator:
    def __init__(self, store: StateStore) -> None:
        self._store = store

    def authenticate(self, claimed: str, signature: str, body: bytes, nonce: int) -> str:
        if not claimed or not signature:
            raise Unauthenticated("Caller identity and signature headers are required")

        signer = recover_signer(body, signature)
        if signer.lower() != claimed.lower():
            raise Unauthenticated(f"Signature does not belong to {claimed}")

        with self._store.transaction() as state:
            record = state.load(nonce_key(signer))
            last = int(record["nonce"]) if record else -1
            if nonce <= last:
                raise Unauthenticated(f"Nonce {nonce} already used; next nonce must exceed {last}")
            state.save(nonce_key(signer), {"nonce": nonce})
        return signer
