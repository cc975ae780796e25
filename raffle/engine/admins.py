from __future__ import annotations

from typing import Iterable, List

from ..errors import AlreadyInitialized, InvalidAdminSet, Unauthorized
from ..storage import StateView

ADMINS_KEY = "admins"


class AdminRegistry:
    def __init__(self, state: StateView) -> None:
        self._state = state

    def initialized(self) -> bool:
        return self._state.load(ADMINS_KEY) is not None

    def initialize(self, identities: Iterable[str]) -> List[str]:
        if self.initialized():
            raise AlreadyInitialized()
        admins: List[str] = []
        for identity in identities:
            identity = identity.strip()
            if not identity:
                raise InvalidAdminSet("Admin identities must be non-empty")
            if identity not in admins:
                admins.append(identity)
        if not admins:
            raise InvalidAdminSet("At least one admin identity is required")
        self._state.save(ADMINS_KEY, {"admins": admins})
        return admins

    def admins(self) -> List[str]:
        record = self._state.load(ADMINS_KEY)
        if record is None:
            return []
        return list(record["admins"])

    def is_admin(self, identity: str) -> bool:
        return identity in self.admins()

    def require_admin(self, identity: str) -> None:
        if not self.is_admin(identity):
            raise Unauthorized(identity)
