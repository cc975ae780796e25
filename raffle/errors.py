"""Rejected-operation outcomes raised by the raffle engine.

Every error aborts the enclosing operation; the transport layer maps them to
responses using ``code`` and ``status``.
"""
from __future__ import annotations

from typing import Optional


class RaffleError(Exception):
    code = "raffle_error"
    status = 400


class Unauthorized(RaffleError):
    code = "unauthorized"
    status = 403

    def __init__(self, identity: str) -> None:
        self.identity = identity
        super().__init__(f"{identity!r} is not authorized for this operation")


class AlreadyInitialized(RaffleError):
    code = "already_initialized"
    status = 409

    def __init__(self) -> None:
        super().__init__("Admin set is already initialized")


class InvalidAdminSet(RaffleError):
    code = "invalid_admin_set"


# ============ Round ============

class RoundNotFound(RaffleError):
    code = "round_not_found"
    status = 404

    def __init__(self, round_id: int) -> None:
        self.round_id = round_id
        super().__init__(f"Round {round_id} not found")


class InvalidDistribution(RaffleError):
    code = "invalid_distribution"


class InvalidRoundWindow(RaffleError):
    code = "invalid_round_window"


class RoundNotActive(RaffleError):
    code = "round_not_active"
    status = 409

    def __init__(self, round_id: int, message: Optional[str] = None) -> None:
        self.round_id = round_id
        super().__init__(message or f"Round {round_id} is not active")


class DoubleFinalization(RoundNotActive):
    code = "double_finalization"

    def __init__(self, round_id: int) -> None:
        super().__init__(round_id, f"Round {round_id} has already been finalized")


# ============ Registration ============

class RegistrationClosed(RaffleError):
    code = "registration_closed"
    status = 409

    def __init__(self, round_id: int) -> None:
        self.round_id = round_id
        super().__init__(f"Round {round_id} no longer accepts players")


class RoundExpired(RaffleError):
    code = "round_expired"
    status = 409

    def __init__(self, round_id: int, end_time: int) -> None:
        self.round_id = round_id
        self.end_time = end_time
        super().__init__(f"Round {round_id} closed for entries at {end_time}")


class AlreadyRegistered(RaffleError):
    code = "already_registered"
    status = 409

    def __init__(self, round_id: int, participant: str) -> None:
        self.round_id = round_id
        self.participant = participant
        super().__init__(f"{participant!r} already joined round {round_id}")


class WrongPaymentDenom(RaffleError):
    code = "wrong_payment_denom"


class InsufficientFunds(RaffleError):
    code = "insufficient_funds"

    def __init__(self, amount: int, minimum_stake: int) -> None:
        self.amount = amount
        self.minimum_stake = minimum_stake
        super().__init__(f"Stake {amount} is below the minimum of {minimum_stake}")


# ============ Draw & payout ============

class NoPlayers(RaffleError):
    code = "no_players"
    status = 409

    def __init__(self, round_id: int) -> None:
        self.round_id = round_id
        super().__init__(f"Round {round_id} has no players")


class NotEnoughPlayers(RaffleError):
    code = "not_enough_players"
    status = 409


class ZeroShares(RaffleError):
    code = "zero_shares"

    def __init__(self) -> None:
        super().__init__("Distribution has zero total shares")


class ArithmeticOverflow(RaffleError):
    code = "arithmetic_overflow"


# ============ Settlement ============

class SettlementNotFound(RaffleError):
    code = "settlement_not_found"
    status = 404


class SettlementAlreadyRecorded(RaffleError):
    code = "settlement_already_recorded"
    status = 409


class ConcurrentUpdate(RaffleError):
    code = "concurrent_update"
    status = 409


# ============ Transport ============

class Unauthenticated(RaffleError):
    code = "unauthenticated"
    status = 401


class InvalidStake(RaffleError):
    code = "invalid_stake"


class StakeAlreadyUsed(RaffleError):
    code = "stake_already_used"
    status = 409

    def __init__(self, reference: str) -> None:
        self.reference = reference
        super().__init__(f"Stake transaction {reference} was already used to join a round")


class ChainUnavailable(RaffleError):
    code = "chain_unavailable"
    status = 503
