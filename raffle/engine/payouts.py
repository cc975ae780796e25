from __future__ import annotations

from typing import List, Sequence, Tuple

from ..errors import ArithmeticOverflow, ZeroShares
from .types import UINT128_MAX, RemainderPolicy


def checked(value: int, label: str) -> int:
    """Keep ``value`` inside the unsigned 128-bit amount domain."""
    if value < 0 or value > UINT128_MAX:
        raise ArithmeticOverflow(f"{label} out of range: {value}")
    return value


def checked_sum(values: Sequence[int], label: str) -> int:
    total = 0
    for value in values:
        total = checked(total + checked(value, label), label)
    return total


class PayoutCalculator:
    def __init__(self, policy: RemainderPolicy = RemainderPolicy.CARRY_OVER) -> None:
        self.policy = RemainderPolicy(policy)

    @staticmethod
    def compute(distribution: Sequence[int], total_deposit: int) -> List[int]:
        total_deposit = checked(total_deposit, "total deposit")
        total_shares = checked_sum(distribution, "total shares")
        if total_shares == 0:
            raise ZeroShares()
        reward_per_share = total_deposit // total_shares
        return [checked(reward_per_share * share, "payout") for share in distribution]

    def apply_remainder(
        self, distribution: Sequence[int], payouts: Sequence[int], total_deposit: int
    ) -> Tuple[List[int], int]:
        """Return ``(payouts, remainder)`` after applying the configured policy.

        ``remainder`` is what the policy leaves unassigned to winners:
        custodied for later rounds under ``carry_over``, owed to the admin
        under ``return_to_admin`` and always 0 under ``largest_share``.
        """
        adjusted = list(payouts)
        remainder = total_deposit - sum(adjusted)
        if remainder and self.policy is RemainderPolicy.LARGEST_SHARE:
            target = max(range(len(distribution)), key=lambda i: (distribution[i], -i))
            adjusted[target] = checked(adjusted[target] + remainder, "payout")
            remainder = 0
        return adjusted, remainder
