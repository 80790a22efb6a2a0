"""
Holding Limit Checker

No holder may end up above max_holding_bps / 10000 of total supply:

    max_allowed = floor(total_supply * bps / 10000)
    pass iff balance(recipient) + amount <= max_allowed

All arithmetic is uint256 checked. Multiplication happens before
division so no precision is lost.
"""

from typing import Callable

from .errors import ArithmeticOverflowError

UINT256_MAX = 2 ** 256 - 1
BPS_DENOMINATOR = 10_000
DEFAULT_MAX_HOLDING_BPS = 1_000


def checked_add(a: int, b: int) -> int:
    result = a + b
    if a < 0 or b < 0 or result > UINT256_MAX:
        raise ArithmeticOverflowError(f"uint256 overflow in {a} + {b}")
    return result


def checked_sub(a: int, b: int) -> int:
    if b < 0 or b > a:
        raise ArithmeticOverflowError(f"uint256 underflow in {a} - {b}")
    return a - b


def checked_mul(a: int, b: int) -> int:
    result = a * b
    if a < 0 or b < 0 or result > UINT256_MAX:
        raise ArithmeticOverflowError(f"uint256 overflow in {a} * {b}")
    return result


class HoldingLimitChecker:
    """
    Reads the recipient balance, total supply and the current basis-point
    limit fresh on every call; nothing is cached.
    """

    def __init__(
        self,
        balance_of: Callable[[str], int],
        total_supply: Callable[[], int],
        max_holding_bps: Callable[[], int],
    ):
        self._balance_of = balance_of
        self._total_supply = total_supply
        self._max_holding_bps = max_holding_bps

    def max_allowed(self) -> int:
        return checked_mul(self._total_supply(), self._max_holding_bps()) // BPS_DENOMINATOR

    def check(self, recipient: str, amount: int) -> bool:
        projected = checked_add(self._balance_of(recipient), amount)
        return projected <= self.max_allowed()
