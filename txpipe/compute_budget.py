"""Compute budget operations and compute-unit recommendations"""

import math
from dataclasses import dataclass
from typing import List

from .account import Operation
from .address import COMPUTE_BUDGET_PROGRAM
from .encoding import encode_u32, encode_u64, encode_u8

MAX_COMPUTE_UNITS = 1_400_000
DEFAULT_COMPUTE_UNITS = 200_000
MIN_COMPUTE_UNITS = 50_000
# Limit + price operations prepended to every transaction
BUDGET_INSTRUCTION_COUNT = 2

_SET_LIMIT = 2
_SET_PRICE = 3


def set_compute_unit_limit(units: int) -> Operation:
    if units <= 0:
        raise ValueError('units must be > 0')
    return Operation(COMPUTE_BUDGET_PROGRAM, (), encode_u8(_SET_LIMIT) + encode_u32(units))


def set_compute_unit_price(micro_lamports: int) -> Operation:
    if micro_lamports < 0:
        raise ValueError('micro_lamports must be >= 0')
    return Operation(COMPUTE_BUDGET_PROGRAM, (), encode_u8(_SET_PRICE) + encode_u64(micro_lamports))


@dataclass(frozen=True)
class ComputeBudget:
    """Compute-unit ceiling and per-unit priority price for one transaction"""
    units: int = DEFAULT_COMPUTE_UNITS
    micro_lamports: int = 0

    def to_operations(self) -> List[Operation]:
        return [
            set_compute_unit_limit(self.units),
            set_compute_unit_price(self.micro_lamports),
        ]

    @property
    def priority_fee_lamports(self) -> int:
        return (self.units * self.micro_lamports) // 1_000_000

    def with_price(self, micro_lamports: int) -> 'ComputeBudget':
        return ComputeBudget(self.units, micro_lamports)


def recommend_compute_units(
    units_consumed: int,
    margin_percent: int = 20,
    floor: int = MIN_COMPUTE_UNITS,
    ceiling: int = MAX_COMPUTE_UNITS,
) -> int:
    """Pad a simulated unit count by margin_percent and clamp it"""
    padded = math.ceil(units_consumed * (100 + margin_percent) / 100)
    return min(ceiling, max(floor, padded))
