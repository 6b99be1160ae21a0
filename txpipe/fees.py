"""Adaptive priority-fee estimation from observed submission outcomes"""

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple

from .address import Address
from .compute_budget import DEFAULT_COMPUTE_UNITS, ComputeBudget
from .config import FeeConfig

log = logging.getLogger(__name__)

FAST_BUMP = 1.35
SLOW_DECAY = 0.95
ALPHA_UP = 0.35
ALPHA_DOWN = 0.15


class UrgencyTier(Enum):
    """Caller-selected quality of service"""
    BACKGROUND = 'background'
    NORMAL = 'normal'
    URGENT = 'urgent'

    @property
    def multiplier(self) -> float:
        return _TIER_MULTIPLIERS[self]


_TIER_MULTIPLIERS = {
    UrgencyTier.BACKGROUND: 1.0,
    UrgencyTier.NORMAL: 1.8,
    UrgencyTier.URGENT: 3.0,
}


class Outcome(Enum):
    """Externally reported result of one submission"""
    CONFIRMED = 'confirmed'
    TIMED_OUT = 'timed_out'
    DROPPED = 'dropped'


@dataclass(frozen=True)
class FeeSample:
    """One observed submission outcome"""
    latency_ms: float
    outcome: Outcome
    price: int
    timestamp: float = field(default_factory=time.time)


FeeKey = Tuple[str, Address, UrgencyTier]


class _KeyState:
    def __init__(self, suggested: int, window: int):
        self.suggested = suggested
        self.samples: Deque[FeeSample] = deque(maxlen=window)
        self.lock = threading.Lock()


class PriorityFeeEstimator:
    """Per-key rolling-window advisor for the compute-unit price.

    Keys are (network_label, program_id, tier). Each key has its own lock;
    the registry lock is held only while a key's state is created, so
    updates for different keys never wait on each other.
    """

    def __init__(self, config: Optional[FeeConfig] = None):
        self.config = config or FeeConfig()
        self._states: Dict[FeeKey, _KeyState] = {}
        self._registry_lock = threading.Lock()

    def tier_baseline(self, tier: UrgencyTier) -> int:
        return int(self.config.base_price * tier.multiplier)

    def _clamp(self, value: float) -> int:
        return int(min(self.config.max_price, max(self.config.min_price, value)))

    def _state(self, key: FeeKey) -> _KeyState:
        state = self._states.get(key)
        if state is not None:
            return state
        with self._registry_lock:
            state = self._states.get(key)
            if state is None:
                state = _KeyState(self._clamp(self.tier_baseline(key[2])), self.config.window_size)
                self._states[key] = state
            return state

    def record_outcome(
        self,
        program_id: Address,
        tier: UrgencyTier,
        latency_ms: float,
        outcome: Outcome,
        price_used: int,
        network_label: str = 'default',
    ) -> int:
        """Append a sample and return the recomputed suggestion"""
        state = self._state((network_label, program_id, tier))
        with state.lock:
            state.samples.append(FeeSample(latency_ms, outcome, price_used))
            previous = state.suggested
            state.suggested = self._compute(state, tier)
            suggested = state.suggested
        if suggested != previous:
            log.debug(
                'Fee suggestion %s/%s/%s: %d -> %d (%s)',
                network_label, program_id, tier.value, previous, suggested, outcome.value,
            )
        return suggested

    def suggest(self, program_id: Address, tier: UrgencyTier, network_label: str = 'default') -> int:
        state = self._states.get((network_label, program_id, tier))
        if state is None:
            return self._clamp(self.tier_baseline(tier))
        with state.lock:
            return state.suggested

    def samples(self, program_id: Address, tier: UrgencyTier, network_label: str = 'default') -> List[FeeSample]:
        state = self._states.get((network_label, program_id, tier))
        if state is None:
            return []
        with state.lock:
            return list(state.samples)

    def budget_for(
        self,
        program_id: Address,
        tier: UrgencyTier,
        units: int = DEFAULT_COMPUTE_UNITS,
        network_label: str = 'default',
    ) -> ComputeBudget:
        return ComputeBudget(units, self.suggest(program_id, tier, network_label))

    def _compute(self, state: _KeyState, tier: UrgencyTier) -> int:
        cfg = self.config
        samples = state.samples
        if not samples:
            return self._clamp(self.tier_baseline(tier))

        ok = sum(1 for s in samples if s.outcome is Outcome.CONFIRMED)
        bad = len(samples) - ok
        latencies = sorted(s.latency_ms for s in samples)
        p80 = latencies[(len(latencies) - 1) * 80 // 100]
        health = ok / max(1, ok + bad)

        latency_factor = min(6.0, max(0.5, p80 / cfg.reference_latency_ms))
        health_penalty = min(1.0, max(0.0, 1.0 - health))
        target = self.tier_baseline(tier) * latency_factor * (1.0 + 3.0 * health_penalty)

        last = samples[-1]
        failed = last.outcome is not Outcome.CONFIRMED
        if failed:
            target = max(target, last.price * FAST_BUMP)
        else:
            target = min(target, max(cfg.min_price, state.suggested * SLOW_DECAY))
        target = self._clamp(target)

        alpha = ALPHA_UP if target > state.suggested else ALPHA_DOWN
        smoothed = state.suggested * (1.0 - alpha) + target * alpha
        if failed:
            smoothed = max(smoothed, min(cfg.max_price, math.ceil(last.price * FAST_BUMP)))
        return self._clamp(smoothed)
