"""
Tests for the priority-fee estimator.

Test plan:
- Without samples the suggestion is the tier baseline
- A failed submission bumps the suggestion to at least 1.35x the price used
- Healthy submissions decay the suggestion without going below the minimum
- Keys (network, program, tier) are independent; concurrent updates on
  different keys do not interfere
"""

import math
import threading

from txpipe.address import Address
from txpipe.compute_budget import ComputeBudget
from txpipe.config import FeeConfig
from txpipe.fees import Outcome, PriorityFeeEstimator, UrgencyTier

PROGRAM = Address(b'\x11' * 32)
OTHER = Address(b'\x12' * 32)


# ---------------------------------------------------------------------------
# Baselines
# ---------------------------------------------------------------------------


def test_tier_baselines_without_samples():
    est = PriorityFeeEstimator()
    assert est.suggest(PROGRAM, UrgencyTier.BACKGROUND) == 100
    assert est.suggest(PROGRAM, UrgencyTier.NORMAL) == 180
    assert est.suggest(PROGRAM, UrgencyTier.URGENT) == 300


def test_baseline_is_clamped_to_bounds():
    est = PriorityFeeEstimator(FeeConfig(base_price=10, min_price=50, max_price=200))
    assert est.suggest(PROGRAM, UrgencyTier.BACKGROUND) == 50
    assert est.suggest(PROGRAM, UrgencyTier.URGENT) == 50

    est = PriorityFeeEstimator(FeeConfig(base_price=100, min_price=50, max_price=200))
    assert est.suggest(PROGRAM, UrgencyTier.URGENT) == 200


def test_budget_for_uses_suggestion():
    est = PriorityFeeEstimator()
    assert est.budget_for(PROGRAM, UrgencyTier.URGENT, units=150_000) == ComputeBudget(150_000, 300)


# ---------------------------------------------------------------------------
# Reaction to outcomes
# ---------------------------------------------------------------------------


def test_failure_bumps_at_least_135_percent():
    est = PriorityFeeEstimator()
    for outcome in (Outcome.TIMED_OUT, Outcome.DROPPED):
        for price in (60, 1_000, 4_321):
            suggested = est.record_outcome(PROGRAM, UrgencyTier.NORMAL, 800, outcome, price)
            assert suggested >= math.ceil(price * 1.35)
            assert est.suggest(PROGRAM, UrgencyTier.NORMAL) == suggested


def test_bump_is_capped_at_max():
    est = PriorityFeeEstimator()
    assert est.record_outcome(PROGRAM, UrgencyTier.URGENT, 800, Outcome.TIMED_OUT, 19_000) == 20_000


def test_healthy_samples_decay_toward_floor():
    est = PriorityFeeEstimator()
    bumped = est.record_outcome(PROGRAM, UrgencyTier.NORMAL, 800, Outcome.TIMED_OUT, 1_000)

    history = [bumped]
    for _ in range(60):
        history.append(est.record_outcome(PROGRAM, UrgencyTier.NORMAL, 100, Outcome.CONFIRMED, history[-1]))

    assert all(later <= earlier for earlier, later in zip(history, history[1:]))
    assert history[-1] < bumped
    assert history[-1] >= est.config.min_price


def test_slow_confirmations_raise_target():
    est = PriorityFeeEstimator()
    fast = PriorityFeeEstimator()
    for _ in range(5):
        est.record_outcome(PROGRAM, UrgencyTier.NORMAL, 8_000, Outcome.TIMED_OUT, 180)
        fast.record_outcome(PROGRAM, UrgencyTier.NORMAL, 100, Outcome.TIMED_OUT, 180)
    assert est.suggest(PROGRAM, UrgencyTier.NORMAL) >= fast.suggest(PROGRAM, UrgencyTier.NORMAL)


def test_window_evicts_oldest():
    est = PriorityFeeEstimator(FeeConfig(window_size=3))
    for latency in (1, 2, 3, 4, 5):
        est.record_outcome(PROGRAM, UrgencyTier.NORMAL, latency, Outcome.CONFIRMED, 100)
    assert [s.latency_ms for s in est.samples(PROGRAM, UrgencyTier.NORMAL)] == [3, 4, 5]


# ---------------------------------------------------------------------------
# Key isolation
# ---------------------------------------------------------------------------


def test_keys_are_independent():
    est = PriorityFeeEstimator()
    est.record_outcome(PROGRAM, UrgencyTier.NORMAL, 800, Outcome.DROPPED, 5_000)

    assert est.suggest(PROGRAM, UrgencyTier.NORMAL) >= 6_750
    assert est.suggest(OTHER, UrgencyTier.NORMAL) == 180
    assert est.suggest(PROGRAM, UrgencyTier.URGENT) == 300
    assert est.suggest(PROGRAM, UrgencyTier.NORMAL, network_label='devnet') == 180
    assert est.samples(OTHER, UrgencyTier.NORMAL) == []


def test_concurrent_updates_on_different_keys():
    est = PriorityFeeEstimator(FeeConfig(window_size=1_000))
    programs = [Address(bytes([n]) * 32) for n in range(1, 9)]

    def worker(program):
        for _ in range(200):
            est.record_outcome(program, UrgencyTier.NORMAL, 500, Outcome.CONFIRMED, 180)

    threads = [threading.Thread(target=worker, args=(p,)) for p in programs]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for program in programs:
        assert len(est.samples(program, UrgencyTier.NORMAL)) == 200
