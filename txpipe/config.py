"""Configuration for fee estimation, batching and submission"""

import dataclasses
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Type, TypeVar, Union

T = TypeVar('T')


@dataclass(frozen=True)
class FeeConfig:
    """Priority-fee estimator settings (prices in micro-lamports per unit)"""
    base_price: int = 100
    min_price: int = 50
    max_price: int = 20_000
    window_size: int = 40
    reference_latency_ms: float = 800.0


@dataclass(frozen=True)
class BatchConfig:
    """Batch planning ceilings and execution pacing"""
    max_compute_units_per_tx: int = 1_400_000
    max_instructions_per_tx: int = 64
    max_accounts_per_tx: int = 256
    max_tx_size_bytes: int = 1232
    reserved_budget_instructions: int = 2
    default_priority_price: int = 1000
    base_fee_lamports: int = 5000
    capacity_threshold: float = 0.9
    add_compute_budget: bool = True
    continue_on_failure: bool = True
    batch_delay: float = 0.1


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt-bounded retry with a fixed delay between attempts"""
    max_attempts: int = 3
    retry_delay: float = 0.5
    escalate_fees: bool = False
    fee_escalation_multiplier: float = 1.5
    allow_resign: bool = True


@dataclass(frozen=True)
class PipelineConfig:
    """Top-level submission settings"""
    network_label: str = 'default'
    simulate_first: bool = False
    compute_margin_percent: int = 20
    fetch_timeout: float = 10.0
    simulate_timeout: float = 10.0
    submit_timeout: float = 10.0
    poll_timeout: float = 10.0
    poll_interval: float = 0.5
    confirm_timeout: float = 60.0
    fees: FeeConfig = field(default_factory=FeeConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)


def _build(cls: Type[T], values: Dict[str, Any], section: str) -> T:
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown keys in [{section}]: {', '.join(sorted(unknown))}")
    return cls(**values)


def config_from_dict(data: Dict[str, Any]) -> PipelineConfig:
    """Build a PipelineConfig from [fees], [batch], [retry] and [pipeline] tables"""
    unknown = set(data) - {'fees', 'batch', 'retry', 'pipeline'}
    if unknown:
        raise ValueError(f"Unknown config sections: {', '.join(sorted(unknown))}")
    pipeline = dict(data.get('pipeline', {}))
    for nested in ('fees', 'batch', 'retry'):
        if nested in pipeline:
            raise ValueError(f"[{nested}] must be a top-level section")
    return _build(PipelineConfig, {
        **pipeline,
        'fees': _build(FeeConfig, data.get('fees', {}), 'fees'),
        'batch': _build(BatchConfig, data.get('batch', {}), 'batch'),
        'retry': _build(RetryPolicy, data.get('retry', {}), 'retry'),
    }, 'pipeline')


def load_config(path: Union[str, Path]) -> PipelineConfig:
    return config_from_dict(tomllib.loads(Path(path).read_text()))
