"""
Core Simulation Module

This module contains the withdrawal-phase path simulator and the Monte Carlo
engine that aggregates many paths into percentile bands and a success rate.
"""

import logging
import math
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from tqdm import tqdm

from .bootstrap import create_year_sampler
from .errors import SimulationCancelled
from .market_data import filter_by_range, resolve_sampling_data, summarize_records

logger = logging.getLogger(__name__)

PERCENTILES = (0.10, 0.25, 0.50, 0.75, 0.90)

# Below this many trials a process pool costs more than it saves
MIN_TRIALS_FOR_POOL = 100

# Parallel runs are split into chunks of about this many trials; the cancel
# token is polled at least every CANCEL_POLL_SECONDS while chunks run
TRIALS_PER_CHUNK = 500
CANCEL_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class YearlyLedgerEntry:
    year: int
    start_balance: float
    return_rate: float
    return_amount: float
    withdrawal_amount: float
    inflation: float
    end_balance: float


@dataclass
class PathResult:
    trajectory: np.ndarray
    success: bool
    ledger: Optional[List[YearlyLedgerEntry]] = None


@dataclass
class PercentileBands:
    """Per-year order statistics across all trials (index 0 = start)."""
    p10: np.ndarray
    p25: np.ndarray
    p50: np.ndarray
    p75: np.ndarray
    p90: np.ndarray

    def as_dict(self):
        return {"p10": self.p10, "p25": self.p25, "p50": self.p50,
                "p75": self.p75, "p90": self.p90}


@dataclass
class SimulationOutcome:
    bands: PercentileBands
    success_rate: float  # percent
    ledger: List[YearlyLedgerEntry]
    config: object
    annual_withdrawal: float
    sampling_mode: str
    data_status: str
    num_trials: int
    paths: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def final_median(self):
        return float(self.bands.p50[-1])


def simulate_path(initial_capital, years, annual_withdrawal, sampler, rng, trace=False):
    """
    Simulate one retirement path.

    Each year draws (portfolio_return, inflation), grows the balance, then
    withdraws the base amount scaled by cumulative inflation including the
    current year. Balances are floored at zero; zero is absorbing, and no
    further draws are made once the portfolio is exhausted.

    Args:
        initial_capital: Starting balance
        years: Number of years to simulate
        annual_withdrawal: Withdrawal in year-0 money
        sampler: Object with sample(rng) -> (portfolio_return, inflation)
        rng: numpy Generator
        trace: If True, also build the year-by-year ledger

    Returns:
        PathResult
    """
    balance = float(initial_capital)
    trajectory = np.zeros(years + 1, dtype=float)
    trajectory[0] = balance
    ledger = [] if trace else None
    cumulative_inflation = 1.0

    for year in range(1, years + 1):
        if balance <= 0.0:
            if not trace:
                break
            ledger.append(YearlyLedgerEntry(year, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0))
            continue

        portfolio_return, inflation = sampler.sample(rng)
        cumulative_inflation *= (1.0 + inflation)
        withdrawal = annual_withdrawal * cumulative_inflation
        return_amount = balance * portfolio_return
        end_balance = max(0.0, balance + return_amount - withdrawal)

        if trace:
            ledger.append(YearlyLedgerEntry(year, balance, portfolio_return, return_amount,
                                            withdrawal, inflation, end_balance))
        balance = end_balance
        trajectory[year] = balance

    return PathResult(trajectory=trajectory, success=balance > 0.0, ledger=ledger)


def _check_cancelled(cancel_token):
    if cancel_token is not None and cancel_token.is_set():
        raise SimulationCancelled("Simulation cancelled")


def _run_trials(initial_capital, years, annual_withdrawal, sampler, rng, num_trials,
                collect_paths=False, cancel_token=None, progress=False):
    """Run num_trials paths sequentially on a single generator"""
    paths = np.zeros((num_trials, years + 1), dtype=float) if collect_paths else None
    successes = 0

    for trial in tqdm(range(num_trials), desc="Simulating paths", disable=not progress, leave=False):
        _check_cancelled(cancel_token)
        result = simulate_path(initial_capital, years, annual_withdrawal, sampler, rng)
        if result.success:
            successes += 1
        if collect_paths:
            paths[trial] = result.trajectory

    return successes, paths


def run_trials_worker(initial_capital, years, annual_withdrawal, sampler, rng, num_trials,
                      collect_paths):
    """Worker function for parallel trial batches"""
    successes, paths = _run_trials(initial_capital, years, annual_withdrawal, sampler, rng,
                                   num_trials, collect_paths)
    return {'successes': successes, 'paths': paths, 'trials': num_trials}


def simulate_trials(initial_capital, config, sampler, rng, collect_paths=False, cancel_token=None):
    """
    Run config.num_trials independent paths.

    With more than one worker the trials are split into fixed chunks run on a
    process pool, each chunk with its own child generator spawned from rng.
    A set cancel_token stops the run without waiting for queued chunks.

    Returns:
        tuple: (successes, paths or None)
    """
    annual_withdrawal = config.resolved_withdrawal(initial_capital)
    num_trials = config.num_trials
    num_workers = config.worker_count

    if num_workers <= 1 or num_trials < MIN_TRIALS_FOR_POOL:
        return _run_trials(initial_capital, config.years, annual_withdrawal, sampler, rng,
                           num_trials, collect_paths, cancel_token, config.show_progress)

    _check_cancelled(cancel_token)
    # Fixed chunking keeps results independent of scheduling order
    num_chunks = max(num_workers, math.ceil(num_trials / TRIALS_PER_CHUNK))
    trials_per_chunk = num_trials // num_chunks
    remaining = num_trials % num_chunks
    child_rngs = rng.spawn(num_chunks)
    batches = [None] * num_chunks

    executor = ProcessPoolExecutor(max_workers=num_workers)
    try:
        futures = {}
        for i in range(num_chunks):
            trials_this_chunk = trials_per_chunk + (1 if i < remaining else 0)
            future = executor.submit(run_trials_worker, initial_capital, config.years,
                                     annual_withdrawal, sampler, child_rngs[i],
                                     trials_this_chunk, collect_paths)
            futures[future] = i

        pending = set(futures)
        with tqdm(total=num_trials, desc="Simulating paths", disable=not config.show_progress,
                  leave=False) as progress:
            while pending:
                done, pending = wait(pending, timeout=CANCEL_POLL_SECONDS,
                                     return_when=FIRST_COMPLETED)
                _check_cancelled(cancel_token)
                for future in done:
                    batch = future.result()
                    batches[futures[future]] = batch
                    progress.update(batch['trials'])
    except BaseException:
        executor.shutdown(wait=False, cancel_futures=True)
        raise
    executor.shutdown(wait=True)

    successes = sum(b['successes'] for b in batches)
    paths = np.vstack([b['paths'] for b in batches]) if collect_paths else None
    return successes, paths


def compute_percentile_bands(paths):
    """
    Per-year percentile bands by plain order statistic.

    Each band takes sorted[floor(n * p)] with no interpolation, so the values
    are always balances some trial actually reached.
    """
    paths = np.asarray(paths, dtype=float)
    num_trials = paths.shape[0]
    ordered = np.sort(paths, axis=0)
    bands = []
    for p in PERCENTILES:
        idx = min(int(math.floor(num_trials * p)), num_trials - 1)
        bands.append(ordered[idx].copy())
    return PercentileBands(*bands)


def prepare_sampler(config, records=None):
    """
    Choose the market model for a run.

    Args:
        config: SimulationConfig instance
        records: Already-loaded MarketObservation records (optional)

    Returns:
        tuple: (sampler, sampling mode, status message)
    """
    if records is not None and config.sampling_mode == "historical":
        eligible = filter_by_range(records, config.year_range)
        sampler = create_year_sampler("historical", eligible, config.weights, config)
        return sampler, "historical", f"Sampling supplied {summarize_records(eligible)}"
    eligible, mode, status = resolve_sampling_data(config)
    sampler = create_year_sampler(mode, eligible, config.weights, config)
    return sampler, mode, status


def check_success_rate(initial_capital, config, records=None, sampler=None, rng=None,
                       cancel_token=None):
    """
    Success rate (percent) for a given starting capital.

    Compute-only pass: no paths are kept and no ledger is built.
    """
    if sampler is None:
        sampler, _, _ = prepare_sampler(config, records)
    if rng is None:
        rng = np.random.default_rng(config.seed)

    successes, _ = simulate_trials(initial_capital, config, sampler, rng,
                                   collect_paths=False, cancel_token=cancel_token)
    return successes / config.num_trials * 100.0


def run_monte_carlo(config, records=None, sampler=None, rng=None, cancel_token=None,
                    keep_paths=False):
    """
    Run the full Monte Carlo simulation for config.

    Args:
        config: SimulationConfig instance
        records: Pre-loaded historical records (optional, skips the data source)
        sampler: Explicit year sampler (optional, overrides sampling_mode)
        rng: numpy Generator (default: seeded from config.seed)
        cancel_token: Object with is_set(), checked between trials
        keep_paths: Attach the raw (trials x years+1) path matrix to the outcome

    Returns:
        SimulationOutcome
    """
    config.validate()

    if sampler is None:
        sampler, mode, status = prepare_sampler(config, records)
    else:
        mode = getattr(sampler, "mode", type(sampler).__name__)
        status = "Using supplied year sampler"
    if rng is None:
        rng = np.random.default_rng(config.seed)

    capital = float(config.initial_capital)
    annual_withdrawal = config.resolved_withdrawal(capital)
    logger.info(f"[MC] {config.num_trials} trials x {config.years} years, "
                f"capital={capital:,.2f}, withdrawal={annual_withdrawal:,.2f}, mode={mode}")

    successes, paths = simulate_trials(capital, config, sampler, rng,
                                       collect_paths=True, cancel_token=cancel_token)
    bands = compute_percentile_bands(paths)
    success_rate = successes / config.num_trials * 100.0

    # Illustrative ledger: one extra run on fresh draws, not one of the trials
    _check_cancelled(cancel_token)
    ledger = simulate_path(capital, config.years, annual_withdrawal, sampler, rng, trace=True).ledger

    logger.info(f"[MC] Success rate {success_rate:.1f}%, "
                f"final median balance {float(bands.p50[-1]):,.2f}")

    return SimulationOutcome(
        bands=bands,
        success_rate=success_rate,
        ledger=ledger,
        config=config,
        annual_withdrawal=annual_withdrawal,
        sampling_mode=mode,
        data_status=status,
        num_trials=config.num_trials,
        paths=paths if keep_paths else None,
    )
