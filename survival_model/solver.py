"""
Capital Solver Module

Finds the smallest initial capital whose simulated success rate reaches a
target, by bisection over repeated Monte Carlo runs followed by a fine scan
of the final bracket.

Each measurement is itself a noisy Monte Carlo estimate, so success rate is
only monotonic in capital on average. Neighbouring candidates can measure
out of order; the fine scan and the "smallest feasible capital seen" rule
absorb most of that noise.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
from tqdm import tqdm

from .errors import InvalidParameter
from .simulation import check_success_rate, prepare_sampler

logger = logging.getLogger(__name__)


@dataclass
class SolverOutcome:
    required_capital: float
    achieved_success_rate: float
    target_success_rate: float
    search_trace: List[Tuple[float, float]]  # (capital, success rate) in visit order
    annual_withdrawal: float
    years: int
    sampling_mode: str = "parametric"
    data_status: str = ""

    @property
    def feasible(self):
        return self.achieved_success_rate >= self.target_success_rate


def find_required_capital(config, target_success_rate=None, records=None, sampler=None,
                          rng=None, cancel_token=None):
    """
    Find the minimum initial capital achieving target_success_rate.

    Args:
        config: SimulationConfig instance; annual_withdrawal must be set
        target_success_rate: Percent in [0, 100] (default: config.target_success_rate)
        records: Pre-loaded historical records (optional)
        sampler: Explicit year sampler (optional)
        rng: numpy Generator (default: seeded from config.seed)
        cancel_token: Object with is_set(), checked between trials

    Returns:
        SolverOutcome. An unreachable target is not an error: the upper bound
        is returned with its measured rate and feasible is False.
    """
    target = config.target_success_rate if target_success_rate is None else target_success_rate
    if not (isinstance(target, (int, float)) and 0.0 <= target <= 100.0):
        raise InvalidParameter(f"Target success rate must be a percentage in [0, 100], got {target}")
    if config.annual_withdrawal is None:
        raise InvalidParameter("Capital search needs a fixed annual_withdrawal; "
                               "a withdrawal rate scales with the capital being searched")
    config.validate(require_capital=False)

    # Data is resolved once for the whole search
    if sampler is None:
        sampler, mode, status = prepare_sampler(config, records)
    else:
        mode = getattr(sampler, "mode", type(sampler).__name__)
        status = "Using supplied year sampler"
    if rng is None:
        rng = np.random.default_rng(config.seed)

    step_config = config.copy(show_progress=False)
    low = float(config.solver_low)
    high = float(config.solver_high)
    tolerance = float(config.solver_tolerance)

    principal_cache = {}
    search_trace = []
    progress = tqdm(desc="Searching required capital", unit="run",
                    disable=not config.show_progress)

    def measure(capital):
        if capital in principal_cache:
            return principal_cache[capital]
        rate = check_success_rate(capital, step_config, sampler=sampler, rng=rng,
                                  cancel_token=cancel_token)
        principal_cache[capital] = rate
        search_trace.append((capital, rate))
        progress.update(1)
        logger.debug(f"[SOLVER] capital={capital:,.2f} -> success {rate:.2f}%")
        return rate

    logger.info(f"[SOLVER] Target {target:.2f}% over [{low:,.0f}, {high:,.0f}], "
                f"withdrawal={config.annual_withdrawal:,.2f}, mode={mode}")

    try:
        while high - low > tolerance:
            mid = float(math.floor((low + high) / 2.0))
            if not (low < mid < high):
                break
            if measure(mid) >= target:
                high = mid
            else:
                low = mid

        # Fine scan of the final bracket; always includes high itself
        step = 0
        while low + step * tolerance < high:
            measure(low + step * tolerance)
            step += 1
        measure(high)
    finally:
        progress.close()

    feasible = [(c, r) for c, r in search_trace if r >= target]
    if feasible:
        required_capital, achieved = min(feasible, key=lambda cr: cr[0])
    else:
        required_capital, achieved = high, principal_cache[high]
        logger.warning(f"[SOLVER] Target {target:.2f}% not reached; best effort at upper bound "
                       f"{high:,.0f} measured {achieved:.2f}%")

    logger.info(f"[SOLVER] Required capital {required_capital:,.2f} "
                f"({achieved:.2f}% success, {len(search_trace)} runs)")

    return SolverOutcome(
        required_capital=required_capital,
        achieved_success_rate=achieved,
        target_success_rate=float(target),
        search_trace=search_trace,
        annual_withdrawal=float(config.annual_withdrawal),
        years=config.years,
        sampling_mode=mode,
        data_status=status,
    )
