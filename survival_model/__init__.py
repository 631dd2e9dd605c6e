"""
Retirement Survival Simulation Package

This package estimates how likely a retirement portfolio is to survive a
withdrawal schedule, by Monte Carlo over historical or parametric market
years, and inverts that estimate to find the capital a target success rate needs.

config.py to set the simulation parameters.
simulation.py for the path simulator and Monte Carlo engine.
solver.py for the required-capital search.
"""

from .config import PortfolioWeights, SimulationConfig, YearRange
from .errors import (DataUnavailable, EmptyRecordSet, InvalidParameter,
                     SimulationCancelled, SurvivalModelError)
from .market_data import (MarketObservation, describe_records, filter_by_range,
                          load_historical_records)
from .bootstrap import HistoricalYearSampler, ParametricYearSampler
from .simulation import (SimulationOutcome, YearlyLedgerEntry, check_success_rate,
                         run_monte_carlo, simulate_path)
from .solver import SolverOutcome, find_required_capital

__version__ = "1.0"
