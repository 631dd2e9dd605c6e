"""
Configuration classes for the Retirement Survival Simulation
"""
import copy
import logging
import math
import multiprocessing as mp
import numbers
from dataclasses import dataclass

from .errors import InvalidParameter

logger = logging.getLogger(__name__)

SAMPLING_MODES = ("historical", "parametric")

# Stock/bond splits offered by the portfolio selector
PORTFOLIO_PRESETS = {
    "balanced": (0.5, 0.5),
    "aggressive": (0.8, 0.2),
    "conservative": (0.2, 0.8),
}

# Year windows offered for historical sampling (inclusive)
YEAR_RANGE_PRESETS = {
    "all": (1928, 2024),
    "postwar": (1945, 2024),
    "modern": (1980, 2024),
    "recent30": (1994, 2024),
    "recent20": (2004, 2024),
    "century21": (2000, 2024),
}

_WEIGHT_TOLERANCE = 1e-9


@dataclass(frozen=True)
class PortfolioWeights:
    """Stock/bond allocation; both in [0, 1] and summing to 1."""
    stock: float
    bond: float

    def __post_init__(self):
        for name, value in (("stock", self.stock), ("bond", self.bond)):
            if not (0.0 <= value <= 1.0):
                raise InvalidParameter(f"{name} weight must be within [0, 1], got {value}")
        if abs(self.stock + self.bond - 1.0) > _WEIGHT_TOLERANCE:
            raise InvalidParameter(
                f"Portfolio weights must sum to 1.0, got {self.stock} + {self.bond}")

    @classmethod
    def from_preset(cls, name):
        try:
            stock, bond = PORTFOLIO_PRESETS[name]
        except KeyError:
            raise InvalidParameter(
                f"Unknown portfolio '{name}'. Choose one of: {sorted(PORTFOLIO_PRESETS)}") from None
        return cls(stock, bond)

    @classmethod
    def from_stock_weight(cls, stock):
        stock = float(stock)
        return cls(stock, 1.0 - stock)


@dataclass(frozen=True)
class YearRange:
    """Inclusive window of historical years eligible for sampling."""
    start_year: int
    end_year: int

    def __post_init__(self):
        if self.start_year > self.end_year:
            raise InvalidParameter(
                f"Year range start ({self.start_year}) must not be after end ({self.end_year})")

    def __contains__(self, year):
        return self.start_year <= year <= self.end_year

    @classmethod
    def from_preset(cls, name):
        try:
            start, end = YEAR_RANGE_PRESETS[name]
        except KeyError:
            raise InvalidParameter(
                f"Unknown year range '{name}'. Choose one of: {sorted(YEAR_RANGE_PRESETS)}") from None
        return cls(start, end)

    @classmethod
    def parse(cls, text):
        """Accept a preset name or 'START-END'."""
        if text in YEAR_RANGE_PRESETS:
            return cls.from_preset(text)
        try:
            start, end = (int(part) for part in text.split("-", 1))
        except ValueError:
            raise InvalidParameter(
                f"Year range must be a preset name or START-END, got '{text}'") from None
        return cls(start, end)


class SimulationConfig:
    """Configuration class for simulation parameters"""
    def __init__(self, **overrides):
        # Portfolio and spending
        self.initial_capital = 1000.0
        # Either a fixed annual amount or a percentage of initial capital.
        # annual_withdrawal wins when both are set.
        self.annual_withdrawal = None
        self.withdrawal_rate = 4.0
        self.years = 30
        self.weights = PortfolioWeights.from_preset("balanced")

        # Monte Carlo simulation sizes
        self.num_trials = 1000
        self.seed = None  # random seed for the simulation
        self.num_workers = 1  # None = one per spare core
        self.show_progress = False

        # Market data: historical bootstrap of single years, or parametric fallback
        self.sampling_mode = "historical"
        self.year_range = None
        self.data_path = 'data/historical_returns.json'
        self.data_url = None  # CSV served over HTTP, takes precedence over data_path

        # Parametric model configuration (used when NOT sampling history,
        # or as a fallback if historical data cannot be loaded).
        self.parametric_mean_return = 0.07
        self.parametric_return_spread = 0.30
        self.parametric_inflation = 0.03

        # Capital solver
        self.target_success_rate = 97.0  # percent
        self.solver_low = 100.0
        self.solver_high = 20000.0
        self.solver_tolerance = 10.0

        self.generate_csv_summary = False  # toggle to export bands, ledger and search trace
        self.output_directory = 'Survival Outputs'

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise InvalidParameter(f"Unknown configuration field '{key}'")
            setattr(self, key, value)

    def __repr__(self):
        fields = ", ".join(f"{k}={v!r}" for k, v in vars(self).items())
        return f"SimulationConfig({fields})"

    def copy(self, **overrides):
        """Return a copy with some fields replaced"""
        new = copy.copy(self)
        for key, value in overrides.items():
            if not hasattr(new, key):
                raise InvalidParameter(f"Unknown configuration field '{key}'")
            setattr(new, key, value)
        return new

    @property
    def worker_count(self):
        if self.num_workers is None:
            return max(1, mp.cpu_count() - 1)
        return int(self.num_workers)

    def resolved_withdrawal(self, capital=None):
        """Annual withdrawal amount for a given starting capital"""
        if self.annual_withdrawal is not None:
            return float(self.annual_withdrawal)
        if capital is None:
            capital = self.initial_capital
        return float(capital) * float(self.withdrawal_rate) / 100.0

    def validate(self, require_capital=True):
        """Validate configuration parameters"""
        errors = []
        if require_capital and not (_is_number(self.initial_capital) and self.initial_capital > 0):
            errors.append(f"Initial capital must be positive, got {self.initial_capital}")
        if self.annual_withdrawal is None:
            if not (_is_number(self.withdrawal_rate) and self.withdrawal_rate >= 0):
                errors.append(f"Withdrawal rate must be a non-negative percentage, got {self.withdrawal_rate}")
        elif not (_is_number(self.annual_withdrawal) and self.annual_withdrawal >= 0):
            errors.append(f"Annual withdrawal must be non-negative, got {self.annual_withdrawal}")
        if not (_is_count(self.years) and self.years > 0):
            errors.append(f"Years must be a positive integer, got {self.years}")
        if not (_is_count(self.num_trials) and self.num_trials > 0):
            errors.append(f"Trial count must be a positive integer, got {self.num_trials}")
        if self.num_workers is not None and not (_is_count(self.num_workers) and self.num_workers >= 1):
            errors.append(f"Worker count must be a positive integer or None, got {self.num_workers}")
        if not isinstance(self.weights, PortfolioWeights):
            errors.append("Weights must be a PortfolioWeights instance")
        if self.sampling_mode not in SAMPLING_MODES:
            errors.append(f"Sampling mode must be one of {SAMPLING_MODES}, got '{self.sampling_mode}'")
        if self.year_range is not None and not isinstance(self.year_range, YearRange):
            errors.append("Year range must be a YearRange instance or None")
        if not (_is_number(self.solver_low) and _is_number(self.solver_high)
                and 0 < self.solver_low < self.solver_high):
            errors.append(f"Solver bounds must satisfy 0 < low < high, got [{self.solver_low}, {self.solver_high}]")
        if not self.solver_tolerance > 0:
            errors.append(f"Solver tolerance must be positive, got {self.solver_tolerance}")
        if errors:
            raise InvalidParameter("Parameter validation failed:\n" + "\n".join(errors))
        logger.debug("All parameters validated successfully")


def _is_number(value):
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


def _is_count(value):
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)
