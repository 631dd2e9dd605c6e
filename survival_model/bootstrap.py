"""
Year Sampler Module

This module provides the two market models a run can draw yearly
(portfolio return, inflation) pairs from: a bootstrap over single historical
years, and a parametric fallback that needs no data at all.
"""

import logging

import numpy as np

from .errors import EmptyRecordSet

logger = logging.getLogger(__name__)


class HistoricalYearSampler:
    """
    Bootstrap sampler over single historical years.
    Every record is equally likely regardless of recency.
    """
    mode = "historical"

    def __init__(self, records, weights):
        """
        Args:
            records: Non-empty sequence of MarketObservation
            weights: PortfolioWeights used to blend stock and bond returns
        """
        if not records:
            raise EmptyRecordSet("Historical sampler needs at least one record; "
                                 "apply the year-range fallback before sampling")
        self.weights = weights
        self.years = np.array([r.year for r in records], dtype=int)
        stock = np.array([r.stock_return for r in records], dtype=float)
        bond = np.array([r.bond_return for r in records], dtype=float)
        # Blend once; each draw is then a single index lookup
        self.portfolio_returns = stock * weights.stock + bond * weights.bond
        self.inflation = np.array([r.inflation for r in records], dtype=float)

    def __len__(self):
        return len(self.years)

    def sample(self, rng):
        """
        Draw one year.

        Returns:
            tuple: (portfolio_return, inflation)
        """
        idx = rng.integers(0, len(self.years))
        return float(self.portfolio_returns[idx]), float(self.inflation[idx])


class ParametricYearSampler:
    """
    Degraded-mode market model: uniform return spread around a modest mean,
    constant inflation.
    """
    mode = "parametric"

    def __init__(self, mean_return=0.07, spread=0.30, inflation=0.03):
        self.mean_return = float(mean_return)
        self.spread = float(spread)
        self.inflation_rate = float(inflation)

    def sample(self, rng):
        portfolio_return = (rng.random() - 0.5) * self.spread + self.mean_return
        return float(portfolio_return), self.inflation_rate


def create_year_sampler(mode, records, weights, config):
    """
    Create the sampler for a run. Selected once, never per draw.

    Args:
        mode: 'historical' or 'parametric'
        records: Eligible MarketObservation records (ignored for parametric)
        weights: PortfolioWeights
        config: SimulationConfig instance (parametric settings)
    """
    if mode == "historical":
        sampler = HistoricalYearSampler(records, weights)
        logger.debug(f"[SAMPLER] Historical bootstrap over {len(sampler)} years, "
                     f"weights stock={weights.stock:.2f} bond={weights.bond:.2f}")
        return sampler

    logger.debug(f"[SAMPLER] Parametric model: mean={config.parametric_mean_return:.4f}, "
                 f"spread={config.parametric_return_spread:.4f}, "
                 f"inflation={config.parametric_inflation:.4f}")
    return ParametricYearSampler(config.parametric_mean_return,
                                 config.parametric_return_spread,
                                 config.parametric_inflation)
