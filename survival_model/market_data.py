"""
Historical Market Data Module

This module loads yearly market observations (stock return, bond return, inflation),
caches them for the lifetime of the process, and restricts them to year windows.
"""

import json
import logging
import os
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .errors import DataUnavailable

logger = logging.getLogger(__name__)

COLUMNS = ("year", "stock_return", "bond_return", "inflation")

# camelCase keys used by the bundled JSON format
_JSON_KEYS = {
    "year": "year",
    "stockReturn": "stock_return",
    "bondReturn": "bond_return",
    "inflation": "inflation",
}


@dataclass(frozen=True)
class MarketObservation:
    """One year of market conditions; returns are fractions (0.10 == 10%)."""
    year: int
    stock_return: float
    bond_return: float
    inflation: float


def _read_json_frame(path):
    with open(path, 'r', encoding='utf-8') as f:
        payload = json.load(f)
    rows = payload.get("data") if isinstance(payload, dict) else payload
    if not isinstance(rows, list):
        raise ValueError("JSON payload must be a list of records or an object with a 'data' list")
    df = pd.DataFrame(rows)
    if isinstance(payload, dict):
        logger.info(f"[DATA] {payload.get('description', 'historical returns')} "
                    f"(source: {payload.get('source', 'unknown')})")
    return df.rename(columns=_JSON_KEYS)


def _read_csv_frame(source):
    df = pd.read_csv(source)
    df.columns = [str(c).strip().lower() for c in df.columns]
    return df


def _frame_to_records(df, source):
    missing = [c for c in COLUMNS if c not in df.columns]
    if missing:
        raise DataUnavailable(f"Historical data from '{source}' is missing columns: {missing}. "
                              f"Available columns: {list(df.columns)}")
    df = df[list(COLUMNS)].apply(pd.to_numeric, errors='coerce')
    bad_rows = int(df.isna().any(axis=1).sum())
    if bad_rows:
        raise DataUnavailable(f"Historical data from '{source}' has {bad_rows} rows with "
                              f"missing or non-numeric values")
    if df.empty:
        raise DataUnavailable(f"Historical data from '{source}' contains no records")
    if df['year'].duplicated().any():
        dupes = sorted(df.loc[df['year'].duplicated(), 'year'].astype(int).unique().tolist())
        raise DataUnavailable(f"Historical data from '{source}' repeats years: {dupes}")

    df = df.sort_values('year')
    return tuple(
        MarketObservation(int(row.year), float(row.stock_return),
                          float(row.bond_return), float(row.inflation))
        for row in df.itertuples(index=False)
    )


def read_historical_records(source):
    """
    Read market observations from a JSON file, a CSV file or a CSV URL.

    Args:
        source: Path or http(s) URL

    Returns:
        tuple: MarketObservation records sorted by year

    Raises:
        DataUnavailable: if the source is missing, unreachable or malformed
    """
    source = str(source)
    is_url = source.startswith(("http://", "https://"))
    logger.debug(f"[DATA] Reading historical records from {source}")

    if not is_url and not os.path.exists(source):
        raise DataUnavailable(f"Historical data file not found: {source}")

    try:
        if not is_url and source.lower().endswith(".json"):
            df = _read_json_frame(source)
        else:
            df = _read_csv_frame(source)
    except (OSError, ValueError, pd.errors.ParserError) as e:
        raise DataUnavailable(f"Could not read historical data from '{source}': {e}") from e

    records = _frame_to_records(df, source)
    logger.info(f"[DATA] Loaded {len(records)} years of market data "
                f"({records[0].year}-{records[-1].year})")
    return records


# Process-wide cache, one entry per source (loaded once)
_records_cache = {}


def load_historical_records(config):
    """
    Load historical records once per source and cache them.

    Args:
        config: SimulationConfig instance, or a path/URL

    Returns:
        tuple: MarketObservation records sorted by year
    """
    if isinstance(config, (str, os.PathLike)):
        source = str(config)
    else:
        source = config.data_url or config.data_path
    if source is None:
        raise DataUnavailable("No historical data source configured")

    cached = _records_cache.get(source)
    if cached is not None:
        return cached

    records = read_historical_records(source)
    _records_cache[source] = records
    return records


def clear_cache():
    _records_cache.clear()


def filter_by_range(records, year_range):
    """
    Keep the records whose year lies inside year_range (inclusive).

    An empty result falls back to the full input, so the sampler is never
    handed an empty set.
    """
    if year_range is None:
        return tuple(records)
    subset = tuple(r for r in records if r.year in year_range)
    if not subset:
        logger.warning(f"[DATA] No records in {year_range.start_year}-{year_range.end_year}, "
                       f"using all {len(records)} records")
        return tuple(records)
    return subset


def describe_records(records):
    """Mean and population standard deviation of each series"""
    if not records:
        return {"count": 0}

    def _stats(values):
        arr = np.asarray(values, dtype=float)
        return {"mean": float(arr.mean()), "std_dev": float(arr.std()),
                "min": float(arr.min()), "max": float(arr.max())}

    return {
        "count": len(records),
        "first_year": min(r.year for r in records),
        "last_year": max(r.year for r in records),
        "stock_return": _stats([r.stock_return for r in records]),
        "bond_return": _stats([r.bond_return for r in records]),
        "inflation": _stats([r.inflation for r in records]),
    }


def summarize_records(records):
    """One-line description of a record set for status messages"""
    stats = describe_records(records)
    return (f"{stats['count']} historical years ({stats['first_year']}-{stats['last_year']}); "
            f"mean stock {stats['stock_return']['mean']:.2%}, "
            f"bond {stats['bond_return']['mean']:.2%}, "
            f"inflation {stats['inflation']['mean']:.2%}")


def resolve_sampling_data(config):
    """
    Decide which market model a run will use.

    Returns:
        tuple: (records or None, sampling mode, status message)
    """
    if config.sampling_mode != "historical":
        return None, "parametric", "Using parametric market model"

    try:
        records = load_historical_records(config)
    except DataUnavailable as e:
        logger.warning(f"[DATA] Historical data unavailable, falling back to parametric model: {e}")
        return None, "parametric", f"Historical data unavailable ({e}); using parametric market model"

    eligible = filter_by_range(records, config.year_range)
    status = f"Sampling {summarize_records(eligible)}"
    return eligible, "historical", status
