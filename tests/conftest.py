import json

import pytest

from survival_model import market_data
from survival_model.market_data import MarketObservation


class ConstantSampler:
    """Year sampler that always returns the same draw."""
    mode = "constant"

    def __init__(self, portfolio_return, inflation):
        self.portfolio_return = portfolio_return
        self.inflation = inflation
        self.draws = 0

    def sample(self, rng):
        self.draws += 1
        return self.portfolio_return, self.inflation


class SequenceSampler:
    """Year sampler that replays a fixed list of (return, inflation) pairs."""
    mode = "sequence"

    def __init__(self, draws):
        self.draws = list(draws)
        self.position = 0

    def sample(self, rng):
        draw = self.draws[self.position % len(self.draws)]
        self.position += 1
        return draw


@pytest.fixture(autouse=True)
def _clear_records_cache():
    market_data.clear_cache()
    yield
    market_data.clear_cache()


@pytest.fixture
def records():
    # Synthetic decade, not real market history
    return tuple(
        MarketObservation(2000 + i, 0.02 * i - 0.05, 0.01 * (i % 4), 0.01 + 0.002 * i)
        for i in range(10)
    )


@pytest.fixture
def json_data_file(tmp_path, records):
    payload = {
        "description": "test returns",
        "source": "fixture",
        "data": [
            {"year": r.year, "stockReturn": r.stock_return,
             "bondReturn": r.bond_return, "inflation": r.inflation}
            for r in reversed(records)
        ],
    }
    path = tmp_path / "returns.json"
    path.write_text(json.dumps(payload))
    return path


@pytest.fixture
def csv_data_file(tmp_path, records):
    lines = ["year,stock_return,bond_return,inflation"]
    lines += [f"{r.year},{r.stock_return},{r.bond_return},{r.inflation}" for r in records]
    path = tmp_path / "returns.csv"
    path.write_text("\n".join(lines) + "\n")
    return path
