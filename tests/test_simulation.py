"""Tests for the path simulator and the Monte Carlo engine."""

import threading
import time

import numpy as np
import pytest

from survival_model.bootstrap import ParametricYearSampler
from survival_model.config import SimulationConfig, YearRange
from survival_model.errors import InvalidParameter, SimulationCancelled
from survival_model.simulation import (check_success_rate, compute_percentile_bands,
                                       run_monte_carlo, simulate_path)
from tests.conftest import ConstantSampler, SequenceSampler


def _config(**overrides):
    defaults = dict(initial_capital=1000.0, annual_withdrawal=40.0, years=30,
                    num_trials=200, seed=1234, sampling_mode="parametric")
    defaults.update(overrides)
    return SimulationConfig(**defaults)


def test_single_year_growth_then_inflated_withdrawal():
    result = simulate_path(1000.0, 1, 40.0, ConstantSampler(0.07, 0.03),
                           np.random.default_rng(0), trace=True)
    assert result.trajectory[0] == 1000.0
    assert result.trajectory[1] == pytest.approx(1028.8)
    assert result.success
    (entry,) = result.ledger
    assert entry.return_amount == pytest.approx(70.0)
    assert entry.withdrawal_amount == pytest.approx(41.2)
    assert entry.end_balance == pytest.approx(1028.8)


def test_one_trial_outcome_matches_single_path():
    config = _config(years=1, num_trials=1)
    outcome = run_monte_carlo(config, sampler=ConstantSampler(0.07, 0.03))
    for band in outcome.bands.as_dict().values():
        assert band[0] == 1000.0
        assert band[1] == pytest.approx(1028.8)
    assert outcome.success_rate == 100.0


def test_withdrawal_compounds_on_cumulative_inflation():
    sampler = SequenceSampler([(0.0, 0.10), (0.0, 0.20), (0.0, 0.0)])
    result = simulate_path(1000.0, 3, 100.0, sampler, np.random.default_rng(0), trace=True)
    withdrawals = [e.withdrawal_amount for e in result.ledger]
    assert withdrawals == pytest.approx([110.0, 132.0, 132.0])
    assert result.trajectory[-1] == pytest.approx(1000.0 - 110.0 - 132.0 - 132.0)


def test_total_loss_depletes_every_trial():
    config = _config(years=5, num_trials=50)
    outcome = run_monte_carlo(config, sampler=ConstantSampler(-1.0, 0.02), keep_paths=True)
    assert np.all(outcome.paths[:, 1:] == 0.0)
    assert outcome.success_rate == 0.0
    assert outcome.final_median == 0.0


def test_depleted_path_stops_drawing():
    sampler = ConstantSampler(-1.0, 0.0)
    result = simulate_path(1000.0, 10, 10.0, sampler, np.random.default_rng(0))
    assert sampler.draws == 1
    assert not result.success
    assert np.all(result.trajectory[1:] == 0.0)


def test_ledger_zero_is_absorbing():
    result = simulate_path(100.0, 4, 80.0, ConstantSampler(0.0, 0.0),
                           np.random.default_rng(0), trace=True)
    assert [e.year for e in result.ledger] == [1, 2, 3, 4]
    assert result.ledger[0].end_balance == pytest.approx(20.0)
    assert result.ledger[1].end_balance == 0.0
    for entry in result.ledger[2:]:
        assert entry.start_balance == 0.0
        assert entry.end_balance == 0.0


def test_flat_market_without_withdrawals_keeps_capital():
    config = _config(annual_withdrawal=0.0, years=25, num_trials=20)
    outcome = run_monte_carlo(config, sampler=ConstantSampler(0.0, 0.03), keep_paths=True)
    assert np.all(outcome.paths == 1000.0)
    assert outcome.success_rate == 100.0
    for band in outcome.bands.as_dict().values():
        assert np.all(band == 1000.0)


def test_trajectories_never_negative():
    config = _config(annual_withdrawal=120.0, num_trials=300)
    outcome = run_monte_carlo(config, keep_paths=True)
    assert outcome.paths.shape == (300, 31)
    assert np.all(outcome.paths >= 0.0)
    assert np.any(outcome.paths[:, -1] == 0.0)


def test_percentile_bands_are_ordered():
    outcome = run_monte_carlo(_config(annual_withdrawal=60.0, num_trials=400))
    b = outcome.bands
    assert len(b.p50) == 31
    assert np.all(b.p10 <= b.p25)
    assert np.all(b.p25 <= b.p50)
    assert np.all(b.p50 <= b.p75)
    assert np.all(b.p75 <= b.p90)


def test_percentiles_use_plain_order_statistics():
    paths = np.arange(10, dtype=float)[::-1].reshape(10, 1)
    bands = compute_percentile_bands(paths)
    assert [bands.p10[0], bands.p25[0], bands.p50[0], bands.p75[0], bands.p90[0]] == [1, 2, 5, 7, 9]


def test_percentiles_single_trial():
    bands = compute_percentile_bands(np.array([[5.0, 3.0]]))
    assert bands.p10.tolist() == [5.0, 3.0]
    assert bands.p90.tolist() == [5.0, 3.0]


def test_success_rate_counts_positive_terminal_balance():
    # Alternating years end exactly at zero or comfortably positive
    sampler = SequenceSampler([(0.0, 0.0), (1.0, 0.0)])
    config = _config(initial_capital=100.0, annual_withdrawal=100.0, years=1, num_trials=4)
    outcome = run_monte_carlo(config, sampler=sampler)
    assert outcome.success_rate == 50.0


def test_seed_makes_runs_reproducible():
    first = run_monte_carlo(_config(annual_withdrawal=60.0))
    second = run_monte_carlo(_config(annual_withdrawal=60.0))
    assert first.success_rate == second.success_rate
    np.testing.assert_array_equal(first.bands.p50, second.bands.p50)
    assert first.ledger == second.ledger


def test_ledger_is_an_extra_run(records):
    config = _config(years=10, num_trials=5, sampling_mode="historical")
    outcome = run_monte_carlo(config, records=records)
    assert len(outcome.ledger) == 10
    assert outcome.sampling_mode == "historical"
    for entry in outcome.ledger:
        assert entry.end_balance == pytest.approx(
            max(0.0, entry.start_balance + entry.return_amount - entry.withdrawal_amount))


def test_withdrawal_rate_sets_amount():
    config = _config(annual_withdrawal=None, withdrawal_rate=5.0, years=1, num_trials=1)
    outcome = run_monte_carlo(config, sampler=ConstantSampler(0.0, 0.0))
    assert outcome.annual_withdrawal == pytest.approx(50.0)
    assert outcome.bands.p50[1] == pytest.approx(950.0)


def test_historical_run_honours_year_range(records):
    config = _config(years=3, num_trials=30, sampling_mode="historical",
                     year_range=YearRange(2009, 2009))
    outcome = run_monte_carlo(config, records=records, keep_paths=True)
    last = records[-1]
    growth = 1.0 + 0.5 * last.stock_return + 0.5 * last.bond_return
    assert outcome.paths[:, 1] == pytest.approx(np.full(30, 1000.0 * growth - 40.0 * (1 + last.inflation)))


def test_missing_data_falls_back_to_parametric(tmp_path):
    config = _config(sampling_mode="historical", data_path=str(tmp_path / "gone.json"), num_trials=20)
    outcome = run_monte_carlo(config)
    assert outcome.sampling_mode == "parametric"
    assert "unavailable" in outcome.data_status


def test_loads_historical_file(json_data_file):
    config = _config(sampling_mode="historical", data_path=str(json_data_file), num_trials=20)
    outcome = run_monte_carlo(config)
    assert outcome.sampling_mode == "historical"


def test_invalid_parameters_rejected_before_work():
    sampler = ConstantSampler(0.05, 0.02)
    with pytest.raises(InvalidParameter):
        run_monte_carlo(_config(num_trials=0), sampler=sampler)
    with pytest.raises(InvalidParameter):
        run_monte_carlo(_config(initial_capital=-1.0), sampler=sampler)
    assert sampler.draws == 0


def test_cancellation_between_trials():
    token = threading.Event()
    token.set()
    with pytest.raises(SimulationCancelled):
        run_monte_carlo(_config(), cancel_token=token)


def test_check_success_rate_compute_only():
    config = _config(num_trials=10, years=10)
    assert check_success_rate(500.0, config, sampler=ConstantSampler(0.0, 0.0)) == 100.0
    assert check_success_rate(500.0, config.copy(annual_withdrawal=600.0),
                              sampler=ConstantSampler(0.0, 0.0)) == 0.0


def test_parallel_trials_are_reproducible():
    config = _config(num_trials=240, num_workers=2, annual_withdrawal=55.0)
    sampler = ParametricYearSampler()
    first = run_monte_carlo(config, sampler=sampler, rng=np.random.default_rng(5), keep_paths=True)
    second = run_monte_carlo(config, sampler=sampler, rng=np.random.default_rng(5), keep_paths=True)
    assert first.paths.shape == (240, 31)
    np.testing.assert_array_equal(first.paths, second.paths)
    assert first.success_rate == second.success_rate


def test_parallel_run_spans_several_chunks():
    config = _config(num_trials=1200, years=5, num_workers=2)
    outcome = run_monte_carlo(config, sampler=ParametricYearSampler(),
                              rng=np.random.default_rng(8), keep_paths=True)
    assert outcome.paths.shape == (1200, 6)
    assert np.all(outcome.paths[:, 0] == 1000.0)


def test_parallel_cancellation_stops_mid_run():
    # Far more work than finishes before the token is set
    config = _config(num_trials=200_000, num_workers=2)
    token = threading.Event()
    timer = threading.Timer(0.3, token.set)
    started = time.monotonic()
    timer.start()
    try:
        with pytest.raises(SimulationCancelled):
            check_success_rate(1000.0, config, sampler=ParametricYearSampler(),
                               rng=np.random.default_rng(3), cancel_token=token)
    finally:
        timer.cancel()
    assert token.is_set()
    assert time.monotonic() - started < 5.0
