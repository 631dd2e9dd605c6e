"""
Main Execution Module

This module coordinates the command-line runs of the survival simulation:
`simulate` for percentile bands and a success rate, `solve` for the capital
needed to reach a target success rate.
"""

import argparse
import logging
import sys

import numpy as np

from .config import (PORTFOLIO_PRESETS, SAMPLING_MODES, PortfolioWeights,
                     SimulationConfig, YearRange)
from .errors import InvalidParameter
from .simulation import run_monte_carlo
from .solver import find_required_capital
from .utils import (bands_to_frame, export_to_csv, ledger_to_frame, print_rich_table,
                    trace_to_frame)

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="survival-sim",
        description="Monte Carlo survival odds for a retirement withdrawal plan")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_common(p):
        p.add_argument("--withdrawal", type=float, help="annual withdrawal in today's money")
        p.add_argument("--years", type=int, default=30)
        p.add_argument("--portfolio", choices=sorted(PORTFOLIO_PRESETS), default="balanced")
        p.add_argument("--stock-weight", type=float,
                       help="custom stock weight in [0, 1]; overrides --portfolio")
        p.add_argument("--mode", choices=SAMPLING_MODES, default="historical")
        p.add_argument("--year-range", help="preset name (e.g. postwar) or START-END")
        p.add_argument("--trials", type=int, default=1000)
        p.add_argument("--seed", type=int)
        p.add_argument("--workers", type=int, default=1, help="0 = one per spare core")
        p.add_argument("--data", help="historical data file (.json or .csv)")
        p.add_argument("--data-url", help="historical data CSV URL")
        p.add_argument("--csv", action="store_true", help="export tables to CSV")
        p.add_argument("--output-dir", default="Survival Outputs")

    sim = sub.add_parser("simulate", help="run the Monte Carlo simulation")
    add_common(sim)
    sim.add_argument("--capital", type=float, default=1000.0)
    sim.add_argument("--withdrawal-rate", type=float, default=4.0,
                     help="percent of initial capital, used when --withdrawal is absent")

    solve = sub.add_parser("solve", help="find the capital needed for a target success rate")
    add_common(solve)
    solve.add_argument("--target", type=float, default=97.0, help="target success rate in percent")
    solve.add_argument("--low", type=float, default=100.0)
    solve.add_argument("--high", type=float, default=20000.0)
    solve.add_argument("--tolerance", type=float, default=10.0)
    return parser


def config_from_args(args):
    """Translate parsed arguments into a SimulationConfig"""
    if args.stock_weight is not None:
        weights = PortfolioWeights.from_stock_weight(args.stock_weight)
    else:
        weights = PortfolioWeights.from_preset(args.portfolio)

    config = SimulationConfig(
        annual_withdrawal=args.withdrawal,
        years=args.years,
        weights=weights,
        sampling_mode=args.mode,
        year_range=YearRange.parse(args.year_range) if args.year_range else None,
        num_trials=args.trials,
        seed=args.seed,
        num_workers=None if args.workers == 0 else args.workers,
        show_progress=True,
        generate_csv_summary=args.csv,
        output_directory=args.output_dir,
    )
    if args.data:
        config.data_path = args.data
    if args.data_url:
        config.data_url = args.data_url

    if args.command == "simulate":
        config.initial_capital = args.capital
        config.withdrawal_rate = args.withdrawal_rate
    else:
        config.target_success_rate = args.target
        config.solver_low = args.low
        config.solver_high = args.high
        config.solver_tolerance = args.tolerance
    return config


def display_simulation_results(outcome):
    """Display percentile bands, success rate and the illustrative ledger"""
    config = outcome.config
    print("\n--- Simulation Results ---")
    print(f"[INFO] {outcome.data_status}")
    print(f"Trials: {outcome.num_trials}  Years: {config.years}  "
          f"Portfolio: {config.weights.stock:.0%} stock / {config.weights.bond:.0%} bond")
    print(f"Initial capital: {config.initial_capital:,.2f}  "
          f"Annual withdrawal: {outcome.annual_withdrawal:,.2f}")
    print(f"Success rate: {outcome.success_rate:.1f}%")
    print(f"Final median balance: {outcome.final_median:,.2f}")

    df_bands = bands_to_frame(outcome.bands)
    df_display = df_bands.copy()
    for col in ['p10', 'p25', 'p50', 'p75', 'p90']:
        df_display[col] = df_display[col].apply(lambda x: f"{x:,.0f}")
    print_rich_table(df_display, "Balance Percentiles by Year")

    df_ledger = ledger_to_frame(outcome.ledger)
    df_ledger_display = df_ledger.copy()
    for col in ['start_balance', 'return_amount', 'withdrawal_amount', 'end_balance']:
        df_ledger_display[col] = df_ledger_display[col].apply(lambda x: f"{x:,.2f}")
    for col in ['return_rate', 'inflation']:
        df_ledger_display[col] = df_ledger_display[col].apply(lambda x: f"{x * 100:.2f}%")
    print_rich_table(df_ledger_display, "Illustrative Path (one extra run)")

    if config.generate_csv_summary:
        export_to_csv(df_bands, 'percentile_bands.csv', config.output_directory)
        export_to_csv(df_ledger, 'illustrative_ledger.csv', config.output_directory)


def display_solver_results(outcome, config):
    """Display the required capital and the bisection trace"""
    print("\n--- Required Capital ---")
    print(f"[INFO] {outcome.data_status}")
    print(f"Target success rate: {outcome.target_success_rate:.1f}%")
    print(f"Required capital: {outcome.required_capital:,.2f}")
    print(f"Achieved success rate: {outcome.achieved_success_rate:.1f}%")
    if not outcome.feasible:
        print(f"[WARNING] Target not reachable within the search bounds; "
              f"showing the upper bound {outcome.required_capital:,.0f}")
    if outcome.annual_withdrawal > 0:
        swr = outcome.annual_withdrawal / outcome.required_capital * 100.0
        print(f"Implied initial withdrawal rate: {swr:.2f}%")

    df_trace = trace_to_frame(outcome.search_trace)
    df_display = df_trace.sort_values('capital').copy()
    df_display['capital'] = df_display['capital'].apply(lambda x: f"{x:,.0f}")
    df_display['success_rate'] = df_display['success_rate'].apply(lambda x: f"{x:.1f}%")
    print_rich_table(df_display, "Search Trace (sorted by capital)")

    if config.generate_csv_summary:
        export_to_csv(df_trace, 'search_trace.csv', config.output_directory)


def main(argv=None):
    """Main execution function - run this to start the simulation"""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s - %(levelname)s - %(message)s')

    print("\n" + "=" * 70)
    print("RETIREMENT PORTFOLIO SURVIVAL SIMULATION")
    print("=" * 70 + "\n")

    try:
        config = config_from_args(args)
        rng = np.random.default_rng(config.seed)
        if args.command == "simulate":
            outcome = run_monte_carlo(config, rng=rng)
            display_simulation_results(outcome)
        else:
            if config.annual_withdrawal is None:
                raise InvalidParameter("solve requires --withdrawal")
            outcome = find_required_capital(config, rng=rng)
            display_solver_results(outcome, config)
    except InvalidParameter as e:
        logger.error(str(e))
        return 2
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
