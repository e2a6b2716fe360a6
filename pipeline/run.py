"""
Pipeline runner CLI - makes the portfolio analysis pipeline human-visible.
Usage: python pipeline/run.py [--start 2021-01-01] [--end 2023-12-31] [options]
"""

import sys
import json
import logging
import argparse
from datetime import date
from pathlib import Path

import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from analysis.calculations.drawdown import max_drawdown_stats
from analysis.metrics_aggregator import MetricsAggregatorError, compose_metrics
from pipeline.portfolio_dag import (
    PipelineError,
    PortfolioAnalysis,
    PortfolioConfig,
    run_portfolio_analysis,
)
from reports.formatters import (
    format_date_display,
    format_percentage,
    format_percentage_columns,
)

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for the runner."""
    parser = argparse.ArgumentParser(
        description='Run the portfolio return/risk pipeline on synthetic prices',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python pipeline/run.py
  python pipeline/run.py --start 2022-01-01 --end 2023-12-31 --seed 7
  python pipeline/run.py --convention log --performance-from 2022-01-10
  python pipeline/run.py --allocations ./allocations.csv --format json
        """
    )

    parser.add_argument('--start', type=date.fromisoformat,
                        help='First calendar day (YYYY-MM-DD, default: PORTFOLIO_START_DATE or 2021-01-01)')
    parser.add_argument('--end', type=date.fromisoformat,
                        help='Last calendar day (YYYY-MM-DD, default: PORTFOLIO_END_DATE or 2023-12-31)')
    parser.add_argument('--seed', type=int,
                        help='Random seed (default: PORTFOLIO_SEED or 42)')
    parser.add_argument('--convention', choices=['simple', 'log'],
                        help='Return convention (default: PORTFOLIO_RETURN_CONVENTION or simple)')
    parser.add_argument('--allocations',
                        help='CSV with instrument_id, weight[, country] columns')
    parser.add_argument('--performance-from', type=date.fromisoformat,
                        help='First date shown in the yearly performance table')
    parser.add_argument('--format', choices=['summary', 'json'], default='summary',
                        help='Output format (default: summary)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Debug logging')
    return parser


def load_allocations_csv(path: str) -> list:
    """Read allocation rows from a CSV file."""
    frame = pd.read_csv(path)
    return frame.to_dict('records')


def main(argv=None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )

    overrides = {
        'start_date': args.start,
        'end_date': args.end,
        'seed': args.seed,
        'convention': args.convention,
        'performance_start': args.performance_from,
    }

    try:
        if args.allocations:
            allocations_path = Path(args.allocations)
            if not allocations_path.exists():
                print(f"❌ Allocations file not found: {allocations_path}", file=sys.stderr)
                return 1
            overrides['allocations'] = load_allocations_csv(str(allocations_path))

        config = PortfolioConfig.from_env(**overrides)
    except ValueError as e:
        print(f"❌ Invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        analysis = run_portfolio_analysis(config)
        metrics = compose_metrics(
            allocations=analysis.allocations,
            returns=analysis.returns,
            performance=analysis.performance,
            drawdown=analysis.drawdown,
            yearly_performance=analysis.yearly_performance,
            volatility=analysis.volatility,
            risk=analysis.risk,
            country_allocation=analysis.country_allocation,
            country_returns=analysis.country_returns,
            rolling_volatility=analysis.rolling_volatility
        )
    except (PipelineError, MetricsAggregatorError) as e:
        print(f"❌ Pipeline Failed: {e}", file=sys.stderr)
        return 1

    if args.format == 'json':
        print(json.dumps(metrics, indent=2))
    else:
        _display_summary(analysis)

    return 0


def _display_summary(analysis: PortfolioAnalysis):
    """Display the summary tables."""
    config = analysis.config

    print("🚀 Portfolio analysis")
    print(f"📅 Date range: {config.start_date} to {config.end_date} ({config.days_range} days)")
    print(f"   Seed: {config.seed}   Convention: {config.convention.value}")
    print()

    print("💼 Allocations:")
    print(format_percentage_columns(analysis.allocations, ['weight'], decimal_places=1).to_string(index=False))
    print()

    print("🌍 Country allocation:")
    print(format_percentage_columns(analysis.country_allocation, ['weight', 'share'], decimal_places=1).to_string(index=False))
    print()

    print("🗺️  Yearly country contributions:")
    print(format_percentage_columns(analysis.country_returns, ['compounded_return'], signed=True).to_string(index=False))
    print()

    monthly = analysis.portfolio_period_returns['month']
    print("📆 Portfolio monthly returns:")
    print(format_percentage_columns(monthly, ['compounded_return'], signed=True).to_string(index=False))
    print()

    print("📉 Yearly volatility:")
    vol_columns = ['daily_vol', 'weekly_vol', 'monthly_vol', 'yearly_vol']
    print(format_percentage_columns(analysis.volatility, vol_columns).to_string(index=False))
    print()

    print(f"🌀 Latest {config.rolling_window}-day rolling volatility:")
    if analysis.rolling_volatility.empty:
        print("   Not enough data for a full window")
    else:
        latest_rolling = (
            analysis.rolling_volatility.sort_values('date')
            .groupby('instrument_id').tail(1)
            .sort_values('instrument_id')
        )
        print(format_percentage_columns(latest_rolling, ['rolling_vol']).to_string(index=False))
    print()

    print("📊 Yearly performance (last - first cumulative return):")
    table = analysis.yearly_performance
    label_columns = [c for c in table.columns if c != 'year']
    print(format_percentage_columns(table, label_columns, signed=True).to_string(index=False))
    print()

    print("🏔️  Drawdown:")
    for stats in max_drawdown_stats(analysis.drawdown):
        recovery = format_date_display(stats['recovery_date'])
        print(f"   {stats['label']}: max {format_percentage(stats['max_drawdown'], 2)} "
              f"from {format_date_display(stats['peak_date'])} "
              f"to {format_date_display(stats['trough_date'])}, recovered: {recovery}")

    latest = analysis.comparison.iloc[-1] if not analysis.comparison.empty else None
    if latest is not None:
        direction = "📈 outperforming" if latest['outperforming'] else "📉 underperforming"
        print(f"   Portfolio vs benchmark: {direction} "
              f"({format_percentage(float(latest['difference']), 2, signed=True)})")
    print()

    risk = analysis.risk
    print("⚖️  Portfolio risk:")
    print(f"   Daily volatility: {format_percentage(risk.volatility, 3)}")
    print(f"   Annualized volatility: {format_percentage(risk.annualized_volatility, 2)}")


if __name__ == '__main__':
    sys.exit(main())
