"""
Portfolio analysis DAG - orchestrates the complete return/risk pipeline.
Composes: Price builder → Return calculator → Aggregator → Performance & drawdown.
"""

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from dotenv import load_dotenv

from analysis.calculations.aggregation import (
    allocation_by_country,
    country_contributions,
    period_returns,
    portfolio_period_returns,
)
from analysis.calculations.drawdown import drawdown_series
from analysis.calculations.performance import (
    build_performance_series,
    performance_difference,
    yearly_performance_table,
)
from analysis.calculations.returns import calculate_returns
from analysis.calculations.risk import PortfolioRisk, portfolio_risk
from analysis.calculations.volatility import rolling_volatility, yearly_volatility
from analysis.conventions import DEFAULT_CONVENTION, ReturnConvention, parse_convention
from analysis.guardrails import run_all_guardrails
from ingestion.providers.synthetic_prices import (
    DEFAULT_BENCHMARK_ID,
    build_price_table,
    generate_benchmark_series,
)
from ingestion.transforms.normalizers import normalize_allocations
from ingestion.transforms.validators import validate_date_range

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_ALLOCATIONS = [
    {'instrument_id': 'AAPL', 'weight': 0.4, 'country': 'US'},
    {'instrument_id': 'MSFT', 'weight': 0.3, 'country': 'US'},
    {'instrument_id': 'SAP', 'weight': 0.2, 'country': 'DE'},
    {'instrument_id': 'NESN', 'weight': 0.1, 'country': 'CH'},
]


class PipelineError(Exception):
    """Raised when pipeline execution fails."""
    pass


@dataclass
class PortfolioConfig:
    """Configuration for the portfolio analysis pipeline."""
    allocations: List[Dict[str, Any]] = field(default_factory=lambda: list(DEFAULT_ALLOCATIONS))
    start_date: date = date(2021, 1, 1)
    end_date: date = date(2023, 12, 31)
    seed: int = 42
    convention: ReturnConvention = DEFAULT_CONVENTION
    drift: float = 0.0005
    volatility: float = 0.01
    benchmark_id: str = DEFAULT_BENCHMARK_ID
    benchmark_drift: float = 0.0003
    benchmark_volatility: float = 0.008
    performance_start: Optional[date] = None
    rolling_window: int = 21

    def __post_init__(self):
        """Validate and normalize settings."""
        self.convention = parse_convention(self.convention)
        validate_date_range(self.start_date, self.end_date)

        if not self.allocations:
            raise ValueError("allocations must not be empty")

        if self.rolling_window <= 1:
            raise ValueError("rolling_window must be > 1")

        if self.benchmark_id in {a.get('instrument_id') for a in self.allocations}:
            raise ValueError(f"benchmark_id {self.benchmark_id} collides with an allocated instrument")

    @property
    def days_range(self) -> int:
        """Calculate number of days in range."""
        return (self.end_date - self.start_date).days

    @classmethod
    def from_env(cls, **overrides) -> 'PortfolioConfig':
        """
        Build a config from environment variables, with explicit overrides.

        Reads PORTFOLIO_SEED, PORTFOLIO_START_DATE, PORTFOLIO_END_DATE,
        PORTFOLIO_RETURN_CONVENTION and PORTFOLIO_BENCHMARK_ID.
        Overrides that are None are ignored.
        """
        settings: Dict[str, Any] = {
            'seed': int(os.getenv('PORTFOLIO_SEED', '42')),
            'start_date': date.fromisoformat(os.getenv('PORTFOLIO_START_DATE', '2021-01-01')),
            'end_date': date.fromisoformat(os.getenv('PORTFOLIO_END_DATE', '2023-12-31')),
            'convention': os.getenv('PORTFOLIO_RETURN_CONVENTION', DEFAULT_CONVENTION.value),
            'benchmark_id': os.getenv('PORTFOLIO_BENCHMARK_ID', DEFAULT_BENCHMARK_ID),
        }
        settings.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**settings)


@dataclass(frozen=True, eq=False)
class PortfolioAnalysis:
    """Every table produced by one pipeline run."""
    config: PortfolioConfig
    allocations: pd.DataFrame
    prices: pd.DataFrame
    benchmark_prices: pd.DataFrame
    returns: pd.DataFrame
    period_returns: Dict[str, pd.DataFrame]
    portfolio_period_returns: Dict[str, pd.DataFrame]
    country_returns: pd.DataFrame
    country_allocation: pd.DataFrame
    volatility: pd.DataFrame
    rolling_volatility: pd.DataFrame
    risk: PortfolioRisk
    performance: pd.DataFrame
    drawdown: pd.DataFrame
    comparison: pd.DataFrame
    yearly_performance: pd.DataFrame
    guardrails: Dict[str, Any]


def run_portfolio_analysis(config: PortfolioConfig) -> PortfolioAnalysis:
    """
    Run the complete portfolio analysis pipeline.

    Pipeline stages:
    1. Build instrument and benchmark prices (joined with allocations)
    2. Calculate daily returns
    3. Aggregate: period returns, volatility, portfolio risk
    4. Analyze: performance vs benchmark, drawdown, yearly comparison

    A failure in any stage fails the whole run; no partial results are
    returned.

    Args:
        config: Pipeline configuration

    Returns:
        PortfolioAnalysis with every output table

    Raises:
        PipelineError: Wrapping the error of the failing stage
    """
    logger.info(
        f"Running portfolio analysis: {config.start_date} to {config.end_date}, "
        f"seed={config.seed}, convention={config.convention.value}"
    )
    rng = np.random.default_rng(config.seed)

    # Stage 1: Price series builder
    with _stage('build'):
        allocations = normalize_allocations(config.allocations)
        prices = build_price_table(
            allocations,
            config.start_date,
            config.end_date,
            rng=rng,
            drift=config.drift,
            volatility=config.volatility
        )
        benchmark_prices = generate_benchmark_series(
            config.start_date,
            config.end_date,
            rng=rng,
            benchmark_id=config.benchmark_id,
            drift=config.benchmark_drift,
            volatility=config.benchmark_volatility
        )

    # Stage 2: Return calculator
    with _stage('returns'):
        returns = calculate_returns(prices, config.convention)
        guardrails = run_all_guardrails(allocations, returns)
        for message in guardrails['warnings']:
            logger.warning(message)

    # Stage 3: Aggregator
    with _stage('aggregate'):
        instrument_periods = {
            frequency: period_returns(returns, frequency)
            for frequency in ('week', 'month', 'year')
        }
        portfolio_periods = {
            frequency: portfolio_period_returns(returns, frequency)
            for frequency in ('week', 'month', 'year')
        }
        country_returns = country_contributions(returns, 'year')
        country_allocation = allocation_by_country(allocations)
        volatility = yearly_volatility(returns)
        rolling = rolling_volatility(returns, window=config.rolling_window)
        risk = portfolio_risk(returns)

    # Stage 4: Performance & drawdown analyzer
    with _stage('analyze'):
        performance = build_performance_series(returns, benchmark_prices)
        drawdown = drawdown_series(performance)
        comparison = performance_difference(performance)
        yearly = yearly_performance_table(performance, start_date=config.performance_start)

    logger.info(
        f"Portfolio analysis complete: {len(returns)} return rows, "
        f"risk={risk.volatility:.6f}"
    )

    return PortfolioAnalysis(
        config=config,
        allocations=allocations,
        prices=prices,
        benchmark_prices=benchmark_prices,
        returns=returns,
        period_returns=instrument_periods,
        portfolio_period_returns=portfolio_periods,
        country_returns=country_returns,
        country_allocation=country_allocation,
        volatility=volatility,
        rolling_volatility=rolling,
        risk=risk,
        performance=performance,
        drawdown=drawdown,
        comparison=comparison,
        yearly_performance=yearly,
        guardrails=guardrails
    )


@contextmanager
def _stage(name: str):
    """Wrap any error raised inside a stage in PipelineError naming the stage."""
    logger.debug(f"Stage {name} started")
    try:
        yield
    except PipelineError:
        raise
    except Exception as e:
        logger.error(f"Stage {name} failed: {e}")
        raise PipelineError(f"{name} stage failed: {e}") from e
    logger.debug(f"Stage {name} finished")
