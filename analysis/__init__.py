"""
Analysis Engine Module

Calculates portfolio metrics from daily price observations:
- Returns (simple and log, weighted by allocation)
- Weekly, monthly and yearly roll-ups
- Volatility (realized, horizon-scaled, rolling)
- Portfolio risk from the instrument covariance matrix
- Performance vs benchmark and drawdown
"""

__version__ = "1.0.0"
