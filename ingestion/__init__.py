"""
Data Ingestion Module

Builds and validates the price and allocation inputs:
- Synthetic geometric random walk prices (seeded, no network)
- Canonical price / allocation frames and their validation
"""

__version__ = "1.0.0"
