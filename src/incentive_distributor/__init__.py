"""Incentive Distributor - LP reward computation and batch token distribution."""

__version__ = "0.1.0"
