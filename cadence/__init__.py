"""Cadence: generation job orchestration, video budgets and provider retries."""

__version__ = "0.4.0"
