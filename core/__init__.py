"""
Core utilities and configuration for the card harvester.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factory for the Postgres store
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import create_engine, create_session_maker
    from core.exceptions import AuthError, RateLimited
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()
"""

__all__ = [
    "settings",
    "setup_logging",
    "create_engine",
    "create_session_maker",
    # Exceptions
    "HarvestException",
    "RetryableError",
    "NonRetryableError",
    "RateLimited",
    "NetworkError",
    "SourceFetchError",
    "AuthError",
    "ConfigurationError",
    "StoreWriteError",
    "StoreReadError",
    "NormalizationSkip",
    "BudgetExhausted",
]
