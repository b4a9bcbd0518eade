"""Shared utilities for configuration, logging, and retries"""

from changesync.utils.retry import exponential_backoff_retry

__all__ = ["exponential_backoff_retry"]
