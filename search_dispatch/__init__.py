"""
Search Dispatch

Fans one search query out to several backends under per-backend rate limits,
health tracking, retries and a bounded concurrency queue, then merges the
results into a single ranked list.
"""

__version__ = "1.0.0"
