"""
Twitter Search Bot - Account Pool & Cache-First Fetch Service

This package coordinates a pool of Twitter/X accounts to search tweets,
fetch profiles and timelines behind a Redis cache, and summarizes the
results with an LLM.
"""

__version__ = "1.0.0"
