"""
Feature flags for Wine List Scanner.

Uses pydantic-settings (FastAPI-recommended) for typed, validated,
environment-variable-backed feature flags.

Toggle via env vars: FEATURE_BATCH_MATCH=false
All flags default to True (on). Disable via env vars when needed.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class FeatureFlags(BaseSettings):
    """Feature flags backed by environment variables."""

    feature_remote_search: bool = True
    feature_batch_match: bool = True
    feature_write_through_cache: bool = True

    model_config = {
        "env_prefix": "",
        "case_sensitive": False,
    }


@lru_cache()
def get_feature_flags() -> FeatureFlags:
    """Cached flags, read once per process. Use FastAPI Depends() for injection."""
    return FeatureFlags()
