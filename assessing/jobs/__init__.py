"""Recalculation job configuration and policy registry."""

from assessing.jobs.config import RecalculationConfig
from assessing.jobs.registry import PERSIST_POLICIES
from assessing.jobs.registry import create_persist_policy

__all__ = ['RecalculationConfig', 'PERSIST_POLICIES', 'create_persist_policy']
