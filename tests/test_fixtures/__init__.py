"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .domain_factory import CountingLoader, DomainFactory
from .rebuild_executor import ManualRebuildExecutor

__all__ = ["CountingLoader", "DomainFactory", "ManualRebuildExecutor"]
