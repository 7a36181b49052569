"""
Stores package for the rental report.

Re-exports the store interfaces and concrete backends, and resolves the backend
named by `Settings.report_backend`.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from rental_report.config import Settings, get_settings
from rental_report.stores.abstract import AbstractReportStore, ReportStore
from rental_report.stores.memory import InMemoryReportStore
from rental_report.stores.postgres import PostgresReportStore


def _store_factories() -> Dict[str, Callable[[], ReportStore]]:
    """Registry of available store backends."""
    return {
        "memory": lambda: InMemoryReportStore(),
        "postgres": lambda: PostgresReportStore(),
    }


def available_backends() -> List[str]:
    """List available store backend names."""
    return sorted(_store_factories().keys())


def create_store(settings: Optional[Settings] = None) -> ReportStore:
    settings = settings or get_settings()
    factories = _store_factories()
    name = settings.report_backend
    if name not in factories:
        raise ValueError(f"Unknown report backend '{name}'. Available: {', '.join(factories)}")
    return factories[name]()


__all__ = [
    "AbstractReportStore",
    "ReportStore",
    "InMemoryReportStore",
    "PostgresReportStore",
    "available_backends",
    "create_store",
]
