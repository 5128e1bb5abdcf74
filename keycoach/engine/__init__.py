"""
Weakness engine.

The process-wide ``EngineProvider`` and ``create_engine`` live in
``keycoach.engine.provider``.
"""

from .config import EngineConfig
from .debounce import Debouncer
from .detector import WeaknessEngine
from .models import (
    ContextualInsights,
    CorrelatedKey,
    DashboardData,
    Intervention,
    KeyContext,
    KeyState,
    KeystrokeEvent,
    SessionStats,
    UltimateWeaknessResult,
)
from .snapshot import SNAPSHOT_VERSION, EngineSnapshot, KeyStateSnapshot

__all__ = [
    "ContextualInsights",
    "CorrelatedKey",
    "DashboardData",
    "Debouncer",
    "EngineConfig",
    "EngineSnapshot",
    "Intervention",
    "KeyContext",
    "KeyState",
    "KeyStateSnapshot",
    "KeystrokeEvent",
    "SNAPSHOT_VERSION",
    "SessionStats",
    "UltimateWeaknessResult",
    "WeaknessEngine",
]
