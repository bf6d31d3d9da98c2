"""レート制限モジュール."""

from .admission import (
    AdmissionController,
    AdmissionDecision,
    QuotaConfig,
    QuotaLookup,
    Tier,
)
from .monitor import RateLimitMonitor
from .window_counter import RateWindowCounter, WindowState

__all__ = [
    "AdmissionController",
    "AdmissionDecision",
    "QuotaConfig",
    "QuotaLookup",
    "RateLimitMonitor",
    "RateWindowCounter",
    "Tier",
    "WindowState",
]
