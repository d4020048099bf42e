"""Convergence protocol: refresh, diff, apply, capture, verify."""

from __future__ import annotations

from .models import (
    CaptureFailure,
    ConvergeOptions,
    ConvergePhase,
    ConvergeReport,
    ForgeConvergence,
    RefreshResult,
)
from .service import ConvergenceService, converge

__all__ = [
    "CaptureFailure",
    "ConvergeOptions",
    "ConvergePhase",
    "ConvergeReport",
    "ConvergenceService",
    "ForgeConvergence",
    "RefreshResult",
    "converge",
]
