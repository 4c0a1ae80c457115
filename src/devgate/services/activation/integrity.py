"""Compromised-host detection behind a configurable policy."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

from .enums import IntegrityPolicy

__all__ = ["CompromiseDetector", "IntegrityGuard", "SU_PATHS"]

logger = logging.getLogger(__name__)

SU_PATHS: tuple[str, ...] = (
    "/system/app/Superuser.apk",
    "/sbin/su",
    "/system/bin/su",
    "/system/xbin/su",
    "/data/local/xbin/su",
    "/data/local/bin/su",
    "/system/sd/xbin/su",
    "/system/bin/failsafe/su",
    "/data/local/su",
)


@dataclass(slots=True)
class CompromiseDetector:
    paths: Sequence[str] = SU_PATHS
    check_tracer: bool = True
    tracer: Callable[[], object] = sys.gettrace

    def findings(self) -> list[str]:
        found: list[str] = []
        for candidate in self.paths:
            try:
                if Path(candidate).exists():
                    found.append(f"found {candidate}")
            except OSError:
                continue
        if self.check_tracer and self.tracer() is not None:
            found.append("tracer attached")
        return found


@dataclass(slots=True)
class IntegrityGuard:
    policy: IntegrityPolicy = IntegrityPolicy.LOG_ONLY
    detector: CompromiseDetector = field(default_factory=CompromiseDetector)

    @classmethod
    def from_setting(cls, value: str | None, **kwargs) -> "IntegrityGuard":
        try:
            policy = IntegrityPolicy((value or IntegrityPolicy.LOG_ONLY.value).strip().lower())
        except ValueError:
            logger.warning("unknown integrity policy %r, falling back to log-only", value)
            policy = IntegrityPolicy.LOG_ONLY
        return cls(policy=policy, **kwargs)

    def allows(self) -> bool:
        if self.policy is IntegrityPolicy.IGNORE:
            return True
        findings = self.detector.findings()
        if not findings:
            return True
        if self.policy is IntegrityPolicy.DENY:
            logger.warning("device integrity check failed: %s", "; ".join(findings))
            return False
        logger.warning("device integrity findings (not enforced): %s", "; ".join(findings))
        return True
