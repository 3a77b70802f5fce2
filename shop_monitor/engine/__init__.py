"""Monitor state machine."""

from .monitor_engine import RECOVERY_JOB_ID, MonitorEngine
from .recovery_checker import RecoveryChecker

__all__ = ["MonitorEngine", "RecoveryChecker", "RECOVERY_JOB_ID"]
