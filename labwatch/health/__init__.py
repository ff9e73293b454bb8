"""Health subsystem — check engine, stop signal, scheduler."""

from .engine import Check, CheckResult, Status, build_checks, execute_check
from .scheduler import CheckScheduler, SchedulerState
from .stop_signal import StopKind, StopReason, StopSignal
