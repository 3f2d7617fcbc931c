"""Flashing workflow state machine."""

from .messages import (
    BuildFinished,
    BuildProgressed,
    FlashFinished,
    FlowMessage,
    ScanFinished,
    VolumeChanged,
)
from .models import FlowSnapshot, FlowState, LogEntry, LogLevel
from .orchestrator import FlowOrchestrator, create_orchestrator
from .workers import InlineWorkerRunner, ThreadWorkerRunner, WorkerRunner


__all__ = [
    "BuildFinished",
    "BuildProgressed",
    "FlashFinished",
    "FlowMessage",
    "ScanFinished",
    "VolumeChanged",
    "FlowSnapshot",
    "FlowState",
    "LogEntry",
    "LogLevel",
    "FlowOrchestrator",
    "create_orchestrator",
    "InlineWorkerRunner",
    "ThreadWorkerRunner",
    "WorkerRunner",
]
