"""
Resilient Kubernetes pod launcher for build jobs.

Public surface:
    PodExecutor.start(job), PodExecutor.stop(job), PodExecutor.stats()
"""

from pod_launcher.caller import ResilientCaller
from pod_launcher.common.exceptions import (
    CircuitOpenError,
    ConfigurationError,
    JobCreationError,
    JobDeletionError,
    LauncherError,
    TemplateBindingError,
    TimeoutError,
    TransportError,
)
from pod_launcher.config import ExecutorConfig, load_config
from pod_launcher.executor import JobDescriptor, PodExecutor
from pod_launcher.stats import StatsSnapshot
from pod_launcher.template import TemplateCompiler, compile_template

__version__ = "0.1.0"

__all__ = [
    "CircuitOpenError",
    "ConfigurationError",
    "ExecutorConfig",
    "JobCreationError",
    "JobDeletionError",
    "JobDescriptor",
    "LauncherError",
    "PodExecutor",
    "ResilientCaller",
    "StatsSnapshot",
    "TemplateBindingError",
    "TemplateCompiler",
    "TimeoutError",
    "TransportError",
    "compile_template",
    "load_config",
]
