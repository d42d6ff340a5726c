# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Game session sandboxing.

The orchestrator owns session lifecycle: path and volume resolution,
probing, per-platform launch plans, process creation, exit monitoring
and reclamation. Callers supply games, platforms and session ids; the
sandbox decides how they run.
"""

from dillinger.sandbox.discovery import InstallDiscovery, score_executable
from dillinger.sandbox.display import DisplayConfig, detect_display
from dillinger.sandbox.errors import (
    ConfigurationError,
    LaunchError,
    SessionError,
)
from dillinger.sandbox.monitor import LogRingBuffer, SessionMonitor
from dillinger.sandbox.orchestrator import (
    CleanupReport,
    InstallOptions,
    InstallOutcome,
    RegistrySetupResult,
    SessionOrchestrator,
)
from dillinger.sandbox.paths import PathResolver
from dillinger.sandbox.plans import (
    AmigaEmulator,
    LaunchOptions,
    LaunchPlan,
    MameEmulator,
    Native,
    PlatformKind,
    RetroArchCore,
    ViceEmulator,
    Wine,
    build_launch_plan,
    classify_platform,
)
from dillinger.sandbox.probe import CommandResult, ProbeClient, ProbeResult
from dillinger.sandbox.reclaimer import ReclaimReport, ResourceReclaimer
from dillinger.sandbox.session import SessionRecord, SessionStatus
from dillinger.sandbox.volumes import (
    ConfiguredVolume,
    VolumeMatch,
    VolumeRegistry,
)


__all__ = [
    # orchestrator
    "SessionOrchestrator",
    "CleanupReport",
    "InstallOptions",
    "InstallOutcome",
    "RegistrySetupResult",
    # session
    "SessionRecord",
    "SessionStatus",
    # plans
    "LaunchOptions",
    "LaunchPlan",
    "PlatformKind",
    "Native",
    "Wine",
    "ViceEmulator",
    "AmigaEmulator",
    "MameEmulator",
    "RetroArchCore",
    "build_launch_plan",
    "classify_platform",
    # paths and volumes
    "PathResolver",
    "ConfiguredVolume",
    "VolumeMatch",
    "VolumeRegistry",
    # probe
    "CommandResult",
    "ProbeClient",
    "ProbeResult",
    # discovery
    "InstallDiscovery",
    "score_executable",
    # display
    "DisplayConfig",
    "detect_display",
    # monitor
    "LogRingBuffer",
    "SessionMonitor",
    # reclaimer
    "ReclaimReport",
    "ResourceReclaimer",
    # errors
    "ConfigurationError",
    "LaunchError",
    "SessionError",
]
