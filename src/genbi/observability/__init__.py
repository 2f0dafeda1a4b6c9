"""
GenBI Observability Module.

Provides in-process telemetry for user-facing flows and background trackers.
"""

from genbi.observability.telemetry import ServiceTag, Telemetry, TelemetryEvent, service_of

__all__ = ["ServiceTag", "Telemetry", "TelemetryEvent", "service_of"]
