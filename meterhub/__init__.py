"""meterhub: telemetry aggregation and broadcast for metering sites."""

__version__ = "0.1.0"
