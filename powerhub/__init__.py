"""PowerHub: telemetry and relay-control gateway for power-monitoring nodes."""

__version__ = "0.1.0"
