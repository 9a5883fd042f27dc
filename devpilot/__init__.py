"""DevPilot: multi-agent repository analysis for deployment artifacts."""

__version__ = "0.1.0"
