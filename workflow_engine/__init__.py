"""Event-driven control plane for multi-stage, persona-driven projects."""

__version__ = "0.1.0"
