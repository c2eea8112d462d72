"""Agent and task orchestration engine for multi-agent project dashboards."""

__version__ = "0.1.0"
