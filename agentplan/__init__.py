"""agentplan: plan and task lifecycle for AI-assisted delivery."""

__version__ = "0.1.0"
