"""swarmweave: parallel task coordination for role-based coding agents."""

__version__ = "0.1.0"
