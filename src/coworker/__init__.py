"""Coworker: orchestration core of a tool-using coding agent."""

__version__ = "0.1.0"
