"""Bounty Service - paid microtasks with AI-verified submissions."""

__version__ = "0.1.0"
