"""API routers."""

from bounty_service.routers import budget, health, payments, stats, submissions, tasks, users

__all__ = ["budget", "health", "payments", "stats", "submissions", "tasks", "users"]
