"""Service coordination.

Dependency graph, lifecycle and readiness publishing for named services.
"""
