"""
plugforge Plugin System - Plugin registration, hooks and lifecycle management.

This module handles:
- Plugin configuration validation
- Registry with per-plugin private state
- Lifecycle hooks execution
- Lifecycle state machine
"""

__all__ = []
