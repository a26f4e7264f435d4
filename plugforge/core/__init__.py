"""
plugforge Core - Event infrastructure shared by the plugin runtime.

This module contains:
- Event Bus: middleware gates, transformer chains, subscribers, history
- Utils: sync/async invocation helpers, ids and timestamps
"""

__all__ = []
