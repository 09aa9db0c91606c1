"""
Persistence - Reference Collaborators

Components:
- memory.py: dict-backed collection implementing find/insert/update/remove/get
"""

from .memory import MemoryCollection

__all__ = ["MemoryCollection"]
