"""Core types"""

from typing import NewType

Address = NewType("Address", str)
"""A address type for explicitly identifying an address in usage"""
