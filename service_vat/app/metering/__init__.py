"""
Usage metering package.

Holds the fixed-window per-key request meter that stores its counters as
individual objects in the shared bucket.
"""

from .window_meter import MeterDecision, WindowedUsageMeter

__all__ = ["MeterDecision", "WindowedUsageMeter"]
