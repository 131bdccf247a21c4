"""
Data Processing Package.

Screens normalized market records before they are stored or scanned.

Sub-packages:
- cleaning: Statistical outlier filtering
"""

from .cleaning import Observation, OutlierFilter, OutlierReport, OutlierVerdict

__all__ = [
    "Observation",
    "OutlierFilter",
    "OutlierReport",
    "OutlierVerdict",
]
