"""
Online coverage estimation of a known OctoMap by a moving field-of-view sensor.

Use: from drone_coverage import OnlineCoverage
"""

from drone_coverage.coverage import (
    CoverageConfig,
    CoverageReport,
    HeightBand,
    OnlineCoverage,
    SensorModel,
    SensorPose,
    SensorShape,
)

__all__ = [
    "CoverageConfig",
    "CoverageReport",
    "HeightBand",
    "OnlineCoverage",
    "SensorModel",
    "SensorPose",
    "SensorShape",
]
