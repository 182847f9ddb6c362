from .sensor_model import CoverageConfig, HeightBand, SensorModel, SensorPose, SensorShape
from .online_coverage import CoverageReport, OnlineCoverage

__all__ = [
    "CoverageConfig",
    "HeightBand",
    "SensorModel",
    "SensorPose",
    "SensorShape",
    "CoverageReport",
    "OnlineCoverage",
]
