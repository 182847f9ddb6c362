"""
Sensor and world configuration for coverage estimation.

All values are fixed at startup and handed to the accumulator and the
volume estimator explicitly.
"""

from __future__ import annotations
import math
import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple

from ..utils.math_utils import quaternion_to_yaw, yaw_to_quaternion

DEGREE = math.pi / 180.0


class SensorShape(str, Enum):
    """Cross-section of the sensed region."""
    CIRCULAR = "circular"      # hits farther than range in the XY plane are cut
    ORTHOGONAL = "orthogonal"  # plain angular sweep


@dataclass(frozen=True)
class HeightBand:
    """z-range [min_height, max_height] that counts as obstacle space."""
    min_height: float = 0.3
    max_height: float = 2.0

    def __post_init__(self):
        if self.min_height > self.max_height:
            raise ValueError(
                f"min_obstacle_height ({self.min_height}) is above "
                f"max_obstacle_height ({self.max_height})"
            )

    def contains(self, z: float) -> bool:
        return self.min_height <= z <= self.max_height


@dataclass(frozen=True)
class SensorModel:
    """
    Field of view of the coverage sensor.

    Angles are in radians: hfov and vfov are full opening angles, the sweep
    covers +/- half of each around the sensor heading.
    """
    range: float = 1.0
    hfov: float = 60.0 * DEGREE
    vfov: float = 30.0 * DEGREE
    shape: SensorShape = SensorShape.CIRCULAR
    direction: Tuple[float, float, float] = (1.0, 0.0, 0.0)
    angular_step: float = DEGREE

    def __post_init__(self):
        # frozen dataclass: normalize fields through object.__setattr__
        object.__setattr__(self, 'shape', SensorShape(self.shape))
        object.__setattr__(self, 'direction', tuple(float(c) for c in self.direction))

        if not self.range > 0.0:
            raise ValueError(f"sensor range must be positive, got {self.range}")
        if not 0.0 < self.hfov <= 2.0 * math.pi + 1e-9:
            raise ValueError(f"hfov must be in (0, 2pi], got {self.hfov}")
        if not 0.0 < self.vfov <= math.pi + 1e-9:
            raise ValueError(f"vfov must be in (0, pi], got {self.vfov}")
        if not self.angular_step > 0.0:
            raise ValueError(f"angular step must be positive, got {self.angular_step}")
        if len(self.direction) != 3 or np.linalg.norm(self.direction) == 0.0:
            raise ValueError(f"sensor direction must be a non-zero 3-vector, got {self.direction}")

    @classmethod
    def from_degrees(
        cls,
        range: float = 1.0,
        hfov_deg: float = 60.0,
        vfov_deg: float = 30.0,
        shape: str = "circular",
        direction: Tuple[float, float, float] = (1.0, 0.0, 0.0),
        angular_step_deg: float = 1.0,
    ) -> "SensorModel":
        """Build from degree-valued parameters."""
        return cls(
            range=float(range),
            hfov=float(hfov_deg) * DEGREE,
            vfov=float(vfov_deg) * DEGREE,
            shape=SensorShape(shape),
            direction=tuple(direction),
            angular_step=float(angular_step_deg) * DEGREE,
        )


@dataclass(frozen=True)
class CoverageConfig:
    """Everything the coverage core needs besides the maps and the pose."""
    height_band: HeightBand = field(default_factory=HeightBand)
    sensor: SensorModel = field(default_factory=SensorModel)


@dataclass
class SensorPose:
    """Sensor position and (x, y, z, w) orientation in the map frame."""
    position: np.ndarray
    orientation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=np.float64)
        self.orientation = tuple(float(q) for q in self.orientation)

    @property
    def yaw(self) -> float:
        return quaternion_to_yaw(*self.orientation)

    @classmethod
    def from_yaw(cls, position, yaw: float) -> "SensorPose":
        """Level sensor at a position, heading yaw radians from +x."""
        return cls(position=position, orientation=yaw_to_quaternion(yaw))

    @classmethod
    def from_msg(cls, pose) -> "SensorPose":
        """From anything shaped like geometry_msgs/Pose."""
        return cls(
            position=[pose.position.x, pose.position.y, pose.position.z],
            orientation=(pose.orientation.x, pose.orientation.y,
                         pose.orientation.z, pose.orientation.w),
        )
