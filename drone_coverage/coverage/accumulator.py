"""
Per-pose coverage accumulation.

For every pose the sensor field of view is swept on a regular angular grid:
1. Horizontal angles over [yaw - hfov/2, yaw + hfov/2]
2. Vertical angles over [-vfov/2, vfov/2]
3. Each (h, v) rotates the sensor's base direction into a world ray
4. The ray is cast against the environment, up to the sensor range
5. Hits outside the height band are dropped
6. Circular sensors also drop hits farther than the range in the XY plane
7. Accepted hits are inserted into the coverage map and tagged
"""

from __future__ import annotations
import math
import numpy as np
from typing import List

from ..perception.spatial_map import SpatialMap
from ..utils.math_utils import rotate_vector
from .sensor_model import CoverageConfig, SensorPose, SensorShape

# Coverage tags, for visualization only
COVERAGE_COLORS = {
    SensorShape.ORTHOGONAL: (128, 128, 128),
    SensorShape.CIRCULAR: (255, 0, 0),
}


def sample_angles(start: float, span: float, step: float) -> List[float]:
    """Angles start, start + step, ... up to start + span (inclusive)."""
    n = int(math.floor(span / step + 1e-9)) + 1
    return [start + i * step for i in range(n)]


def planar_distance(a: np.ndarray, b: np.ndarray) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


class CoverageAccumulator:
    """Marks what a sensor at a given pose observes in the environment."""

    def __init__(self, config: CoverageConfig):
        self.config = config
        self.sensor = config.sensor
        self.base_direction = np.asarray(self.sensor.direction, dtype=np.float64)

    def ray_directions(self, yaw: float) -> List[np.ndarray]:
        """World-frame ray directions of the FOV grid for a heading."""
        sensor = self.sensor
        horizontals = sample_angles(yaw - sensor.hfov / 2.0, sensor.hfov, sensor.angular_step)
        verticals = sample_angles(-sensor.vfov / 2.0, sensor.vfov, sensor.angular_step)
        return [
            rotate_vector(self.base_direction, 0.0, v, h)
            for h in horizontals
            for v in verticals
        ]

    def accept(self, position: np.ndarray, hit: np.ndarray) -> bool:
        """Height band and shape filters for one hit point."""
        if not self.config.height_band.contains(float(hit[2])):
            return False
        if self.sensor.shape == SensorShape.CIRCULAR:
            # Cut the frustum to a cylinder of radius == range
            if planar_distance(position, hit) > self.sensor.range:
                return False
        return True

    def accumulate(
        self,
        pose: SensorPose,
        environment: SpatialMap,
        coverage: SpatialMap
    ) -> int:
        """
        Sweep the FOV at a pose and add every accepted hit to the coverage map.

        Returns:
            Number of accepted ray hits (repeated hits on a voxel count each time)
        """
        position = pose.position
        color = COVERAGE_COLORS[self.sensor.shape]
        accepted = 0

        for direction in self.ray_directions(pose.yaw):
            hit = environment.cast_ray(position, direction, self.sensor.range, ignore_unknown=True)
            if hit is None:
                continue
            if not self.accept(position, hit):
                continue

            key = coverage.insert_ray(position, hit)
            if key is None:
                # Sensor is outside the octree key range
                continue
            coverage.set_color(key, color)
            accepted += 1

        return accepted
