"""
Online coverage estimation against a known environment map.

Event flow:
- Environment snapshot -> replace environment map, cache its occupied
  volume, reset the coverage map to an empty map at the new resolution
- Pose update -> sweep the sensor FOV into the coverage map, then report
  covered volume and covered percentage of the environment volume

The core is transport-agnostic: a ROS 2 node (or a test) calls
on_environment_snapshot() and on_pose_update() and publishes the results.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

from ..perception.spatial_map import SpatialMap, OCTREE, COLOR_OCTREE
from ..perception.octomap_codec import (
    MapSnapshot,
    OctomapDecodeError,
    UnsupportedTreeTypeError,
    decode_snapshot,
    encode_full,
)
from .accumulator import CoverageAccumulator
from .sensor_model import CoverageConfig, HeightBand, SensorPose
from .volume import occupied_volume

# ----------------------------
# Map holders
# ----------------------------

class EnvironmentMapHolder:
    """Owns the current environment map and its cached occupied volume."""

    def __init__(self, height_band: HeightBand):
        self.height_band = height_band
        self.map: Optional[SpatialMap] = None
        self.total_volume = 0.0

    @property
    def loaded(self) -> bool:
        return self.map is not None

    @property
    def resolution(self) -> Optional[float]:
        return self.map.resolution if self.map is not None else None

    def load(self, snapshot: MapSnapshot) -> SpatialMap:
        """
        Decode a snapshot and make it the environment map.

        The previous map and volume stay in place if anything goes wrong.

        Raises:
            UnsupportedTreeTypeError: snapshot is not an OcTree
            OctomapDecodeError: snapshot does not decode
        """
        new_map = decode_snapshot(snapshot)
        if new_map.tree_type != OCTREE:
            raise UnsupportedTreeTypeError(
                f"environment must be an {OCTREE}, got '{new_map.tree_type}'"
            )
        total_volume = occupied_volume(new_map, self.height_band, denoise=True)

        # Swap both together
        self.map, self.total_volume = new_map, total_volume
        return new_map


class CoverageMapHolder:
    """Owns the coverage map; it only grows until the next reset."""

    def __init__(self):
        self.map: Optional[SpatialMap] = None

    def reset(self, resolution: float):
        self.map = SpatialMap(resolution, tree_type=COLOR_OCTREE)

# ----------------------------
# Reporting
# ----------------------------

# Published in place of an undefined covered percentage
UNDEFINED_PERCENTAGE = -1.0


def report(
    coverage_map: SpatialMap,
    total_volume: float,
    height_band: HeightBand
) -> Tuple[float, Optional[float]]:
    """
    Covered volume and percentage of the environment volume.

    Returns:
        (covered_volume, covered_percentage); the percentage is None when
        the environment has no occupied volume to compare against
    """
    covered_volume = occupied_volume(coverage_map, height_band, denoise=False)
    if total_volume <= 0.0:
        return covered_volume, None
    return covered_volume, 100.0 * covered_volume / total_volume


@dataclass
class CoverageReport:
    """Result of one processed pose update."""
    stamp: object
    covered_volume: float
    covered_percentage: Optional[float]
    total_volume: float
    accepted_hits: int
    coverage: MapSnapshot

    @property
    def percentage_or_marker(self) -> float:
        """Covered percentage, or UNDEFINED_PERCENTAGE when there is none."""
        if self.covered_percentage is None:
            return UNDEFINED_PERCENTAGE
        return self.covered_percentage

# ----------------------------
# Coverage core
# ----------------------------

class OnlineCoverage:
    """
    Coverage estimator driven by environment snapshots and sensor poses.

    The logger only needs info() and warning(), so a ROS 2 node logger or a
    standard library logger both work.
    """

    def __init__(self, config: Optional[CoverageConfig] = None, logger=None):
        self.config = config if config else CoverageConfig()
        self.logger = logger if logger is not None else logging.getLogger(__name__)

        self.environment = EnvironmentMapHolder(self.config.height_band)
        self.coverage = CoverageMapHolder()
        self.accumulator = CoverageAccumulator(self.config)

        # Guards the environment swap + coverage reset against pose handling
        self._lock = threading.Lock()
        self._warned_zero_volume = False

        sensor = self.config.sensor
        band = self.config.height_band
        print(f"[OnlineCoverage] Coverage estimation initialized:")
        print(f"  Height band: [{band.min_height}, {band.max_height}] m")
        print(f"  Sensor: shape={sensor.shape.value}, range={sensor.range} m, "
              f"direction={sensor.direction}")
        print(f"  FOV: h={sensor.hfov:.3f} rad, v={sensor.vfov:.3f} rad, "
              f"step={sensor.angular_step:.4f} rad")

    @property
    def loaded(self) -> bool:
        return self.environment.loaded

    def on_environment_snapshot(self, snapshot: MapSnapshot) -> bool:
        """Replace the environment map and reset coverage. Returns success."""
        with self._lock:
            try:
                env = self.environment.load(snapshot)
            except UnsupportedTreeTypeError as ex:
                self.logger.warning(f"Octomap message does not contain an {OCTREE}: {ex}")
                return False
            except OctomapDecodeError as ex:
                self.logger.warning(f"Could not deserialize octomap message: {ex}")
                return False

            self.coverage.reset(env.resolution)
            self._warned_zero_volume = False

        stats = env.get_statistics()
        self.logger.info(
            f"Octomap loaded: res={env.resolution} m, "
            f"{stats['occupied_count']} occ / {stats['free_count']} free voxels, "
            f"occupied volume={self.environment.total_volume:.3f} m^3"
        )
        return True

    def on_pose_update(self, pose: SensorPose, stamp=None) -> Optional[CoverageReport]:
        """
        Accumulate coverage for one pose.

        Returns:
            CoverageReport, or None while no environment is loaded
        """
        with self._lock:
            if not self.environment.loaded:
                return None

            env = self.environment.map
            covered = self.coverage.map
            total_volume = self.environment.total_volume

            accepted = self.accumulator.accumulate(pose, env, covered)
            covered_volume, percentage = report(covered, total_volume, self.config.height_band)
            snapshot = encode_full(covered)

            warn_zero = percentage is None and not self._warned_zero_volume
            if warn_zero:
                self._warned_zero_volume = True

        if warn_zero:
            self.logger.warning(
                "Environment has no occupied volume in the height band; "
                "covered percentage is undefined"
            )

        return CoverageReport(
            stamp=stamp,
            covered_volume=covered_volume,
            covered_percentage=percentage,
            total_volume=total_volume,
            accepted_hits=accepted,
            coverage=snapshot,
        )
