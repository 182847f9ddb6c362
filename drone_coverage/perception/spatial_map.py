"""
Sparse voxel map used for both the environment and the coverage map.

This mirrors the parts of an OctoMap tree the coverage node relies on:
- Flat set of finest-resolution leaves keyed by integer (ix, iy, iz)
- OCCUPIED / FREE states, unknown is the absence of a voxel
- Optional per-voxel RGB tag (ColorOcTree), used to mark coverage
- Ray casting (first occupied voxel along a ray, bounded by range)
- Ray insertion (free voxels along a segment, occupied endpoint)
- Bounding-box leaf iteration

Voxel keys follow the OctoMap grid: key = floor(coord / resolution),
so a voxel spans [key * res, (key + 1) * res) and its center is
(key + 0.5) * res on every axis.
"""

from __future__ import annotations
import math
import numpy as np
from typing import Dict, Iterator, List, Optional, Set, Tuple
from dataclasses import dataclass

# Tree types, named after their OctoMap counterparts
OCTREE = "OcTree"
COLOR_OCTREE = "ColorOcTree"
TREE_TYPES = (OCTREE, COLOR_OCTREE)

# Voxel states (unknown voxels are not stored)
FREE = 1
OCCUPIED = 2

# ColorOcTree nodes are white until a color is set
DEFAULT_COLOR = (255, 255, 255)

# OctoMap trees are 16 levels deep, so keys span [-32768, 32767] per axis
KEY_MIN = -(1 << 15)
KEY_MAX = (1 << 15) - 1

VoxelKey = Tuple[int, int, int]
Color = Tuple[int, int, int]

# ----------------------------
# Occupancy probabilities
# ----------------------------

@dataclass
class OccupancyParams:
    """Log-odds values used when reading and writing OctoMap nodes."""

    prob_hit: float = 0.7             # value written for occupied leaves
    prob_miss: float = 0.4            # value written for free leaves
    occupied_threshold: float = 0.5   # at or above this = occupied (OctoMap default)

    def __post_init__(self):
        self.log_odds_hit = self.prob_to_log_odds(self.prob_hit)
        self.log_odds_miss = self.prob_to_log_odds(self.prob_miss)
        self.log_odds_occ_thresh = self.prob_to_log_odds(self.occupied_threshold)

    @staticmethod
    def prob_to_log_odds(p: float) -> float:
        """Convert probability to log-odds: log(p / (1-p))."""
        p = np.clip(p, 1e-10, 1.0 - 1e-10)  # Avoid division by zero
        return math.log(p / (1.0 - p))

# ----------------------------
# Spatial map
# ----------------------------

class SpatialMap:
    """
    Sparse 3D voxel map at a fixed resolution.

    Storage:
    - occupied_voxels / free_voxels: sets of voxel keys (disjoint)
    - colors: key -> (r, g, b) for tagged voxels (ColorOcTree only)
    """

    def __init__(self, resolution: float, tree_type: str = OCTREE):
        if resolution <= 0.0:
            raise ValueError(f"resolution must be positive, got {resolution}")
        if tree_type not in TREE_TYPES:
            raise ValueError(f"unsupported tree type '{tree_type}'")
        self.resolution = float(resolution)
        self.tree_type = tree_type

        self.occupied_voxels: Set[VoxelKey] = set()
        self.free_voxels: Set[VoxelKey] = set()
        self.colors: Dict[VoxelKey, Color] = {}

    def __len__(self) -> int:
        return len(self.occupied_voxels) + len(self.free_voxels)

    @property
    def is_color_tree(self) -> bool:
        return self.tree_type == COLOR_OCTREE

    # ---------- Coordinate conversion ----------

    def point_to_key(self, p) -> VoxelKey:
        """Convert world point to voxel key."""
        key = np.floor(np.asarray(p, dtype=np.float64) / self.resolution).astype(int)
        return tuple(key.tolist())

    def key_to_center(self, key: VoxelKey) -> np.ndarray:
        """Convert voxel key to world center coordinates."""
        return (np.array(key, dtype=np.float64) + 0.5) * self.resolution

    @staticmethod
    def key_in_range(key: VoxelKey) -> bool:
        """True if the key can be stored in a 16-level octree."""
        return all(KEY_MIN <= k <= KEY_MAX for k in key)

    # ---------- Voxel access ----------

    def search(self, key: VoxelKey) -> Optional[int]:
        """State of a voxel: OCCUPIED, FREE, or None when unknown."""
        if key in self.occupied_voxels:
            return OCCUPIED
        if key in self.free_voxels:
            return FREE
        return None

    def is_occupied(self, key: VoxelKey) -> bool:
        return key in self.occupied_voxels

    def set_occupied(self, key: VoxelKey):
        self.free_voxels.discard(key)
        self.occupied_voxels.add(key)

    def set_free(self, key: VoxelKey):
        self.occupied_voxels.discard(key)
        self.free_voxels.add(key)

    def set_color(self, key: VoxelKey, color: Color) -> bool:
        """Tag an existing voxel with a color. Returns False if the voxel is unknown."""
        if not self.is_color_tree:
            raise TypeError(f"{self.tree_type} voxels carry no color")
        if self.search(key) is None:
            return False
        self.colors[key] = tuple(int(c) for c in color)
        return True

    def get_color(self, key: VoxelKey) -> Color:
        return self.colors.get(key, DEFAULT_COLOR)

    # ---------- Extent ----------

    def metric_bounds(self) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """(min corner, max corner) of all known voxels, None for an empty map."""
        if not self.occupied_voxels and not self.free_voxels:
            return None
        keys = np.array(list(self.occupied_voxels | self.free_voxels), dtype=np.int64)
        min_corner = keys.min(axis=0).astype(np.float64) * self.resolution
        max_corner = (keys.max(axis=0) + 1).astype(np.float64) * self.resolution
        return min_corner, max_corner

    def iter_leafs_bbx(
        self,
        min_pt: np.ndarray,
        max_pt: np.ndarray
    ) -> Iterator[Tuple[VoxelKey, np.ndarray, float, bool]]:
        """
        Iterate known leaves whose key lies inside the box spanned by two points.

        Yields:
            (key, center, edge_length, occupied)
        """
        lo = self.point_to_key(min_pt)
        hi = self.point_to_key(max_pt)

        def inside(k):
            return (lo[0] <= k[0] <= hi[0] and
                    lo[1] <= k[1] <= hi[1] and
                    lo[2] <= k[2] <= hi[2])

        for key in self.occupied_voxels:
            if inside(key):
                yield key, self.key_to_center(key), self.resolution, True
        for key in self.free_voxels:
            if inside(key):
                yield key, self.key_to_center(key), self.resolution, False

    # ---------- Ray casting (3D DDA) ----------

    def _dda_setup(self, origin: np.ndarray, direction: np.ndarray, key: VoxelKey):
        """Per-axis step, distance to the first voxel border and distance per voxel."""
        step = [0, 0, 0]
        t_max = np.full(3, np.inf, dtype=np.float64)
        t_delta = np.full(3, np.inf, dtype=np.float64)
        for i in range(3):
            if direction[i] > 0.0:
                step[i] = 1
            elif direction[i] < 0.0:
                step[i] = -1
            if step[i] != 0:
                border = (key[i] + (1 if step[i] > 0 else 0)) * self.resolution
                t_max[i] = (border - origin[i]) / direction[i]
                t_delta[i] = self.resolution / abs(direction[i])
        return step, t_max, t_delta

    def _exit_distance(self, origin: np.ndarray, direction: np.ndarray) -> float:
        """Distance along a unit ray after which it never re-enters the map's bounds."""
        bounds = self.metric_bounds()
        if bounds is None:
            return -1.0
        min_corner, max_corner = bounds
        t_exit = np.inf
        for i in range(3):
            if direction[i] > 0.0:
                t_exit = min(t_exit, (max_corner[i] - origin[i]) / direction[i])
            elif direction[i] < 0.0:
                t_exit = min(t_exit, (min_corner[i] - origin[i]) / direction[i])
            elif not (min_corner[i] <= origin[i] <= max_corner[i]):
                return -1.0
        return float(t_exit)

    def cast_ray(
        self,
        origin,
        direction,
        max_range: float = -1.0,
        ignore_unknown: bool = True
    ) -> Optional[np.ndarray]:
        """
        Find the first occupied voxel along a ray.

        A voxel is only examined if the ray enters it within max_range.
        With max_range <= 0 the ray runs until it leaves the map's bounds.
        Unknown voxels are traversed when ignore_unknown is set, otherwise
        they stop the ray.

        Returns:
            Center of the hit voxel, or None if nothing was hit
        """
        origin = np.asarray(origin, dtype=np.float64)
        direction = np.asarray(direction, dtype=np.float64)
        norm = float(np.linalg.norm(direction))
        if norm == 0.0:
            return None
        direction = direction / norm

        key = self.point_to_key(origin)
        if self.is_occupied(key):
            return self.key_to_center(key)

        limit = float(max_range) if max_range > 0.0 else self._exit_distance(origin, direction)
        if limit < 0.0:
            return None

        step, t_max, t_delta = self._dda_setup(origin, direction, key)
        v = list(key)
        while True:
            axis = int(np.argmin(t_max))
            t_entry = t_max[axis]
            if t_entry > limit:
                return None
            v[axis] += step[axis]
            t_max[axis] += t_delta[axis]

            current = (v[0], v[1], v[2])
            state = self.search(current)
            if state == OCCUPIED:
                return self.key_to_center(current)
            if state is None and not ignore_unknown:
                return None

    def compute_ray_keys(
        self,
        origin,
        end
    ) -> Optional[Tuple[List[VoxelKey], VoxelKey]]:
        """
        Voxels traversed by the segment origin -> end.

        Returns:
            (free_keys, end_key) where free_keys excludes the end voxel, or
            None if either end lies outside the octree key range
        """
        origin = np.asarray(origin, dtype=np.float64)
        end = np.asarray(end, dtype=np.float64)
        start_key = self.point_to_key(origin)
        end_key = self.point_to_key(end)
        if not (self.key_in_range(start_key) and self.key_in_range(end_key)):
            return None

        if start_key == end_key:
            return ([], end_key)

        direction = end - origin
        length = float(np.linalg.norm(direction))
        direction = direction / length

        step, t_max, t_delta = self._dda_setup(origin, direction, start_key)

        free_keys = [start_key]
        v = list(start_key)
        while True:
            axis = int(np.argmin(t_max))
            v[axis] += step[axis]
            t_max[axis] += t_delta[axis]

            current = (v[0], v[1], v[2])
            if current == end_key:
                break
            # Numerical overshoot past the end voxel
            if float(np.min(t_max)) > length:
                break
            free_keys.append(current)

        return (free_keys, end_key)

    def insert_ray(self, origin, end) -> Optional[VoxelKey]:
        """
        Mark the segment origin -> end as observed.

        Traversed voxels become FREE unless already OCCUPIED, and the end
        voxel becomes OCCUPIED.

        Returns:
            Key of the end voxel, or None if the segment leaves the octree key
            range (the map is left untouched)
        """
        ray = self.compute_ray_keys(origin, end)
        if ray is None:
            return None
        free_keys, end_key = ray
        for key in free_keys:
            if key not in self.occupied_voxels:
                self.free_voxels.add(key)
        self.set_occupied(end_key)
        return end_key

    # ---------- Statistics ----------

    def get_statistics(self) -> Dict[str, float]:
        """Counts of known voxels and the occupied ratio among them."""
        occupied = len(self.occupied_voxels)
        free = len(self.free_voxels)
        total = occupied + free
        return {
            'total_voxels': total,
            'occupied_count': occupied,
            'free_count': free,
            'occupied_ratio': occupied / total if total > 0 else 0.0,
        }
