"""
Occupied volume of a spatial map inside the obstacle height band.

Two variants:
- Plain (environment maps): occupied leaves that look like sensor noise are
  left out. A leaf is noise if, along x or along y, its next neighbor is
  occupied and the one after that is unknown:

      [leaf] -> [occupied] -> [unknown]   => noise
      [leaf] -> [occupied] -> [occupied]  => kept (likely a surface)
      [leaf] -> [occupied] -> [free]      => kept

- Coverage (coverage maps): every occupied leaf counts.
"""

from __future__ import annotations
from typing import Optional

from ..perception.spatial_map import SpatialMap, VoxelKey, OCTREE
from .sensor_model import HeightBand

# Horizontal axes probed by the noise test
NOISE_PROBE_AXES = (0, 1)


def _offset(key: VoxelKey, axis: int, delta: int) -> VoxelKey:
    k = list(key)
    k[axis] += delta
    return (k[0], k[1], k[2])


def is_noise(spatial_map: SpatialMap, key: VoxelKey) -> bool:
    """Occupied-occupied-unknown run starting at key along x or y."""
    for axis in NOISE_PROBE_AXES:
        if spatial_map.is_occupied(_offset(key, axis, 1)):
            if spatial_map.search(_offset(key, axis, 2)) is None:
                return True
    return False


def occupied_volume(
    spatial_map: SpatialMap,
    height_band: HeightBand,
    denoise: Optional[bool] = None
) -> float:
    """
    Sum of edge_length^3 over occupied in-band leaves of the whole map.

    Args:
        spatial_map: Map to measure
        height_band: Leaves whose center z is outside the band are skipped
        denoise: Apply the noise filter; by default only for plain OcTree maps

    Returns:
        Volume in cubic meters (0.0 for an empty map)
    """
    if denoise is None:
        denoise = spatial_map.tree_type == OCTREE

    bounds = spatial_map.metric_bounds()
    if bounds is None:
        return 0.0
    min_corner, max_corner = bounds

    volume = 0.0
    for key, center, size, occupied in spatial_map.iter_leafs_bbx(min_corner, max_corner):
        if not height_band.contains(float(center[2])):
            continue
        if not occupied:
            continue
        if denoise and is_noise(spatial_map, key):
            continue
        volume += size * size * size
    return volume
