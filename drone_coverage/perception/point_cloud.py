"""
Open3D views of a spatial map, for RViz publishing and offline inspection.
"""

from __future__ import annotations
import numpy as np

import open3d as o3d

from .spatial_map import SpatialMap


def coverage_point_cloud(spatial_map: SpatialMap) -> o3d.geometry.PointCloud:
    """Occupied voxel centers, colored by their coverage tag."""
    pcd = o3d.geometry.PointCloud()
    keys = sorted(spatial_map.occupied_voxels)
    if not keys:
        return pcd

    centers = (np.array(keys, dtype=np.float64) + 0.5) * spatial_map.resolution
    colors = np.array([spatial_map.get_color(k) for k in keys], dtype=np.float64) / 255.0
    pcd.points = o3d.utility.Vector3dVector(centers)
    pcd.colors = o3d.utility.Vector3dVector(colors)
    return pcd


def save_coverage_point_cloud(spatial_map: SpatialMap, filename: str) -> bool:
    pcd = coverage_point_cloud(spatial_map)
    if len(pcd.points) > 0:
        o3d.io.write_point_cloud(filename, pcd)
        print(f"Saved coverage cloud with {len(pcd.points)} points to {filename}")
        return True
    print("No covered voxels to save")
    return False
