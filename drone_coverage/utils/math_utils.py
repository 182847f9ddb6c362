"""
Rotation helpers shared by the coverage core.

Conventions follow OctoMap's octomath:
- Quaternions are given as (x, y, z, w)
- Euler angles are (roll, pitch, yaw), applied as R = Rz(yaw) Ry(pitch) Rx(roll)
"""

from __future__ import annotations
import math
import numpy as np


def quaternion_to_yaw(x: float, y: float, z: float, w: float) -> float:
    """Yaw (rotation about z) of quaternion (x,y,z,w), in radians."""
    norm = math.sqrt(x*x + y*y + z*z + w*w)
    if norm == 0.0:
        return 0.0
    x, y, z, w = x/norm, y/norm, z/norm, w/norm
    return math.atan2(2.0*(w*z + x*y), 1.0 - 2.0*(y*y + z*z))


def yaw_to_quaternion(yaw: float) -> tuple:
    """Quaternion (x,y,z,w) for a pure rotation about z."""
    return (0.0, 0.0, math.sin(yaw / 2.0), math.cos(yaw / 2.0))


def euler_to_rot_matrix(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Rotation matrix Rz(yaw) @ Ry(pitch) @ Rx(roll)."""
    cr, sr = math.cos(roll), math.sin(roll)
    cp, sp = math.cos(pitch), math.sin(pitch)
    cy, sy = math.cos(yaw), math.sin(yaw)
    R = np.array([
        [cy*cp,   cy*sp*sr - sy*cr,   cy*sp*cr + sy*sr],
        [sy*cp,   sy*sp*sr + cy*cr,   sy*sp*cr - cy*sr],
        [  -sp,              cp*sr,              cp*cr],
    ], dtype=np.float64)
    return R


def rotate_vector(v: np.ndarray, roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Rotate a 3-vector by (roll, pitch, yaw), like octomath's rotate_IP."""
    return euler_to_rot_matrix(roll, pitch, yaw) @ np.asarray(v, dtype=np.float64)
