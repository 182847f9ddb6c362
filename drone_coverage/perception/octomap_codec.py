"""
Reading and writing OctoMap trees in the octomap_msgs/Octomap layout.

Two encodings exist:
- Full ("binary=False"): every node writes its float32 log-odds (plus an
  RGB triple for ColorOcTree), then one byte with a bit per existing child,
  then its children depth-first.
- Binary ("binary=True", OcTree only): every inner node writes two bytes,
  two bits per child (free leaf, occupied leaf, inner node, or unknown),
  then recurses into its inner children.

Trees are 16 levels deep. A leaf above the last level stands for a cube of
2^(16 - depth) finest voxels per axis; decoding expands every such leaf so
the resulting SpatialMap only holds finest-resolution voxels.
"""

from __future__ import annotations
import itertools
import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .spatial_map import (
    SpatialMap,
    OccupancyParams,
    OCTREE,
    COLOR_OCTREE,
    DEFAULT_COLOR,
)

TREE_DEPTH = 16
TREE_MAX_VAL = 1 << (TREE_DEPTH - 1)  # key offset of the world origin

# Tree types OctoMap can put on the wire that this codec does not read
FOREIGN_TREE_TYPES = ("OcTreeStamped", "CountingOcTree", "OcTreeLUT", "ScanGraph")

_FLOAT = struct.Struct('<f')

# Binary child codes, as (bit 2i) + 2 * (bit 2i+1)
_CHILD_UNKNOWN = 0b00
_CHILD_FREE = 0b01
_CHILD_OCCUPIED = 0b10
_CHILD_INNER = 0b11


class OctomapDecodeError(ValueError):
    """Snapshot data could not be turned into a map."""


class UnsupportedTreeTypeError(OctomapDecodeError):
    """Snapshot holds a valid OctoMap tree of a type that is not accepted."""


@dataclass
class MapSnapshot:
    """Serialized tree, field for field like octomap_msgs/Octomap."""
    id: str
    resolution: float
    binary: bool
    data: bytes

# ----------------------------
# Decoding
# ----------------------------

class _Reader:
    def __init__(self, data: bytes):
        self.data = memoryview(bytes(data))
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def take(self, n: int) -> memoryview:
        if self.remaining < n:
            raise OctomapDecodeError(
                f"truncated octree data: needed {n} byte(s) at offset {self.pos}, "
                f"{self.remaining} left"
            )
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk


def _to_signed(ukey: Tuple[int, int, int]) -> Tuple[int, int, int]:
    return (ukey[0] - TREE_MAX_VAL, ukey[1] - TREE_MAX_VAL, ukey[2] - TREE_MAX_VAL)


def _to_unsigned(key: Tuple[int, int, int]) -> Tuple[int, int, int]:
    if not SpatialMap.key_in_range(key):
        raise ValueError(f"voxel key {key} is outside the octree key range")
    return (key[0] + TREE_MAX_VAL, key[1] + TREE_MAX_VAL, key[2] + TREE_MAX_VAL)


def _child_base(base: Tuple[int, int, int], idx: int, half: int) -> Tuple[int, int, int]:
    return (base[0] + (half if idx & 1 else 0),
            base[1] + (half if idx & 2 else 0),
            base[2] + (half if idx & 4 else 0))


def _add_leaf(
    spatial_map: SpatialMap,
    base: Tuple[int, int, int],
    size: int,
    occupied: bool,
    color: Optional[Tuple[int, int, int]] = None
):
    """Expand a (possibly pruned) leaf into finest voxels."""
    sx, sy, sz = _to_signed(base)
    for key in itertools.product(range(sx, sx + size), range(sy, sy + size), range(sz, sz + size)):
        if occupied:
            spatial_map.set_occupied(key)
        else:
            spatial_map.set_free(key)
        if color is not None and color != DEFAULT_COLOR:
            spatial_map.colors[key] = color


def _read_full_node(
    reader: _Reader,
    spatial_map: SpatialMap,
    params: OccupancyParams,
    depth: int,
    base: Tuple[int, int, int]
):
    value = _FLOAT.unpack(reader.take(4))[0]
    color = None
    if spatial_map.is_color_tree:
        color = tuple(reader.take(3))
    children = reader.take(1)[0]

    if children == 0:
        _add_leaf(spatial_map, base, 1 << (TREE_DEPTH - depth),
                  value >= params.log_odds_occ_thresh, color)
        return

    if depth == TREE_DEPTH:
        raise OctomapDecodeError("octree node below the maximum depth")

    half = 1 << (TREE_DEPTH - depth - 1)
    for i in range(8):
        if children & (1 << i):
            _read_full_node(reader, spatial_map, params, depth + 1, _child_base(base, i, half))


def _read_binary_node(
    reader: _Reader,
    spatial_map: SpatialMap,
    depth: int,
    base: Tuple[int, int, int]
):
    lo, hi = reader.take(2)
    bits = lo | (hi << 8)
    half = 1 << (TREE_DEPTH - depth - 1)

    inner = []
    for i in range(8):
        code = (bits >> (2 * i)) & 0b11
        child_base = _child_base(base, i, half)
        if code == _CHILD_FREE:
            _add_leaf(spatial_map, child_base, half, occupied=False)
        elif code == _CHILD_OCCUPIED:
            _add_leaf(spatial_map, child_base, half, occupied=True)
        elif code == _CHILD_INNER:
            if depth + 1 >= TREE_DEPTH:
                raise OctomapDecodeError("octree node below the maximum depth")
            inner.append(child_base)

    for child_base in inner:
        _read_binary_node(reader, spatial_map, depth + 1, child_base)


def decode_snapshot(snapshot: MapSnapshot, params: Optional[OccupancyParams] = None) -> SpatialMap:
    """
    Deserialize a snapshot into a SpatialMap of finest-resolution voxels.

    Raises:
        UnsupportedTreeTypeError: known OctoMap tree type this codec does not read
        OctomapDecodeError: anything else that keeps the data from decoding
    """
    params = params if params else OccupancyParams()

    if snapshot.id in FOREIGN_TREE_TYPES:
        raise UnsupportedTreeTypeError(f"tree type '{snapshot.id}' is not supported")
    if snapshot.id not in (OCTREE, COLOR_OCTREE):
        raise OctomapDecodeError(f"unknown tree type '{snapshot.id}'")
    if not snapshot.resolution > 0.0:
        raise OctomapDecodeError(f"invalid resolution {snapshot.resolution}")
    if snapshot.binary and snapshot.id != OCTREE:
        raise OctomapDecodeError(f"binary encoding is only defined for {OCTREE}, got '{snapshot.id}'")

    spatial_map = SpatialMap(snapshot.resolution, tree_type=snapshot.id)
    reader = _Reader(snapshot.data)
    if reader.remaining == 0:
        return spatial_map

    root = (0, 0, 0)
    if snapshot.binary:
        _read_binary_node(reader, spatial_map, 0, root)
    else:
        _read_full_node(reader, spatial_map, params, 0, root)

    if reader.remaining:
        raise OctomapDecodeError(f"{reader.remaining} trailing byte(s) after octree data")
    return spatial_map

# ----------------------------
# Encoding
# ----------------------------

@dataclass
class _Node:
    value: float
    color: Tuple[int, int, int]
    children: Optional[List[Optional["_Node"]]] = None


def _average_color(children: List[Optional[_Node]]) -> Tuple[int, int, int]:
    """Mean of the children's colors that are set (white counts as unset)."""
    colored = [c.color for c in children if c is not None and c.color != DEFAULT_COLOR]
    if not colored:
        return DEFAULT_COLOR
    n = len(colored)
    return (sum(c[0] for c in colored) // n,
            sum(c[1] for c in colored) // n,
            sum(c[2] for c in colored) // n)


def _build_node(spatial_map: SpatialMap, params: OccupancyParams, ukeys: list, depth: int) -> _Node:
    if depth == TREE_DEPTH:
        ukey = ukeys[0]
        key = _to_signed(ukey)
        occupied = spatial_map.is_occupied(key)
        value = params.log_odds_hit if occupied else params.log_odds_miss
        return _Node(value, spatial_map.get_color(key))

    shift = TREE_DEPTH - depth - 1
    buckets = [[] for _ in range(8)]
    for k in ukeys:
        idx = (((k[0] >> shift) & 1)
               | (((k[1] >> shift) & 1) << 1)
               | (((k[2] >> shift) & 1) << 2))
        buckets[idx].append(k)

    children = [_build_node(spatial_map, params, b, depth + 1) if b else None for b in buckets]
    # Inner nodes carry the maximum occupancy of their children
    value = max(c.value for c in children if c is not None)
    return _Node(value, _average_color(children), children)


def _build_tree(spatial_map: SpatialMap, params: OccupancyParams) -> Optional[_Node]:
    keys = list(spatial_map.occupied_voxels | spatial_map.free_voxels)
    if not keys:
        return None
    return _build_node(spatial_map, params, [_to_unsigned(k) for k in keys], 0)


def _write_full_node(out: bytearray, node: _Node, with_color: bool):
    out += _FLOAT.pack(node.value)
    if with_color:
        out += bytes(node.color)
    children = node.children or []
    mask = 0
    for i, child in enumerate(children):
        if child is not None:
            mask |= 1 << i
    out.append(mask)
    for child in children:
        if child is not None:
            _write_full_node(out, child, with_color)


def _write_binary_node(out: bytearray, node: _Node, params: OccupancyParams):
    bits = 0
    for i, child in enumerate(node.children):
        if child is None:
            code = _CHILD_UNKNOWN
        elif child.children is not None:
            code = _CHILD_INNER
        elif child.value >= params.log_odds_occ_thresh:
            code = _CHILD_OCCUPIED
        else:
            code = _CHILD_FREE
        bits |= code << (2 * i)
    out.append(bits & 0xFF)
    out.append((bits >> 8) & 0xFF)
    for child in node.children:
        if child is not None and child.children is not None:
            _write_binary_node(out, child, params)


def encode_full(spatial_map: SpatialMap, params: Optional[OccupancyParams] = None) -> MapSnapshot:
    """Serialize a map in the full format of its own tree type."""
    params = params if params else OccupancyParams()
    out = bytearray()
    root = _build_tree(spatial_map, params)
    if root is not None:
        _write_full_node(out, root, spatial_map.is_color_tree)
    return MapSnapshot(spatial_map.tree_type, spatial_map.resolution, False, bytes(out))


def encode_binary(spatial_map: SpatialMap, params: Optional[OccupancyParams] = None) -> MapSnapshot:
    """Serialize an OcTree map in the compact binary format."""
    if spatial_map.tree_type != OCTREE:
        raise ValueError(f"binary encoding is only defined for {OCTREE}, got '{spatial_map.tree_type}'")
    params = params if params else OccupancyParams()
    out = bytearray()
    root = _build_tree(spatial_map, params)
    if root is not None:
        _write_binary_node(out, root, params)
    return MapSnapshot(OCTREE, spatial_map.resolution, True, bytes(out))
