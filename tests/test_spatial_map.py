"""Tests for the sparse voxel map: keys, ray casting, ray insertion, extent."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from drone_coverage.perception.spatial_map import (
    COLOR_OCTREE,
    DEFAULT_COLOR,
    FREE,
    OCCUPIED,
    SpatialMap,
)


class TestKeys:
    def test_point_to_key_floors(self):
        m = SpatialMap(0.1)
        assert m.point_to_key([0.05, 0.15, 0.0]) == (0, 1, 0)
        assert m.point_to_key([-0.05, -0.1001, 0.0]) == (-1, -2, 0)

    def test_key_to_center(self):
        m = SpatialMap(0.5)
        assert_allclose(m.key_to_center((0, -1, 2)), [0.25, -0.25, 1.25])

    def test_invalid_resolution(self):
        with pytest.raises(ValueError):
            SpatialMap(0.0)

    def test_invalid_tree_type(self):
        with pytest.raises(ValueError):
            SpatialMap(0.1, tree_type="CountingOcTree")


class TestVoxelAccess:
    def test_search_states(self, make_map):
        m = make_map(occupied=[(1, 0, 0)], free=[(2, 0, 0)])
        assert m.search((1, 0, 0)) == OCCUPIED
        assert m.search((2, 0, 0)) == FREE
        assert m.search((3, 0, 0)) is None

    def test_states_are_exclusive(self, make_map):
        m = make_map(occupied=[(0, 0, 0)])
        m.set_free((0, 0, 0))
        assert m.search((0, 0, 0)) == FREE
        assert len(m) == 1

    def test_color_only_on_color_tree(self, make_map):
        m = make_map(occupied=[(0, 0, 0)])
        with pytest.raises(TypeError):
            m.set_color((0, 0, 0), (255, 0, 0))

    def test_color_needs_known_voxel(self, make_map):
        m = make_map(occupied=[(0, 0, 0)], tree_type=COLOR_OCTREE)
        assert m.set_color((0, 0, 0), (255, 0, 0))
        assert not m.set_color((5, 5, 5), (255, 0, 0))
        assert m.get_color((0, 0, 0)) == (255, 0, 0)
        assert m.get_color((5, 5, 5)) == DEFAULT_COLOR

    def test_statistics(self, make_map):
        stats = make_map(occupied=[(0, 0, 0)], free=[(1, 0, 0), (2, 0, 0), (3, 0, 0)]).get_statistics()
        assert stats['total_voxels'] == 4
        assert stats['occupied_count'] == 1
        assert stats['free_count'] == 3
        assert stats['occupied_ratio'] == pytest.approx(0.25)


class TestExtent:
    def test_empty_map_has_no_bounds(self):
        assert SpatialMap(0.2).metric_bounds() is None

    def test_bounds_cover_all_known_voxels(self, make_map):
        m = make_map(resolution=0.5, occupied=[(0, 0, 0)], free=[(-2, 3, 1)])
        min_corner, max_corner = m.metric_bounds()
        assert_allclose(min_corner, [-1.0, 0.0, 0.0])
        assert_allclose(max_corner, [0.5, 2.0, 1.0])

    def test_iter_leafs_bbx_limits_keys(self, make_map):
        m = make_map(occupied=[(0, 0, 0), (5, 0, 0)], free=[(1, 0, 0)])
        leaves = {key: occ for key, _, size, occ in m.iter_leafs_bbx([0.0, 0.0, 0.0], [2.5, 0.5, 0.5])}
        assert leaves == {(0, 0, 0): True, (1, 0, 0): False}

    def test_iter_leafs_bbx_full_extent(self, make_map):
        m = make_map(resolution=0.25, occupied=[(0, 0, 0), (4, -3, 2)], free=[(1, 1, 1)])
        leaves = list(m.iter_leafs_bbx(*m.metric_bounds()))
        assert len(leaves) == 3
        for key, center, size, _ in leaves:
            assert size == 0.25
            assert_allclose(center, m.key_to_center(key))


class TestCastRay:
    origin = np.array([0.5, 0.5, 1.5])

    def test_hit_returns_voxel_center(self, make_map):
        m = make_map(occupied=[(3, 0, 1)])
        assert_allclose(m.cast_ray(self.origin, [1.0, 0.0, 0.0], 10.0), [3.5, 0.5, 1.5])

    def test_direction_is_normalized(self, make_map):
        m = make_map(occupied=[(3, 0, 1)])
        assert_allclose(m.cast_ray(self.origin, [7.0, 0.0, 0.0], 10.0), [3.5, 0.5, 1.5])

    def test_first_occupied_voxel_wins(self, make_map):
        m = make_map(occupied=[(3, 0, 1), (6, 0, 1)])
        assert_allclose(m.cast_ray(self.origin, [1.0, 0.0, 0.0], 10.0), [3.5, 0.5, 1.5])

    def test_out_of_range(self, make_map):
        m = make_map(occupied=[(3, 0, 1)])
        assert m.cast_ray(self.origin, [1.0, 0.0, 0.0], 2.0) is None

    def test_range_bounds_entry_distance(self, make_map):
        # Ray enters the voxel at 2.5, its center is 3.0 away
        m = make_map(occupied=[(3, 0, 1)])
        assert_allclose(m.cast_ray(self.origin, [1.0, 0.0, 0.0], 2.8), [3.5, 0.5, 1.5])

    def test_miss(self, make_map):
        m = make_map(occupied=[(3, 0, 1)])
        assert m.cast_ray(self.origin, [0.0, 1.0, 0.0], 10.0) is None

    def test_negative_direction(self, make_map):
        m = make_map(occupied=[(-3, 0, 1)])
        assert_allclose(m.cast_ray(self.origin, [-1.0, 0.0, 0.0], 10.0), [-2.5, 0.5, 1.5])

    def test_occupied_origin_voxel(self, make_map):
        m = make_map(occupied=[(0, 0, 1)])
        assert_allclose(m.cast_ray(self.origin, [1.0, 0.0, 0.0], 10.0), [0.5, 0.5, 1.5])

    def test_zero_direction(self, make_map):
        m = make_map(occupied=[(3, 0, 1)])
        assert m.cast_ray(self.origin, [0.0, 0.0, 0.0], 10.0) is None

    def test_unknown_voxels_stop_ray_when_not_ignored(self, make_map):
        m = make_map(occupied=[(3, 0, 1)], free=[(1, 0, 1)])
        assert m.cast_ray(self.origin, [1.0, 0.0, 0.0], 10.0, ignore_unknown=False) is None
        assert m.cast_ray(self.origin, [1.0, 0.0, 0.0], 10.0, ignore_unknown=True) is not None

    def test_unbounded_ray_runs_to_map_bounds(self, make_map):
        m = make_map(occupied=[(10, 0, 1)])
        assert_allclose(m.cast_ray(self.origin, [1.0, 0.0, 0.0], -1.0), [10.5, 0.5, 1.5])
        assert m.cast_ray(self.origin, [-1.0, 0.0, 0.0], -1.0) is None

    def test_unbounded_ray_on_empty_map(self):
        assert SpatialMap(1.0).cast_ray(self.origin, [1.0, 0.0, 0.0]) is None


class TestInsertRay:
    def test_ray_keys_along_axis(self):
        m = SpatialMap(1.0)
        free_keys, end_key = m.compute_ray_keys([0.5, 0.5, 0.5], [3.5, 0.5, 0.5])
        assert free_keys == [(0, 0, 0), (1, 0, 0), (2, 0, 0)]
        assert end_key == (3, 0, 0)

    def test_ray_keys_diagonal(self):
        m = SpatialMap(1.0)
        free_keys, end_key = m.compute_ray_keys([0.5, 0.5, 0.5], [2.5, 2.5, 0.5])
        assert free_keys == [(0, 0, 0), (1, 0, 0), (1, 1, 0), (2, 1, 0)]
        assert end_key == (2, 2, 0)

    def test_ray_keys_same_voxel(self):
        m = SpatialMap(1.0)
        assert m.compute_ray_keys([0.2, 0.2, 0.2], [0.8, 0.8, 0.8]) == ([], (0, 0, 0))

    def test_insert_marks_free_path_and_occupied_end(self):
        m = SpatialMap(1.0, tree_type=COLOR_OCTREE)
        end_key = m.insert_ray([0.5, 0.5, 0.5], [3.5, 0.5, 0.5])
        assert end_key == (3, 0, 0)
        assert m.occupied_voxels == {(3, 0, 0)}
        assert m.free_voxels == {(0, 0, 0), (1, 0, 0), (2, 0, 0)}

    def test_insert_never_frees_occupied(self, make_map):
        m = make_map(occupied=[(1, 0, 0)])
        m.insert_ray([0.5, 0.5, 0.5], [3.5, 0.5, 0.5])
        assert m.occupied_voxels == {(1, 0, 0), (3, 0, 0)}
        assert m.free_voxels == {(0, 0, 0), (2, 0, 0)}

    def test_insert_turns_free_end_occupied(self, make_map):
        m = make_map(free=[(3, 0, 0)])
        m.insert_ray([0.5, 0.5, 0.5], [3.5, 0.5, 0.5])
        assert m.search((3, 0, 0)) == OCCUPIED

    def test_insert_is_idempotent(self):
        m = SpatialMap(0.5)
        m.insert_ray([0.1, 0.1, 0.1], [2.3, 1.1, 0.7])
        occupied, free = set(m.occupied_voxels), set(m.free_voxels)
        m.insert_ray([0.1, 0.1, 0.1], [2.3, 1.1, 0.7])
        assert m.occupied_voxels == occupied
        assert m.free_voxels == free

    def test_ray_keys_outside_key_range(self):
        m = SpatialMap(0.01)
        assert m.compute_ray_keys([328.0, 0.005, 1.005], [327.605, 0.005, 1.005]) is None
        assert m.compute_ray_keys([327.605, 0.005, 1.005], [328.0, 0.005, 1.005]) is None

    def test_insert_outside_key_range_leaves_map_untouched(self):
        m = SpatialMap(0.01, tree_type=COLOR_OCTREE)
        assert m.insert_ray([328.0, 0.005, 1.005], [327.605, 0.005, 1.005]) is None
        assert len(m) == 0

    def test_key_range_limits(self):
        assert SpatialMap.key_in_range((-32768, 0, 32767))
        assert not SpatialMap.key_in_range((32768, 0, 0))
        assert not SpatialMap.key_in_range((0, -32769, 0))
