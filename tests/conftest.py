import pytest

from drone_coverage.perception.spatial_map import SpatialMap, OCTREE


def build_map(resolution=1.0, occupied=(), free=(), tree_type=OCTREE):
    spatial_map = SpatialMap(resolution, tree_type=tree_type)
    for key in free:
        spatial_map.set_free(tuple(key))
    for key in occupied:
        spatial_map.set_occupied(tuple(key))
    return spatial_map


@pytest.fixture
def make_map():
    return build_map
