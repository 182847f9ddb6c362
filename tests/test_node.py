"""Message conversion tests for the ROS 2 node (skipped without a ROS 2 environment)."""

import pytest

pytest.importorskip("rclpy")
pytest.importorskip("octomap_msgs")
pytest.importorskip("open3d")

from std_msgs.msg import Header

from drone_coverage.nodes.online_coverage_node import msg_from_snapshot, snapshot_from_msg
from drone_coverage.perception.octomap_codec import decode_snapshot, encode_full
from drone_coverage.perception.spatial_map import COLOR_OCTREE


def test_octomap_message_round_trip(make_map):
    m = make_map(resolution=0.25, occupied=[(3, 0, 1), (-2, 4, 1)], free=[(0, 0, 1)], tree_type=COLOR_OCTREE)
    m.set_color((3, 0, 1), (255, 0, 0))
    snapshot = encode_full(m)

    msg = msg_from_snapshot(snapshot, Header(frame_id="map"))
    assert msg.header.frame_id == "map"
    assert msg.id == COLOR_OCTREE
    assert not msg.binary
    # octomap_msgs carries the tree as signed bytes
    assert all(-128 <= b <= 127 for b in msg.data)

    restored = snapshot_from_msg(msg)
    assert restored == snapshot
    assert decode_snapshot(restored).get_color((3, 0, 1)) == (255, 0, 0)
