"""
ROS 2 node wrapping the online coverage core.

Subscribes:
- octomap_msgs/Octomap on the environment topic (/octomap_binary)
- geometry_msgs/PoseStamped on the sensor pose topic (/amcl_pose)

Publishes after every processed pose:
- octomap_covered (octomap_msgs/Octomap, full ColorOcTree)
- octomap_covered/volume, octomap_covered/percentage (std_msgs/Float64; the
  percentage is -1.0 while the environment has no occupied volume)
- octomap_covered/markers (visualization_msgs/MarkerArray, optional)
- octomap_covered/points (sensor_msgs/PointCloud2, optional)
"""

from __future__ import annotations
import numpy as np

import rclpy
from rclpy.node import Node
from rclpy.qos import QoSProfile, QoSReliabilityPolicy, QoSHistoryPolicy, QoSDurabilityPolicy

from octomap_msgs.msg import Octomap
from geometry_msgs.msg import PoseStamped, Point
from std_msgs.msg import Float64, Header, ColorRGBA
from sensor_msgs.msg import PointCloud2
import sensor_msgs_py.point_cloud2 as pc2
from visualization_msgs.msg import Marker, MarkerArray
from builtin_interfaces.msg import Duration

from ..coverage import CoverageConfig, HeightBand, OnlineCoverage, SensorModel, SensorPose
from ..coverage.online_coverage import UNDEFINED_PERCENTAGE
from ..perception.octomap_codec import MapSnapshot
from ..perception.point_cloud import coverage_point_cloud, save_coverage_point_cloud

# ----------------------------
# Message conversion
# ----------------------------

def snapshot_from_msg(msg: Octomap) -> MapSnapshot:
    """octomap_msgs/Octomap -> MapSnapshot."""
    data = np.asarray(msg.data, dtype=np.int8).tobytes()
    return MapSnapshot(
        id=msg.id,
        resolution=float(msg.resolution),
        binary=bool(msg.binary),
        data=data,
    )


def msg_from_snapshot(snapshot: MapSnapshot, header: Header) -> Octomap:
    """MapSnapshot -> octomap_msgs/Octomap."""
    msg = Octomap()
    msg.header = header
    msg.binary = snapshot.binary
    msg.id = snapshot.id
    msg.resolution = float(snapshot.resolution)
    msg.data = np.frombuffer(snapshot.data, dtype=np.int8).tolist()
    return msg

# ----------------------------
# ROS 2 Node
# ----------------------------

class OnlineCoverageNode(Node):
    """ROS2 node for online sensor coverage of a known octomap."""

    def __init__(self):
        super().__init__('online_coverage_node')

        # World
        self.declare_parameter('world.min_obstacle_height', 0.3)
        self.declare_parameter('world.max_obstacle_height', 2.0)

        # Sensor
        self.declare_parameter('sensor.rfid.range', 1.0)
        self.declare_parameter('sensor.rfid.hfov', 60.0)   # degrees
        self.declare_parameter('sensor.rfid.vfov', 30.0)   # degrees
        self.declare_parameter('sensor.rfid.shape', 'circular')
        self.declare_parameter('sensor.rfid.direction.x', 1.0)
        self.declare_parameter('sensor.rfid.direction.y', 0.0)
        self.declare_parameter('sensor.rfid.direction.z', 0.0)
        self.declare_parameter('sensor.rfid.angular_step', 1.0)  # degrees

        # Topics and outputs
        self.declare_parameter('octomap_topic', '/octomap_binary')
        self.declare_parameter('pose_topic', '/amcl_pose')
        self.declare_parameter('map_frame', 'map')
        self.declare_parameter('publish_markers', True)
        self.declare_parameter('publish_point_cloud', False)
        self.declare_parameter('export_cloud_path', '')

        # Read parameters
        height_band = HeightBand(
            min_height=float(self.get_parameter('world.min_obstacle_height').value),
            max_height=float(self.get_parameter('world.max_obstacle_height').value),
        )
        sensor = SensorModel.from_degrees(
            range=float(self.get_parameter('sensor.rfid.range').value),
            hfov_deg=float(self.get_parameter('sensor.rfid.hfov').value),
            vfov_deg=float(self.get_parameter('sensor.rfid.vfov').value),
            shape=str(self.get_parameter('sensor.rfid.shape').value),
            direction=(
                float(self.get_parameter('sensor.rfid.direction.x').value),
                float(self.get_parameter('sensor.rfid.direction.y').value),
                float(self.get_parameter('sensor.rfid.direction.z').value),
            ),
            angular_step_deg=float(self.get_parameter('sensor.rfid.angular_step').value),
        )
        octomap_topic = self.get_parameter('octomap_topic').value
        pose_topic = self.get_parameter('pose_topic').value
        self.map_frame: str = self.get_parameter('map_frame').value
        self.publish_markers: bool = bool(self.get_parameter('publish_markers').value)
        self.publish_pc: bool = bool(self.get_parameter('publish_point_cloud').value)
        self.export_cloud_path: str = str(self.get_parameter('export_cloud_path').value)

        # Coverage core
        self.coverage = OnlineCoverage(
            CoverageConfig(height_band=height_band, sensor=sensor),
            logger=self.get_logger(),
        )

        # Subscribers - octomap servers latch their map
        map_qos = QoSProfile(
            reliability=QoSReliabilityPolicy.RELIABLE,
            history=QoSHistoryPolicy.KEEP_LAST,
            durability=QoSDurabilityPolicy.TRANSIENT_LOCAL,
            depth=1
        )
        self.map_sub = self.create_subscription(
            Octomap,
            octomap_topic,
            self.octomap_callback,
            qos_profile=map_qos
        )
        self.pose_sub = self.create_subscription(
            PoseStamped,
            pose_topic,
            self.pose_callback,
            1000
        )

        # Publishers
        self.covered_pub = self.create_publisher(Octomap, 'octomap_covered', 10)
        self.volume_pub = self.create_publisher(Float64, 'octomap_covered/volume', 10)
        self.percentage_pub = self.create_publisher(Float64, 'octomap_covered/percentage', 10)
        self.marker_pub = self.create_publisher(MarkerArray, 'octomap_covered/markers', 1)
        self.pcd_pub = self.create_publisher(PointCloud2, 'octomap_covered/points', 1)

        self.update_count = 0

        self.get_logger().info(
            f'Online coverage initialized: shape={sensor.shape.value}, range={sensor.range}m, '
            f'band=[{height_band.min_height}, {height_band.max_height}]m, '
            f'map_topic={octomap_topic}, pose_topic={pose_topic}, frame={self.map_frame}'
        )

    # ---------- Callbacks ----------

    def octomap_callback(self, msg: Octomap):
        """Replace the environment map."""
        self.coverage.on_environment_snapshot(snapshot_from_msg(msg))

    def pose_callback(self, msg: PoseStamped):
        """Accumulate coverage for the new pose and publish the results."""
        result = self.coverage.on_pose_update(
            SensorPose.from_msg(msg.pose),
            stamp=self.get_clock().now().to_msg()
        )
        if result is None:
            return
        self.update_count += 1

        header = Header(frame_id=self.map_frame, stamp=result.stamp)
        self.covered_pub.publish(msg_from_snapshot(result.coverage, header))
        self.volume_pub.publish(Float64(data=float(result.covered_volume)))
        self.percentage_pub.publish(Float64(data=float(result.percentage_or_marker)))
        if result.covered_percentage is None:
            self.get_logger().warning(
                f'Covered percentage undefined (no occupied environment volume), '
                f'publishing {UNDEFINED_PERCENTAGE}',
                throttle_duration_sec=5.0
            )

        if self.update_count % 10 == 0:
            pct = result.covered_percentage
            self.get_logger().info(
                f'Update #{self.update_count}: +{result.accepted_hits} hits, '
                f'covered={result.covered_volume:.3f}/{result.total_volume:.3f} m^3'
                + (f' ({pct:.1f}%)' if pct is not None else '')
            )

        if self.publish_markers:
            self.publish_covered_markers(header)
        if self.publish_pc:
            self.publish_covered_pointcloud(header)

    # ---------- Publishers ----------

    def publish_covered_markers(self, header: Header):
        """Publish covered voxels as a cube list, colored by coverage tag."""
        covered = self.coverage.coverage.map
        keys = sorted(covered.occupied_voxels)

        marker = Marker()
        marker.header = header
        marker.ns = "covered"
        marker.id = 0
        marker.type = Marker.CUBE_LIST
        marker.action = Marker.ADD
        marker.scale.x = covered.resolution
        marker.scale.y = covered.resolution
        marker.scale.z = covered.resolution
        marker.color = ColorRGBA(r=1.0, g=1.0, b=1.0, a=0.8)
        marker.lifetime = Duration(sec=0, nanosec=0)

        for key in keys:
            c = covered.key_to_center(key)
            r, g, b = covered.get_color(key)
            marker.points.append(Point(x=float(c[0]), y=float(c[1]), z=float(c[2])))
            marker.colors.append(ColorRGBA(r=r / 255.0, g=g / 255.0, b=b / 255.0, a=0.8))

        marker_array = MarkerArray()
        marker_array.markers.append(marker)
        self.marker_pub.publish(marker_array)

    def publish_covered_pointcloud(self, header: Header):
        """Publish covered voxel centers."""
        pcd = coverage_point_cloud(self.coverage.coverage.map)
        if len(pcd.points) == 0:
            return
        pts = np.asarray(pcd.points, dtype=np.float32)
        cloud = pc2.create_cloud_xyz32(header, pts.tolist())
        self.pcd_pub.publish(cloud)

    def export_coverage(self):
        """Write the covered voxels to export_cloud_path, if set."""
        if not self.export_cloud_path or not self.coverage.loaded:
            return
        save_coverage_point_cloud(self.coverage.coverage.map, self.export_cloud_path)

# ----------------------------
# Entry point
# ----------------------------

def main(args=None):
    rclpy.init(args=args)
    node = OnlineCoverageNode()
    try:
        rclpy.spin(node)
    finally:
        node.export_coverage()
        node.destroy_node()
        rclpy.shutdown()

if __name__ == '__main__':
    main()
