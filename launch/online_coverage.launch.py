from launch import LaunchDescription
from launch.actions import DeclareLaunchArgument
from launch.substitutions import LaunchConfiguration
from launch_ros.actions import Node

def generate_launch_description():
    """Launch online coverage estimation against a published octomap."""

    # Launch arguments
    octomap_topic = LaunchConfiguration('octomap_topic')
    pose_topic = LaunchConfiguration('pose_topic')
    map_frame = LaunchConfiguration('map_frame')
    use_sim_time = LaunchConfiguration('use_sim_time')

    # World
    min_obstacle_height = LaunchConfiguration('min_obstacle_height')
    max_obstacle_height = LaunchConfiguration('max_obstacle_height')

    # Sensor
    sensor_range = LaunchConfiguration('sensor_range')
    sensor_hfov = LaunchConfiguration('sensor_hfov')
    sensor_vfov = LaunchConfiguration('sensor_vfov')
    sensor_shape = LaunchConfiguration('sensor_shape')
    direction_x = LaunchConfiguration('direction_x')
    direction_y = LaunchConfiguration('direction_y')
    direction_z = LaunchConfiguration('direction_z')
    angular_step = LaunchConfiguration('angular_step')

    # Outputs
    publish_markers = LaunchConfiguration('publish_markers')
    publish_pc = LaunchConfiguration('publish_point_cloud')
    export_cloud_path = LaunchConfiguration('export_cloud_path')

    declares = [
        DeclareLaunchArgument('octomap_topic', default_value='/octomap_binary',
                              description='Input octomap_msgs/Octomap topic (environment)'),
        DeclareLaunchArgument('pose_topic', default_value='/amcl_pose',
                              description='Input PoseStamped topic of the sensor'),
        DeclareLaunchArgument('map_frame', default_value='map',
                              description='Frame of the published coverage map'),
        DeclareLaunchArgument('use_sim_time', default_value='true',
                              description='Use simulation time'),

        DeclareLaunchArgument('min_obstacle_height', default_value='0.3',
                              description='Lower bound (m) of obstacle space'),
        DeclareLaunchArgument('max_obstacle_height', default_value='2.0',
                              description='Upper bound (m) of obstacle space'),

        DeclareLaunchArgument('sensor_range', default_value='1.0',
                              description='Sensor range (m)'),
        DeclareLaunchArgument('sensor_hfov', default_value='60.0',
                              description='Horizontal field of view (deg)'),
        DeclareLaunchArgument('sensor_vfov', default_value='30.0',
                              description='Vertical field of view (deg)'),
        DeclareLaunchArgument('sensor_shape', default_value='circular',
                              description="Sensor shape: 'circular' or 'orthogonal'"),
        DeclareLaunchArgument('direction_x', default_value='1.0'),
        DeclareLaunchArgument('direction_y', default_value='0.0'),
        DeclareLaunchArgument('direction_z', default_value='0.0'),
        DeclareLaunchArgument('angular_step', default_value='1.0',
                              description='FOV sampling step (deg)'),

        DeclareLaunchArgument('publish_markers', default_value='true',
                              description='Publish covered voxel markers for RViz'),
        DeclareLaunchArgument('publish_point_cloud', default_value='false',
                              description='Publish covered voxel centers as PointCloud2'),
        DeclareLaunchArgument('export_cloud_path', default_value='',
                              description='Write covered voxels to this .ply on shutdown'),
    ]

    online_coverage_node = Node(
        package='drone_coverage',
        executable='online_coverage_node',
        name='online_coverage_node',
        output='screen',
        parameters=[{
            'use_sim_time': use_sim_time,
            'octomap_topic': octomap_topic,
            'pose_topic': pose_topic,
            'map_frame': map_frame,

            'world.min_obstacle_height': min_obstacle_height,
            'world.max_obstacle_height': max_obstacle_height,

            'sensor.rfid.range': sensor_range,
            'sensor.rfid.hfov': sensor_hfov,
            'sensor.rfid.vfov': sensor_vfov,
            'sensor.rfid.shape': sensor_shape,
            'sensor.rfid.direction.x': direction_x,
            'sensor.rfid.direction.y': direction_y,
            'sensor.rfid.direction.z': direction_z,
            'sensor.rfid.angular_step': angular_step,

            'publish_markers': publish_markers,
            'publish_point_cloud': publish_pc,
            'export_cloud_path': export_cloud_path,
        }]
    )

    return LaunchDescription(declares + [online_coverage_node])
