"""
Launch file for per-camera board extrinsic calibration.

Starts the calibration node, which runs one calibration loop for every
camera listed in cameras.yaml and publishes <camera>/board_transform.

Usage:
    ros2 launch board_extrinsic_calibration board_extrinsics.launch.py

    Or with custom paths:
    ros2 launch board_extrinsic_calibration board_extrinsics.launch.py \
        cameras_config:=/path/to/cameras.yaml publish_rate:=5.0
"""

import os
from launch import LaunchDescription
from launch.actions import DeclareLaunchArgument
from launch.substitutions import LaunchConfiguration
from launch_ros.actions import Node
from ament_index_python.packages import get_package_share_directory


def generate_launch_description():
    pkg_share = get_package_share_directory('board_extrinsic_calibration')

    default_cameras_config = os.path.join(pkg_share, 'config', 'cameras.yaml')

    cameras_config_arg = DeclareLaunchArgument(
        'cameras_config',
        default_value=default_cameras_config,
        description='Path to cameras.yaml configuration file'
    )

    publish_rate_arg = DeclareLaunchArgument(
        'publish_rate',
        default_value='10.0',
        description='Rate in Hz at which board transforms are published'
    )

    frame_id_arg = DeclareLaunchArgument(
        'frame_id',
        default_value='aruco_board',
        description='Child frame id of the published transforms'
    )

    calibration_node = Node(
        package='board_extrinsic_calibration',
        executable='run_calibration_node.py',
        name='board_extrinsic_calibration',
        output='screen',
        parameters=[{
            'cameras_config': LaunchConfiguration('cameras_config'),
            'publish_rate': LaunchConfiguration('publish_rate'),
            'frame_id': LaunchConfiguration('frame_id'),
        }]
    )

    return LaunchDescription([
        cameras_config_arg,
        publish_rate_arg,
        frame_id_arg,
        calibration_node,
    ])
