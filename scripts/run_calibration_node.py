#!/usr/bin/env python3
"""
ROS2 script running the board extrinsic calibration for every configured camera.

Usage:
    ros2 run board_extrinsic_calibration run_calibration_node.py \
        --ros-args \
        -p cameras_config:=/path/to/cameras.yaml
"""

import sys
import os

# Add package to path for standalone execution
try:
    from board_extrinsic_calibration.camera_node import main
except ImportError:
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    from board_extrinsic_calibration.camera_node import main


if __name__ == '__main__':
    main()
