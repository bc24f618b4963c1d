#!/usr/bin/env python3
"""
Run the board extrinsic calibration on a single image without ROS.
Useful to check a board configuration and intrinsics before deploying.

Usage:
    python3 estimate_from_image.py --image photo.png --intrinsics camera.yaml
    python3 estimate_from_image.py --image photo.png --intrinsics camera.yaml \
        --board ../config/aruco_board.yaml --show
"""

import argparse
import cv2
import numpy as np
import os
import sys
import time

# Add package to path for standalone execution
try:
    from board_extrinsic_calibration.camera import Camera
    from board_extrinsic_calibration.utils import CalibrationSettings, load_intrinsics
except ImportError:
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    from board_extrinsic_calibration.camera import Camera
    from board_extrinsic_calibration.utils import CalibrationSettings, load_intrinsics


def estimate(image_path, intrinsics_path, board_path, rotation_conversion, timeout, show):
    """Feed one image through a Camera and print the resulting pose."""
    image = cv2.imread(image_path)
    if image is None:
        print(f"  ✗ Could not load image: {image_path}")
        return False

    camera_matrix = load_intrinsics(intrinsics_path)
    print(f"  Image size: {image.shape[1]}x{image.shape[0]}")
    print(f"  Camera matrix:\n{camera_matrix}")

    settings = CalibrationSettings(
        draw_detections=show,
        rotation_conversion=rotation_conversion
    )

    with Camera('image', board_path, settings) as camera:
        camera.set_camera_matrix(camera_matrix)
        camera.set_camera_image(image)

        deadline = time.time() + timeout
        pose = None
        while pose is None and time.time() < deadline:
            time.sleep(0.05)
            pose = camera.get_pose()

        annotated = camera.get_annotated_image()

    if pose is None:
        print("\n  ⚠ NO POSE ESTIMATED!")
        print("  Possible causes:")
        print("    - Board markers not visible (dictionary DICT_4X4_100)")
        print("    - Marker ids not part of the board configuration")
        print("    - Poor lighting or image quality")
        return False

    np.set_printoptions(precision=4, suppress=True)
    print(f"\n  ✓ Pose from {pose.num_correspondences} correspondences "
          f"(reprojection error {pose.reprojection_error:.3f} px)")
    print(f"  rvec: {pose.rvec}")
    print(f"  tvec: {pose.tvec}")
    print(f"  Transform:\n{camera.get_transform()}")
    print(f"  Extrinsic:\n{pose.extrinsic}")

    if show and annotated is not None:
        cv2.namedWindow('Board Detection', cv2.WINDOW_NORMAL)
        cv2.imshow('Board Detection', annotated)
        print("\nPress any key to close...")
        cv2.waitKey(0)
        cv2.destroyAllWindows()

    return True


def main():
    default_board = os.path.join(
        os.path.dirname(os.path.abspath(__file__)), '..', 'config', 'aruco_board.yaml'
    )

    parser = argparse.ArgumentParser(description='Estimate the board pose in one image')
    parser.add_argument('--image', '-i', type=str, required=True, help='Image file')
    parser.add_argument('--intrinsics', '-k', type=str, required=True,
                        help='Intrinsics YAML (camera_matrix.data or K)')
    parser.add_argument('--board', '-b', type=str, default=default_board,
                        help='Board configuration YAML')
    parser.add_argument('--rotation-conversion', type=str, default='euler_xyz',
                        choices=['euler_xyz', 'rotation_vector'],
                        help='How the solver rotation vector becomes a matrix')
    parser.add_argument('--timeout', type=float, default=2.0,
                        help='Seconds to wait for a pose (default: 2.0)')
    parser.add_argument('--show', action='store_true', help='Show detections')
    args = parser.parse_args()

    print("=" * 60)
    print("Board Extrinsic Estimation")
    print("=" * 60)

    ok = estimate(args.image, args.intrinsics, args.board,
                  args.rotation_conversion, args.timeout, args.show)
    sys.exit(0 if ok else 1)


if __name__ == '__main__':
    main()
