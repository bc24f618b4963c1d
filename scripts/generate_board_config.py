#!/usr/bin/env python3
"""
Generate an ArUco grid board: the YAML configuration read by the calibration
node and a printable PNG of the same board.

Markers from index 28 onwards are written with their stored corner order
swapped, so the loaded board matches the printed one.

Usage:
    ros2 run board_extrinsic_calibration generate_board_config.py [options]

    Or standalone:
    python3 generate_board_config.py --markers-x 7 --markers-y 5 -o aruco_board.yaml
"""

import argparse
import cv2
import numpy as np
import os
import sys
import yaml

# Add package to path for standalone execution
try:
    from board_extrinsic_calibration.board_config import (
        grid_board_config, MARKER_DICTIONARY, CORNER_SWAP_START
    )
except ImportError:
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    from board_extrinsic_calibration.board_config import (
        grid_board_config, MARKER_DICTIONARY, CORNER_SWAP_START
    )


def generate_board(
    markers_x: int = 7,
    markers_y: int = 5,
    marker_length_mm: float = 40.0,
    separation_mm: float = 10.0,
    first_id: int = 0,
    dpi: int = 300,
    output_path: str = "aruco_board.yaml",
    image_path: str = None,
    margin_mm: float = 20.0
):
    """
    Write the board configuration and its printable image.

    Args:
        markers_x: Number of markers in X direction
        markers_y: Number of markers in Y direction
        marker_length_mm: Marker side length in mm
        separation_mm: Gap between markers in mm
        first_id: Id of the first marker
        dpi: Image resolution in dots per inch
        output_path: YAML output path
        image_path: PNG output path (defaults to the YAML path with .png)
        margin_mm: White margin around the printed board in mm
    """
    if markers_x * markers_y + first_id > 100:
        raise ValueError(f"{MARKER_DICTIONARY} only has 100 markers")

    board_config = grid_board_config(
        markers_x, markers_y,
        marker_length_mm / 1000.0,
        separation_mm / 1000.0,
        first_id
    )

    with open(output_path, 'w') as f:
        yaml.safe_dump(board_config.to_dict(), f, default_flow_style=None, sort_keys=False)

    # Board image at physical scale
    board_width_mm = markers_x * marker_length_mm + (markers_x - 1) * separation_mm
    board_height_mm = markers_y * marker_length_mm + (markers_y - 1) * separation_mm
    px_per_mm = dpi / 25.4
    margin_px = int(margin_mm * px_per_mm)

    board_width_px = int(board_width_mm * px_per_mm)
    board_height_px = int(board_height_mm * px_per_mm)
    board_img = board_config.create_board().generateImage((board_width_px, board_height_px))

    final_img = np.ones((board_height_px + 2 * margin_px, board_width_px + 2 * margin_px),
                        dtype=np.uint8) * 255
    final_img[margin_px:margin_px + board_img.shape[0],
              margin_px:margin_px + board_img.shape[1]] = board_img

    if image_path is None:
        image_path = os.path.splitext(output_path)[0] + '.png'
    cv2.imwrite(image_path, final_img)

    swapped = max(0, board_config.num_markers - CORNER_SWAP_START)
    print(f"\nArUco board generated")
    print(f"  Configuration: {output_path}")
    print(f"  Image: {image_path} ({final_img.shape[1]} x {final_img.shape[0]} px @ {dpi} DPI)")
    print(f"  Grid: {markers_x} x {markers_y} markers, ids {first_id}..{first_id + board_config.num_markers - 1}")
    print(f"  Marker size: {marker_length_mm} mm, separation: {separation_mm} mm")
    print(f"  Dictionary: {MARKER_DICTIONARY}")
    if swapped:
        print(f"  {swapped} markers stored with swapped corner order")
    print("\nIMPORTANT: Print at 100% scale and verify the marker size with a ruler")

    return output_path


def main():
    parser = argparse.ArgumentParser(
        description='Generate an ArUco grid board configuration and printable image'
    )
    parser.add_argument('--markers-x', type=int, default=7,
                        help='Number of markers in X direction (default: 7)')
    parser.add_argument('--markers-y', type=int, default=5,
                        help='Number of markers in Y direction (default: 5)')
    parser.add_argument('--marker-length', type=float, default=40.0,
                        help='Marker side length in mm (default: 40.0)')
    parser.add_argument('--separation', type=float, default=10.0,
                        help='Gap between markers in mm (default: 10.0)')
    parser.add_argument('--first-id', type=int, default=0,
                        help='Id of the first marker (default: 0)')
    parser.add_argument('--dpi', type=int, default=300,
                        help='Image resolution in DPI (default: 300)')
    parser.add_argument('--output', '-o', type=str, default='aruco_board.yaml',
                        help='Output YAML path')
    parser.add_argument('--image', type=str, default=None,
                        help='Output PNG path (default: next to the YAML)')
    parser.add_argument('--margin', type=float, default=20.0,
                        help='Margin around board in mm (default: 20)')

    args = parser.parse_args()

    generate_board(
        markers_x=args.markers_x,
        markers_y=args.markers_y,
        marker_length_mm=args.marker_length,
        separation_mm=args.separation,
        first_id=args.first_id,
        dpi=args.dpi,
        output_path=args.output,
        image_path=args.image,
        margin_mm=args.margin
    )


if __name__ == '__main__':
    main()
