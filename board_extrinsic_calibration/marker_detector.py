"""
ArUco marker detection against a fixed marker board.
"""

import cv2
import numpy as np
from typing import Optional, Tuple, Dict, Any, List
from dataclasses import dataclass, field

from .board_config import BoardConfig


@dataclass
class DetectionResult:
    """Markers found in one image."""
    marker_corners: List[np.ndarray] = field(default_factory=list)  # (1, 4, 2) float32 each
    marker_ids: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.int32))

    @property
    def num_markers(self) -> int:
        return len(self.marker_ids)

    @property
    def success(self) -> bool:
        return self.num_markers > 0


def _single_channel(image: np.ndarray) -> np.ndarray:
    """2D view of a grayscale frame, dropping an explicit (h, w, 1) channel axis."""
    if image.ndim == 3:
        return np.ascontiguousarray(image[:, :, 0])
    return image


def make_detection(corners, ids) -> DetectionResult:
    """Normalize raw corner/id sequences into a DetectionResult."""
    if ids is None or corners is None or len(ids) == 0:
        return DetectionResult()
    return DetectionResult(
        marker_corners=[np.asarray(c, dtype=np.float32).reshape(1, 4, 2) for c in corners],
        marker_ids=np.asarray(ids, dtype=np.int32).reshape(-1)
    )


class MarkerDetector:
    """
    ArUco marker detector bound to one board.

    Wraps the OpenCV detector and the composite board built from the
    board configuration.
    """

    def __init__(self, board_config: BoardConfig,
                 detection_config: Optional[Dict[str, Any]] = None):
        """
        Initialize the marker detector.

        Args:
            board_config: Board geometry and dictionary
            detection_config: Optional detector parameter overrides
        """
        self.board_config = board_config
        self.aruco_dict = board_config.dictionary
        self.board = board_config.create_board()

        self.detector_params = cv2.aruco.DetectorParameters()
        if detection_config:
            self._configure_detector_params(detection_config)

        self.aruco_detector = cv2.aruco.ArucoDetector(self.aruco_dict, self.detector_params)

    def _configure_detector_params(self, cfg: Dict[str, Any]):
        """Configure ArUco detector parameters from config."""
        param_map = {
            'adaptive_thresh_win_size_min': 'adaptiveThreshWinSizeMin',
            'adaptive_thresh_win_size_max': 'adaptiveThreshWinSizeMax',
            'adaptive_thresh_win_size_step': 'adaptiveThreshWinSizeStep',
            'adaptive_thresh_constant': 'adaptiveThreshConstant',
            'min_marker_perimeter_rate': 'minMarkerPerimeterRate',
            'max_marker_perimeter_rate': 'maxMarkerPerimeterRate',
            'polygonal_approx_accuracy_rate': 'polygonalApproxAccuracyRate',
            'min_corner_distance_rate': 'minCornerDistanceRate',
            'min_distance_to_border': 'minDistanceToBorder',
            'min_marker_distance_rate': 'minMarkerDistanceRate',
            'corner_refinement_win_size': 'cornerRefinementWinSize',
            'corner_refinement_max_iterations': 'cornerRefinementMaxIterations',
            'corner_refinement_min_accuracy': 'cornerRefinementMinAccuracy',
        }

        for yaml_key, cv_attr in param_map.items():
            if yaml_key in cfg:
                setattr(self.detector_params, cv_attr, cfg[yaml_key])

        if 'corner_refinement_method' in cfg:
            method_map = {
                'CORNER_REFINE_NONE': cv2.aruco.CORNER_REFINE_NONE,
                'CORNER_REFINE_SUBPIX': cv2.aruco.CORNER_REFINE_SUBPIX,
                'CORNER_REFINE_CONTOUR': cv2.aruco.CORNER_REFINE_CONTOUR,
                'CORNER_REFINE_APRILTAG': cv2.aruco.CORNER_REFINE_APRILTAG,
            }
            method = cfg['corner_refinement_method']
            if method not in method_map:
                raise ValueError(f"Unknown corner refinement method: {method}")
            self.detector_params.cornerRefinementMethod = method_map[method]

    def detect(self, image: np.ndarray) -> DetectionResult:
        """
        Detect the board's markers in an image.

        Args:
            image: Input image (BGR, or grayscale with or without a channel axis)

        Returns:
            DetectionResult, empty when no marker was found
        """
        if image.ndim == 3 and image.shape[2] == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        else:
            gray = _single_channel(image)

        marker_corners, marker_ids, _rejected = self.aruco_detector.detectMarkers(gray)
        return make_detection(marker_corners, marker_ids)

    def match_image_points(self, detection: DetectionResult) -> Tuple[np.ndarray, np.ndarray]:
        """
        Pair detected 2D corners with the board's 3D corners.

        Detected markers that are not part of the board contribute nothing.

        Returns:
            Tuple of (object points Nx3, image points Nx2), both empty on no match
        """
        empty = (np.empty((0, 3), dtype=np.float32), np.empty((0, 2), dtype=np.float32))
        if not detection.success:
            return empty

        obj_points, img_points = self.board.matchImagePoints(
            detection.marker_corners,
            detection.marker_ids.reshape(-1, 1)
        )

        if obj_points is None or img_points is None or len(obj_points) == 0:
            return empty

        return (np.asarray(obj_points, dtype=np.float32).reshape(-1, 3),
                np.asarray(img_points, dtype=np.float32).reshape(-1, 2))

    def draw(self, image: np.ndarray, detection: DetectionResult,
             camera_matrix: Optional[np.ndarray] = None,
             rvec: Optional[np.ndarray] = None,
             tvec: Optional[np.ndarray] = None,
             axis_length: float = 0.1) -> np.ndarray:
        """
        Draw detected markers and, if a pose is given, the board axes.

        Returns:
            Annotated BGR copy of the image
        """
        if image.ndim == 3 and image.shape[2] == 3:
            vis_image = image.copy()
        else:
            vis_image = cv2.cvtColor(_single_channel(image), cv2.COLOR_GRAY2BGR)

        if detection.success:
            cv2.aruco.drawDetectedMarkers(
                vis_image, detection.marker_corners, detection.marker_ids.reshape(-1, 1)
            )

        if camera_matrix is not None and rvec is not None and tvec is not None:
            cv2.drawFrameAxes(vis_image, camera_matrix, np.zeros(5), rvec, tvec, axis_length)

        return vis_image
