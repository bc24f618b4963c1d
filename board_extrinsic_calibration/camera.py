"""
Per-camera extrinsic calibration: owns the board, the shared state and the
background calibration thread.
"""

import logging
import threading
from typing import Optional, Union

import numpy as np

from .board_config import BoardConfig, load_board_config
from .calibration_loop import CalibrationLoop
from .marker_detector import MarkerDetector
from .pose_estimation import PoseEstimate
from .shared_state import SharedCameraState
from .utils import CalibrationSettings

logger = logging.getLogger(__name__)


class Camera:
    """
    One camera of a multi-camera rig.

    The calibration thread starts on construction and runs until close().
    Producers push frames and the intrinsic matrix; consumers read the
    latest board transform at any time.
    """

    def __init__(self, name: str, board_config: Union[BoardConfig, str],
                 settings: Optional[CalibrationSettings] = None,
                 detector: Optional[MarkerDetector] = None):
        """
        Initialize the camera and start its calibration thread.

        Args:
            name: Camera name, used for logging and the thread name
            board_config: BoardConfig or path to a board YAML file
            settings: Calibration loop settings
            detector: Marker detector override (defaults to one built from the board)

        Raises:
            BoardConfigError: if the board cannot be loaded or is unusable
        """
        self.name = name
        self.settings = settings or CalibrationSettings()

        if isinstance(board_config, BoardConfig):
            self.board_config = board_config
        else:
            self.board_config = load_board_config(board_config)
        self.board_config.validate()

        if detector is None:
            detector = MarkerDetector(self.board_config, self.settings.detection)

        self._state = SharedCameraState()
        self._loop = CalibrationLoop(self._state, detector, self.settings, name=name)
        self._closed = False

        self._thread = threading.Thread(
            target=self._loop.run, name=f"extrinsics-{name}", daemon=True
        )
        self._thread.start()
        logger.info(f"Camera '{name}' started with {self.board_config.num_markers} board markers")

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive()

    @property
    def loop(self) -> CalibrationLoop:
        return self._loop

    def set_camera_image(self, image: np.ndarray):
        """Push the latest frame."""
        self._state.set_image(image)

    def set_camera_matrix(self, camera_matrix: np.ndarray):
        """Push the 3x3 intrinsic matrix."""
        self._state.set_intrinsic(camera_matrix)

    def get_transform(self) -> Optional[np.ndarray]:
        """Latest 3x3 board rotation, or None before the first successful solve."""
        return self._state.get_transform()

    def get_pose(self) -> Optional[PoseEstimate]:
        """Latest full pose estimate, or None."""
        return self._state.get_pose()

    def get_extrinsic(self) -> Optional[np.ndarray]:
        """Latest 4x4 homogeneous transform (rotation and translation), or None."""
        pose = self._state.get_pose()
        if pose is None:
            return None
        return pose.extrinsic

    def get_annotated_image(self) -> Optional[np.ndarray]:
        """Latest frame with detections drawn (only when draw_detections is enabled)."""
        return self._state.get_annotated()

    def close(self):
        """Stop the calibration thread and wait for it to finish."""
        if self._closed:
            return
        self._closed = True

        self._loop.stop()
        self._thread.join(self.settings.join_timeout)
        if self._thread.is_alive():
            logger.warning(f"Camera '{self.name}' calibration thread did not stop within "
                           f"{self.settings.join_timeout}s")
        else:
            logger.info(f"Camera '{self.name}' stopped")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
