"""
Background loop that turns (image, intrinsic) snapshots into a board pose.
"""

import enum
import logging
import threading
from typing import Optional

from .marker_detector import MarkerDetector
from .pose_estimation import (
    PoseEstimate, solve_board_pose, rotation_from_rvec, reprojection_error
)
from .shared_state import SharedCameraState, is_empty
from .utils import CalibrationSettings

logger = logging.getLogger(__name__)


class LoopState(enum.Enum):
    """Furthest stage reached by one loop iteration."""
    IDLE = 'idle'              # No image or no intrinsic yet
    DETECTING = 'detecting'    # No markers or no board correspondences
    SOLVING = 'solving'        # Correspondences found but the solver gave up
    PUBLISHED = 'published'    # New pose written


class CalibrationLoop:
    """
    Extrinsic calibration loop for one camera.

    Each iteration snapshots the latest image and intrinsic matrix, detects
    the board's markers, solves the board pose and publishes it. An
    iteration that cannot produce a pose leaves the previous one in place.
    """

    def __init__(self, shared_state: SharedCameraState, detector: MarkerDetector,
                 settings: Optional[CalibrationSettings] = None,
                 name: str = 'camera'):
        self.shared_state = shared_state
        self.detector = detector
        self.settings = settings or CalibrationSettings()
        self.name = name

        self._stop_event = threading.Event()
        self.iterations = 0

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self):
        """Ask the loop to exit after the current iteration."""
        self._stop_event.set()
        self.shared_state.notify()

    def run_once(self) -> LoopState:
        """Run a single iteration and return the state it reached."""
        self.iterations += 1

        # Separate reads, the pair is not guaranteed to be from the same instant
        image = self.shared_state.get_image()
        intrinsic = self.shared_state.get_intrinsic()

        if is_empty(image) or is_empty(intrinsic):
            return LoopState.IDLE

        detection = self.detector.detect(image)
        obj_points, img_points = self.detector.match_image_points(detection)

        if len(obj_points) == 0:
            logger.debug(f"[{self.name}] {detection.num_markers} markers, no board correspondences")
            self._annotate(image, detection, intrinsic)
            return LoopState.DETECTING

        success, rvec, tvec = solve_board_pose(obj_points, img_points, intrinsic)
        if not success:
            logger.warning(f"[{self.name}] Pose solving failed with "
                           f"{len(obj_points)} correspondences")
            self._annotate(image, detection, intrinsic)
            return LoopState.SOLVING

        pose = PoseEstimate(
            rotation_matrix=rotation_from_rvec(rvec, self.settings.rotation_conversion),
            rvec=rvec,
            tvec=tvec,
            num_correspondences=len(obj_points),
            reprojection_error=reprojection_error(obj_points, img_points, intrinsic, rvec, tvec)
        )
        self.shared_state.publish_pose(pose)
        self._annotate(image, detection, intrinsic, pose)

        logger.debug(f"[{self.name}] Published pose from {pose.num_correspondences} "
                     f"correspondences, error={pose.reprojection_error:.3f}px")
        return LoopState.PUBLISHED

    def _annotate(self, image, detection, intrinsic, pose: Optional[PoseEstimate] = None):
        if not self.settings.draw_detections:
            return
        if pose is None:
            vis = self.detector.draw(image, detection)
        else:
            vis = self.detector.draw(image, detection, intrinsic, pose.rvec, pose.tvec,
                                     self.settings.axis_length)
        self.shared_state.set_annotated(vis)

    def run(self):
        """Thread body: iterate until stop() is called."""
        logger.info(f"[{self.name}] Calibration loop started")

        while not self._stop_event.is_set():
            self.shared_state.wait_for_input(self.settings.input_timeout)
            if self._stop_event.is_set():
                break

            try:
                self.run_once()
            except Exception:
                logger.exception(f"[{self.name}] Calibration iteration failed")

        logger.info(f"[{self.name}] Calibration loop stopped after {self.iterations} iterations")
