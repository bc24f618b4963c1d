# board_extrinsic_calibration package
"""
Per-camera extrinsic calibration against a fixed ArUco marker board.

Each camera of a rig runs its own background loop that turns the latest
image and intrinsic matrix into a camera-to-board transform.
"""

from .board_config import BoardConfig, BoardConfigError, load_board_config, parse_board_config
from .calibration_loop import CalibrationLoop, LoopState
from .camera import Camera
from .marker_detector import MarkerDetector, DetectionResult
from .pose_estimation import PoseEstimate, euler_angles_to_rotation_matrix
from .shared_state import SharedCameraState
from .utils import CalibrationSettings, load_calibration_settings

__all__ = [
    'BoardConfig',
    'BoardConfigError',
    'load_board_config',
    'parse_board_config',
    'CalibrationLoop',
    'LoopState',
    'Camera',
    'MarkerDetector',
    'DetectionResult',
    'PoseEstimate',
    'euler_angles_to_rotation_matrix',
    'SharedCameraState',
    'CalibrationSettings',
    'load_calibration_settings',
]
