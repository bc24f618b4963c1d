"""
Board pose solving and rotation helpers.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

logger = logging.getLogger(__name__)


# Lens distortion is assumed to be zero (rectified input)
ZERO_DISTORTION = np.zeros(5, dtype=np.float64)


@dataclass(frozen=True, eq=False)
class PoseEstimate:
    """A published board pose for one camera."""
    rotation_matrix: np.ndarray           # 3x3 published rotation, see rotation_from_rvec
    rvec: np.ndarray                      # Raw solver rotation vector (3,)
    tvec: np.ndarray                      # Translation (3,) in board units
    num_correspondences: int = 0
    reprojection_error: float = float('inf')
    stamp: float = field(default_factory=time.time)

    @property
    def extrinsic(self) -> np.ndarray:
        """
        4x4 homogeneous board-to-camera transform.

        Always built from the exact axis-angle rotation of ``rvec`` so that it
        reprojects consistently with ``tvec``, whatever ``rotation_matrix``
        conversion was published.
        """
        return compose_extrinsic(rotation_vector_to_matrix(self.rvec), self.tvec)


def euler_angles_to_rotation_matrix(theta) -> np.ndarray:
    """
    Compose a rotation from three angles about X, Y and Z as Rz @ Ry @ Rx.

    Applied to a solvePnP rotation vector this is only close to the true
    rotation for small angles; use rotation_vector_to_matrix for the exact
    axis-angle conversion.

    Args:
        theta: Angles [x, y, z] in radians

    Returns:
        3x3 rotation matrix
    """
    tx, ty, tz = np.asarray(theta, dtype=np.float64).reshape(3)

    R_x = np.array([
        [1, 0, 0],
        [0, np.cos(tx), -np.sin(tx)],
        [0, np.sin(tx), np.cos(tx)]
    ])
    R_y = np.array([
        [np.cos(ty), 0, np.sin(ty)],
        [0, 1, 0],
        [-np.sin(ty), 0, np.cos(ty)]
    ])
    R_z = np.array([
        [np.cos(tz), -np.sin(tz), 0],
        [np.sin(tz), np.cos(tz), 0],
        [0, 0, 1]
    ])

    return R_z @ R_y @ R_x


def rotation_vector_to_matrix(rvec) -> np.ndarray:
    """Axis-angle (Rodrigues) rotation vector to 3x3 rotation matrix."""
    return Rotation.from_rotvec(np.asarray(rvec, dtype=np.float64).reshape(3)).as_matrix()


def rotation_from_rvec(rvec, conversion: str = 'euler_xyz') -> np.ndarray:
    """
    Convert a solver rotation vector to the published rotation matrix.

    Args:
        rvec: Rotation vector from solvePnP
        conversion: 'euler_xyz' or 'rotation_vector'
    """
    if conversion == 'euler_xyz':
        return euler_angles_to_rotation_matrix(rvec)
    if conversion == 'rotation_vector':
        return rotation_vector_to_matrix(rvec)
    raise ValueError(f"Unknown rotation conversion: {conversion}")


def compose_extrinsic(rotation: np.ndarray, tvec: np.ndarray) -> np.ndarray:
    """Build a 4x4 homogeneous transform from a rotation and a translation."""
    T = np.eye(4)
    T[:3, :3] = rotation
    T[:3, 3] = np.asarray(tvec, dtype=np.float64).reshape(3)
    return T


def solve_board_pose(obj_points: np.ndarray, img_points: np.ndarray,
                     camera_matrix: np.ndarray
                     ) -> Tuple[bool, Optional[np.ndarray], Optional[np.ndarray]]:
    """
    Estimate the board pose from 2D-3D correspondences.

    The iterative solver returns its best estimate; a solver exception or a
    failed solve is reported as (False, None, None) instead of raised.

    Args:
        obj_points: Nx3 board points
        img_points: Nx2 image points
        camera_matrix: 3x3 camera intrinsic matrix

    Returns:
        Tuple of (success, rvec, tvec)
    """
    if len(obj_points) < 4 or len(obj_points) != len(img_points):
        return False, None, None

    try:
        success, rvec, tvec = cv2.solvePnP(
            np.asarray(obj_points, dtype=np.float32),
            np.asarray(img_points, dtype=np.float32),
            np.asarray(camera_matrix, dtype=np.float64),
            ZERO_DISTORTION,
            flags=cv2.SOLVEPNP_ITERATIVE
        )
    except cv2.error as e:
        logger.warning(f"solvePnP failed: {e}")
        return False, None, None

    if not success:
        return False, None, None

    return True, rvec.reshape(3), tvec.reshape(3)


def reprojection_error(obj_points: np.ndarray, img_points: np.ndarray,
                       camera_matrix: np.ndarray,
                       rvec: np.ndarray, tvec: np.ndarray) -> float:
    """RMS distance in pixels between observed and reprojected corners."""
    projected, _ = cv2.projectPoints(
        np.asarray(obj_points, dtype=np.float32),
        np.asarray(rvec, dtype=np.float64),
        np.asarray(tvec, dtype=np.float64),
        np.asarray(camera_matrix, dtype=np.float64),
        ZERO_DISTORTION
    )
    residuals = projected.reshape(-1, 2) - np.asarray(img_points).reshape(-1, 2)
    return float(np.sqrt(np.mean(np.sum(residuals ** 2, axis=1))))
