"""
Utility functions for board extrinsic calibration.
"""

import numpy as np
import yaml
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Sequence


ROTATION_CONVERSIONS = ('euler_xyz', 'rotation_vector')


@dataclass
class CalibrationSettings:
    """Runtime settings of one camera's calibration loop."""
    input_timeout: float = 0.5       # Max wait for new input before re-solving, 0 = busy poll
    join_timeout: Optional[float] = 5.0
    draw_detections: bool = False
    rotation_conversion: str = 'euler_xyz'
    axis_length: float = 0.1
    detection: Dict[str, Any] = field(default_factory=dict)


def load_yaml(config_path: str) -> Dict[str, Any]:
    """Load a YAML file, returning an empty dict for an empty document."""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def load_camera_config(config_path: str) -> Dict[str, Any]:
    """Load camera configuration from YAML file."""
    config = load_yaml(config_path)
    if 'cameras' not in config or not config['cameras']:
        raise ValueError(f"No cameras defined in {config_path}")
    return config


def load_calibration_settings(config: Optional[Dict[str, Any]]) -> CalibrationSettings:
    """
    Build CalibrationSettings from the ``calibration`` section of a config.

    Args:
        config: Mapping of setting name to value (missing keys keep defaults)

    Returns:
        CalibrationSettings
    """
    config = config or {}
    settings = CalibrationSettings()

    if 'input_timeout' in config:
        settings.input_timeout = max(0.0, float(config['input_timeout']))
    if 'join_timeout' in config:
        timeout = config['join_timeout']
        settings.join_timeout = None if timeout is None else float(timeout)
    if 'draw_detections' in config:
        settings.draw_detections = bool(config['draw_detections'])
    if 'axis_length' in config:
        settings.axis_length = float(config['axis_length'])
    if 'detection' in config:
        settings.detection = dict(config['detection'] or {})

    conversion = config.get('rotation_conversion', settings.rotation_conversion)
    if conversion not in ROTATION_CONVERSIONS:
        raise ValueError(f"Unknown rotation conversion: {conversion}")
    settings.rotation_conversion = conversion

    return settings


def load_intrinsics(intrinsics_path: str) -> np.ndarray:
    """
    Load a 3x3 camera matrix from a YAML file.

    Accepts either the ROS calibration format (``camera_matrix: {data: [...]}``)
    or a plain ``K`` list of 9 values.
    """
    data = load_yaml(intrinsics_path)

    if 'camera_matrix' in data:
        k_data = data['camera_matrix']['data']
    elif 'K' in data:
        k_data = data['K']
    else:
        raise ValueError(f"No camera matrix found in {intrinsics_path}")

    return np.array(k_data, dtype=np.float64).reshape(3, 3)


def camera_matrix_from_k(k: Sequence[float]) -> np.ndarray:
    """
    Build a 3x3 intrinsic matrix from a row-major K array (CameraInfo.k).

    Only focal lengths and principal point are kept; skew is dropped.
    """
    return np.array([
        [k[0], 0.0, k[2]],
        [0.0, k[4], k[5]],
        [0.0, 0.0, 1.0]
    ], dtype=np.float64)


def quaternion_from_matrix(R: np.ndarray) -> np.ndarray:
    """
    Convert a 3x3 rotation matrix to quaternion [x, y, z, w].

    Args:
        R: 3x3 rotation matrix

    Returns:
        Quaternion as [x, y, z, w]
    """
    trace = np.trace(R)

    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        w = 0.25 / s
        x = (R[2, 1] - R[1, 2]) * s
        y = (R[0, 2] - R[2, 0]) * s
        z = (R[1, 0] - R[0, 1]) * s
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        w = (R[2, 1] - R[1, 2]) / s
        x = 0.25 * s
        y = (R[0, 1] + R[1, 0]) / s
        z = (R[0, 2] + R[2, 0]) / s
    elif R[1, 1] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
        w = (R[0, 2] - R[2, 0]) / s
        x = (R[0, 1] + R[1, 0]) / s
        y = 0.25 * s
        z = (R[1, 2] + R[2, 1]) / s
    else:
        s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
        w = (R[1, 0] - R[0, 1]) / s
        x = (R[0, 2] + R[2, 0]) / s
        y = (R[1, 2] + R[2, 1]) / s
        z = 0.25 * s

    return np.array([x, y, z, w])
