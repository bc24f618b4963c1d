"""
Latest-value handoff between frame producers and the calibration loop.
"""

import threading
from typing import Any, Optional

import numpy as np


class _Slot:
    """A single value guarded by its own lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._value = None

    def set(self, value: Any):
        with self._lock:
            self._value = value

    def get(self) -> Any:
        with self._lock:
            return self._value


class SharedCameraState:
    """
    Per-camera state shared between producer threads and the calibration loop.

    Every field has its own lock, so an image write never contends with a
    transform read. Fields are independent: a snapshot of ``image`` and
    ``intrinsic`` taken by the loop may come from different producer calls.
    Values are replaced wholesale and must not be mutated in place after
    they have been handed over.
    """

    def __init__(self):
        self._image = _Slot()
        self._intrinsic = _Slot()
        self._pose = _Slot()
        self._annotated = _Slot()

        # Set by producers, consumed by the loop to avoid busy polling
        self._input_event = threading.Event()

    # Producer side

    def set_image(self, frame: np.ndarray):
        self._image.set(frame)
        self._input_event.set()

    def set_intrinsic(self, matrix: np.ndarray):
        self._intrinsic.set(matrix)
        self._input_event.set()

    # Calibration loop side

    def get_image(self) -> Optional[np.ndarray]:
        return self._image.get()

    def get_intrinsic(self) -> Optional[np.ndarray]:
        return self._intrinsic.get()

    def publish_pose(self, pose):
        self._pose.set(pose)

    def set_annotated(self, image: np.ndarray):
        self._annotated.set(image)

    def wait_for_input(self, timeout: Optional[float]) -> bool:
        """
        Block until a producer writes new input or ``timeout`` expires.

        Returns:
            True if new input was signalled, False on timeout
        """
        signalled = self._input_event.wait(timeout)
        self._input_event.clear()
        return signalled

    def notify(self):
        """Wake a loop blocked in wait_for_input."""
        self._input_event.set()

    # Consumer side

    def get_pose(self):
        """Most recently published PoseEstimate, or None."""
        return self._pose.get()

    def get_transform(self) -> Optional[np.ndarray]:
        """Copy of the most recently published 3x3 rotation matrix, or None."""
        pose = self._pose.get()
        if pose is None:
            return None
        return pose.rotation_matrix.copy()

    def get_annotated(self) -> Optional[np.ndarray]:
        return self._annotated.get()


def is_empty(value: Optional[np.ndarray]) -> bool:
    """True for a missing or zero-sized array."""
    return value is None or np.size(value) == 0
