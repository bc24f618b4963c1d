#!/usr/bin/env python3
"""
Unit tests for the calibration loop state machine.
"""

import unittest
from unittest import mock
import cv2
import numpy as np
import os
import sys
import threading
import time

# Add package to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from board_extrinsic_calibration.board_config import grid_board_config
from board_extrinsic_calibration.calibration_loop import CalibrationLoop, LoopState
from board_extrinsic_calibration.marker_detector import (
    DetectionResult, MarkerDetector, make_detection
)
from board_extrinsic_calibration.pose_estimation import (
    ZERO_DISTORTION, euler_angles_to_rotation_matrix
)
from board_extrinsic_calibration.shared_state import SharedCameraState
from board_extrinsic_calibration.utils import CalibrationSettings


CAMERA_MATRIX = np.array([
    [600.0, 0.0, 320.0],
    [0.0, 600.0, 240.0],
    [0.0, 0.0, 1.0]
])

TRUE_RVEC = np.array([0.1, -0.2, 0.05])
TRUE_TVEC = np.array([-0.02, 0.01, 0.5])


class ScriptedDetector(MarkerDetector):
    """Detector returning a preset detection instead of looking at the image."""

    def __init__(self, board_config, detection=None, error=None):
        super().__init__(board_config)
        self.detection = detection if detection is not None else DetectionResult()
        self.error = error
        self.calls = 0

    def detect(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.detection


def project_board(board_config, rvec=TRUE_RVEC, tvec=TRUE_TVEC, ids=None):
    """Exact image corners of the board's markers seen from a known pose."""
    corners = []
    marker_ids = []
    for marker_id, obj in zip(board_config.ids, board_config.obj_points):
        if ids is not None and marker_id not in ids:
            continue
        projected, _ = cv2.projectPoints(obj, rvec, tvec, CAMERA_MATRIX, ZERO_DISTORTION)
        corners.append(projected.reshape(4, 2))
        marker_ids.append(marker_id)
    return make_detection(corners, marker_ids)


class TestCalibrationLoopIteration(unittest.TestCase):
    """Test single iterations of the loop."""

    def setUp(self):
        self.board = grid_board_config(2, 2, 0.04, 0.01)
        self.state = SharedCameraState()
        self.detector = ScriptedDetector(self.board, project_board(self.board))
        self.loop = CalibrationLoop(self.state, self.detector, CalibrationSettings(), name='test')
        self.image = np.zeros((480, 640, 3), dtype=np.uint8)

    def feed(self):
        self.state.set_image(self.image)
        self.state.set_intrinsic(CAMERA_MATRIX)

    def test_idle_without_image(self):
        self.state.set_intrinsic(CAMERA_MATRIX)
        self.assertEqual(self.loop.run_once(), LoopState.IDLE)
        self.assertEqual(self.detector.calls, 0)
        self.assertIsNone(self.state.get_transform())

    def test_idle_without_intrinsic(self):
        self.state.set_image(self.image)
        self.assertEqual(self.loop.run_once(), LoopState.IDLE)
        self.assertEqual(self.detector.calls, 0)

    def test_idle_with_empty_arrays(self):
        self.state.set_image(np.empty((0, 0, 3), dtype=np.uint8))
        self.state.set_intrinsic(CAMERA_MATRIX)
        self.assertEqual(self.loop.run_once(), LoopState.IDLE)

    def test_publishes_transform(self):
        self.feed()
        self.assertIsNone(self.state.get_transform())

        self.assertEqual(self.loop.run_once(), LoopState.PUBLISHED)

        transform = self.state.get_transform()
        self.assertEqual(transform.shape, (3, 3))
        self.assertTrue(np.all(np.isfinite(transform)))

        pose = self.state.get_pose()
        self.assertEqual(pose.num_correspondences, 16)

    def test_synthetic_scene_is_self_consistent(self):
        """Published matrix equals the Rz Ry Rx composition of the solver output."""
        self.feed()
        self.loop.run_once()

        pose = self.state.get_pose()
        np.testing.assert_allclose(pose.rvec, TRUE_RVEC, atol=1e-3)
        np.testing.assert_allclose(pose.tvec, TRUE_TVEC, atol=1e-3)
        np.testing.assert_array_almost_equal(
            self.state.get_transform(), euler_angles_to_rotation_matrix(pose.rvec)
        )
        self.assertLess(pose.reprojection_error, 0.01)

    def test_rotation_vector_conversion(self):
        self.loop.settings = CalibrationSettings(rotation_conversion='rotation_vector')
        self.feed()
        self.loop.run_once()

        pose = self.state.get_pose()
        R_cv, _ = cv2.Rodrigues(pose.rvec)
        np.testing.assert_array_almost_equal(self.state.get_transform(), R_cv)

    def test_extrinsic_reprojects_large_rotation(self):
        """The 4x4 extrinsic maps board corners onto the detected corners."""
        rvec = np.array([0.6, -0.5, 0.4])
        self.detector.detection = project_board(self.board, rvec=rvec)
        self.feed()
        self.assertEqual(self.loop.run_once(), LoopState.PUBLISHED)

        pose = self.state.get_pose()
        T = pose.extrinsic
        obj_points = np.vstack(self.board.obj_points).astype(np.float64)
        cam_points = obj_points @ T[:3, :3].T + T[:3, 3]
        projected = cam_points @ CAMERA_MATRIX.T
        projected = projected[:, :2] / projected[:, 2:]

        detected = np.vstack([c.reshape(4, 2) for c in self.detector.detection.marker_corners])
        self.assertLess(np.max(np.linalg.norm(projected - detected, axis=1)), 0.01)

        # get_transform keeps the literal Rz Ry Rx reading
        np.testing.assert_array_almost_equal(
            self.state.get_transform(), euler_angles_to_rotation_matrix(pose.rvec)
        )

    def test_partial_board_is_enough(self):
        self.detector.detection = project_board(self.board, ids=[2])
        self.feed()
        self.assertEqual(self.loop.run_once(), LoopState.PUBLISHED)
        self.assertEqual(self.state.get_pose().num_correspondences, 4)

    def test_no_markers_keeps_previous_transform(self):
        self.feed()
        self.loop.run_once()
        before = self.state.get_transform()
        published = self.state.get_pose()

        self.detector.detection = DetectionResult()
        self.assertEqual(self.loop.run_once(), LoopState.DETECTING)

        np.testing.assert_array_equal(self.state.get_transform(), before)
        self.assertIs(self.state.get_pose(), published)

    def test_unknown_markers_give_no_correspondences(self):
        self.detector.detection = make_detection(
            [np.array([[10, 10], [50, 10], [50, 50], [10, 50]], dtype=np.float32)] * 2,
            [50, 51]
        )
        self.feed()

        self.assertEqual(self.detector.match_image_points(self.detector.detection)[0].shape, (0, 3))
        self.assertEqual(self.loop.run_once(), LoopState.DETECTING)
        self.assertIsNone(self.state.get_transform())

    def test_unknown_markers_are_ignored(self):
        detection = project_board(self.board, ids=[0, 1])
        extra = np.array([[10, 10], [50, 10], [50, 50], [10, 50]], dtype=np.float32)
        self.detector.detection = make_detection(
            detection.marker_corners + [extra], list(detection.marker_ids) + [77]
        )
        self.feed()

        self.assertEqual(self.loop.run_once(), LoopState.PUBLISHED)
        self.assertEqual(self.state.get_pose().num_correspondences, 8)

    def test_solver_failure_keeps_previous_transform(self):
        self.feed()
        self.loop.run_once()
        before = self.state.get_transform()

        with mock.patch('board_extrinsic_calibration.calibration_loop.solve_board_pose',
                        return_value=(False, None, None)):
            self.assertEqual(self.loop.run_once(), LoopState.SOLVING)

        np.testing.assert_array_equal(self.state.get_transform(), before)

    def test_draw_detections(self):
        self.loop.settings = CalibrationSettings(draw_detections=True)
        self.feed()
        self.loop.run_once()

        annotated = self.state.get_annotated()
        self.assertIsNotNone(annotated)
        self.assertEqual(annotated.shape, self.image.shape)
        self.assertGreater(int(annotated.sum()), 0)

    def test_no_annotation_by_default(self):
        self.feed()
        self.loop.run_once()
        self.assertIsNone(self.state.get_annotated())


class TestCalibrationLoopThread(unittest.TestCase):
    """Test the loop running in its own thread."""

    def setUp(self):
        self.board = grid_board_config(2, 2, 0.04, 0.01)
        self.state = SharedCameraState()

    def start(self, detector, settings):
        loop = CalibrationLoop(self.state, detector, settings, name='thread-test')
        thread = threading.Thread(target=loop.run, daemon=True)
        thread.start()
        return loop, thread

    def wait_until(self, predicate, timeout=5.0):
        deadline = time.time() + timeout
        while time.time() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return False

    def test_publishes_and_stops(self):
        detector = ScriptedDetector(self.board, project_board(self.board))
        loop, thread = self.start(detector, CalibrationSettings(input_timeout=0.05))

        self.state.set_intrinsic(CAMERA_MATRIX)
        self.state.set_image(np.zeros((480, 640, 3), dtype=np.uint8))

        self.assertTrue(self.wait_until(lambda: self.state.get_transform() is not None))

        loop.stop()
        thread.join(2.0)
        self.assertFalse(thread.is_alive())
        self.assertTrue(loop.stopped)

    def test_iteration_errors_do_not_stop_the_loop(self):
        detector = ScriptedDetector(self.board, error=RuntimeError("detector crashed"))
        loop, thread = self.start(detector, CalibrationSettings(input_timeout=0.01))

        self.state.set_intrinsic(CAMERA_MATRIX)
        self.state.set_image(np.zeros((480, 640, 3), dtype=np.uint8))

        self.assertTrue(self.wait_until(lambda: detector.calls >= 3))
        self.assertTrue(thread.is_alive())
        self.assertIsNone(self.state.get_transform())

        loop.stop()
        thread.join(2.0)
        self.assertFalse(thread.is_alive())

    def test_stop_wakes_idle_loop(self):
        detector = ScriptedDetector(self.board)
        loop, thread = self.start(detector, CalibrationSettings(input_timeout=30.0))

        start = time.time()
        loop.stop()
        thread.join(5.0)

        self.assertFalse(thread.is_alive())
        self.assertLess(time.time() - start, 5.0)

    def test_busy_poll_setting(self):
        detector = ScriptedDetector(self.board)
        loop, thread = self.start(detector, CalibrationSettings(input_timeout=0.0))

        self.state.set_intrinsic(CAMERA_MATRIX)
        self.state.set_image(np.zeros((48, 64, 3), dtype=np.uint8))

        # Without new input the loop keeps re-running on the last snapshot
        self.assertTrue(self.wait_until(lambda: detector.calls >= 10))

        loop.stop()
        thread.join(2.0)
        self.assertFalse(thread.is_alive())


if __name__ == '__main__':
    unittest.main()
