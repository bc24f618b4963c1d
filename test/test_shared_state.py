#!/usr/bin/env python3
"""
Unit tests for the shared per-camera state.
"""

import unittest
import numpy as np
import os
import sys
import threading

# Add package to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from board_extrinsic_calibration.pose_estimation import PoseEstimate
from board_extrinsic_calibration.shared_state import SharedCameraState, is_empty


def make_pose(value):
    return PoseEstimate(
        rotation_matrix=np.full((3, 3), float(value)),
        rvec=np.zeros(3),
        tvec=np.full(3, float(value))
    )


class TestSharedCameraState(unittest.TestCase):

    def setUp(self):
        self.state = SharedCameraState()

    def test_initially_empty(self):
        self.assertIsNone(self.state.get_image())
        self.assertIsNone(self.state.get_intrinsic())
        self.assertIsNone(self.state.get_pose())
        self.assertIsNone(self.state.get_transform())
        self.assertIsNone(self.state.get_annotated())

    def test_fields_are_independent(self):
        image = np.zeros((4, 4, 3), dtype=np.uint8)
        self.state.set_image(image)
        self.assertIs(self.state.get_image(), image)
        self.assertIsNone(self.state.get_intrinsic())

        K = np.eye(3)
        self.state.set_intrinsic(K)
        self.assertIs(self.state.get_intrinsic(), K)
        self.assertIsNone(self.state.get_transform())

    def test_overwrite_replaces_value(self):
        self.state.set_image(np.zeros((2, 2)))
        newer = np.ones((2, 2))
        self.state.set_image(newer)
        self.assertIs(self.state.get_image(), newer)

    def test_transform_is_a_copy(self):
        self.state.publish_pose(make_pose(1))
        transform = self.state.get_transform()
        transform[0, 0] = 42.0
        np.testing.assert_array_equal(self.state.get_transform(), np.ones((3, 3)))

    def test_publish_overwrites_transform(self):
        self.state.publish_pose(make_pose(1))
        self.state.publish_pose(make_pose(2))
        np.testing.assert_array_equal(self.state.get_transform(), np.full((3, 3), 2.0))

    def test_wait_for_input(self):
        self.assertFalse(self.state.wait_for_input(0.01))

        self.state.set_image(np.zeros((2, 2)))
        self.assertTrue(self.state.wait_for_input(0.01))
        # The signal is consumed
        self.assertFalse(self.state.wait_for_input(0.01))

        self.state.set_intrinsic(np.eye(3))
        self.assertTrue(self.state.wait_for_input(0.01))

        self.state.notify()
        self.assertTrue(self.state.wait_for_input(0.01))

    def test_wait_wakes_on_producer_write(self):
        result = {}

        def waiter():
            result['signalled'] = self.state.wait_for_input(5.0)

        thread = threading.Thread(target=waiter)
        thread.start()
        self.state.set_image(np.zeros((2, 2)))
        thread.join(2.0)

        self.assertFalse(thread.is_alive())
        self.assertTrue(result['signalled'])

    def test_concurrent_writes_are_never_torn(self):
        """Readers see one whole value per field, never a mix of writes."""
        errors = []
        stop = threading.Event()

        def image_producer(value):
            frame = np.full((32, 32, 3), value, dtype=np.uint8)
            while not stop.is_set():
                self.state.set_image(frame)

        def pose_producer():
            value = 0
            while not stop.is_set():
                value += 1
                self.state.publish_pose(make_pose(value))

        def reader():
            for _ in range(2000):
                image = self.state.get_image()
                if image is not None and not np.all(image == image.flat[0]):
                    errors.append('torn image')
                transform = self.state.get_transform()
                if transform is not None:
                    if transform.shape != (3, 3) or not np.all(transform == transform[0, 0]):
                        errors.append('torn transform')

        producers = [threading.Thread(target=image_producer, args=(v,)) for v in (10, 20, 30)]
        producers.append(threading.Thread(target=pose_producer))
        readers = [threading.Thread(target=reader) for _ in range(2)]

        for t in producers + readers:
            t.start()
        for t in readers:
            t.join(10.0)
        stop.set()
        for t in producers:
            t.join(2.0)

        self.assertEqual(errors, [])


class TestIsEmpty(unittest.TestCase):

    def test_is_empty(self):
        self.assertTrue(is_empty(None))
        self.assertTrue(is_empty(np.empty((0, 0))))
        self.assertFalse(is_empty(np.eye(3)))


if __name__ == '__main__':
    unittest.main()
