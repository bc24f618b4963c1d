"""
ROS2 node running one board extrinsic calibration per configured camera.
"""

import rclpy
from rclpy.node import Node
from rclpy.qos import QoSProfile, ReliabilityPolicy, HistoryPolicy
from sensor_msgs.msg import Image, CameraInfo
from geometry_msgs.msg import TransformStamped
from cv_bridge import CvBridge
import os
from typing import Dict

from .board_config import load_board_config
from .camera import Camera
from .utils import (
    load_camera_config, load_calibration_settings,
    camera_matrix_from_k, quaternion_from_matrix
)


class CameraCalibrationNode(Node):
    """
    ROS2 node that feeds camera images and intrinsics into per-camera
    calibration loops and publishes the resulting board transforms.
    """

    def __init__(self, **kwargs):
        super().__init__('board_extrinsic_calibration', **kwargs)

        # Declare parameters
        self.declare_parameter('cameras_config', '')
        self.declare_parameter('publish_rate', 10.0)  # Hz
        self.declare_parameter('frame_id', 'aruco_board')

        # Get parameters
        cameras_config_path = self.get_parameter('cameras_config').value
        publish_rate = self.get_parameter('publish_rate').value
        self.frame_id = self.get_parameter('frame_id').value

        if not cameras_config_path:
            self.get_logger().error("cameras_config parameter is required")
            raise ValueError("Missing configuration path")

        self.cameras_config = load_camera_config(cameras_config_path)
        settings = load_calibration_settings(self.cameras_config.get('calibration'))

        # Relative board paths are resolved against the cameras config
        board_path = self.cameras_config.get('board_config', 'aruco_board.yaml')
        if not os.path.isabs(board_path):
            board_path = os.path.join(os.path.dirname(cameras_config_path), board_path)
        board_config = load_board_config(board_path)

        self.bridge = CvBridge()

        self.cameras: Dict[str, Camera] = {}
        self.intrinsics_received: Dict[str, bool] = {}
        self.subscribers: Dict[str, list] = {}
        self.transform_publishers = {}
        self.detection_publishers = {}

        qos = QoSProfile(
            reliability=ReliabilityPolicy.BEST_EFFORT,
            history=HistoryPolicy.KEEP_LAST,
            depth=1
        )

        for cam_name, cam_config in self.cameras_config['cameras'].items():
            self.cameras[cam_name] = Camera(cam_name, board_config, settings)
            self.intrinsics_received[cam_name] = False

            image_topic = cam_config['image_topic']
            info_topic = cam_config['camera_info_topic']
            self.subscribers[cam_name] = [
                self.create_subscription(
                    Image, image_topic,
                    lambda msg, name=cam_name: self.image_callback(msg, name),
                    qos
                ),
                self.create_subscription(
                    CameraInfo, info_topic,
                    lambda msg, name=cam_name: self.camera_info_callback(msg, name),
                    qos
                ),
            ]

            self.transform_publishers[cam_name] = self.create_publisher(
                TransformStamped, f"{cam_name}/board_transform", 10
            )
            if settings.draw_detections:
                self.detection_publishers[cam_name] = self.create_publisher(
                    Image, f"{cam_name}/detections", 1
                )

            self.get_logger().info(
                f"Camera '{cam_name}': images from {image_topic}, intrinsics from {info_topic}"
            )

        self.publish_timer = self.create_timer(1.0 / publish_rate, self.publish_callback)

        self.get_logger().info(
            f"Board extrinsic calibration running for {len(self.cameras)} cameras "
            f"({board_config.num_markers} board markers)"
        )

    def image_callback(self, msg: Image, camera_name: str):
        """Handle incoming image messages."""
        try:
            cv_image = self.bridge.imgmsg_to_cv2(msg, desired_encoding='bgr8')
            self.cameras[camera_name].set_camera_image(cv_image)
        except Exception as e:
            self.get_logger().error(f"Error processing image from {camera_name}: {e}")

    def camera_info_callback(self, msg: CameraInfo, camera_name: str):
        """Push the intrinsic matrix once per camera, later messages are ignored."""
        if self.intrinsics_received[camera_name]:
            return

        camera_matrix = camera_matrix_from_k(msg.k)
        self.cameras[camera_name].set_camera_matrix(camera_matrix)
        self.intrinsics_received[camera_name] = True
        self.get_logger().info(
            f"Intrinsics for {camera_name}: fx={camera_matrix[0, 0]:.1f} "
            f"fy={camera_matrix[1, 1]:.1f} cx={camera_matrix[0, 2]:.1f} cy={camera_matrix[1, 2]:.1f}"
        )

    def publish_callback(self):
        """Publish the latest board transform of every camera."""
        now = self.get_clock().now().to_msg()

        for cam_name, camera in self.cameras.items():
            pose = camera.get_pose()
            if pose is None:
                continue

            msg = TransformStamped()
            msg.header.stamp = now
            msg.header.frame_id = cam_name
            msg.child_frame_id = self.frame_id

            msg.transform.translation.x = float(pose.tvec[0])
            msg.transform.translation.y = float(pose.tvec[1])
            msg.transform.translation.z = float(pose.tvec[2])

            q = quaternion_from_matrix(pose.extrinsic[:3, :3])
            msg.transform.rotation.x = float(q[0])
            msg.transform.rotation.y = float(q[1])
            msg.transform.rotation.z = float(q[2])
            msg.transform.rotation.w = float(q[3])

            self.transform_publishers[cam_name].publish(msg)

            if cam_name in self.detection_publishers:
                annotated = camera.get_annotated_image()
                if annotated is not None:
                    self.detection_publishers[cam_name].publish(
                        self.bridge.cv2_to_imgmsg(annotated, encoding='bgr8')
                    )

    def shutdown(self):
        """Stop all calibration threads."""
        for camera in self.cameras.values():
            camera.close()


def main(args=None):
    rclpy.init(args=args)

    node = None
    try:
        node = CameraCalibrationNode()
        rclpy.spin(node)
    except KeyboardInterrupt:
        pass
    finally:
        if node is not None:
            node.shutdown()
            node.destroy_node()
        if rclpy.ok():
            rclpy.shutdown()


if __name__ == '__main__':
    main()
