from launch import LaunchDescription
from launch_ros.actions import Node


def generate_launch_description() -> LaunchDescription:
    return LaunchDescription(
        [
            Node(
                package="tilt_drive_server",
                executable="tilt_drive_node",
                name="tilt_drive",
                output="screen",
                parameters=[
                    {
                        "remote_host": "10.38.40.204",
                        "remote_port": 9003,
                        "tx_hz": 10.0,
                        "mix_law": "scaled",
                        "imu_topic": "/imu/data",
                        "sample_timeout_s": 0.5,
                        "ws_enabled": True,
                        "ws_host": "0.0.0.0",
                        "ws_port": 8766,
                    }
                ],
            )
        ]
    )
