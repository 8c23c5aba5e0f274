from __future__ import annotations

import asyncio
import json
import threading
import time
from dataclasses import asdict
from typing import Any, Dict, Optional

import rclpy
from rclpy.node import Node
from sensor_msgs.msg import Imu
from std_msgs.msg import Bool, String

from .control_logic import (
    parse_ws_request,
    request_refreshes_input,
    sample_is_fresh,
    tilt_applies,
    tilt_from_accel,
)
from .udp_drive_comms.transport import DriveClient


class NodeStatus:
    def __init__(self, node: Node) -> None:
        self._node = node
        self.last: Optional[str] = None

    def report(self, message: str) -> None:
        self.last = message
        self._node.get_logger().warn(message)


class TiltDriveNode(Node):
    def __init__(self) -> None:
        super().__init__("tilt_drive")

        self.declare_parameter("remote_host", "10.38.40.204")
        self.declare_parameter("remote_port", 9003)
        self.declare_parameter("local_port", -1)
        self.declare_parameter("tx_hz", 10.0)
        self.declare_parameter("mix_law", "scaled")
        self.declare_parameter("imu_topic", "/imu/data")
        self.declare_parameter("enable_topic", "/tilt_drive/enable")
        self.declare_parameter("gravity_mps2", 9.80665)
        self.declare_parameter("swap_axes", False)
        self.declare_parameter("invert_x", False)
        self.declare_parameter("invert_y", False)
        self.declare_parameter("sample_timeout_s", 0.5)
        self.declare_parameter("status_pub_hz", 5.0)
        self.declare_parameter("autostart", False)
        self.declare_parameter("ws_enabled", True)
        self.declare_parameter("ws_host", "0.0.0.0")
        self.declare_parameter("ws_port", 8766)

        self._remote_host = str(self.get_parameter("remote_host").value)
        self._remote_port = int(self.get_parameter("remote_port").value)
        local_port = int(self.get_parameter("local_port").value)
        self._local_port = None if local_port < 0 else local_port
        self._tx_hz = float(self.get_parameter("tx_hz").value)
        self._mix_law = str(self.get_parameter("mix_law").value).strip().lower()
        self._imu_topic = str(self.get_parameter("imu_topic").value)
        self._enable_topic = str(self.get_parameter("enable_topic").value)
        self._gravity_mps2 = float(self.get_parameter("gravity_mps2").value)
        self._swap_axes = bool(self.get_parameter("swap_axes").value)
        self._invert_x = bool(self.get_parameter("invert_x").value)
        self._invert_y = bool(self.get_parameter("invert_y").value)
        self._sample_timeout_s = float(self.get_parameter("sample_timeout_s").value)
        self._status_pub_hz = max(1.0, float(self.get_parameter("status_pub_hz").value))
        self._autostart = bool(self.get_parameter("autostart").value)
        self._ws_enabled = bool(self.get_parameter("ws_enabled").value)
        self._ws_host = str(self.get_parameter("ws_host").value)
        self._ws_port = int(self.get_parameter("ws_port").value)

        self._state_lock = threading.Lock()
        self._sample_stamp_s = 0.0
        self._motor_stamp_s = float("-inf")
        self._stale_reported = False

        self._status = NodeStatus(self)
        try:
            self._client = DriveClient(
                remote_host=self._remote_host,
                remote_port=self._remote_port,
                local_port=self._local_port,
                tx_hz=self._tx_hz,
                mix_law=self._mix_law,
                status=self._status,
            )
        except ValueError as exc:
            self.get_logger().warn(f"{exc}, falling back to defaults")
            self._client = DriveClient(
                remote_host=self._remote_host,
                remote_port=self._remote_port,
                local_port=self._local_port,
                status=self._status,
            )
        self._client.open()

        self.create_subscription(Imu, self._imu_topic, self._on_imu, 10)
        self.create_subscription(Bool, self._enable_topic, self._on_enable, 10)
        self._status_pub = self.create_publisher(String, "/tilt_drive/status", 10)

        self.create_timer(1.0 / self._status_pub_hz, self._status_tick)
        self.create_timer(max(0.05, self._sample_timeout_s / 2.0), self._watchdog_tick)

        self._ws_loop: Optional[asyncio.AbstractEventLoop] = None
        self._ws_thread: Optional[threading.Thread] = None
        self._ws_server = None
        if self._ws_enabled:
            self._start_ws_server()

        if self._autostart:
            self._client.start()

        self.get_logger().info(
            "tilt_drive ready "
            f"(dst={self._remote_host}:{self._remote_port}, law={self._client.mix_law}, "
            f"tx_hz={self._client.tx_hz:g}, ws={self._ws_enabled})"
        )

    def _on_imu(self, msg: Imu) -> None:
        sample = tilt_from_accel(
            msg.linear_acceleration.x,
            msg.linear_acceleration.y,
            gravity_mps2=self._gravity_mps2,
            swap_axes=self._swap_axes,
            invert_x=self._invert_x,
            invert_y=self._invert_y,
        )
        now = time.monotonic()
        with self._state_lock:
            apply = tilt_applies(now, self._motor_stamp_s, self._sample_timeout_s)
            self._sample_stamp_s = now
            self._stale_reported = False
        if apply:
            self._client.on_sample(sample.x, sample.y)

    def _on_enable(self, msg: Bool) -> None:
        if msg.data:
            with self._state_lock:
                self._stale_reported = False
            self._client.start()
        else:
            self._client.stop()

    def _watchdog_tick(self) -> None:
        if not self._client.is_running:
            return
        with self._state_lock:
            fresh = sample_is_fresh(time.monotonic(), self._sample_stamp_s, self._sample_timeout_s)
            if fresh or self._stale_reported:
                return
            self._stale_reported = True
        self.get_logger().warn("tilt samples stale, stopping drive")
        self._client.stop()

    def _status_tick(self) -> None:
        payload = {
            "command": self._client.get_command_state(),
            "session_open": self._client.session.is_open,
            "session_stats": asdict(self._client.session.stats),
            "stats": asdict(self._client.get_stats()),
            "last_status": self._status.last,
            "timestamp": time.time(),
        }
        msg = String()
        msg.data = json.dumps(payload, ensure_ascii=True)
        self._status_pub.publish(msg)

    def _start_ws_server(self) -> None:
        self._ws_loop = asyncio.new_event_loop()
        self._ws_thread = threading.Thread(target=self._ws_thread_main, daemon=True, name="tilt-drive-ws")
        self._ws_thread.start()

    def _ws_thread_main(self) -> None:
        assert self._ws_loop is not None
        asyncio.set_event_loop(self._ws_loop)
        self._ws_loop.run_until_complete(self._ws_start())
        self._ws_loop.run_forever()

    async def _ws_start(self) -> None:
        try:
            import websockets
        except ImportError as exc:
            self.get_logger().error(f"websockets not installed: {exc}")
            return

        self._ws_server = await websockets.serve(self._ws_handler, self._ws_host, self._ws_port)
        self.get_logger().info(f"WebSocket server listening on ws://{self._ws_host}:{self._ws_port}")

    async def _ws_handler(self, websocket) -> None:
        await websocket.send(json.dumps({"ok": True, "message": "tilt_drive ready"}, ensure_ascii=True))
        async for raw in websocket:
            response = self._handle_ws_raw(raw)
            await websocket.send(json.dumps(response, ensure_ascii=True))

    def _handle_ws_raw(self, raw: str) -> Dict[str, Any]:
        try:
            request = parse_ws_request(raw)
        except ValueError as exc:
            return {"ok": False, "error": str(exc)}

        now = time.monotonic()
        if request.tilt is not None:
            self._client.on_sample(*request.tilt)
        if request.motor is not None:
            self._client.set_motor(*request.motor)
            with self._state_lock:
                self._motor_stamp_s = now
        if request_refreshes_input(request):
            with self._state_lock:
                self._sample_stamp_s = now
                self._stale_reported = False
        if request.running is True:
            self._client.start()
        elif request.running is False:
            self._client.stop()

        return {"ok": True, "state": self._client.get_command_state()}

    def destroy_node(self) -> bool:
        if self._ws_loop is not None:
            if self._ws_server is not None:
                async def _close_ws():
                    self._ws_server.close()
                    await self._ws_server.wait_closed()

                fut = asyncio.run_coroutine_threadsafe(_close_ws(), self._ws_loop)
                try:
                    fut.result(timeout=1.0)
                except Exception as exc:
                    self.get_logger().warn(f"WebSocket close failed: {exc}")
            self._ws_loop.call_soon_threadsafe(self._ws_loop.stop)
        if self._ws_thread is not None:
            self._ws_thread.join(timeout=1.0)

        self._client.close()
        return super().destroy_node()


def main(args=None) -> None:
    rclpy.init(args=args)
    node = TiltDriveNode()
    try:
        rclpy.spin(node)
    except KeyboardInterrupt:
        pass
    finally:
        node.destroy_node()
        rclpy.shutdown()
