from flask import Flask, request, jsonify
import asyncio
import logging
import time
from threading import Thread, Lock
from typing import Optional

from arm_config import config
from arm_controller import ArmController
from joint_state import joint_id_of
from logging_config import configure_logging

logger = logging.getLogger(__name__)


class EventLoopThread:
    """Runs an asyncio event loop in a daemon thread for the sync Flask handlers."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[Thread] = None
        self._lock = Lock()

    def start(self):
        with self._lock:
            if self._thread is not None:
                return
            self.loop = asyncio.new_event_loop()
            self._thread = Thread(target=self._run, name="ble-loop", daemon=True)
            self._thread.start()

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def run(self, coro):
        """Run an async coroutine from sync context and wait for its result"""
        self.start()
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout=self.timeout)

    def stop(self):
        with self._lock:
            if self._thread is None:
                return
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._thread.join(timeout=5)
            self.loop.close()
            self._thread = None
            self.loop = None


def _parse_joint_id(data):
    if "jointId" in data:
        joint_id = data["jointId"]
        if isinstance(joint_id, bool) or not isinstance(joint_id, int):
            raise ValueError("jointId must be an integer")
        return joint_id
    if "joint" in data:
        return joint_id_of(str(data["joint"]))
    raise ValueError("jointId or joint required")


def _parse_angle(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("angle must be a number")
    return value


def create_app(controller: ArmController, runner: Optional[EventLoopThread] = None) -> Flask:
    app = Flask(__name__)
    runner = runner or EventLoopThread(timeout=config.CONNECT_TIMEOUT + 10)
    app.extensions["arm_controller"] = controller
    app.extensions["arm_runner"] = runner

    def outcome(ok, action, **extra):
        body = {"status": "success" if ok else "failed", "action": action, "timestamp": time.time()}
        body.update(extra)
        body["arm"] = controller.snapshot().to_dict()
        return jsonify(body), (200 if ok else 409)

    @app.errorhandler(ValueError)
    def bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.route('/')
    def home():
        return jsonify({
            "status": "SARM BLE arm API is running",
            "endpoints": {
                "state": ["/arm/status", "/arm/history"],
                "session": ["/arm/connect", "/arm/disconnect"],
                "motion": ["/arm/joint", "/arm/pose", "/arm/home"],
            },
        })

    @app.route('/arm/status', methods=['GET'])
    def arm_status():
        return jsonify(controller.snapshot().to_dict())

    @app.route('/arm/connect', methods=['POST'])
    def arm_connect():
        ok = runner.run(controller.connect())
        return outcome(ok, "connect")

    @app.route('/arm/disconnect', methods=['POST'])
    def arm_disconnect():
        runner.run(controller.disconnect())
        return outcome(True, "disconnect")

    @app.route('/arm/joint', methods=['POST'])
    def arm_joint():
        data = request.get_json(silent=True) or {}
        joint_id = _parse_joint_id(data)
        if "angle" not in data:
            raise ValueError("angle required")
        angle = _parse_angle(data["angle"])
        ok = runner.run(controller.set_joint(joint_id, angle))
        return outcome(ok, "set_joint", jointId=joint_id)

    @app.route('/arm/pose', methods=['POST'])
    def arm_pose():
        data = request.get_json(silent=True) or {}
        joints = data.get("joints")
        if joints is None:
            ok = runner.run(controller.send_full_pose())
        else:
            if not isinstance(joints, list):
                raise ValueError("joints must be a list")
            ok = runner.run(controller.set_pose([_parse_angle(a) for a in joints]))
        return outcome(ok, "set_pose")

    @app.route('/arm/home', methods=['POST'])
    def arm_home():
        ok = runner.run(controller.go_home())
        return outcome(ok, "home")

    @app.route('/arm/history', methods=['GET'])
    def arm_history():
        limit = request.args.get("limit", default=10, type=int)
        history = controller.get_notification_history(limit)
        return jsonify({
            "count": len(history),
            "history": [
                {
                    "timestamp": entry.timestamp,
                    "message": entry.message,
                    "accepted": entry.accepted,
                    "error": entry.error,
                }
                for entry in history
            ],
        })

    return app


def main():
    configure_logging(config.LOG_LEVEL)
    controller = ArmController.from_config(config)
    app = create_app(controller)
    logger.info("Serving arm API on %s:%d", config.HTTP_HOST, config.HTTP_PORT)
    app.run(host=config.HTTP_HOST, port=config.HTTP_PORT, debug=False)


if __name__ == '__main__':
    main()
