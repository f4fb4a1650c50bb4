# Author: Omi Shrestha

import asyncio

from arm_config import config
from arm_controller import ArmController
from ble_session import SessionState
from logging_config import configure_logging

HELP = """
Commands:
  - 'j <id|jointN> <angle>' to move one joint (e.g. 'j 2 45', 'j joint3 120')
  - 'pose <a0> <a1> <a2> <a3> <a4>' to move all joints
  - 'send' to resend the current pose
  - 'home' to send the arm home
  - 'status' to view connection state and joint angles
  - 'history' to view status notification history
  - 'refresh' to read the status channel once
  - 'connect' to reconnect after a disconnect
  - 'quit' to exit
"""


def parse_operator_command(line):
    """
    Parse one line of operator input.

    Returns a tuple (action, *args). Raises ValueError on malformed input.
    """
    parts = line.strip().split()
    if not parts:
        raise ValueError("empty command")

    action, args = parts[0].lower(), parts[1:]

    if action in ("j", "joint"):
        if len(args) != 2:
            raise ValueError("usage: j <id|jointN> <angle>")
        target, angle = args
        joint = int(target) if target.isdigit() else target.lower()
        return ("joint", joint, float(angle))

    if action == "pose":
        if len(args) != 5:
            raise ValueError("usage: pose <a0> <a1> <a2> <a3> <a4>")
        return ("pose", [float(a) for a in args])

    if action in ("send", "home", "status", "history", "refresh", "connect", "quit", "help"):
        if args:
            raise ValueError(f"'{action}' takes no arguments")
        return (action,)

    raise ValueError(f"unknown command: {action}")


async def choose_device(devices):
    """Let the operator pick a peripheral when more than one arm is advertising."""
    if len(devices) == 1:
        device = devices[0]
        print(f"Found 1 device: {device.name} - MAC: {device.address}")
        return device

    print(f"\nFound {len(devices)} devices:")
    for idx, device in enumerate(devices, 1):
        print(f"  {idx}. {device.name or 'Unknown'} - MAC: {device.address}")

    while True:
        try:
            choice = await asyncio.to_thread(input, f"\nSelect device (1-{len(devices)}): ")
            choice_idx = int(choice) - 1
            if 0 <= choice_idx < len(devices):
                return devices[choice_idx]
            print("Invalid selection. Try again.")
        except ValueError:
            print("Please enter a number.")
        except (EOFError, KeyboardInterrupt):
            print("\nSelection cancelled.")
            return None


def print_status(controller):
    snap = controller.snapshot()
    print(f"\n[ARM] {snap.state.value}")
    for key, angle in snap.pose.as_dict().items():
        print(f"  {key}: {angle}°")
    if snap.last_error:
        print(f"  Last error: {snap.last_error}")
    print()


def print_history(controller, limit=20):
    print("\n[NOTIFICATION HISTORY]")
    history = controller.get_notification_history(limit=limit)
    if not history:
        print("  No notifications received yet")
    for entry in history:
        marker = "" if entry.accepted else f"  (rejected: {entry.error})"
        print(f"  [{entry.timestamp}] {entry.message}{marker}")
    print()


async def execute(controller, command):
    """Run one parsed operator command. Returns False when the loop should stop."""
    action, args = command[0], command[1:]

    if action == "quit":
        return False
    if action == "help":
        print(HELP)
    elif action == "status":
        print_status(controller)
    elif action == "history":
        print_history(controller)
    elif action == "connect":
        if await controller.connect():
            print("Connected!")
        else:
            print(f"Connection failed: {controller.last_error}")
    elif action == "joint":
        joint, angle = args
        if isinstance(joint, int):
            sent = await controller.set_joint(joint, angle)
        else:
            sent = await controller.set_joint_by_key(joint, angle)
        print(f"[SENT] {controller.current_pose.joints}" if sent else "[NOT SENT] arm not connected")
    elif action == "pose":
        sent = await controller.set_pose(args[0])
        print(f"[SENT] {controller.current_pose.joints}" if sent else "[NOT SENT] arm not connected")
    elif action == "send":
        sent = await controller.send_full_pose()
        print(f"[SENT] {controller.current_pose.joints}" if sent else "[NOT SENT] arm not connected")
    elif action == "home":
        print("[SENT] home" if await controller.go_home() else "[NOT SENT] arm not connected")
    elif action == "refresh":
        if await controller.refresh():
            print_status(controller)
        else:
            print("No status available")
    return True


async def main():
    """Main application entry point."""
    configure_logging(config.LOG_LEVEL)
    controller = ArmController.from_config(config, chooser=choose_device)

    previous = {"state": controller.connection_state}

    def on_change(snap):
        if previous["state"] is SessionState.CONNECTED and not snap.connected:
            print("\n[BLE] Arm disconnected. Type 'connect' to reconnect.")
        previous["state"] = snap.state

    controller.add_listener(on_change)

    print("Connecting to SARM...")
    if await controller.connect():
        print("Connected!")
    else:
        print(f"Connection failed: {controller.last_error}")
        print("Type 'connect' to retry.")

    print(HELP)

    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "Enter command: ")
            except (EOFError, KeyboardInterrupt):
                print("\nExiting...")
                break

            if not line.strip():
                continue
            try:
                command = parse_operator_command(line)
            except ValueError as e:
                print(f"Invalid command: {e}")
                continue

            try:
                if not await execute(controller, command):
                    break
            except ValueError as e:
                print(f"Invalid command: {e}")
    finally:
        await controller.disconnect()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
