"""Tests for main.py: operator command parsing and dispatch."""

from types import SimpleNamespace

import pytest

from main import choose_device, execute, parse_operator_command


class TestParseOperatorCommand:
    @pytest.mark.parametrize(
        "line,expected",
        [
            ("j 2 45", ("joint", 2, 45.0)),
            ("joint joint3 120", ("joint", "joint3", 120.0)),
            ("J Joint1 10.5", ("joint", "joint1", 10.5)),
            ("pose 1 2 3 4 5", ("pose", [1.0, 2.0, 3.0, 4.0, 5.0])),
            ("home", ("home",)),
            ("  STATUS  ", ("status",)),
            ("quit", ("quit",)),
        ],
    )
    def test_valid(self, line, expected):
        assert parse_operator_command(line) == expected

    @pytest.mark.parametrize(
        "line",
        ["", "j 2", "j 2 abc", "pose 1 2 3", "home now", "dance", "pose 1 2 3 4 x"],
    )
    def test_invalid(self, line):
        with pytest.raises(ValueError):
            parse_operator_command(line)


class TestExecute:
    @pytest.mark.asyncio
    async def test_quit_stops_loop(self, controller):
        assert await execute(controller, ("quit",)) is False

    @pytest.mark.asyncio
    async def test_joint_and_pose(self, controller, transport, capsys):
        await execute(controller, ("connect",))
        await execute(controller, ("joint", 2, 45.0))
        await execute(controller, ("joint", "joint5", 0.0))
        await execute(controller, ("pose", [1, 2, 3, 4, 5]))
        await execute(controller, ("home",))

        assert transport.writes == [
            b'{"cmd":"set_joint","jointId":2,"angle":45}',
            b'{"cmd":"set_joint","jointId":4,"angle":0}',
            b'{"cmd":"set_pose","joints":[1,2,3,4,5]}',
            b'{"cmd":"home"}',
        ]
        assert "Connected!" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_not_connected_message(self, controller, capsys):
        assert await execute(controller, ("home",)) is True
        assert "[NOT SENT]" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_status_and_history(self, controller, transport, capsys):
        await execute(controller, ("connect",))
        transport.notify(b'{"joints":[10,20,30,40,50]}')

        await execute(controller, ("status",))
        await execute(controller, ("history",))

        out = capsys.readouterr().out
        assert "joint1: 10°" in out
        assert "[10, 20, 30, 40, 50]" in out

    @pytest.mark.asyncio
    async def test_connect_failure_message(self, controller, transport, capsys):
        transport.fail_discovery = True
        await execute(controller, ("connect",))
        assert "Connection failed: discovery failed" in capsys.readouterr().out


class TestChooseDevice:
    @pytest.mark.asyncio
    async def test_single_device_auto_selected(self, capsys):
        device = SimpleNamespace(name="SARM", address="AA:BB")
        assert await choose_device([device]) is device

    @pytest.mark.asyncio
    async def test_operator_picks(self, monkeypatch):
        devices = [
            SimpleNamespace(name="SARM-1", address="AA:01"),
            SimpleNamespace(name="SARM-2", address="AA:02"),
        ]
        answers = iter(["x", "7", "2"])
        monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))
        assert await choose_device(devices) is devices[1]

    @pytest.mark.asyncio
    async def test_operator_cancels(self, monkeypatch):
        devices = [SimpleNamespace(name=None, address="AA:01")] * 2

        def cancel(prompt=""):
            raise EOFError

        monkeypatch.setattr("builtins.input", cancel)
        assert await choose_device(devices) is None
