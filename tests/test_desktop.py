from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest

from autoping.notifications.desktop import DesktopNotifier


pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script as notify-send")


def _install_notify_send(bin_dir: Path, body: str) -> None:
    script = bin_dir / "notify-send"
    script.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


@pytest.mark.asyncio
async def test_disabled_notifier_does_nothing(tmp_path: Path, monkeypatch) -> None:
    marker = tmp_path / "called"
    _install_notify_send(tmp_path, f"touch {marker}")
    monkeypatch.setenv("PATH", str(tmp_path))
    assert await DesktopNotifier(enabled=False).notify("t", "m") is False
    assert not marker.exists()


@pytest.mark.asyncio
async def test_missing_notify_send(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("PATH", str(tmp_path))
    assert await DesktopNotifier().notify("AutoPing - Site Down Alert", "https://example.org") is False


@pytest.mark.asyncio
async def test_notification_is_sent(tmp_path: Path, monkeypatch) -> None:
    out = tmp_path / "args.txt"
    _install_notify_send(tmp_path, f'printf "%s\\n" "$@" > {out}')
    monkeypatch.setenv("PATH", f"{tmp_path}{os.pathsep}/usr/bin{os.pathsep}/bin")

    assert await DesktopNotifier().notify("AutoPing - Site Down Alert", "https://example.org is down") is True
    assert out.read_text(encoding="utf-8").splitlines() == [
        "--app-name=AutoPing",
        "AutoPing - Site Down Alert",
        "https://example.org is down",
    ]


@pytest.mark.asyncio
async def test_failing_notify_send(tmp_path: Path, monkeypatch) -> None:
    _install_notify_send(tmp_path, "echo 'no display' >&2\nexit 1")
    monkeypatch.setenv("PATH", f"{tmp_path}{os.pathsep}/usr/bin{os.pathsep}/bin")
    assert await DesktopNotifier().notify("t", "m") is False


@pytest.mark.asyncio
async def test_hanging_notify_send_times_out(tmp_path: Path, monkeypatch) -> None:
    _install_notify_send(tmp_path, "exec sleep 10")
    monkeypatch.setenv("PATH", f"{tmp_path}{os.pathsep}/usr/bin{os.pathsep}/bin")
    assert await DesktopNotifier(timeout_seconds=0.2).notify("t", "m") is False
