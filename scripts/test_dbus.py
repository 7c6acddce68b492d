#!/usr/bin/env python3
"""Live checks against a real session bus. Skipped when none is reachable."""

import io
import os
import subprocess
import sys

import dbus
import dbus.exceptions
import dbus.mainloop.glib
import pytest
from gi.repository import GLib

from dbus_signal import SignalTestClient, TEST_NAME

SCRIPT = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'dbus_signal.py')
WATCHDOG_MS = 10000


@pytest.fixture
def session_bus():
    try:
        bus = dbus.SessionBus(
            mainloop=dbus.mainloop.glib.DBusGMainLoop(), private=True)
    except dbus.exceptions.DBusException as e:
        pytest.skip(f"No session bus: {e.get_dbus_message()}")
    yield bus
    bus.close()


def test_claim_release_and_name_lost(session_bus):
    """Should see NameLost for our own name before the watchdog fires"""
    loop = GLib.MainLoop()
    expired = []

    def watchdog():
        expired.append(True)
        loop.quit()
        return GLib.SOURCE_REMOVE

    GLib.timeout_add(WATCHDOG_MS, watchdog)
    stream = io.StringIO()
    client = SignalTestClient(session_bus, loop, out=stream, err=stream)

    assert client.run() == 0
    assert not expired

    output = stream.getvalue()
    assert output.index(f"We now own the name {TEST_NAME}!") \
        < output.index("was released successfully") \
        < output.index("!!! We lost our Name !!!")
    assert not session_bus.name_has_owner(TEST_NAME)


def test_unreachable_bus_exits_with_status_one():
    env = dict(os.environ,
               DBUS_SESSION_BUS_ADDRESS='unix:path=/nonexistent/dbus-signal-test')
    result = subprocess.run(
        [sys.executable, SCRIPT],
        env=env,
        capture_output=True,
        text=True,
        timeout=30
    )

    assert result.returncode == 1
    assert "Failed to connect to Session bus" in result.stderr
    assert "We now own the name" not in result.stderr
