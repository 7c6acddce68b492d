#!/usr/bin/env python3
"""Claim a D-Bus name, release it again and wait for the NameLost signal.

The program subscribes to 'NameLost' from the bus daemon, requests
org.DBusTest.SignalTest, and releases it one second after entering the
GLib main loop. The loop quits once the daemon tells us the name is gone.
"""

import sys
from dataclasses import dataclass

import dbus
import dbus.bus
import dbus.exceptions
import dbus.mainloop.glib
from gi.repository import GLib

BUS_DAEMON_NAME = 'org.freedesktop.DBus'
BUS_DAEMON_PATH = '/org/freedesktop/DBus'
BUS_DAEMON_IFACE = 'org.freedesktop.DBus'

TEST_NAME = 'org.DBusTest.SignalTest'
RELEASE_DELAY_MS = 1000


@dataclass(frozen=True)
class Settings:
    name: str = TEST_NAME
    release_delay_ms: int = RELEASE_DELAY_MS
    name_flags: int = dbus.bus.NAME_FLAG_ALLOW_REPLACEMENT


class NameAcquisitionError(Exception):
    """The bus refused to process our name request."""


def connect_session_bus():
    """Return a session bus connection dispatched by the GLib main loop."""
    dbus.mainloop.glib.DBusGMainLoop(set_as_default=True)
    return dbus.SessionBus()


class SignalTestClient:
    """Owns the connection and drives one claim/release/NameLost cycle.

    Callbacks are bound methods, so the timer and the signal handler see
    the connection through the client instead of a global.
    """

    def __init__(self, bus, loop, timeout_add=None,
                 settings=None, out=None, err=None):
        self.bus = bus
        self.loop = loop
        self.timeout_add = timeout_add
        self.settings = settings or Settings()
        self._out = out
        self._err = err
        self._match = None

    @property
    def out(self):
        return self._out or sys.stdout

    @property
    def err(self):
        return self._err or sys.stderr

    def _warn(self, message):
        print(message, file=self.err)

    def request_name(self):
        name = self.settings.name
        try:
            retval = self.bus.request_name(name, self.settings.name_flags)
        except dbus.exceptions.DBusException as e:
            self._warn(f"Couldn't acquire name {name} for our connection: "
                       f"{e.get_dbus_message()}")
            raise NameAcquisitionError(name) from e

        if retval == dbus.bus.REQUEST_NAME_REPLY_PRIMARY_OWNER:
            self._warn(f"request_name(): We now own the name {name}!")
        elif retval == dbus.bus.REQUEST_NAME_REPLY_IN_QUEUE:
            self._warn("request_name(): We are standing in queue for our name!")
        elif retval == dbus.bus.REQUEST_NAME_REPLY_EXISTS:
            self._warn("request_name(): :-( The name we asked for already exists!")
        elif retval == dbus.bus.REQUEST_NAME_REPLY_ALREADY_OWNER:
            self._warn("request_name(): Eh? We already own this name!")
        else:
            self._warn(f"request_name(): Unknown result = {retval}")
        return retval

    def subscribe_to_name_lost(self):
        proxy = self.bus.get_object(BUS_DAEMON_NAME, BUS_DAEMON_PATH,
                                    introspect=False)
        self._match = proxy.connect_to_signal(
            'NameLost', self.on_name_lost, dbus_interface=BUS_DAEMON_IFACE)
        return self._match

    def schedule_release(self):
        timeout_add = self.timeout_add or GLib.timeout_add
        return timeout_add(self.settings.release_delay_ms, self.release_name)

    def release_name(self):
        """Timer callback. Always returns SOURCE_REMOVE so it runs once."""
        name = self.settings.name
        try:
            retval = self.bus.release_name(name)
        except dbus.exceptions.DBusException as e:
            message = e.get_dbus_message()
            if not message:
                self._warn("release_name(): Something fishy. The release "
                           "failed but no error was reported!")
            else:
                self._warn(f"Could not release name {name}: {message}")
                self._warn("This program may not terminate...")
            return GLib.SOURCE_REMOVE

        if retval == dbus.bus.RELEASE_NAME_REPLY_RELEASED:
            self._warn(f"release_name(): Name {name} was released successfully")
        elif retval == dbus.bus.RELEASE_NAME_REPLY_NOT_OWNER:
            self._warn(f"release_name(): Name {name} is not owned by this app!")
        elif retval == dbus.bus.RELEASE_NAME_REPLY_NON_EXISTENT:
            self._warn(f"release_name(): Name {name} does not exist!")
        else:
            self._warn(f"release_name(): Unknown exit status {retval}")
        return GLib.SOURCE_REMOVE

    def on_name_lost(self, name=None):
        print("!!! We lost our Name !!!", file=self.out)
        self.loop.quit()

    def run(self):
        self.request_name()
        self.subscribe_to_name_lost()
        self.schedule_release()
        try:
            self.loop.run()
        finally:
            self.shutdown()
        return 0

    def shutdown(self):
        # The connection itself is left to process exit.
        if self._match is not None:
            self._match.remove()
            self._match = None


def main():
    try:
        bus = connect_session_bus()
    except dbus.exceptions.DBusException as e:
        print(f"Failed to connect to Session bus: {e.get_dbus_message()}",
              file=sys.stderr)
        return 1

    client = SignalTestClient(bus, GLib.MainLoop())
    try:
        return client.run()
    except NameAcquisitionError:
        return 1
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130


if __name__ == '__main__':
    sys.exit(main())
