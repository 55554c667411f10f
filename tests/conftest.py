# Copyright (c) 2026 termctl contributors
# SPDX-License-Identifier: ISC
#
# Shared fixtures and fakes for the termctl pytest suite.

import os
import select
import sys

import pytest

# Ensure termctl is importable from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import termctl  # noqa: E402

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep configuration variables from the outer environment out of the
    tests."""
    monkeypatch.delenv("TERMCTL_ESCDELAY", raising=False)
    monkeypatch.delenv("TERMCTL_REPORT_TIMEOUT", raising=False)
    yield


@pytest.fixture(autouse=True)
def _restore_backend():
    """Give each test a fresh process-wide backend slot."""
    old = termctl.set_backend(None)
    yield
    termctl.set_backend(old)


class Pty:
    """A pseudo-terminal with a VTBackend attached to its slave side.

    Bytes written with feed() arrive as keyboard input. output() returns what
    the backend wrote to the screen.
    """

    def __init__(self, rows=24, cols=80):
        import fcntl
        import struct
        import termios
        import tty

        self.master, self.slave = os.openpty()
        # Raw from the start, so queued input isn't echoed or line-buffered
        tty.setraw(self.slave)
        fcntl.ioctl(
            self.slave, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0)
        )

        self._infile = open(self.slave, "rb", buffering=0, closefd=False)
        self._outfile = open(self.slave, "w", closefd=False)
        self.backend = termctl.VTBackend(
            infile=self._infile, outfile=self._outfile, report_timeout=0.2
        )

    def feed(self, data):
        os.write(self.master, data)

    def output(self):
        data = b""
        while select.select([self.master], [], [], 0.05)[0]:
            try:
                chunk = os.read(self.master, 1024)
            except OSError:
                break
            if not chunk:
                break
            data += chunk
        return data

    def close(self):
        self._infile.close()
        self._outfile.close()
        os.close(self.master)
        os.close(self.slave)


@pytest.fixture
def pty():
    if not hasattr(os, "openpty") or os.name == "nt":
        pytest.skip("pseudo-terminals not available")
    p = Pty()
    yield p
    p.close()


class FakeConsole:
    """In-memory stand-in for _Win32Console.

    The screen buffer is width x height cells, with the visible window at
    'window' (left, top, right, bottom) in buffer coordinates.
    """

    def __init__(self, width=80, height=300, window=(0, 10, 79, 34), attributes=0x07):
        self.width = width
        self.height = height
        self.window = termctl._Window(*window)
        self.cursor = (0, 0)
        self.attributes = attributes
        # ENABLE_PROCESSED_INPUT | ENABLE_LINE_INPUT | ENABLE_ECHO_INPUT |
        # ENABLE_INSERT_MODE | ENABLE_QUICK_EDIT_MODE | ENABLE_EXTENDED_FLAGS
        self.input_mode = 0x00F7
        self.interactive_in = True
        self.interactive_out = True
        self.fail_set_mode = False
        self.events = []
        self.fills = []
        # Input mode in effect at each read_event() call
        self.modes_during_read = []

    def has_input(self):
        return self.interactive_in

    def has_output(self):
        return self.interactive_out

    def get_input_mode(self):
        return self.input_mode

    def set_input_mode(self, mode):
        if self.fail_set_mode:
            return False
        self.input_mode = mode
        return True

    def screen_info(self):
        return termctl._ScreenInfo(
            self.width,
            self.height,
            self.cursor[0],
            self.cursor[1],
            self.attributes,
            self.window,
        )

    def set_cursor(self, x, y):
        self.cursor = (x, y)
        return True

    def set_attributes(self, attributes):
        self.attributes = attributes
        return True

    def fill(self, char, attributes, count):
        self.fills.append((char, attributes, count))
        return True

    def read_event(self):
        self.modes_during_read.append(self.input_mode)
        if not self.events:
            return None
        return self.events.pop(0)


@pytest.fixture
def console():
    return FakeConsole()


@pytest.fixture
def console_backend(console):
    return termctl.ConsoleBackend(console=console)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def key_event(virtual_key, char="\0", control_state=0, key_down=True):
    """Build a console key event record."""
    return termctl._ConsoleEvent(True, key_down, virtual_key, char, control_state)


def other_event():
    """Build a non-key console event record (focus, mouse, resize)."""
    return termctl._ConsoleEvent(False, False, 0, "\0", 0)
