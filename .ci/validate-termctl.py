#!/usr/bin/env python3
"""Validate termctl on all platforms.

Exercises the pure color and key decoders, the Windows console primitives
(GetStdHandle/GetConsoleMode/GetConsoleScreenBufferInfo) through
_Win32Console, and, when a real terminal is attached, the full backend
lifecycle: size query, cursor moves, colors and raw mode entry/exit.

Run from the project root: python .ci/validate-termctl.py
"""

import os
import sys

# Ensure the project root (CWD) is on the import path, since Python
# adds the script's directory (.ci/) rather than CWD by default.
sys.path.insert(0, os.getcwd())

_IS_WINDOWS = os.name == "nt"


def check_termctl_units():
    """Color mapping and key decoding -- no terminal required."""
    from termctl import (
        Key,
        KeyModifier,
        KeyPress,
        decode_console_key,
        decode_key,
        rgb_to_console,
        xterm_to_console,
    )

    assert xterm_to_console(1) == 0x4, "xterm red"
    assert xterm_to_console(12) == 0x9, "xterm bright blue"
    assert xterm_to_console(16) is None, "extended index unsupported"
    assert rgb_to_console(255, 0, 0) == 0xC, "rgb bright red"
    assert rgb_to_console(10, 10, 10) == 0, "rgb near black"

    assert decode_key(b"\x1b[A") == KeyPress(Key.UP), "CSI up"
    assert decode_key(b"\x1b") == KeyPress(Key.ESCAPE), "bare escape"
    assert decode_key(b"\x03") == KeyPress(
        Key.CHAR, "c", KeyModifier.CONTROL
    ), "ctrl-c"
    assert decode_console_key(0x70, "\0", 0) == KeyPress(Key.F1), "console F1"

    # Key constants exist and are distinct
    for attr in ("UP", "DOWN", "LEFT", "RIGHT", "HOME", "END", "F1", "F12"):
        assert getattr(Key, attr) in Key.ALL, "Key." + attr
    assert len(set(Key.ALL)) == len(Key.ALL), "Key values distinct"

    print("termctl unit checks passed")


def _windows_has_console():
    """Probe whether real Windows console handles are available.

    Returns True if GetStdHandle/GetConsoleMode succeed on stdout,
    meaning we have a native console (cmd/powershell) rather than a
    mintty/MSYS2 PTY that lacks Win32 console handles.
    """
    if not _IS_WINDOWS:
        return False
    try:
        from termctl import _Win32Console

        return _Win32Console().has_output()
    except (OSError, AttributeError):
        return False


def check_windows_console():
    """Validate _Win32Console against the real console.

    Reads and restores the input mode, and reads the screen buffer info,
    without changing terminal state permanently. Only runs on Windows with a
    real console.
    """
    if not _IS_WINDOWS:
        print("Windows console checks skipped (not Windows)")
        return

    if not _windows_has_console():
        print("Windows console checks skipped (no native console handle)")
        return

    from termctl import _Win32Console

    console = _Win32Console()

    info = console.screen_info()
    assert info is not None, "GetConsoleScreenBufferInfo failed"
    assert info.width > 0 and info.height > 0, "buffer size"
    assert info.window.right >= info.window.left, "window width"
    assert info.window.bottom >= info.window.top, "window height"

    if console.has_input():
        mode = console.get_input_mode()
        assert mode is not None, "GetConsoleMode(stdin) failed"
        assert console.set_input_mode(mode & ~0x0007), "SetConsoleMode(raw) failed"
        assert console.set_input_mode(mode), "SetConsoleMode(restore) failed"
    else:
        print("  stdin is not a console, input mode checks skipped")

    print("Windows console checks passed")


def check_terminal_lifecycle():
    """Full backend lifecycle on the attached terminal.

    On Unix, requires a real TTY on stdin/stdout.
    On Windows, requires native console handles (cmd/powershell, not
    MSYS2/mintty).
    """
    import termctl

    if _IS_WINDOWS:
        can_init = _windows_has_console()
    else:
        can_init = termctl.is_interactive(sys.stdin) and termctl.is_interactive(
            sys.stdout
        )

    if not can_init:
        reason = "no native console" if _IS_WINDOWS else "no TTY"
        print("Terminal lifecycle skipped ({})".format(reason))
        return

    def session(term):
        size = term.get_terminal_size()
        assert size.rows > 0 and size.cols > 0, "terminal size"

        term.save_cursor_position()
        term.set_cursor_position(1, 1)
        term.cursor_forward(2)
        term.set_foreground_color_256(2)
        term.set_background_color_rgb(0, 0, 0)
        term.reset_colors()
        term.restore_cursor_position()

        with term.raw_mode() as raw:
            assert raw.active, "raw mode"

    termctl.run(session)
    print("Terminal lifecycle passed")


if __name__ == "__main__":
    check_termctl_units()
    check_windows_console()
    check_terminal_lifecycle()
    print("All checks passed")
