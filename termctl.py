#!/usr/bin/env python3

# Copyright (c) 2026 termctl contributors
# SPDX-License-Identifier: ISC

"""
termctl -- pure-Python cross-platform terminal control

A small, flat API for programs that want to drive the terminal directly
without a screen abstraction: query the terminal size, move/save/restore the
cursor, set 256-color or 24-bit RGB colors, clear the screen, and read
normalized key presses from raw keyboard input.

Zero external dependencies. Uses only Python stdlib: termios, select, os, sys
and re on Unix; ctypes on Windows.

Platform support:
  - Unix (Linux, macOS): VT100/xterm escape sequences on the output stream,
    termios raw mode on the input stream
  - Windows: the Win32 console API (ReadConsoleInputW, text attributes).
    Colors are approximated to the console's 16-color palette.

Every operation is a no-op (or returns a (0, 0)/Key.UNKNOWN sentinel) when the
stream it needs is not a terminal, so programs can call it unconditionally.

Environment variables:
  TERMCTL_ESCDELAY        Milliseconds to wait for the rest of an escape
                          sequence after an ESC byte (default 25)
  TERMCTL_REPORT_TIMEOUT  Milliseconds to wait for each byte of a cursor
                          position report (default 500)
"""

import collections
import os
import re
import sys

_IS_WINDOWS = os.name == "nt"

if _IS_WINDOWS:
    import ctypes
    from ctypes import wintypes
else:
    import select
    import termios


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

# Terminal dimensions. (0, 0) means "unavailable".
TerminalSize = collections.namedtuple("TerminalSize", "rows cols")

# 1-based cursor position (row 1 = top, col 1 = left). (0, 0) means "unknown".
CursorPosition = collections.namedtuple("CursorPosition", "row col")


class Key:
    """Named constants for the keys a KeyPress can report."""

    UNKNOWN = "unknown"
    CHAR = "char"
    ENTER = "key_enter"
    ESCAPE = "key_escape"
    BACKSPACE = "key_backspace"
    TAB = "key_tab"
    UP = "key_up"
    DOWN = "key_down"
    LEFT = "key_left"
    RIGHT = "key_right"
    HOME = "key_home"
    END = "key_end"
    PAGE_UP = "key_page_up"
    PAGE_DOWN = "key_page_down"
    INSERT = "key_insert"
    DELETE = "key_delete"
    F1 = "key_f1"
    F2 = "key_f2"
    F3 = "key_f3"
    F4 = "key_f4"
    F5 = "key_f5"
    F6 = "key_f6"
    F7 = "key_f7"
    F8 = "key_f8"
    F9 = "key_f9"
    F10 = "key_f10"
    F11 = "key_f11"
    F12 = "key_f12"

    ALL = None  # will be assigned below


# Reverse map from key value to attribute name, used by KeyPress.__repr__
_KEY_NAMES = {
    value: name
    for name, value in vars(Key).items()
    if name.isupper() and isinstance(value, str)
}

Key.ALL = tuple(_KEY_NAMES)

_FUNCTION_KEYS = (
    Key.F1,
    Key.F2,
    Key.F3,
    Key.F4,
    Key.F5,
    Key.F6,
    Key.F7,
    Key.F8,
    Key.F9,
    Key.F10,
    Key.F11,
    Key.F12,
)


class KeyModifier:
    """Modifier bits. Combine with |; NONE (no bits) is a normal state."""

    NONE = 0
    SHIFT = 1 << 0
    CONTROL = 1 << 1
    ALT = 1 << 2


def key_name(key):
    """Return the Key attribute name for a key value, e.g. "UP" for Key.UP."""
    return _KEY_NAMES.get(key, key)


def modifier_names(modifiers):
    """Return the names of the bits set in 'modifiers', e.g. ["Control",
    "Alt"]. Empty list for KeyModifier.NONE."""
    names = []
    if modifiers & KeyModifier.SHIFT:
        names.append("Shift")
    if modifiers & KeyModifier.CONTROL:
        names.append("Control")
    if modifiers & KeyModifier.ALT:
        names.append("Alt")
    return names


class KeyPress:
    """Immutable decoded key press.

    key:
      One of the Key constants

    character:
      One-character string when the event carried a literal character
      (always set for Key.CHAR, "\\n" for Key.ENTER, "\\t" for Key.TAB,
      "\\b" for Key.BACKSPACE), None otherwise

    modifiers:
      KeyModifier bit set
    """

    __slots__ = ("_key", "_character", "_modifiers")

    def __init__(self, key, character=None, modifiers=KeyModifier.NONE):
        if key == Key.CHAR and character is None:
            raise ValueError("Key.CHAR requires a character")
        self._key = key
        self._character = character
        self._modifiers = modifiers

    @property
    def key(self):
        return self._key

    @property
    def character(self):
        return self._character

    @property
    def modifiers(self):
        return self._modifiers

    def __eq__(self, other):
        if not isinstance(other, KeyPress):
            return NotImplemented
        return (
            self._key == other._key
            and self._character == other._character
            and self._modifiers == other._modifiers
        )

    def __hash__(self):
        return hash((self._key, self._character, self._modifiers))

    def __repr__(self):
        parts = ["Key." + key_name(self._key)]
        if self._character is not None:
            parts.append(repr(self._character))
        if self._modifiers:
            parts.append("|".join(modifier_names(self._modifiers)))
        return "KeyPress({})".format(", ".join(parts))


# ---------------------------------------------------------------------------
# Diagnostics and configuration
# ---------------------------------------------------------------------------


def _warn(*args):
    print("termctl warning: ", end="", file=sys.stderr)
    print(*args, file=sys.stderr)


def _env_seconds(name, default_ms):
    # Returns the millisecond value of environment variable 'name' converted
    # to seconds. Falls back to 'default_ms' (with a warning if the variable
    # is set to something that isn't a non-negative integer).

    val = os.environ.get(name)
    if val is None:
        return default_ms / 1000

    try:
        ms = int(val)
        if ms < 0:
            raise ValueError
    except ValueError:
        _warn(f"Ignoring {name}={val!r}, expected a non-negative integer")
        return default_ms / 1000

    return ms / 1000


# ---------------------------------------------------------------------------
# Capability probe
# ---------------------------------------------------------------------------


def is_interactive(stream):
    """Return True if 'stream' is attached to an interactive terminal.

    False for redirected/piped streams, closed streams, and streams without a
    file descriptor (e.g. io.StringIO). Never raises.
    """
    try:
        return os.isatty(stream.fileno())
    except (AttributeError, ValueError, OSError):
        return False


# ---------------------------------------------------------------------------
# Colors
# ---------------------------------------------------------------------------

# SGR parameter introducers for extended foreground/background colors
_FG = 38
_BG = 48


def _sgr_index(layer, index):
    """Return the SGR escape selecting 256-color palette entry 'index'."""
    return f"\x1b[{layer};5;{index}m"


def _sgr_rgb(layer, r, g, b):
    """Return the SGR escape selecting a 24-bit RGB color."""
    return f"\x1b[{layer};2;{r};{g};{b}m"


# Windows console text attribute bits (wincon.h). Background bits are the
# foreground bits shifted left by 4.
FOREGROUND_BLUE = 0x0001
FOREGROUND_GREEN = 0x0002
FOREGROUND_RED = 0x0004
FOREGROUND_INTENSITY = 0x0008

_FOREGROUND_MASK = 0x000F
_BACKGROUND_MASK = 0x00F0

_WHITE = FOREGROUND_RED | FOREGROUND_GREEN | FOREGROUND_BLUE

# xterm palette entries 0-15 as console attribute bits. In xterm numbering,
# bit 0 is red, bit 1 green, bit 2 blue and bit 3 intensity; the console puts
# blue in bit 0 and red in bit 2.
_XTERM_TO_CONSOLE = (
    0,  # black
    FOREGROUND_RED,
    FOREGROUND_GREEN,
    FOREGROUND_RED | FOREGROUND_GREEN,  # yellow
    FOREGROUND_BLUE,
    FOREGROUND_RED | FOREGROUND_BLUE,  # magenta
    FOREGROUND_GREEN | FOREGROUND_BLUE,  # cyan
    _WHITE,
    FOREGROUND_INTENSITY,  # bright black (dark gray)
    FOREGROUND_RED | FOREGROUND_INTENSITY,
    FOREGROUND_GREEN | FOREGROUND_INTENSITY,
    FOREGROUND_RED | FOREGROUND_GREEN | FOREGROUND_INTENSITY,
    FOREGROUND_BLUE | FOREGROUND_INTENSITY,
    FOREGROUND_RED | FOREGROUND_BLUE | FOREGROUND_INTENSITY,
    FOREGROUND_GREEN | FOREGROUND_BLUE | FOREGROUND_INTENSITY,
    _WHITE | FOREGROUND_INTENSITY,
)

# Channels this close to each other count as gray
GRAY_TOLERANCE = 10


def xterm_to_console(index):
    """Map an xterm 256-color palette index to console foreground bits.

    Only the 16 base colors have a console equivalent. Returns None for
    indices 16-255; the caller decides how to report that.
    """
    if 0 <= index < len(_XTERM_TO_CONSOLE):
        return _XTERM_TO_CONSOLE[index]
    return None


def rgb_to_console(r, g, b):
    """Approximate a 24-bit RGB color with console foreground bits.

    Lossy and order-dependent, not a nearest-color search. The rules are
    tried in this order, and the first match wins:

      1. Near-gray (channels within GRAY_TOLERANCE): black, white or bright
         white by average level.
      2. Near-black (all channels < 64): black, or dark gray unless all
         channels are < 32.
      3. Hue: the single strictly largest channel selects red, green or blue.
         Two channels above 100 with the third below 50 select yellow,
         magenta or cyan. Anything else is white.
      4. Intensity: added when the channel sum is above 384 or any channel is
         above 200.
    """
    if max(r, g, b) - min(r, g, b) <= GRAY_TOLERANCE:
        level = (r + g + b) // 3
        if level < 64:
            return 0
        if level < 192:
            return _WHITE
        return _WHITE | FOREGROUND_INTENSITY

    if r < 64 and g < 64 and b < 64:
        if r < 32 and g < 32 and b < 32:
            return 0
        return FOREGROUND_INTENSITY

    if r > g and r > b:
        color = FOREGROUND_RED
    elif g > r and g > b:
        color = FOREGROUND_GREEN
    elif b > r and b > g:
        color = FOREGROUND_BLUE
    elif r > 100 and g > 100 and b < 50:
        color = FOREGROUND_RED | FOREGROUND_GREEN
    elif r > 100 and b > 100 and g < 50:
        color = FOREGROUND_RED | FOREGROUND_BLUE
    elif g > 100 and b > 100 and r < 50:
        color = FOREGROUND_GREEN | FOREGROUND_BLUE
    else:
        color = _WHITE

    if r + g + b > 384 or max(r, g, b) > 200:
        color |= FOREGROUND_INTENSITY

    return color


# ---------------------------------------------------------------------------
# Key decoding
# ---------------------------------------------------------------------------

# ESC plus the longest sequence we decode ("\x1b[24;5~", Ctrl-F12)
_MAX_SEQUENCE_LEN = 7

# Final letter of a parameterless CSI sequence ("\x1b[A")
_CSI_LETTERS = {
    "A": Key.UP,
    "B": Key.DOWN,
    "C": Key.RIGHT,
    "D": Key.LEFT,
    "H": Key.HOME,  # xterm
    "F": Key.END,  # xterm
}

# Numeric parameter of a "\x1b[<n>~" sequence
_CSI_NUMBERS = {
    1: Key.HOME,  # tmux/linux
    2: Key.INSERT,
    3: Key.DELETE,
    4: Key.END,  # tmux/linux
    5: Key.PAGE_UP,
    6: Key.PAGE_DOWN,
    7: Key.HOME,  # rxvt
    8: Key.END,  # rxvt
    11: Key.F1,
    12: Key.F2,
    13: Key.F3,
    14: Key.F4,
    15: Key.F5,
    17: Key.F6,
    18: Key.F7,
    19: Key.F8,
    20: Key.F9,
    21: Key.F10,
    23: Key.F11,
    24: Key.F12,
}

# Final letter of an SS3 sequence ("\x1bOP")
_SS3_LETTERS = {
    "P": Key.F1,
    "Q": Key.F2,
    "R": Key.F3,
    "S": Key.F4,
    # Application cursor mode
    "A": Key.UP,
    "B": Key.DOWN,
    "C": Key.RIGHT,
    "D": Key.LEFT,
    "H": Key.HOME,
    "F": Key.END,
}

# Everything after "\x1b[": optional number, optional ";<modifier>", final
# byte
_CSI_BODY_RE = re.compile(r"([0-9]*)(?:;([0-9]+))?([A-Za-z~])")


def _csi_modifiers(param):
    # xterm encodes modifiers as 1 + (Shift=1 | Alt=2 | Control=4). Returns
    # None for values outside that range.
    bits = int(param) - 1
    if not 0 <= bits <= 7:
        return None

    mods = KeyModifier.NONE
    if bits & 1:
        mods |= KeyModifier.SHIFT
    if bits & 2:
        mods |= KeyModifier.ALT
    if bits & 4:
        mods |= KeyModifier.CONTROL
    return mods


def _decode_byte(b, modifiers=KeyModifier.NONE):
    # Classifies a single byte that isn't part of an escape sequence

    if b in (0x0D, 0x0A):
        return KeyPress(Key.ENTER, "\n", modifiers)
    if b in (0x7F, 0x08):
        return KeyPress(Key.BACKSPACE, "\b", modifiers)
    if b == 0x09:
        return KeyPress(Key.TAB, "\t", modifiers)
    if 0x01 <= b <= 0x1A:
        # Ctrl-A..Ctrl-Z
        return KeyPress(
            Key.CHAR, chr(ord("a") + b - 1), modifiers | KeyModifier.CONTROL
        )
    if 0x20 <= b <= 0x7E:
        return KeyPress(Key.CHAR, chr(b), modifiers)
    return KeyPress(Key.UNKNOWN)


def _decode_csi(body):
    # Decodes the part of a CSI sequence after "\x1b["

    match = _CSI_BODY_RE.fullmatch(body)
    if not match:
        return KeyPress(Key.UNKNOWN)

    number, mod_param, final = match.groups()

    mods = KeyModifier.NONE
    if mod_param is not None:
        mods = _csi_modifiers(mod_param)
        if mods is None:
            return KeyPress(Key.UNKNOWN)

    if final == "~":
        key = _CSI_NUMBERS.get(int(number)) if number else None
    elif mod_param is None:
        key = None if number else _CSI_LETTERS.get(final)
    else:
        # "\x1b[1;5A" (Ctrl-Up)
        key = _CSI_LETTERS.get(final) if number == "1" else None

    if key is None:
        return KeyPress(Key.UNKNOWN)
    return KeyPress(key, None, mods)


def _sequence_complete(data):
    # True once 'data' (starting with ESC) holds a whole key: a CSI sequence
    # up to its final byte, SS3 plus one byte, or Alt plus one byte. Bytes
    # queued after that belong to the next key.
    if len(data) < 2:
        return False
    if data[1:2] == b"[":
        return len(data) > 2 and 0x40 <= data[-1] <= 0x7E
    if data[1:2] == b"O":
        return len(data) > 2
    return True


def decode_key(data):
    """Decode one key press from raw bytes read from a VT terminal.

    'data' is either a single non-ESC byte, or an ESC byte followed by
    whatever arrived right after it (at most _MAX_SEQUENCE_LEN bytes in
    total are meaningful). Bytes after the first are ignored when the first
    isn't ESC.

    An ESC with nothing after it is a bare Escape key press. An unrecognized
    sequence is Key.UNKNOWN rather than Escape, since its prefix has already
    been consumed. ESC followed by any other byte is that key with Alt added.
    """
    if not data:
        return KeyPress(Key.UNKNOWN)

    if data[0] != 0x1B:
        return _decode_byte(data[0])

    if len(data) == 1:
        return KeyPress(Key.ESCAPE)

    # latin-1 maps every byte to one character, so lengths are preserved
    seq = data[:_MAX_SEQUENCE_LEN].decode("latin-1")

    if seq[1] == "[":
        return _decode_csi(seq[2:])

    if seq[1] == "O":
        key = _SS3_LETTERS.get(seq[2]) if len(seq) == 3 else None
        if key is None:
            return KeyPress(Key.UNKNOWN)
        return KeyPress(key)

    if data[1] == 0x1B:
        return KeyPress(Key.ESCAPE, None, KeyModifier.ALT)

    return _decode_byte(data[1], KeyModifier.ALT)


# Windows virtual-key codes (winuser.h)
_VK_KEYS = {
    0x08: Key.BACKSPACE,  # VK_BACK
    0x09: Key.TAB,
    0x0D: Key.ENTER,  # VK_RETURN
    0x1B: Key.ESCAPE,
    0x21: Key.PAGE_UP,  # VK_PRIOR
    0x22: Key.PAGE_DOWN,  # VK_NEXT
    0x23: Key.END,
    0x24: Key.HOME,
    0x25: Key.LEFT,
    0x26: Key.UP,
    0x27: Key.RIGHT,
    0x28: Key.DOWN,
    0x2D: Key.INSERT,
    0x2E: Key.DELETE,
}
# VK_F1..VK_F12
_VK_KEYS.update(zip(range(0x70, 0x7C), _FUNCTION_KEYS))

_VK_A = 0x41
_VK_Z = 0x5A

# Characters reported for non-Char keys, same on both backends
_KEY_CHARACTERS = {
    Key.ENTER: "\n",
    Key.TAB: "\t",
    Key.BACKSPACE: "\b",
}

# dwControlKeyState bits (wincon.h)
RIGHT_ALT_PRESSED = 0x0001
LEFT_ALT_PRESSED = 0x0002
RIGHT_CTRL_PRESSED = 0x0004
LEFT_CTRL_PRESSED = 0x0008
SHIFT_PRESSED = 0x0010


def decode_console_key(virtual_key, char, control_state):
    """Decode a Windows console key-down event.

    virtual_key:
      wVirtualKeyCode of the KEY_EVENT_RECORD

    char:
      uChar.UnicodeChar as a one-character string ("\\0" if none)

    control_state:
      dwControlKeyState

    Returns Key.UNKNOWN for events that don't produce a key on their own,
    like pressing Shift by itself. ConsoleBackend.get_key_press() skips
    those.
    """
    mods = KeyModifier.NONE
    if control_state & (LEFT_CTRL_PRESSED | RIGHT_CTRL_PRESSED):
        mods |= KeyModifier.CONTROL
    if control_state & (LEFT_ALT_PRESSED | RIGHT_ALT_PRESSED):
        mods |= KeyModifier.ALT
    if control_state & SHIFT_PRESSED:
        mods |= KeyModifier.SHIFT

    key = _VK_KEYS.get(virtual_key)
    if key is not None:
        return KeyPress(key, _KEY_CHARACTERS.get(key), mods)

    if not char or char == "\0":
        return KeyPress(Key.UNKNOWN)

    code = ord(char)

    if mods & KeyModifier.CONTROL and 0x01 <= code <= 0x1A:
        if _VK_A <= virtual_key <= _VK_Z:
            # Ctrl-<letter> arrives as a control character. Report the
            # letter, like the VT backend does.
            return KeyPress(Key.CHAR, chr(ord("a") + virtual_key - _VK_A), mods)
        return KeyPress(Key.UNKNOWN)

    if code >= 0x20:
        return KeyPress(Key.CHAR, char, mods)

    return KeyPress(Key.UNKNOWN)


# ---------------------------------------------------------------------------
# Raw mode
# ---------------------------------------------------------------------------


class RawMode:
    """Scoped raw keyboard input: unbuffered, unechoed, no signal keys.

    Created via backend.raw_mode() (or the module-level raw_mode()), and used
    as a context manager. The input mode in effect on entry is restored on
    exit, whether the block returns normally or raises.

    Only one session per backend owns the terminal at a time. Entering a
    RawMode while another one is active gives an inert session that neither
    saves nor restores anything, so the outer session's snapshot stays
    authoritative.

    'active' is True inside the block if raw input is in effect, and False if
    the input stream isn't a terminal or the mode change failed.
    """

    def __init__(self, backend):
        self._backend = backend
        self._saved = None
        self._owner = False
        self.active = False

    def __enter__(self):
        backend = self._backend

        if backend._raw_session is not None:
            self.active = True
            return self

        saved = backend._enter_raw()
        if saved is not None:
            self._saved = saved
            self._owner = True
            self.active = True
            backend._raw_session = self

        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if self._owner:
            try:
                self._backend._leave_raw(self._saved)
            finally:
                self._backend._raw_session = None
                self._owner = False
        self.active = False
        return False


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class Backend:
    """Terminal control operations for one host facility.

    Subclasses implement the full call surface: clear_screen(),
    get_terminal_size(), set_cursor_position(), cursor_up(), cursor_down(),
    cursor_forward(), cursor_backward(), save_cursor_position(),
    restore_cursor_position(), get_cursor_position(),
    set_foreground_color_256(), set_background_color_256(),
    set_foreground_color_rgb(), set_background_color_rgb(), reset_colors()
    and get_key_press(), plus the probes input_is_terminal() and
    output_is_terminal(). None of them raise on ordinary failure.

    warn:
      Set to False to suppress warnings (printed to stderr by default)
    """

    def __init__(self):
        self.warn = True
        # RawMode that currently owns the input stream, if any
        self._raw_session = None

    def raw_mode(self):
        """Return a RawMode context manager for this backend."""
        return RawMode(self)

    def _warn(self, *args):
        if self.warn:
            _warn(*args)

    def _valid_index(self, index):
        # Checks a 256-color palette index, warning if it's out of range

        if 0 <= index <= 255:
            return True
        self._warn(f"Ignoring color index {index} outside range 0..255")
        return False

    def _valid_rgb(self, r, g, b):
        if all(0 <= c <= 255 for c in (r, g, b)):
            return True
        self._warn(f"Ignoring color ({r}, {g}, {b}) with a channel outside 0..255")
        return False

    def _enter_raw(self):
        # Switches input to raw mode. Returns the previous settings, or None
        # if the switch wasn't possible.
        raise NotImplementedError

    def _leave_raw(self, saved):
        # Restores settings returned by _enter_raw(). Best-effort: warns
        # instead of raising.
        raise NotImplementedError


# Cursor position reports are short ("\x1b[65535;65535R" is 14 bytes)
_MAX_REPORT_LEN = 31

_CURSOR_REPORT_RE = re.compile(rb"\x1b\[([0-9]{1,5});([0-9]{1,5})R")


def _parse_cursor_report(data):
    """Parse a "\\x1b[<row>;<col>R" cursor position report.

    Returns CursorPosition(0, 0) for anything malformed or truncated.
    """
    match = _CURSOR_REPORT_RE.fullmatch(data)
    if not match:
        return CursorPosition(0, 0)

    row, col = int(match.group(1)), int(match.group(2))
    if not (0 < row <= 0xFFFF and 0 < col <= 0xFFFF):
        return CursorPosition(0, 0)
    return CursorPosition(row, col)


class VTBackend(Backend):
    """Backend for VT100/xterm-compatible terminals (Unix).

    Output is escape sequences written to 'outfile'. Input is read from the
    file descriptor of 'infile' with termios raw mode.

    infile/outfile:
      Streams to use (default: sys.stdin/sys.stdout). Each is checked
      separately with is_interactive().

    escape_delay:
      Seconds to wait for the rest of an escape sequence after an ESC byte.
      If nothing arrives in time, the ESC is a bare Escape key press. This is
      a heuristic: a sequence delayed longer than this (slow link, slow
      paste) reads as Escape followed by stray characters. Defaults to
      $TERMCTL_ESCDELAY milliseconds, or 25 ms.

    report_timeout:
      Seconds to wait for each byte of a cursor position report. Defaults to
      $TERMCTL_REPORT_TIMEOUT milliseconds, or 500 ms.
    """

    def __init__(self, infile=None, outfile=None, escape_delay=None, report_timeout=None):
        super().__init__()
        self._in = infile if infile is not None else sys.stdin
        self._out = outfile if outfile is not None else sys.stdout

        if escape_delay is None:
            escape_delay = _env_seconds("TERMCTL_ESCDELAY", 25)
        if report_timeout is None:
            report_timeout = _env_seconds("TERMCTL_REPORT_TIMEOUT", 500)
        self.escape_delay = escape_delay
        self.report_timeout = report_timeout

    def input_is_terminal(self):
        return is_interactive(self._in)

    def output_is_terminal(self):
        return is_interactive(self._out)

    # --- Raw mode ---

    @staticmethod
    def _set_raw(fd):
        """Apply raw terminal settings: no echo, no canonical mode, no
        signal keys, 8-bit characters, reads return after one byte."""
        new = termios.tcgetattr(fd)
        # IFLAG
        new[0] &= ~(
            termios.IGNBRK
            | termios.BRKINT
            | termios.PARMRK
            | termios.ISTRIP
            | termios.INLCR
            | termios.IGNCR
            | termios.ICRNL
            | termios.IXON
        )
        # OFLAG
        new[1] &= ~termios.OPOST
        # CFLAG
        new[2] &= ~(termios.CSIZE | termios.PARENB)
        new[2] |= termios.CS8
        # LFLAG: clearing ISIG makes Ctrl-C arrive as a key
        new[3] &= ~(
            termios.ECHO | termios.ECHONL | termios.ICANON | termios.ISIG | termios.IEXTEN
        )
        new[6][termios.VMIN] = 1
        new[6][termios.VTIME] = 0
        termios.tcsetattr(fd, termios.TCSADRAIN, new)

    def _enter_raw(self):
        if not self.input_is_terminal():
            return None

        fd = self._in.fileno()
        try:
            saved = termios.tcgetattr(fd)
            self._set_raw(fd)
        except (termios.error, OSError):
            return None
        return saved

    def _leave_raw(self, saved):
        try:
            termios.tcsetattr(self._in.fileno(), termios.TCSADRAIN, saved)
        except (termios.error, OSError, ValueError) as e:
            self._warn("Could not restore terminal mode:", e)

    # --- Output ---

    def _flush(self):
        """Flush the output stream."""
        # Ensure blocking I/O for flush
        fd = self._out.fileno()
        was_blocking = os.get_blocking(fd)
        if not was_blocking:
            os.set_blocking(fd, True)
        try:
            self._out.flush()
        finally:
            if not was_blocking:
                os.set_blocking(fd, False)

    def _emit(self, s):
        # Writes an escape sequence if the output is a terminal. Write errors
        # are dropped; the sequence has no effect then.
        if not self.output_is_terminal():
            return
        try:
            self._out.write(s)
            self._flush()
        except (OSError, ValueError):
            pass

    def clear_screen(self):
        """Erase the visible screen and home the cursor."""
        self._emit("\x1b[2J\x1b[H")

    def get_terminal_size(self):
        """Return the current TerminalSize, (0, 0) if unavailable."""
        if not self.output_is_terminal():
            return TerminalSize(0, 0)
        try:
            size = os.get_terminal_size(self._out.fileno())
        except (OSError, ValueError):
            return TerminalSize(0, 0)
        return TerminalSize(size.lines, size.columns)

    def set_cursor_position(self, row, col):
        """Move the cursor to 1-based (row, col). Values below 1 count as
        1."""
        self._emit(f"\x1b[{max(row, 1)};{max(col, 1)}H")

    # The terminal stops relative moves at the screen edge. A zero count
    # would move by one, so it's skipped.

    def cursor_up(self, count=1):
        if count > 0:
            self._emit(f"\x1b[{count}A")

    def cursor_down(self, count=1):
        if count > 0:
            self._emit(f"\x1b[{count}B")

    def cursor_forward(self, count=1):
        if count > 0:
            self._emit(f"\x1b[{count}C")

    def cursor_backward(self, count=1):
        if count > 0:
            self._emit(f"\x1b[{count}D")

    def save_cursor_position(self):
        self._emit("\x1b[s")

    def restore_cursor_position(self):
        # Without a prior save, the terminal restores its power-on default
        self._emit("\x1b[u")

    def get_cursor_position(self):
        """Ask the terminal where the cursor is.

        Sends a cursor position request and reads the reply from the input
        stream in raw mode. Returns CursorPosition(0, 0) if either stream
        isn't a terminal, or if the reply is missing, late or malformed.
        """
        if not (self.input_is_terminal() and self.output_is_terminal()):
            return CursorPosition(0, 0)

        with self.raw_mode() as raw:
            if not raw.active:
                return CursorPosition(0, 0)
            self._emit("\x1b[6n")
            try:
                reply = self._read_report()
            except (OSError, ValueError):
                return CursorPosition(0, 0)

        return _parse_cursor_report(reply)

    def _read_report(self):
        # Reads a cursor position report byte by byte. Stops after the final
        # 'R', at EOF, after _MAX_REPORT_LEN bytes, or when no byte arrives
        # within report_timeout.

        fd = self._in.fileno()
        buf = b""
        while len(buf) < _MAX_REPORT_LEN:
            if not select.select([fd], [], [], self.report_timeout)[0]:
                break
            c = os.read(fd, 1)
            if not c:
                break
            buf += c
            if c == b"R":
                break
        return buf

    # --- Colors ---

    def set_foreground_color_256(self, index):
        if self.output_is_terminal() and self._valid_index(index):
            self._emit(_sgr_index(_FG, index))

    def set_background_color_256(self, index):
        if self.output_is_terminal() and self._valid_index(index):
            self._emit(_sgr_index(_BG, index))

    def set_foreground_color_rgb(self, r, g, b):
        if self.output_is_terminal() and self._valid_rgb(r, g, b):
            self._emit(_sgr_rgb(_FG, r, g, b))

    def set_background_color_rgb(self, r, g, b):
        if self.output_is_terminal() and self._valid_rgb(r, g, b):
            self._emit(_sgr_rgb(_BG, r, g, b))

    def reset_colors(self):
        self._emit("\x1b[0m")

    # --- Input ---

    def get_key_press(self):
        """Block until a key is pressed and return it as a KeyPress.

        Returns Key.UNKNOWN if the input isn't a terminal, on EOF, and on
        read errors.
        """
        if not self.input_is_terminal():
            return KeyPress(Key.UNKNOWN)

        with self.raw_mode() as raw:
            if not raw.active:
                return KeyPress(Key.UNKNOWN)
            try:
                data = self._read_key_bytes()
            except (OSError, ValueError):
                return KeyPress(Key.UNKNOWN)

        return decode_key(data)

    def _read_key_bytes(self):
        # Blocks for one byte. If it's ESC, also reads the rest of the sequence
        # if it starts arriving within escape_delay. Reading stops at the end
        # of the sequence, so keys queued behind it stay for the next call.

        fd = self._in.fileno()

        data = os.read(fd, 1)
        if data != b"\x1b":
            return data

        if not select.select([fd], [], [], self.escape_delay)[0]:
            # Nothing followed. Bare Escape.
            return data

        was_blocking = os.get_blocking(fd)
        os.set_blocking(fd, False)
        try:
            while len(data) < _MAX_SEQUENCE_LEN and not _sequence_complete(data):
                c = os.read(fd, 1)
                if not c:
                    break
                data += c
        except BlockingIOError:
            pass
        finally:
            os.set_blocking(fd, was_blocking)

        return data


# Console text attributes and input modes (wincon.h)
_DEFAULT_ATTRIBUTES = _WHITE  # white on black
ENABLE_PROCESSED_INPUT = 0x0001
ENABLE_LINE_INPUT = 0x0002
ENABLE_ECHO_INPUT = 0x0004

# Console screen buffer state, as returned by _Win32Console.screen_info().
# 'window' is the visible part of the buffer, in buffer coordinates.
_ScreenInfo = collections.namedtuple(
    "_ScreenInfo", "width height cursor_x cursor_y attributes window"
)
_Window = collections.namedtuple("_Window", "left top right bottom")

# One console input record, as returned by _Win32Console.read_event().
# Non-key records have is_key False and the other fields zeroed.
_ConsoleEvent = collections.namedtuple(
    "_ConsoleEvent", "is_key key_down virtual_key char control_state"
)


class ConsoleBackend(Backend):
    """Backend for the Windows console API.

    Colors are approximated to the console's 16-color palette (see
    xterm_to_console() and rgb_to_console()). The cursor slot for
    save_cursor_position()/restore_cursor_position() and the default
    attributes used by reset_colors() are kept in this object.

    console:
      Object providing the console primitives. Defaults to a _Win32Console
      for the process's standard handles.
    """

    def __init__(self, console=None):
        super().__init__()
        self._console = console if console is not None else _Win32Console()
        # (x, y) buffer coordinates from save_cursor_position()
        self._saved_cursor = None
        # Attributes in effect before the first color change
        self._default_attributes = None

    def input_is_terminal(self):
        return self._console.has_input()

    def output_is_terminal(self):
        return self._console.has_output()

    def _screen_info(self):
        if not self.output_is_terminal():
            return None
        return self._console.screen_info()

    # --- Raw mode ---

    def _enter_raw(self):
        if not self.input_is_terminal():
            return None

        mode = self._console.get_input_mode()
        if mode is None:
            return None

        raw = mode & ~(ENABLE_PROCESSED_INPUT | ENABLE_LINE_INPUT | ENABLE_ECHO_INPUT)
        if not self._console.set_input_mode(raw):
            return None
        return mode

    def _leave_raw(self, saved):
        if not self._console.set_input_mode(saved):
            self._warn("Could not restore console input mode")

    # --- Screen and cursor ---

    def clear_screen(self):
        """Blank the whole screen buffer with the current attributes and move
        the cursor to the top-left corner."""
        info = self._screen_info()
        if info is None:
            return
        if self._console.fill(" ", info.attributes, info.width * info.height):
            self._console.set_cursor(0, 0)

    def get_terminal_size(self):
        """Return the size of the visible window, (0, 0) if unavailable."""
        info = self._screen_info()
        if info is None:
            return TerminalSize(0, 0)
        win = info.window
        return TerminalSize(win.bottom - win.top + 1, win.right - win.left + 1)

    def _move_to(self, info, x, y):
        # Moves the cursor to buffer coordinates (x, y), clamped to the buffer
        x = min(max(x, 0), info.width - 1)
        y = min(max(y, 0), info.height - 1)
        self._console.set_cursor(x, y)

    def set_cursor_position(self, row, col):
        """Move the cursor to 1-based (row, col), relative to the visible
        window."""
        info = self._screen_info()
        if info is not None:
            self._move_to(
                info,
                info.window.left + max(col, 1) - 1,
                info.window.top + max(row, 1) - 1,
            )

    def _move_by(self, dx, dy):
        info = self._screen_info()
        if info is not None:
            self._move_to(info, info.cursor_x + dx, info.cursor_y + dy)

    def cursor_up(self, count=1):
        if count > 0:
            self._move_by(0, -count)

    def cursor_down(self, count=1):
        if count > 0:
            self._move_by(0, count)

    def cursor_forward(self, count=1):
        if count > 0:
            self._move_by(count, 0)

    def cursor_backward(self, count=1):
        if count > 0:
            self._move_by(-count, 0)

    def save_cursor_position(self):
        info = self._screen_info()
        if info is not None:
            self._saved_cursor = (info.cursor_x, info.cursor_y)

    def restore_cursor_position(self):
        # Silently ignored without a prior save
        if self._saved_cursor is not None and self.output_is_terminal():
            self._console.set_cursor(*self._saved_cursor)

    def get_cursor_position(self):
        """Return the 1-based cursor position relative to the visible window,
        or (0, 0) if unavailable or outside the window."""
        info = self._screen_info()
        if info is None:
            return CursorPosition(0, 0)
        win = info.window
        row = info.cursor_y - win.top + 1
        col = info.cursor_x - win.left + 1
        rows = win.bottom - win.top + 1
        cols = win.right - win.left + 1
        if not (1 <= row <= rows and 1 <= col <= cols):
            return CursorPosition(0, 0)
        return CursorPosition(row, col)

    # --- Colors ---

    def _capture_default_attributes(self):
        if self._default_attributes is None:
            info = self._console.screen_info()
            if info is not None:
                self._default_attributes = info.attributes
            else:
                self._default_attributes = _DEFAULT_ATTRIBUTES

    def _set_color_bits(self, bits, mask):
        # Replaces the 'mask' bits of the current attributes with 'bits',
        # keeping everything else
        self._capture_default_attributes()
        info = self._console.screen_info()
        if info is not None:
            self._console.set_attributes((info.attributes & ~mask) | bits)

    def _console_color(self, index):
        color = xterm_to_console(index)
        if color is None:
            self._warn(
                f"xterm color index {index} is not supported by the Windows "
                "console. Color not changed."
            )
        return color

    def set_foreground_color_256(self, index):
        if not (self.output_is_terminal() and self._valid_index(index)):
            return
        color = self._console_color(index)
        if color is not None:
            self._set_color_bits(color, _FOREGROUND_MASK)

    def set_background_color_256(self, index):
        if not (self.output_is_terminal() and self._valid_index(index)):
            return
        color = self._console_color(index)
        if color is not None:
            self._set_color_bits(color << 4, _BACKGROUND_MASK)

    def set_foreground_color_rgb(self, r, g, b):
        if self.output_is_terminal() and self._valid_rgb(r, g, b):
            self._set_color_bits(rgb_to_console(r, g, b), _FOREGROUND_MASK)

    def set_background_color_rgb(self, r, g, b):
        if self.output_is_terminal() and self._valid_rgb(r, g, b):
            self._set_color_bits(rgb_to_console(r, g, b) << 4, _BACKGROUND_MASK)

    def reset_colors(self):
        """Restore the attributes that were in effect before the first color
        change (captured now if this is the first color call)."""
        if not self.output_is_terminal():
            return
        self._capture_default_attributes()
        self._console.set_attributes(self._default_attributes)

    # --- Input ---

    def get_key_press(self):
        """Block until a key is pressed and return it as a KeyPress.

        Key-up events, non-key events (focus, mouse, resize) and key-downs
        that don't decode to a key (e.g. Shift alone) are skipped. Returns
        Key.UNKNOWN if the input isn't a console or reading fails.
        """
        if not self.input_is_terminal():
            return KeyPress(Key.UNKNOWN)

        with self.raw_mode():
            while True:
                event = self._console.read_event()
                if event is None:
                    return KeyPress(Key.UNKNOWN)

                if not (event.is_key and event.key_down):
                    continue

                press = decode_console_key(
                    event.virtual_key, event.char, event.control_state
                )
                if press.key != Key.UNKNOWN:
                    return press


# ---------------------------------------------------------------------------
# Win32 console primitives
# ---------------------------------------------------------------------------

if _IS_WINDOWS:

    class _COORD(ctypes.Structure):
        _fields_ = [("X", wintypes.SHORT), ("Y", wintypes.SHORT)]

    class _SMALL_RECT(ctypes.Structure):
        _fields_ = [
            ("Left", wintypes.SHORT),
            ("Top", wintypes.SHORT),
            ("Right", wintypes.SHORT),
            ("Bottom", wintypes.SHORT),
        ]

    class _CONSOLE_SCREEN_BUFFER_INFO(ctypes.Structure):
        _fields_ = [
            ("dwSize", _COORD),
            ("dwCursorPosition", _COORD),
            ("wAttributes", wintypes.WORD),
            ("srWindow", _SMALL_RECT),
            ("dwMaximumWindowSize", _COORD),
        ]

    class _KEY_EVENT_RECORD(ctypes.Structure):
        _fields_ = [
            ("bKeyDown", wintypes.BOOL),
            ("wRepeatCount", wintypes.WORD),
            ("wVirtualKeyCode", wintypes.WORD),
            ("wVirtualScanCode", wintypes.WORD),
            ("uChar", wintypes.WCHAR),
            ("dwControlKeyState", wintypes.DWORD),
        ]

    class _INPUT_RECORD(ctypes.Structure):
        # KEY_EVENT_RECORD is the largest member of the union, so it alone
        # gives the right size
        class _Event(ctypes.Union):
            _fields_ = [("KeyEvent", _KEY_EVENT_RECORD)]

        _fields_ = [
            ("EventType", wintypes.WORD),
            ("Event", _Event),
        ]


class _Win32Console:
    """The console primitives ConsoleBackend needs, on top of kernel32.

    Methods report failure through their return value (None/False) rather
    than raising.
    """

    STD_INPUT_HANDLE = -10
    STD_OUTPUT_HANDLE = -11
    KEY_EVENT = 0x0001

    def __init__(self):
        kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)

        kernel32.GetStdHandle.restype = wintypes.HANDLE
        kernel32.GetStdHandle.argtypes = (wintypes.DWORD,)
        kernel32.GetConsoleMode.argtypes = (wintypes.HANDLE, wintypes.LPDWORD)
        kernel32.SetConsoleMode.argtypes = (wintypes.HANDLE, wintypes.DWORD)
        kernel32.GetConsoleScreenBufferInfo.argtypes = (
            wintypes.HANDLE,
            ctypes.POINTER(_CONSOLE_SCREEN_BUFFER_INFO),
        )
        kernel32.SetConsoleCursorPosition.argtypes = (wintypes.HANDLE, _COORD)
        kernel32.SetConsoleTextAttribute.argtypes = (wintypes.HANDLE, wintypes.WORD)
        kernel32.FillConsoleOutputCharacterW.argtypes = (
            wintypes.HANDLE,
            wintypes.WCHAR,
            wintypes.DWORD,
            _COORD,
            wintypes.LPDWORD,
        )
        kernel32.FillConsoleOutputAttribute.argtypes = (
            wintypes.HANDLE,
            wintypes.WORD,
            wintypes.DWORD,
            _COORD,
            wintypes.LPDWORD,
        )
        kernel32.ReadConsoleInputW.argtypes = (
            wintypes.HANDLE,
            ctypes.POINTER(_INPUT_RECORD),
            wintypes.DWORD,
            wintypes.LPDWORD,
        )

        self._kernel32 = kernel32
        self._stdin_handle = kernel32.GetStdHandle(self.STD_INPUT_HANDLE & 0xFFFFFFFF)
        self._stdout_handle = kernel32.GetStdHandle(self.STD_OUTPUT_HANDLE & 0xFFFFFFFF)

    def _get_mode(self, handle):
        # INVALID_HANDLE_VALUE fails GetConsoleMode like any non-console
        # handle does
        if not handle:
            return None
        mode = wintypes.DWORD()
        if not self._kernel32.GetConsoleMode(handle, ctypes.byref(mode)):
            return None
        return mode.value

    def has_input(self):
        return self._get_mode(self._stdin_handle) is not None

    def has_output(self):
        return self._get_mode(self._stdout_handle) is not None

    def get_input_mode(self):
        return self._get_mode(self._stdin_handle)

    def set_input_mode(self, mode):
        return bool(self._kernel32.SetConsoleMode(self._stdin_handle, mode))

    def screen_info(self):
        csbi = _CONSOLE_SCREEN_BUFFER_INFO()
        if not self._kernel32.GetConsoleScreenBufferInfo(
            self._stdout_handle, ctypes.byref(csbi)
        ):
            return None

        win = csbi.srWindow
        return _ScreenInfo(
            csbi.dwSize.X,
            csbi.dwSize.Y,
            csbi.dwCursorPosition.X,
            csbi.dwCursorPosition.Y,
            csbi.wAttributes,
            _Window(win.Left, win.Top, win.Right, win.Bottom),
        )

    def set_cursor(self, x, y):
        return bool(
            self._kernel32.SetConsoleCursorPosition(self._stdout_handle, _COORD(x, y))
        )

    def set_attributes(self, attributes):
        return bool(
            self._kernel32.SetConsoleTextAttribute(self._stdout_handle, attributes)
        )

    def fill(self, char, attributes, count):
        # Writes 'count' copies of 'char' with 'attributes', starting at the
        # buffer origin
        written = wintypes.DWORD()
        origin = _COORD(0, 0)
        return bool(
            self._kernel32.FillConsoleOutputCharacterW(
                self._stdout_handle, char, count, origin, ctypes.byref(written)
            )
            and self._kernel32.FillConsoleOutputAttribute(
                self._stdout_handle, attributes, count, origin, ctypes.byref(written)
            )
        )

    def read_event(self):
        # Blocks for one input record. Returns a _ConsoleEvent, or None if
        # the read failed.
        record = _INPUT_RECORD()
        n_read = wintypes.DWORD()
        if (
            not self._kernel32.ReadConsoleInputW(
                self._stdin_handle, ctypes.byref(record), 1, ctypes.byref(n_read)
            )
            or not n_read.value
        ):
            return None

        if record.EventType != self.KEY_EVENT:
            return _ConsoleEvent(False, False, 0, "\0", 0)

        ke = record.Event.KeyEvent
        return _ConsoleEvent(
            True, bool(ke.bKeyDown), ke.wVirtualKeyCode, ke.uChar, ke.dwControlKeyState
        )


# ---------------------------------------------------------------------------
# Process-wide backend and module-level API
# ---------------------------------------------------------------------------

_backend = None


def get_backend():
    """Return the process-wide backend, creating it on first use.

    ConsoleBackend on Windows, VTBackend everywhere else.
    """
    global _backend
    if _backend is None:
        _backend = ConsoleBackend() if _IS_WINDOWS else VTBackend()
    return _backend


def set_backend(backend):
    """Install 'backend' as the process-wide backend. Returns the previous
    one (None if none was created yet). Passing None makes the next call
    create a fresh default backend."""
    global _backend
    old = _backend
    _backend = backend
    return old


def raw_mode():
    """RawMode context manager for the process-wide backend."""
    return get_backend().raw_mode()


def clear_screen():
    """Erase the visible screen and home the cursor."""
    get_backend().clear_screen()


def get_terminal_size():
    """Return the current TerminalSize, (0, 0) if unavailable."""
    return get_backend().get_terminal_size()


def set_cursor_position(row, col):
    """Move the cursor to 1-based (row, col)."""
    get_backend().set_cursor_position(row, col)


def cursor_up(count=1):
    get_backend().cursor_up(count)


def cursor_down(count=1):
    get_backend().cursor_down(count)


def cursor_forward(count=1):
    get_backend().cursor_forward(count)


def cursor_backward(count=1):
    get_backend().cursor_backward(count)


def save_cursor_position():
    get_backend().save_cursor_position()


def restore_cursor_position():
    get_backend().restore_cursor_position()


def get_cursor_position():
    """Return the 1-based CursorPosition, (0, 0) if unknown."""
    return get_backend().get_cursor_position()


def set_foreground_color_256(index):
    get_backend().set_foreground_color_256(index)


def set_background_color_256(index):
    get_backend().set_background_color_256(index)


def set_foreground_color_rgb(r, g, b):
    get_backend().set_foreground_color_rgb(r, g, b)


def set_background_color_rgb(r, g, b):
    get_backend().set_background_color_rgb(r, g, b)


def reset_colors():
    get_backend().reset_colors()


def get_key_press():
    """Block until a key is pressed and return it as a KeyPress."""
    return get_backend().get_key_press()


# ---------------------------------------------------------------------------
# Safe entry point
# ---------------------------------------------------------------------------


def run(fn):
    """Safe wrapper: call fn(backend), then clean up the terminal.

    On the way out (normal return, exception, or Ctrl-C), colors are reset
    and the cursor is moved to the start of the last line, so the shell
    prompt comes back in a sane state. KeyboardInterrupt is swallowed (and
    None returned); other exceptions propagate after the cleanup.
    """
    backend = get_backend()
    try:
        return fn(backend)
    except KeyboardInterrupt:
        pass
    finally:
        backend.reset_colors()
        size = backend.get_terminal_size()
        if size.rows > 0 and size.cols > 0:
            backend.set_cursor_position(size.rows, 1)
