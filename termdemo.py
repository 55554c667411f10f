#!/usr/bin/env python3

# Copyright (c) 2026 termctl contributors
# SPDX-License-Identifier: ISC

"""
Interactive walkthrough of the termctl API.

Clears the screen, then shows the terminal size, moves the cursor around
(reporting where the terminal says it is), prints text in 256-color and RGB
colors, and finally echoes key presses until Escape or 'q' is pressed.

Sample usage:

  $ termdemo
  $ termdemo --keys 5 --no-color

On exit (also after Ctrl-C or an error), colors are reset and the cursor is
left on the last line of the screen.

The escape sequence timeout can be tuned with the TERMCTL_ESCDELAY
environment variable (milliseconds, default 25).
"""

import argparse
import sys

import termctl
from termctl import Key

# Where the cursor movement demo starts
_START_ROW = 3
_START_COL = 5


def main():
    parser = argparse.ArgumentParser(
        formatter_class=argparse.RawDescriptionHelpFormatter, description=__doc__
    )

    parser.add_argument(
        "--keys",
        type=int,
        default=15,
        metavar="N",
        help="Read at most N key presses (default: 15, 0 skips the key demo)",
    )

    parser.add_argument(
        "--no-color",
        dest="color",
        action="store_false",
        help="Skip the color demo",
    )

    args = parser.parse_args()

    if args.keys < 0:
        sys.exit(f"error: --keys must be non-negative, not {args.keys}")

    try:
        termctl.run(lambda backend: _demo(backend, args.keys, args.color))
    finally:
        _say("Exiting demo.")


def _say(*args):
    # Flushed right away so text lands before the next cursor move. The
    # Windows console moves the cursor through the API, not the stream.
    print(*args, flush=True)


def _demo(term, n_keys, color):
    term.clear_screen()

    _say("Terminal Control Demonstration")
    _say("==============================")
    _say()

    size = term.get_terminal_size()
    _say(f"Terminal size: {size.rows} rows, {size.cols} cols")
    _say()

    _cursor_demo(term, size)

    # Everything after the cursor demo starts below its output
    if size.rows > _START_ROW + 5:
        row = _START_ROW + 5
    else:
        row = max(size.rows - 1, 1)

    if color:
        _color_demo(term, size, row)

    if n_keys:
        if size.rows > 1 and size.cols > 1:
            term.set_cursor_position(min(row + 5, size.rows), 1)
        _key_demo(term, n_keys)

    _say("Demonstration complete. Resetting and exiting.")


def _cursor_demo(term, size):
    _say("--- Cursor Movement Demo ---")

    if not (size.rows > _START_ROW + 5 and size.cols > _START_COL + 20):
        _say("Terminal too small for full cursor movement demo.")
        return

    term.set_cursor_position(_START_ROW, _START_COL)
    _say(
        "Cursor set to {},{}. Current reported: {}".format(
            _START_ROW, _START_COL, _fmt_pos(term.get_cursor_position())
        )
    )

    term.save_cursor_position()
    _say(f"Saved cursor position {_fmt_pos(term.get_cursor_position())}.")

    term.cursor_down(2)
    term.cursor_forward(10)
    _say(
        "Moved down 2, right 10. Current reported: "
        + _fmt_pos(term.get_cursor_position())
    )

    term.restore_cursor_position()
    _say("Restored position. Current reported: " + _fmt_pos(term.get_cursor_position()))
    _say()


def _color_demo(term, size, row):
    _say("--- Color Manipulation Demo ---")

    movable = size.rows > 1 and size.cols > 1

    if movable:
        term.set_cursor_position(row, 1)
    term.set_foreground_color_256(1)  # xterm red
    term.set_background_color_256(15)  # xterm bright white
    _say("Text in xterm red (1) on bright white (15) (256-color mode)")
    term.reset_colors()

    if movable:
        term.set_cursor_position(row + 1, 1)
    term.set_foreground_color_rgb(100, 255, 100)  # light green
    term.set_background_color_rgb(20, 40, 60)  # dark blueish gray
    _say("Text in light green on dark blueish gray (RGB mode)")
    term.reset_colors()

    if movable:
        term.set_cursor_position(row + 2, 1)
    _say("Colors reset to default for this line.")
    _say()


def _key_demo(term, n_keys):
    _say("--- Key Press Detection Demo ---")
    _say(
        f"Press any key to see its details. Press Escape or 'q' to exit this "
        f"test (max {n_keys} keys)."
    )

    for _ in range(n_keys):
        press = term.get_key_press()
        _say(_describe(press))

        if press.key == Key.ESCAPE or (
            press.key == Key.CHAR and press.character == "q"
        ):
            _say("Escape or 'q' pressed, exiting key test loop.")
            break

        if press.key == Key.UNKNOWN and not term.input_is_terminal():
            # EOF or no terminal. Nothing more will arrive.
            _say("Input is not a terminal, exiting key test loop.")
            break

    _say()


def _describe(press):
    """Return a one-line description of a KeyPress."""
    if press.character is None:
        char = "N/A"
    else:
        char = f"{press.character!r} (code: {ord(press.character)})"

    mods = " ".join(termctl.modifier_names(press.modifiers)) or "None"

    return "Key: {}, Char: {}, Modifiers: {}".format(
        termctl.key_name(press.key), char, mods
    )


def _fmt_pos(pos):
    return f"({pos.row},{pos.col})"


if __name__ == "__main__":
    main()
