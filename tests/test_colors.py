# Copyright (c) 2026 termctl contributors
# SPDX-License-Identifier: ISC
#
# Color mapping tests: xterm palette indices and RGB triples approximated to
# the Windows console's 16-color attribute bits.

from termctl import (
    FOREGROUND_BLUE,
    FOREGROUND_GREEN,
    FOREGROUND_INTENSITY,
    FOREGROUND_RED,
    rgb_to_console,
    xterm_to_console,
)

WHITE = FOREGROUND_RED | FOREGROUND_GREEN | FOREGROUND_BLUE
BRIGHT_WHITE = WHITE | FOREGROUND_INTENSITY

# ---------------------------------------------------------------------------
# xterm palette
# ---------------------------------------------------------------------------


def test_xterm_base_colors():
    """xterm's red-green-blue bit order maps to the console's blue-green-red
    order."""
    assert xterm_to_console(0) == 0
    assert xterm_to_console(1) == FOREGROUND_RED
    assert xterm_to_console(2) == FOREGROUND_GREEN
    assert xterm_to_console(3) == FOREGROUND_RED | FOREGROUND_GREEN
    assert xterm_to_console(4) == FOREGROUND_BLUE
    assert xterm_to_console(5) == FOREGROUND_RED | FOREGROUND_BLUE
    assert xterm_to_console(6) == FOREGROUND_GREEN | FOREGROUND_BLUE
    assert xterm_to_console(7) == WHITE


def test_xterm_bright_colors_add_intensity():
    for i in range(8):
        assert xterm_to_console(i + 8) == xterm_to_console(i) | FOREGROUND_INTENSITY, (
            f"index {i + 8}"
        )


def test_xterm_extended_indices_unsupported():
    """Only the 16 base colors have a console equivalent."""
    for i in (16, 100, 196, 231, 232, 255):
        assert xterm_to_console(i) is None, f"index {i}"


# ---------------------------------------------------------------------------
# RGB approximation
# ---------------------------------------------------------------------------


def test_rgb_pure_red_is_bright_red():
    assert rgb_to_console(255, 0, 0) == FOREGROUND_RED | FOREGROUND_INTENSITY


def test_rgb_grays():
    """Equal channels only ever map to black, white or bright white."""
    for level in range(256):
        assert rgb_to_console(level, level, level) in (0, WHITE, BRIGHT_WHITE), (
            f"level {level}"
        )

    assert rgb_to_console(10, 10, 10) == 0
    assert rgb_to_console(63, 63, 63) == 0
    assert rgb_to_console(64, 64, 64) == WHITE
    assert rgb_to_console(128, 128, 128) == WHITE
    assert rgb_to_console(191, 191, 191) == WHITE
    assert rgb_to_console(192, 192, 192) == BRIGHT_WHITE
    assert rgb_to_console(255, 255, 255) == BRIGHT_WHITE


def test_rgb_near_gray_tolerance():
    """Channels within the gray tolerance are still treated as gray."""
    assert rgb_to_console(130, 125, 135) == WHITE
    assert rgb_to_console(250, 245, 240) == BRIGHT_WHITE


def test_rgb_near_black():
    # All channels dark, but not dark enough for black
    assert rgb_to_console(40, 20, 10) == FOREGROUND_INTENSITY
    assert rgb_to_console(20, 40, 60) == FOREGROUND_INTENSITY
    # Very dark tint
    assert rgb_to_console(20, 10, 0) == 0


def test_rgb_dominant_channel():
    assert rgb_to_console(150, 0, 0) == FOREGROUND_RED
    assert rgb_to_console(0, 150, 0) == FOREGROUND_GREEN
    assert rgb_to_console(0, 0, 150) == FOREGROUND_BLUE
    assert rgb_to_console(100, 255, 100) == FOREGROUND_GREEN | FOREGROUND_INTENSITY


def test_rgb_two_channel_combinations():
    assert rgb_to_console(150, 150, 0) == FOREGROUND_RED | FOREGROUND_GREEN
    assert rgb_to_console(150, 0, 150) == FOREGROUND_RED | FOREGROUND_BLUE
    assert rgb_to_console(0, 120, 120) == FOREGROUND_GREEN | FOREGROUND_BLUE
    # Channel sum above 384 adds intensity
    assert (
        rgb_to_console(200, 200, 0)
        == FOREGROUND_RED | FOREGROUND_GREEN | FOREGROUND_INTENSITY
    )


def test_rgb_ambiguous_falls_back_to_white():
    """No strictly dominant channel and no clear two-channel mix."""
    assert rgb_to_console(100, 100, 80) == WHITE
    assert rgb_to_console(90, 90, 60) == WHITE


def test_rgb_intensity_rules():
    # Any channel above 200
    assert rgb_to_console(210, 0, 0) == FOREGROUND_RED | FOREGROUND_INTENSITY
    assert rgb_to_console(200, 0, 0) == FOREGROUND_RED
    # Sum above 384 with no channel above 200
    assert rgb_to_console(190, 180, 20) == FOREGROUND_RED | FOREGROUND_INTENSITY


def test_rgb_result_in_range():
    for r in range(0, 256, 17):
        for g in range(0, 256, 17):
            for b in range(0, 256, 17):
                assert 0 <= rgb_to_console(r, g, b) <= 0xF, f"({r}, {g}, {b})"
