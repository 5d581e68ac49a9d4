"""Tests for cadence.application.utils.text."""

from datetime import timedelta

import pytest

from cadence.application.utils.text import (
    describe_due_delta,
    format_elapsed,
    format_interval,
    format_preview,
    minutes_between,
)


@pytest.mark.parametrize(
    "minutes,expected",
    [
        (1, "1 minutes"),
        (59, "59 minutes"),
        (60, "1 hours"),
        (150, "2 hours"),
        (1439, "23 hours"),
        (1440, "1 days"),
        (7 * 1440 + 30, "7 days"),
    ],
)
def test_format_interval(minutes, expected):
    assert format_interval(minutes) == expected


def test_minutes_between(now):
    assert minutes_between(now + timedelta(minutes=90), now) == 90
    assert minutes_between(now, now + timedelta(seconds=30)) == -0.5


def test_due_delta_overdue(now):
    assert describe_due_delta(now, now - timedelta(minutes=61, seconds=40)) == "Overdue by 61 minutes"


def test_due_delta_upcoming(now):
    assert describe_due_delta(now, now + timedelta(minutes=15)) == "Due in 15 minutes"


def test_due_delta_exactly_now(now):
    assert describe_due_delta(now, now) == "Due in 0 minutes"


def test_due_delta_unscheduled(now):
    assert describe_due_delta(now, None) == "Not scheduled"


@pytest.mark.parametrize(
    "seconds,expected",
    [(0, "0:00"), (9.9, "0:09"), (65, "1:05"), (600, "10:00"), (-3, "0:00")],
)
def test_format_elapsed(seconds, expected):
    assert format_elapsed(seconds) == expected


def test_format_preview():
    assert format_preview(12) == "~12 min"
