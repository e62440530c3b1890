"""
core/backoff.py -- Deterministic retry interval generators.

A BackoffScheduler hands out the delay (in milliseconds) to wait before the
next retry attempt, according to one of four strategies:

  off                  always -1, the universal "stop retrying" sentinel
  fixed-interval       initial_delay, then interval forever
  incremental-backoff  initial_delay, then increment, 2*increment, ...
                       capped at max_interval
  exponential-backoff  initial_delay, then doubling, capped at max_interval

The first call always returns initial_delay (1 second unless configured), and
the incremental progression restarts at 1*increment on the second call. So
incremental-backoff(ms, increment=500, max=3000) yields
1000, 500, 1000, 1500, ... -- this sequence is relied upon and must not be
smoothed out.

Ownership: one scheduler per logical retry loop. Sharing an instance between
unrelated loops interleaves their attempt counters and corrupts both sequences.
Call reset() when a loop succeeds and may start failing again later.

Usage:
    scheduler = BackoffScheduler(BackoffOptions("fixed-interval", time_unit="s", interval=10))
    scheduler.next_interval()   # 1000
    scheduler.next_interval()   # 10000
    scheduler.reset()
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from core.config import Settings

STOP = -1

STRATEGIES = ("off", "fixed-interval", "incremental-backoff", "exponential-backoff")

_UNIT_MS = {"ms": 1, "s": 1000, "m": 60 * 1000}


def ms_interval(value: float, unit: str) -> int:
    """Convert value expressed in unit (ms, s or m) to whole milliseconds."""
    try:
        factor = _UNIT_MS[unit]
    except KeyError:
        raise ValueError(f"Unsupported time unit: {unit!r} (expected one of ms, s, m)") from None
    return int(value * factor)


@dataclass(frozen=True)
class BackoffOptions:
    """Caller-facing strategy configuration.

    Every timing is expressed in time_unit. Leave a field as None (or 0) to take
    the strategy default; see apply_defaults() for the values.
    """

    strategy: str = "exponential-backoff"
    time_unit: Optional[str] = None
    initial_delay: Optional[float] = None
    interval: Optional[float] = None
    increment: Optional[float] = None
    max_interval: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> BackoffOptions:
        """Build options from DAX_RETRY_* settings. Zero values mean "default"."""
        return cls(
            strategy=settings.dax_retry_strategy,
            time_unit=settings.dax_retry_time_unit,
            initial_delay=settings.dax_retry_initial_delay or None,
            interval=settings.dax_retry_interval or None,
            increment=settings.dax_retry_increment or None,
            max_interval=settings.dax_retry_max_interval or None,
        )


def apply_defaults(opts: Optional[BackoffOptions] = None) -> BackoffOptions:
    """Return a concrete copy of opts with every timing resolved to milliseconds.

    No options at all means exponential backoff starting at 1 second and capped
    at 1 minute. The "off" strategy is returned untouched. Otherwise an unset
    time_unit means seconds, and unset values fall back to:

      initial_delay  1 s (all strategies)
      interval       30 s (fixed-interval)
      increment      15 s (incremental-backoff)
      max_interval   10 min (incremental and exponential backoff)

    Raises ValueError for an unknown strategy, unit or a negative timing.
    """
    if opts is None:
        return BackoffOptions(
            strategy="exponential-backoff",
            time_unit="ms",
            initial_delay=ms_interval(1, "s"),
            max_interval=ms_interval(1, "m"),
        )

    if opts.strategy not in STRATEGIES:
        raise ValueError(f"Unknown backoff strategy: {opts.strategy!r}")

    if opts.strategy == "off":
        return opts

    unit = opts.time_unit or "s"
    if unit not in _UNIT_MS:
        raise ValueError(f"Unsupported time unit: {unit!r} (expected one of ms, s, m)")

    for name in ("initial_delay", "interval", "increment", "max_interval"):
        value = getattr(opts, name)
        if value is not None and value < 0:
            raise ValueError(f"Backoff {name} must not be negative: {value}")

    def resolve(value: Optional[float], default_ms: int) -> int:
        return ms_interval(value, unit) if value else default_ms

    resolved = BackoffOptions(
        strategy=opts.strategy,
        time_unit="ms",
        initial_delay=resolve(opts.initial_delay, ms_interval(1, "s")),
    )

    if opts.strategy == "fixed-interval":
        return replace(resolved, interval=resolve(opts.interval, ms_interval(30, "s")))
    if opts.strategy == "incremental-backoff":
        return replace(
            resolved,
            increment=resolve(opts.increment, ms_interval(15, "s")),
            max_interval=resolve(opts.max_interval, ms_interval(10, "m")),
        )
    return replace(resolved, max_interval=resolve(opts.max_interval, ms_interval(10, "m")))


class BackoffScheduler:
    """Stateful generator of successive retry delays for one retry loop."""

    def __init__(self, options: Optional[BackoffOptions] = None) -> None:
        self._options = apply_defaults(options)
        self._attempt = 0
        self._interval = 0

    @property
    def options(self) -> BackoffOptions:
        """The concrete, millisecond-based options in effect."""
        return self._options

    @property
    def attempt(self) -> int:
        """Number of next_interval() calls since construction or the last reset()."""
        return self._attempt

    def next_interval(self) -> int:
        """Return the delay in milliseconds before the next attempt, or -1 to stop."""
        opts = self._options
        if opts.strategy == "off":
            return STOP

        self._attempt += 1

        if self._attempt == 1:
            self._interval = int(opts.initial_delay)
            return self._interval

        if opts.strategy == "fixed-interval":
            self._interval = int(opts.interval)
        elif opts.strategy == "incremental-backoff":
            if self._attempt == 2:
                self._interval = int(opts.increment)
            else:
                self._interval += int(opts.increment)
        else:
            self._interval *= 2

        if opts.max_interval is not None and self._interval > opts.max_interval:
            self._interval = int(opts.max_interval)
        return self._interval

    def reset(self) -> None:
        """Return to the initial state; the next call reproduces call #1."""
        self._attempt = 0
        self._interval = 0

    def __repr__(self) -> str:
        return f"BackoffScheduler(strategy={self._options.strategy!r}, attempt={self._attempt})"
