"""Easing curves and time-based ramps.

Nothing in the engine jumps audibly.  Tempo changes, the pause fade and
effect wetness all move toward their new value over a duration in seconds,
the same way a mixing desk fader would.  ``RampedValue`` holds one such
parameter; the transport advances every registered ramp by the length of one
pulse, so ramps progress in musical time and stay deterministic when the
clock is driven by hand.

Easing curves map normalised progress *t* in [0, 1] to [0, 1] and shape how
a ramp travels:

    "linear"      Constant rate (default).
    "ease_in"     Slow start, accelerates.
    "ease_out"    Fast start, decelerates: fades.
    "ease_in_out" Hermite smoothstep: tempo changes.
    "exponential" Cubic ease-in: filter and wetness sweeps.
    "logarithmic" Cubic ease-out: volume fades.
    "s_curve"     Perlin smootherstep: long, gentle transitions.

All curves satisfy f(0) = 0 and f(1) = 1.
"""

from __future__ import annotations

import typing


def linear (t: float) -> float:
    """No transformation: constant rate of change."""
    return t


def ease_in (t: float) -> float:
    """Quadratic ease-in."""
    return t * t


def ease_out (t: float) -> float:
    """Quadratic ease-out."""
    return 1.0 - (1.0 - t) * (1.0 - t)


def ease_in_out (t: float) -> float:
    """Hermite smoothstep S-curve."""
    return t * t * (3.0 - 2.0 * t)


def exponential (t: float) -> float:
    """Cubic ease-in: very slow start with rapid acceleration."""
    return t * t * t


def logarithmic (t: float) -> float:
    """Cubic ease-out: rapid start, very gradual end."""
    return 1.0 - (1.0 - t) ** 3


def s_curve (t: float) -> float:
    """Perlin smootherstep, gentler at both ends than ease_in_out."""
    return t * t * t * (t * (6.0 * t - 15.0) + 10.0)


EasingFn = typing.Callable[[float], float]

EASING_FUNCTIONS: typing.Dict[str, EasingFn] = {
    "linear":      linear,
    "ease_in":     ease_in,
    "ease_out":    ease_out,
    "ease_in_out": ease_in_out,
    "exponential": exponential,
    "logarithmic": logarithmic,
    "s_curve":     s_curve,
}


def get_easing (shape: typing.Union[str, EasingFn]) -> EasingFn:
    """Return the easing function for *shape* (a name or a callable).

    Raises :class:`ValueError` for unknown names.
    """
    if callable(shape):
        return shape
    if shape not in EASING_FUNCTIONS:
        available = ", ".join(f'"{k}"' for k in sorted(EASING_FUNCTIONS))
        raise ValueError(f"Unknown easing shape {shape!r}. Available shapes: {available}")
    return EASING_FUNCTIONS[shape]


def clamp (value: float, low: float, high: float) -> float:
    """Clamp *value* into ``[low, high]``."""
    return max(low, min(high, value))


class RampedValue:

    """A scalar parameter that glides to new values over time.

    Example::

        gain = RampedValue(1.0, minimum=0.0, maximum=1.0)
        gain.ramp_to(0.0, seconds=0.1)

        # The transport calls advance() once per pulse.
        gain.advance(0.02)
        gain.value      # somewhere between 1.0 and 0.0
        gain.target     # 0.0

    When a ramp finishes, ``value`` equals ``target`` exactly, so a value
    recorded before a ramp can be restored without drift.

    Args:
        value: Initial value.
        minimum: Optional lower bound; targets are clamped to it.
        maximum: Optional upper bound; targets are clamped to it.
    """

    def __init__ (self, value: float, minimum: typing.Optional[float] = None, maximum: typing.Optional[float] = None) -> None:

        self.minimum = minimum
        self.maximum = maximum

        value = self._bound(value)

        self._value: float = value
        self._start: float = value
        self._target: float = value
        self._duration: float = 0.0
        self._elapsed: float = 0.0
        self._easing: EasingFn = linear

    def _bound (self, value: float) -> float:

        if self.minimum is not None:
            value = max(self.minimum, value)
        if self.maximum is not None:
            value = min(self.maximum, value)
        return float(value)

    @property
    def value (self) -> float:
        """The current (possibly mid-ramp) value."""
        return self._value

    @property
    def target (self) -> float:
        """The value the ramp is heading to, or the current value when idle."""
        return self._target

    @property
    def is_ramping (self) -> bool:
        return self._duration > 0.0

    def set (self, value: float) -> None:

        """Jump to *value* immediately, cancelling any ramp in progress."""

        value = self._bound(value)
        self._value = value
        self._start = value
        self._target = value
        self._duration = 0.0
        self._elapsed = 0.0

    def ramp_to (self, target: float, seconds: float, shape: typing.Union[str, EasingFn] = "linear") -> None:

        """Start gliding from the current value to *target* over *seconds*.

        A non-positive duration jumps immediately.  Starting a new ramp
        mid-way through another begins from wherever the value is now.
        """

        if seconds <= 0:
            self.set(target)
            return

        self._start = self._value
        self._target = self._bound(target)
        self._duration = float(seconds)
        self._elapsed = 0.0
        self._easing = get_easing(shape)

    def advance (self, dt: float) -> bool:

        """Move the ramp forward by *dt* seconds.

        Returns True while the value changed during this call.
        """

        if self._duration <= 0.0:
            return False

        self._elapsed += dt

        if self._elapsed >= self._duration:
            self.set(self._target)
            return True

        progress = self._elapsed / self._duration
        self._value = self._start + (self._target - self._start) * self._easing(progress)
        return True
