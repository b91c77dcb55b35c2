import pytest

import mesmer.easing


# ─── Easing curves ───────────────────────────────────────────────────────────


def test_all_easings_hit_endpoints ():

	"""Every easing function maps 0 to 0 and 1 to 1."""

	for name, fn in mesmer.easing.EASING_FUNCTIONS.items():
		assert fn(0.0) == pytest.approx(0.0), f"{name}(0) should be 0.0"
		assert fn(1.0) == pytest.approx(1.0), f"{name}(1) should be 1.0"


def test_all_easings_monotonic ():

	"""Every easing function is non-decreasing over [0, 1]."""

	steps = 100
	for name, fn in mesmer.easing.EASING_FUNCTIONS.items():
		values = [fn(i / steps) for i in range(steps + 1)]
		for i in range(len(values) - 1):
			assert values[i] <= values[i + 1] + 1e-9, f"{name} is not monotonic at t={i/steps:.2f}"


def test_curve_shapes ():

	assert mesmer.easing.ease_in(0.5) < 0.5
	assert mesmer.easing.ease_out(0.5) > 0.5
	assert mesmer.easing.ease_in_out(0.5) == pytest.approx(0.5)
	assert mesmer.easing.s_curve(0.1) < mesmer.easing.ease_in_out(0.1)


def test_get_easing ():

	"""get_easing resolves names, passes callables through and rejects unknown names."""

	assert mesmer.easing.get_easing("linear") is mesmer.easing.linear

	custom = lambda t: t ** 0.5
	assert mesmer.easing.get_easing(custom) is custom

	with pytest.raises(ValueError, match="Unknown easing shape"):
		mesmer.easing.get_easing("bogus_shape")


def test_clamp ():

	assert mesmer.easing.clamp(150, 0, 100) == 100
	assert mesmer.easing.clamp(-3, 0, 100) == 0
	assert mesmer.easing.clamp(42, 0, 100) == 42


# ─── RampedValue ─────────────────────────────────────────────────────────────


class TestRampedValue:

	def test_initial_value_is_bounded (self) -> None:
		gain = mesmer.easing.RampedValue(1.5, minimum=0.0, maximum=1.0)
		assert gain.value == 1.0
		assert gain.target == 1.0
		assert gain.is_ramping is False

	def test_ramp_reaches_target_exactly (self) -> None:
		"""A finished ramp lands exactly on the target, with no float drift."""
		gain = mesmer.easing.RampedValue(0.73)
		gain.ramp_to(0.0, seconds=0.1)
		for _ in range(7):
			gain.advance(0.02)
		gain.ramp_to(0.73, seconds=0.1)
		for _ in range(7):
			gain.advance(0.02)
		assert gain.value == 0.73
		assert gain.is_ramping is False

	def test_ramp_midpoint_is_linear_by_default (self) -> None:
		gain = mesmer.easing.RampedValue(0.0)
		gain.ramp_to(1.0, seconds=1.0)
		gain.advance(0.5)
		assert gain.value == pytest.approx(0.5)
		assert gain.target == 1.0

	def test_ramp_uses_shape (self) -> None:
		gain = mesmer.easing.RampedValue(0.0)
		gain.ramp_to(1.0, seconds=1.0, shape="ease_in")
		gain.advance(0.5)
		assert gain.value == pytest.approx(0.25)

	def test_non_positive_duration_jumps (self) -> None:
		gain = mesmer.easing.RampedValue(0.2)
		gain.ramp_to(0.9, seconds=0)
		assert gain.value == 0.9
		assert gain.advance(0.1) is False

	def test_target_is_clamped (self) -> None:
		gain = mesmer.easing.RampedValue(0.5, minimum=0.0, maximum=1.0)
		gain.ramp_to(3.0, seconds=0.1)
		assert gain.target == 1.0

	def test_new_ramp_starts_from_current_value (self) -> None:
		gain = mesmer.easing.RampedValue(0.0)
		gain.ramp_to(1.0, seconds=1.0)
		gain.advance(0.5)
		gain.ramp_to(0.0, seconds=1.0)
		gain.advance(0.5)
		assert gain.value == pytest.approx(0.25)

	def test_set_cancels_ramp (self) -> None:
		gain = mesmer.easing.RampedValue(0.0)
		gain.ramp_to(1.0, seconds=1.0)
		gain.set(0.4)
		assert gain.is_ramping is False
		assert gain.advance(0.5) is False
		assert gain.value == 0.4
