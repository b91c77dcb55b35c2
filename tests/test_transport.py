import asyncio
import logging

import pytest

import mesmer.constants
import mesmer.easing
import mesmer.transport


def _running (bpm: float = 120) -> mesmer.transport.Transport:

	transport = mesmer.transport.Transport(initial_bpm=bpm, external_clock=True)
	transport.start()

	return transport


def test_subscription_fires_on_every_boundary () -> None:

	"""A sixteenth-note task fires every 6 pulses with a running tick index."""

	transport = _running()
	fired: list[tuple[int, int]] = []

	transport.subscribe(lambda pulse, tick: fired.append((pulse, tick)), mesmer.constants.SIXTEENTH)
	transport.advance(24)

	assert fired == [(0, 0), (6, 1), (12, 2), (18, 3)]


def test_late_subscription_aligns_to_global_grid () -> None:

	"""Subscribing mid-bar waits for the next boundary and reports the global tick."""

	transport = _running()
	transport.advance(7)

	fired: list[tuple[int, int]] = []
	transport.subscribe(lambda pulse, tick: fired.append((pulse, tick)), mesmer.constants.SIXTEENTH)
	transport.advance(6)

	assert fired == [(12, 2)]


def test_subscribe_inside_callback_waits_for_next_boundary () -> None:

	"""A task added from inside a callback never fires in the same pulse."""

	transport = _running()
	late: list[int] = []

	def add_task (pulse: int, tick: int) -> None:
		if tick == 0:
			transport.subscribe(lambda p, t: late.append(p), mesmer.constants.SIXTEENTH)

	transport.subscribe(add_task, mesmer.constants.SIXTEENTH)
	transport.advance(13)

	assert late == [6, 12]


def test_cancel_stops_delivery () -> None:

	transport = _running()
	fired: list[int] = []

	handle = transport.subscribe(lambda pulse, tick: fired.append(tick), mesmer.constants.SIXTEENTH)
	transport.advance(7)
	transport.cancel(handle)
	transport.advance(24)

	assert fired == [0, 1]
	assert handle.active is False
	assert handle not in transport.subscriptions


def test_submitted_mutation_applies_before_tasks () -> None:

	"""Queued state changes land at the start of the next pulse, before any task reads state."""

	transport = _running()
	order: list[str] = []

	transport.subscribe(lambda pulse, tick: order.append("task"), mesmer.constants.SIXTEENTH)
	transport.submit(lambda: order.append("mutation"))

	assert order == []

	transport.advance(1)

	assert order == ["mutation", "task"]


def test_submit_while_stopped_applies_immediately () -> None:

	transport = mesmer.transport.Transport(external_clock=True)
	applied: list[bool] = []

	transport.submit(lambda: applied.append(True))

	assert applied == [True]


def test_failing_mutation_is_logged_and_skipped (caplog: pytest.LogCaptureFixture) -> None:

	transport = _running()
	applied: list[int] = []

	transport.submit(lambda: 1 / 0)
	transport.submit(lambda: applied.append(1))

	with caplog.at_level(logging.ERROR):
		transport.advance(1)

	assert applied == [1]
	assert "Queued state change failed" in caplog.text


def test_failing_task_does_not_stop_others (caplog: pytest.LogCaptureFixture) -> None:

	"""A task that raises is logged; the clock and the other tasks carry on."""

	transport = _running()
	fired: list[int] = []

	def broken (pulse: int, tick: int) -> None:
		raise RuntimeError("boom")

	transport.subscribe(broken, mesmer.constants.SIXTEENTH, name="broken")
	transport.subscribe(lambda pulse, tick: fired.append(tick), mesmer.constants.SIXTEENTH)

	with caplog.at_level(logging.ERROR):
		transport.advance(12)

	assert fired == [0, 1]
	assert "broken" in caplog.text
	assert transport.pulse_count == 12


def test_call_after_waits_at_least_one_pulse () -> None:

	transport = _running()
	fired: list[bool] = []

	transport.call_after(0, lambda: fired.append(True))
	transport.advance(1)

	assert fired == []

	transport.advance(1)

	assert fired == [True]


def test_call_after_rounds_to_pulses () -> None:

	"""At 120 BPM a pulse is 1/48 s, so half a second is 24 pulses."""

	transport = _running(120)
	fired: list[int] = []

	transport.call_after(0.5, lambda: fired.append(transport.pulse_count))
	transport.advance(30)

	assert fired == [24]


def test_stop_releases_pending_one_shots () -> None:

	"""Stopping fires scheduled note-offs instead of leaving notes hanging."""

	transport = _running()
	released: list[bool] = []

	transport.call_after(10.0, lambda: released.append(True))
	transport.stop()

	assert released == [True]


def test_stop_is_idempotent_and_resets () -> None:

	transport = _running()
	handle = transport.subscribe(lambda pulse, tick: None, mesmer.constants.SIXTEENTH)
	transport.advance(50)

	transport.stop()
	transport.stop()

	assert transport.running is False
	assert transport.pulse_count == 0
	assert handle.active is False
	assert transport.subscriptions == []


def test_start_is_idempotent () -> None:

	transport = _running()
	transport.advance(10)
	transport.start()

	assert transport.pulse_count == 10


def test_advance_does_nothing_when_stopped () -> None:

	transport = mesmer.transport.Transport(external_clock=True)
	transport.advance(10)

	assert transport.pulse_count == 0


def test_stop_inside_callback_ends_advance () -> None:

	transport = _running()

	def stop_at_second_tick (pulse: int, tick: int) -> None:
		if tick == 1:
			transport.stop()

	transport.subscribe(stop_at_second_tick, mesmer.constants.SIXTEENTH)
	transport.advance(100)

	assert transport.running is False
	assert transport.pulse_count == 0


def test_position () -> None:

	transport = _running()
	transport.advance(mesmer.constants.BAR + mesmer.constants.QUARTER + mesmer.constants.SIXTEENTH)

	assert transport.position() == (1, 1, 1)


def test_tempo_is_clamped () -> None:

	transport = mesmer.transport.Transport(initial_bpm=120, min_bpm=20, max_bpm=300)

	transport.set_bpm_now(1000)
	assert transport.bpm == 300

	transport.set_bpm_now(5)
	assert transport.bpm == 20


def test_non_positive_tempo_raises () -> None:

	transport = mesmer.transport.Transport()

	with pytest.raises(ValueError):
		transport.set_bpm_now(0)


def test_tempo_glides_over_clock_time () -> None:

	"""set_tempo moves gradually and lands exactly on the target."""

	transport = _running(120)
	transport.set_tempo(60, seconds=1.0)

	assert transport.is_ramping_tempo
	assert transport.target_bpm == 60

	transport.advance(10)

	assert 60 < transport.bpm < 120

	transport.advance(200)

	assert transport.bpm == 60
	assert transport.is_ramping_tempo is False


def test_tempo_glide_keeps_task_phase () -> None:

	"""Tasks keep their global tick numbering while the tempo changes."""

	transport = _running(120)
	ticks: list[int] = []

	transport.subscribe(lambda pulse, tick: ticks.append(tick), mesmer.constants.SIXTEENTH)
	transport.set_tempo(90, seconds=0.5)
	transport.advance(96)

	assert ticks == list(range(16))


def test_stop_completes_tempo_glide () -> None:

	transport = _running(120)
	transport.set_tempo(140, seconds=4.0)
	transport.stop()

	assert transport.bpm == 140
	assert transport.is_ramping_tempo is False


def test_ramps_advance_with_pulses () -> None:

	transport = _running(120)
	gain = mesmer.easing.RampedValue(1.0, minimum=0.0, maximum=1.0)
	transport.add_ramp(gain)

	gain.ramp_to(0.0, 0.1)
	transport.advance(6)

	assert gain.value == 0.0

	transport.remove_ramp(gain)
	gain.ramp_to(1.0, 0.1)
	transport.advance(6)

	assert gain.value == 0.0


def test_tick_log_records_pulses () -> None:

	log: list[tuple[int, float]] = []
	transport = mesmer.transport.Transport(initial_bpm=100, external_clock=True, tick_log=log)
	transport.start()
	transport.advance(3)

	assert log == [(0, 100), (1, 100), (2, 100)]


@pytest.mark.asyncio
async def test_internal_clock_runs_on_event_loop () -> None:

	"""Without an external clock the transport drives itself from the running loop."""

	transport = mesmer.transport.Transport(initial_bpm=300)
	fired: list[int] = []

	transport.subscribe(lambda pulse, tick: fired.append(tick), mesmer.constants.SIXTEENTH)
	transport.start()

	await asyncio.sleep(0.1)

	transport.stop()
	await asyncio.sleep(0)

	assert fired
	assert fired == list(range(len(fired)))
	assert transport.task is None
