import pytest

import mesmer.effects
import mesmer.event_emitter
import mesmer.transport


def _effects () -> tuple[mesmer.effects.Effects, mesmer.transport.Transport, list]:

	transport = mesmer.transport.Transport(initial_bpm=120, external_clock=True)
	transport.start()
	events = mesmer.event_emitter.EventEmitter()
	changes: list = []
	events.on("effects_changed", lambda *args: changes.append(args))

	return mesmer.effects.Effects(transport, events), transport, changes


def test_default_sends () -> None:

	effects, _, _ = _effects()

	assert effects.wet("reverb") == 0.3
	assert effects.wet("synth_reverb") == 0.5
	assert effects.wet("drum_delay") == 0.0


def test_set_wet_glides_over_half_a_second () -> None:

	"""set_wet takes 0-100 and glides; the clock moves it, not the call."""

	effects, transport, changes = _effects()

	assert effects.set_wet("synth_delay", 80) is True
	assert effects.wet("synth_delay") == 0.5
	assert changes == [("synth_delay", 0.8)]

	transport.advance(12)
	assert 0.5 < effects.wet("synth_delay") < 0.8

	transport.advance(20)
	assert effects.wet("synth_delay") == pytest.approx(0.8)


def test_set_wet_clamps () -> None:

	effects, transport, changes = _effects()

	effects.set_wet("drum_reverb", 180)
	transport.advance(48)

	assert effects.wet("drum_reverb") == 1.0


def test_unknown_send () -> None:

	effects, _, changes = _effects()

	assert effects.ramp("flanger", 0.5, 1.0) is False
	assert changes == []


def test_reverb_type_jumps_to_preset_wetness () -> None:

	effects, _, changes = _effects()

	assert effects.set_reverb_type("cathedral") is True
	assert effects.wet("reverb") == 0.4
	assert changes == [("reverb_type", "cathedral")]
	assert effects.set_reverb_type("cave") is False
	assert effects.reverb_type == "cathedral"


def test_delay_type () -> None:

	effects, _, _ = _effects()

	assert effects.set_delay_type("slapback") is True
	assert effects.wet("delay") == 0.3
	assert effects.set_delay_type("reverse") is False


def test_note_value_seconds () -> None:

	assert mesmer.effects.note_value_seconds("8n", 120) == pytest.approx(0.25)
	assert mesmer.effects.note_value_seconds("8n.", 120) == pytest.approx(0.375)
	assert mesmer.effects.note_value_seconds("2n", 60) == pytest.approx(2.0)


def test_snapshot_follows_tempo () -> None:

	effects, transport, _ = _effects()
	effects.set_delay_type("quarter")
	transport.set_bpm_now(100)

	snapshot = effects.snapshot()

	assert snapshot["delay_type"] == "quarter"
	assert snapshot["delay_seconds"] == pytest.approx(0.6)
	assert snapshot["delay_feedback"] == 0.35
	assert snapshot["reverb_decay"] == 4.0
	assert snapshot["reverb"] == 0.3


def test_send_jumps_while_clock_is_stopped () -> None:

	transport = mesmer.transport.Transport(initial_bpm=120, external_clock=True)
	effects = mesmer.effects.Effects(transport)

	assert effects.set_wet("synth_delay", 80) is True
	assert effects.wet("synth_delay") == pytest.approx(0.8)
	assert effects.sends["synth_delay"].is_ramping is False
