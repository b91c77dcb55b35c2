import logging

import pytest

import conftest
import mesmer.constants
import mesmer.drums


def _record (session, event: str) -> list:

	received: list = []
	session.events.on(event, lambda *args: received.append(args))

	return received


def _kicks (hits: list) -> list[int]:
	return [step for voice, step in hits if voice == "kick"]


def test_basic_kick_fires_on_zero_and_four () -> None:

	session, _ = conftest.make_session()
	hits = _record(session, "drum")

	mesmer.drums.DrumSequencer(session).attach()
	session.transport.advance(mesmer.constants.BAR)

	assert _kicks(hits) == [0, 4, 8, 12]
	assert [step for voice, step in hits if voice == "snare"] == [2, 6, 10, 14]


def test_drums_reach_the_kit_on_channel_ten () -> None:

	midi_out = conftest.FakeMidiOut()
	session, _ = conftest.make_session(midi_out=midi_out)

	mesmer.drums.DrumSequencer(session).attach()
	session.transport.advance(mesmer.constants.SIXTEENTH)

	notes = sorted(m.note for m in midi_out.note_ons(channel=9))

	# basic step 0: kick and closed hat
	assert notes == [36, 42]


def test_live_pattern_switch_is_heard_on_next_step () -> None:

	"""Switching pattern mid-bar changes what plays without disturbing the step count."""

	session, _ = conftest.make_session()
	hits = _record(session, "drum")
	steps = _record(session, "step")

	mesmer.drums.DrumSequencer(session).attach()
	session.transport.advance(mesmer.constants.SIXTEENTH * 6)

	session.patterns.change("hiphop")
	session.transport.advance(mesmer.constants.SIXTEENTH * 10)

	assert _kicks(hits) == [0, 4, 8, 11]
	assert [args[0] for args in steps] == list(range(16))


def test_step_edit_is_heard_on_next_step () -> None:

	session, _ = conftest.make_session()
	hits = _record(session, "drum")

	mesmer.drums.DrumSequencer(session).attach()
	session.transport.advance(mesmer.constants.SIXTEENTH)
	session.patterns.update_step("kick", 1, True)
	session.transport.advance(mesmer.constants.SIXTEENTH)

	assert _kicks(hits) == [0, 1]


def test_engine_switch_never_drops_a_drum_hit () -> None:

	"""Changing the melodic engine every step leaves the drum line intact."""

	session, _ = conftest.make_session()
	hits = _record(session, "drum")
	engines = ["synth", "preset"]

	session.events.on("step", lambda step: session.router.select(engines[step % 2]))

	mesmer.drums.DrumSequencer(session).attach()
	session.transport.advance(mesmer.constants.BAR)

	assert _kicks(hits) == [0, 4, 8, 12]


def test_drum_level () -> None:

	session, _ = conftest.make_session(drum_volume=0.5)
	session.drum_volumes["master"] = 0.8

	assert mesmer.drums.drum_level(session, "snare") == pytest.approx(0.8 * 0.8 * 0.5)
	assert mesmer.drums.drum_level(session, "gong") == 0.0


def test_drum_volume_reaches_the_port () -> None:

	midi_out = conftest.FakeMidiOut()
	session, _ = conftest.make_session(midi_out=midi_out, drum_volume=1.0)

	mesmer.drums.DrumSequencer(session, voices=("kick",)).attach()
	session.transport.advance(1)

	assert [m.velocity for m in midi_out.note_ons(channel=9)] == [127]


def test_detach_silences_drums () -> None:

	session, _ = conftest.make_session()
	hits = _record(session, "drum")
	sequencer = mesmer.drums.DrumSequencer(session)

	sequencer.attach()
	session.transport.advance(1)
	sequencer.detach()
	session.transport.advance(mesmer.constants.BAR)

	assert sequencer.attached is False
	assert sequencer.handles() == []
	assert _kicks(hits) == [0]
	assert session.transport.subscriptions == []


def test_attach_is_idempotent () -> None:

	session, _ = conftest.make_session()
	sequencer = mesmer.drums.DrumSequencer(session)

	sequencer.attach()
	sequencer.attach()

	assert len(sequencer.handles()) == len(mesmer.constants.DRUM_VOICES)
	assert len(session.transport.subscriptions) == len(mesmer.constants.DRUM_VOICES) + 1


def test_kit_not_ready_skips_hits () -> None:

	session, _ = conftest.make_session()
	hits = _record(session, "drum")
	session.router.drum_backend.banks.loader = lambda kit, files: False
	session.router.drum_backend.load_kit("RolandTR909")

	mesmer.drums.DrumSequencer(session).attach()
	session.transport.advance(mesmer.constants.BAR)

	assert hits == []


@pytest.mark.parametrize("name, voice", [("kick", "kick"), ("hh", "hihat"), ("closedhat", "hihat"), ("OH", "openhat"), ("cowbell", "cowbell")])
def test_resolve_drum_name (name: str, voice: str) -> None:

	assert mesmer.drums.resolve_drum_name(name) == voice


def test_trigger_drum () -> None:

	midi_out = conftest.FakeMidiOut()
	session, _ = conftest.make_session(midi_out=midi_out)

	assert mesmer.drums.trigger_drum(session, "hh") is True
	assert [m.note for m in midi_out.note_ons(channel=9)] == [42]


def test_trigger_unknown_drum (caplog: pytest.LogCaptureFixture) -> None:

	session, _ = conftest.make_session()

	with caplog.at_level(logging.WARNING):
		assert mesmer.drums.trigger_drum(session, "gong") is False

	assert "gong" in caplog.text
