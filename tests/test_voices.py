import logging

import pytest

import conftest
import mesmer.constants
import mesmer.voices


def test_density_threshold_endpoints () -> None:

	assert mesmer.voices.density_threshold(0) == pytest.approx(0.9)
	assert mesmer.voices.density_threshold(50) == pytest.approx(0.5)
	assert mesmer.voices.density_threshold(100) == pytest.approx(0.1)
	assert mesmer.voices.density_threshold(250) == pytest.approx(0.1)
	assert mesmer.voices.density_threshold(-5) == pytest.approx(0.9)


@pytest.mark.parametrize("density, expected", [(0, 0.1), (100, 0.9)])
def test_density_fire_rate (density: float, expected: float) -> None:

	"""Density 0 fires about one time in ten, density 100 about nine in ten."""

	session, _ = conftest.make_session(seed=5, note_density=density)
	trials = 5000

	fired = sum(mesmer.voices.should_fire(session) for _ in range(trials))

	assert fired / trials == pytest.approx(expected, abs=0.03)


def test_lead_rate_rises_with_density () -> None:

	counts = []

	for density in (0, 50, 100):
		session, backend = conftest.make_session(seed=9, note_density=density)
		mesmer.voices.LeadTrack(session).attach()
		session.transport.advance(mesmer.constants.BAR * 16)
		counts.append(len(backend.played))

	assert counts[0] < counts[1] < counts[2]


def test_density_change_is_heard_while_playing () -> None:

	"""Raising density mid-stream changes the lead rate with nothing restarted."""

	session, backend = conftest.make_session(seed=2, note_density=0)
	track = mesmer.voices.LeadTrack(session)
	handle = track.attach()

	session.transport.advance(mesmer.constants.BAR * 16)
	sparse = len(backend.played)

	session.note_density = 100
	session.transport.advance(mesmer.constants.BAR * 16)
	dense = len(backend.played) - sparse

	assert dense > sparse * 3
	assert track.handle is handle


def test_pad_plays_chord_every_two_bars () -> None:

	session, backend = conftest.make_session()
	mesmer.voices.PadTrack(session).attach()

	session.transport.advance(mesmer.constants.TWO_BARS * 2)

	assert [entry[1] for entry in backend.played] == [48, 51, 55, 48, 51, 55]
	assert all(entry[0] == "pad" and entry[2] == 2.0 for entry in backend.played)
	assert backend.played[0][3] == pytest.approx(0.3 * 0.5)


def test_pad_follows_scale_swap () -> None:

	session, backend = conftest.make_session()
	mesmer.voices.PadTrack(session).attach()

	session.transport.advance(1)
	session.harmony = session.harmony.with_scale("major")
	session.transport.advance(mesmer.constants.TWO_BARS)

	assert [entry[1] for entry in backend.played] == [48, 51, 55, 48, 52, 55]


def test_bass_plays_root_on_alternate_half_notes () -> None:

	session, backend = conftest.make_session()
	mesmer.voices.BassTrack(session).attach()

	session.transport.advance(mesmer.constants.BAR * 2)

	assert backend.played == [("bass", 36, 0.25, pytest.approx(0.3)), ("bass", 36, 0.25, pytest.approx(0.3))]


def test_lead_and_arp_registers () -> None:

	session, backend = conftest.make_session(seed=4, note_density=100)
	mesmer.voices.LeadTrack(session).attach()
	mesmer.voices.ArpTrack(session).attach()

	session.transport.advance(mesmer.constants.BAR * 4)

	lead = [entry for entry in backend.played if entry[0] == "lead"]
	arp = [entry for entry in backend.played if entry[0] == "arp"]

	assert lead and arp
	assert all(60 <= entry[1] < 84 and entry[2] in (0.125, 0.0625) for entry in lead)
	assert all(48 <= entry[1] < 72 and entry[2] == 0.0625 for entry in arp)


def test_synth_volume_scales_velocity () -> None:

	session, backend = conftest.make_session(synth_volume=1.0)
	mesmer.voices.PadTrack(session).attach()
	session.transport.advance(1)

	assert backend.played[0][3] == pytest.approx(0.3)


def test_note_event_is_emitted () -> None:

	session, _ = conftest.make_session()
	notes = []
	session.events.on("note", lambda *args: notes.append(args))

	mesmer.voices.BassTrack(session).attach()
	session.transport.advance(1)

	assert notes == [("bass", 36, 0.25, pytest.approx(0.3))]


def test_skipped_note_emits_nothing () -> None:

	session, backend = conftest.make_session()
	backend.ready = False
	notes = []
	session.events.on("note", lambda *args: notes.append(args))

	mesmer.voices.PadTrack(session).attach()
	session.transport.advance(1)

	assert notes == []


def test_detach_stops_track () -> None:

	session, backend = conftest.make_session()
	track = mesmer.voices.BassTrack(session)
	track.attach()
	session.transport.advance(1)
	track.detach()
	session.transport.advance(mesmer.constants.BAR * 4)

	assert len(backend.played) == 1
	assert track.attached is False


def test_attach_is_idempotent () -> None:

	session, _ = conftest.make_session()
	track = mesmer.voices.ArpTrack(session)

	assert track.attach() is track.attach()
	assert len(session.transport.subscriptions) == 1


# ─── Authored tracks ─────────────────────────────────────────────────────────


AUTHORED = [
	{"step": 0, "notes": [{"note": "C4", "duration": 2, "velocity": 0.8}]},
	{"step": 4, "notes": [{"note": 64, "duration": 1, "velocity": 0.6}, {"note": 67}]},
]


def test_parse_authored_steps () -> None:

	steps = mesmer.voices.parse_authored_steps(AUTHORED)

	assert sorted(steps) == [0, 4]
	assert steps[0] == [mesmer.voices.AuthoredNote(60, 2.0, 0.8)]
	assert [n.note for n in steps[4]] == [64, 67]
	assert steps[4][1].duration == 1.0


def test_parse_skips_malformed_notes (caplog: pytest.LogCaptureFixture) -> None:

	with caplog.at_level(logging.WARNING):
		steps = mesmer.voices.parse_authored_steps([{"step": 2, "notes": [{"duration": 1}, {"note": "Q9"}, {"note": 50}]}])

	assert [n.note for n in steps[2]] == [50]
	assert "Skipping authored note" in caplog.text


def test_parse_skips_malformed_steps (caplog: pytest.LogCaptureFixture) -> None:

	entries = [
		{"step": "one", "notes": [{"note": 60}]},
		{"step": None, "notes": [{"note": 61}]},
		"not a step",
		{"step": 3, "notes": 5},
		{"step": "4", "notes": [{"note": 62}, "C4"]},
	]

	with caplog.at_level(logging.WARNING):
		steps = mesmer.voices.parse_authored_steps(entries)

	assert list(steps) == [4]
	assert [n.note for n in steps[4]] == [62]
	assert "Skipping authored step" in caplog.text


def test_authored_track_loops_per_bar () -> None:

	session, backend = conftest.make_session(synth_volume=1.0)
	track = mesmer.voices.AuthoredTrack(session, "lead", AUTHORED)
	track.attach()

	assert track.length == 16

	session.transport.advance(mesmer.constants.BAR * 2)

	assert [entry[1] for entry in backend.played] == [60, 64, 67, 60, 64, 67]
	assert backend.played[0] == ("lead", 60, 0.5, 0.8)


def test_authored_track_longer_than_a_bar () -> None:

	session, backend = conftest.make_session()
	track = mesmer.voices.AuthoredTrack(session, "bass", [{"step": 20, "notes": [{"note": 40}]}])

	assert track.length == 21

	track.attach()
	session.transport.advance(mesmer.constants.SIXTEENTH * 42)

	assert [entry[1] for entry in backend.played] == [40, 40]
