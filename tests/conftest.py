import random
import typing

import mido
import pytest

import mesmer.backends
import mesmer.engine
import mesmer.harmony
import mesmer.patterns
import mesmer.router
import mesmer.session
import mesmer.transport


class FakeMidiOut:

	"""MIDI output stub that records every message sent to it."""

	def __init__ (self) -> None:

		self.messages: typing.List[mido.Message] = []
		self.closed = False

	def send (self, message: mido.Message) -> None:

		"""Record an outgoing MIDI message."""

		self.messages.append(message)

	def close (self) -> None:

		self.closed = True

	def panic (self) -> None:

		"""No-op panic for the fake device."""

		return None

	def reset (self) -> None:

		"""No-op reset for the fake device."""

		return None

	def note_ons (self, channel: typing.Optional[int] = None) -> typing.List[mido.Message]:

		"""Note-on messages with a non-zero velocity, optionally for one channel."""

		return [
			m for m in self.messages
			if m.type == "note_on" and m.velocity > 0 and (channel is None or m.channel == channel)
		]


class RecordingBackend:

	"""A synthesis backend that remembers what it was asked to play."""

	def __init__ (self, ready: bool = True) -> None:

		self.ready = ready
		self.played: typing.List[typing.Tuple[str, int, float, float]] = []
		self.presets: typing.Dict[str, str] = {}

	def play (self, voice: str, note: int, duration: float, velocity: float) -> None:
		self.played.append((voice, note, duration, velocity))

	def change_preset (self, voice: str, preset_id: str) -> bool:
		self.presets[voice] = preset_id
		return True

	def is_ready (self, voice: str) -> bool:
		return self.ready

	def voices (self) -> typing.List[str]:
		return [entry[0] for entry in self.played]


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	return FakeMidiOut()


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use a fake MIDI output for tests that open ports."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)


@pytest.fixture
def midi_out () -> FakeMidiOut:
	return FakeMidiOut()


@pytest.fixture
def engine (midi_out: FakeMidiOut) -> mesmer.engine.Engine:

	"""A seeded engine on a hand-driven clock with background evolution off."""

	return mesmer.engine.Engine(seed=7, midi_out=midi_out, external_clock=True, evolution=False)


def make_session (seed: int = 0, midi_out: typing.Optional[FakeMidiOut] = None, **kwargs: typing.Any) -> typing.Tuple[mesmer.session.SessionContext, RecordingBackend]:

	"""A started, hand-driven session whose melodic notes land in a RecordingBackend."""

	transport = mesmer.transport.Transport(external_clock=True)
	transport.start()

	backend = RecordingBackend()
	drums = mesmer.backends.DrumKitBackend(transport, midi_out)
	router = mesmer.router.BackendRouter(
		{mesmer.backends.EngineId.SYNTH: backend, mesmer.backends.EngineId.PRESET: RecordingBackend()},
		drum_backend = drums
	)

	session = mesmer.session.SessionContext(
		transport = transport,
		router = router,
		patterns = mesmer.patterns.PatternStore(),
		harmony = mesmer.harmony.HarmonyState.initial("minor", "C3"),
		rng = random.Random(seed),
		**kwargs
	)

	return session, backend
