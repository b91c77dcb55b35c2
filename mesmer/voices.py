"""Melodic voice tasks.

Each voice is a small scheduler object: it knows its subdivision and how to
render one tick, and it holds the :class:`~mesmer.session.SessionContext`
rather than any captured state.  The generative tracks read the current
harmony and density on every tick; :class:`AuthoredTrack` looks its notes up
from a user-supplied step sequence instead.  Both send notes through the
same router call, so engine selection, readiness and loudness trimming work
identically in either mode.
"""

import dataclasses
import logging
import typing

import mesmer.constants
import mesmer.easing
import mesmer.harmony
import mesmer.session
import mesmer.transport


logger = logging.getLogger(__name__)


def density_threshold (density: float) -> float:

	"""Map note density (0-100, clamped) to the random() threshold a note must beat.

	0 gives 0.9 (about one note in ten), 100 gives 0.1 (about nine in ten).
	"""

	return 0.9 - (mesmer.easing.clamp(density, 0, 100) / 100.0) * 0.8


def should_fire (session: mesmer.session.SessionContext) -> bool:

	return session.rng.random() > density_threshold(session.note_density)


class Track:

	"""
	Base class for anything that renders on a fixed subdivision.

	Subclasses set ``voice`` and ``interval_pulses`` and implement
	:meth:`render`.  ``attach`` subscribes the track to the session's
	transport; ``detach`` cancels it.
	"""

	voice: str = ""
	interval_pulses: int = mesmer.constants.SIXTEENTH

	def __init__ (self, session: mesmer.session.SessionContext) -> None:

		self.session = session
		self.handle: typing.Optional[mesmer.transport.TaskHandle] = None

	@property
	def attached (self) -> bool:
		return self.handle is not None and self.handle.active

	def attach (self) -> mesmer.transport.TaskHandle:

		if self.handle is None or not self.handle.active:
			self.handle = self.session.transport.subscribe(self._on_tick, self.interval_pulses, name=self.voice)

		return self.handle

	def detach (self) -> None:

		if self.handle is not None:
			self.session.transport.cancel(self.handle)
			self.handle = None

	def _on_tick (self, pulse: int, tick: int) -> None:
		self.render(tick)

	def render (self, tick: int) -> None:
		raise NotImplementedError

	def _play (self, note: int, duration: float, velocity: float) -> bool:

		level = velocity * self.session.synth_volume
		played = self.session.router.play(self.voice, note, duration, level)

		if played:
			self.session.events.emit("note", self.voice, note, duration, level)

		return played


class PadTrack (Track):

	"""A three-note chord from the current scale every two bars."""

	voice = "pad"
	interval_pulses = mesmer.constants.TWO_BARS

	def render (self, tick: int) -> None:

		for note in self.session.generator.generate_chord(octave=3):
			self._play(note, 2.0, 0.3)


class BassTrack (Track):

	"""The scale root, two octaves down, on every other half note."""

	voice = "bass"
	interval_pulses = mesmer.constants.HALF

	def render (self, tick: int) -> None:

		if tick % 2:
			return

		self._play(self.session.generator.generate_note(octave=2, degree=0), 0.25, 0.6)


class LeadTrack (Track):

	"""Density-gated random scale notes on eighths, octave 4 or 5."""

	voice = "lead"
	interval_pulses = mesmer.constants.EIGHTH

	def render (self, tick: int) -> None:

		if not should_fire(self.session):
			return

		rng = self.session.rng
		note = self.session.generator.generate_note(octave=4 + rng.randrange(2))
		duration = 0.125 if rng.random() > 0.5 else 0.0625

		self._play(note, duration, 0.4)


class ArpTrack (Track):

	"""Density-gated random scale notes on sixteenths, octave 3 or 4."""

	voice = "arp"
	interval_pulses = mesmer.constants.SIXTEENTH

	def render (self, tick: int) -> None:

		if not should_fire(self.session):
			return

		note = self.session.generator.generate_note(octave=3 + self.session.rng.randrange(2))

		self._play(note, 0.0625, 0.3)


GENERATIVE_TRACKS: typing.Tuple[typing.Type[Track], ...] = (PadTrack, BassTrack, LeadTrack, ArpTrack)


@dataclasses.dataclass(frozen=True)
class AuthoredNote:

	"""One note in an authored step: pitch, length in sixteenths, velocity 0-1."""

	note: int
	duration: float
	velocity: float


AuthoredSteps = typing.Dict[int, typing.List[AuthoredNote]]


def parse_authored_steps (entries: typing.Iterable[typing.Dict[str, typing.Any]]) -> AuthoredSteps:

	"""
	Convert ``[{step, notes: [{note, duration, velocity}]}]`` into a step map.

	Notes may be MIDI numbers or names (``"C4"``).  Malformed steps and notes
	are logged and dropped.
	"""

	steps: AuthoredSteps = {}

	for entry in entries:

		try:
			step = int(entry.get("step", 0))
			notes = list(entry.get("notes") or [])
		except (AttributeError, TypeError, ValueError) as e:
			logger.warning(f"Skipping authored step {entry!r}: {e}")
			continue

		for raw in notes:

			try:
				note = AuthoredNote(
					note = mesmer.harmony.parse_pitch(raw["note"]),
					duration = float(raw.get("duration", 1)),
					velocity = mesmer.easing.clamp(float(raw.get("velocity", 0.8)), 0.0, 1.0)
				)
			except (AttributeError, KeyError, TypeError, ValueError) as e:
				logger.warning(f"Skipping authored note at step {step}: {e}")
				continue

			steps.setdefault(step, []).append(note)

	return steps


class AuthoredTrack (Track):

	"""
	Plays a user-supplied step sequence on sixteenths.

	The loop is ``max(last_step, 15) + 1`` steps long, so anything up to one
	bar loops per bar.  A note's ``duration`` counts sixteenths; it is played
	for a quarter of a second per unit.
	"""

	interval_pulses = mesmer.constants.SIXTEENTH

	def __init__ (self, session: mesmer.session.SessionContext, voice: str, entries: typing.Iterable[typing.Dict[str, typing.Any]]) -> None:

		super().__init__(session)

		self.voice = voice
		self.steps = parse_authored_steps(entries)
		self.length = max(max(self.steps, default=0), mesmer.constants.STEPS_PER_CYCLE - 1) + 1

	def render (self, tick: int) -> None:

		for authored in self.steps.get(tick % self.length, []):
			self._play(authored.note, authored.duration * 0.25, authored.velocity)
