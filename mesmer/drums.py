import logging
import typing

import mesmer.constants
import mesmer.session
import mesmer.voices


logger = logging.getLogger(__name__)


# Names accepted by trigger_drum besides the channel names themselves.
BEATBOX_ALIASES: typing.Dict[str, str] = {
	"hh": "hihat",
	"closedhat": "hihat",
	"oh": "openhat",
}


def drum_level (session: mesmer.session.SessionContext, voice: str) -> float:

	"""Channel level times drum master times the user drum volume."""

	volumes = session.drum_volumes

	return volumes.get(voice, 0.0) * volumes.get("master", 1.0) * session.drum_volume


class DrumTrack (mesmer.voices.Track):

	"""
	One drum channel stepping through the current pattern on sixteenths.

	The pattern is looked up through ``session.patterns.current`` on every
	step, never cached, so a pattern switch or step edit is heard on the
	next step.
	"""

	interval_pulses = mesmer.constants.SIXTEENTH

	def __init__ (self, session: mesmer.session.SessionContext, voice: str) -> None:

		super().__init__(session)

		self.voice = voice

	def render (self, tick: int) -> None:

		step = tick % mesmer.constants.STEPS_PER_CYCLE
		pattern = self.session.patterns.current

		if not pattern.hit(self.voice, step):
			return

		if self.session.router.play_drum(self.voice, drum_level(self.session, self.voice)):
			self.session.events.emit("drum", self.voice, step)


class DrumSequencer:

	"""Owns the kick, snare, hi-hat and open hi-hat tasks."""

	def __init__ (self, session: mesmer.session.SessionContext, voices: typing.Sequence[str] = mesmer.constants.DRUM_VOICES) -> None:

		self.session = session
		self.tracks: typing.List[DrumTrack] = [DrumTrack(session, voice) for voice in voices]
		self._step_handle: typing.Optional[typing.Any] = None

	@property
	def attached (self) -> bool:
		return any(track.attached for track in self.tracks)

	def attach (self) -> None:

		if self.attached:
			return

		for track in self.tracks:
			track.attach()

		self._step_handle = self.session.transport.subscribe(self._emit_step, mesmer.constants.SIXTEENTH, name="drum-step")

		logger.info("Drum sequencer attached")

	def detach (self) -> None:

		if not self.attached:
			return

		for track in self.tracks:
			track.detach()

		if self._step_handle is not None:
			self.session.transport.cancel(self._step_handle)
			self._step_handle = None

		logger.info("Drum sequencer detached")

	def handles (self) -> typing.List[typing.Any]:
		return [track.handle for track in self.tracks if track.handle is not None]

	def _emit_step (self, pulse: int, tick: int) -> None:
		self.session.events.emit("step", tick % mesmer.constants.STEPS_PER_CYCLE)


def resolve_drum_name (name: str) -> typing.Optional[str]:

	key = name.strip().lower()
	key = BEATBOX_ALIASES.get(key, key)

	return key if key in mesmer.constants.DRUM_CHANNELS else None


def trigger_drum (session: mesmer.session.SessionContext, name: str) -> bool:

	"""
	Play one drum hit immediately (outside the sequencer).

	Accepts channel names and beatbox shorthands such as ``"hh"`` or ``"oh"``.
	"""

	voice = resolve_drum_name(name)

	if voice is None:
		logger.warning(f"Unknown drum {name!r}")
		return False

	return session.router.play_drum(voice, drum_level(session, voice))
