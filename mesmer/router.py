import logging
import typing

import mesmer.backends
import mesmer.easing


logger = logging.getLogger(__name__)


# Velocity scale applied per backend so switching engine does not jump in level.
LOUDNESS_TRIM: typing.Dict[mesmer.backends.EngineId, float] = {
	mesmer.backends.EngineId.PRESET: 0.4,
}

# Below this a trimmed note is silent; above it never drops under the floor.
_TRIM_FLOOR = 0.01


def trim_velocity (engine_id: mesmer.backends.EngineId, velocity: float) -> float:

	"""Apply the backend's loudness trim to ``velocity``."""

	factor = LOUDNESS_TRIM.get(engine_id)

	if factor is None:
		return velocity

	if velocity <= _TRIM_FLOOR:
		return 0.0

	return max(_TRIM_FLOOR, velocity * factor)


class BackendRouter:

	"""
	Sends every note to whichever backend is selected at that instant.

	``selection`` is read on each call and never cached by the voice tasks, so
	``select()`` takes effect on the next note with nothing restarted.  Drum
	hits always go to the drum kit backend.

	Every velocity is scaled by ``output_gain``, the shared level that
	``pause()`` fades to silence.
	"""

	def __init__ (
		self,
		backends: typing.Dict[mesmer.backends.EngineId, mesmer.backends.SynthesisBackend],
		drum_backend: typing.Optional[mesmer.backends.DrumKitBackend] = None,
		selection: mesmer.backends.EngineId = mesmer.backends.EngineId.SYNTH,
		output_gain: typing.Optional[mesmer.easing.RampedValue] = None
	) -> None:

		if selection not in backends:
			raise ValueError(f"No backend registered for {selection}")

		self.backends = backends
		self.drum_backend = drum_backend
		self.selection = selection
		self.output_gain = output_gain if output_gain is not None else mesmer.easing.RampedValue(1.0, minimum=0.0, maximum=1.0)

	@property
	def current (self) -> mesmer.backends.SynthesisBackend:
		return self.backends[self.selection]

	def select (self, engine: typing.Union[mesmer.backends.EngineId, str]) -> bool:

		"""Switch the melodic backend.  Unknown or unregistered engines are logged and ignored."""

		engine_id = mesmer.backends.EngineId.parse(engine)

		if engine_id is None or engine_id not in self.backends:
			logger.warning(f"Synth engine {engine!r} not available - keeping {self.selection.value}")
			return False

		self.selection = engine_id

		logger.info(f"Synth engine switched to {engine_id.value}")

		return True

	def play (self, voice: str, note: int, duration: float, velocity: float) -> bool:

		"""
		Play a melodic note on the selected backend.

		Returns False when the note was skipped (backend not ready or silent).
		A skipped note is never queued or retried.
		"""

		engine_id = self.selection
		backend = self.backends[engine_id]

		if not backend.is_ready(voice):
			logger.debug(f"{engine_id.value} not ready for {voice} - note skipped")
			return False

		level = trim_velocity(engine_id, velocity * self.output_gain.value)

		if level <= 0:
			return False

		backend.play(voice, note, duration, level)

		return True

	def play_drum (self, voice: str, velocity: float) -> bool:

		"""Trigger one drum channel on the drum kit backend."""

		if self.drum_backend is None:
			return False

		if not self.drum_backend.is_ready(voice):
			logger.debug(f"Drum kit not ready for {voice} - hit skipped")
			return False

		level = velocity * self.output_gain.value

		if level <= 0:
			return False

		self.drum_backend.hit(voice, level)

		return True

	def change_preset (self, voice: str, preset_id: str, engine: typing.Optional[typing.Union[mesmer.backends.EngineId, str]] = None) -> bool:

		"""Change a voice's preset on ``engine`` (the selected backend by default)."""

		engine_id = self.selection if engine is None else mesmer.backends.EngineId.parse(engine)

		if engine_id is None or engine_id not in self.backends:
			logger.warning(f"Synth engine {engine!r} not available")
			return False

		return self.backends[engine_id].change_preset(voice, preset_id)

	def load_pending (self) -> None:

		"""Start sample loads that were requested before the event loop was running."""

		for backend in [*self.backends.values(), self.drum_backend]:
			banks = getattr(backend, "banks", None)
			if banks is not None:
				banks.load_pending()

	def all_notes_off (self) -> None:

		for backend in self.backends.values():
			release = getattr(backend, "all_notes_off", None)
			if release is not None:
				release()

		if self.drum_backend is not None:
			self.drum_backend.all_notes_off()
