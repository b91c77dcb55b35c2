import asyncio
import logging
import random
import typing

import mesmer.backends
import mesmer.constants
import mesmer.harmony


if typing.TYPE_CHECKING:
	import mesmer.engine


logger = logging.getLogger(__name__)


EVOLUTION_SECONDS = 16.0
AMBIENCE_SECONDS = 12.0
CHAOS_RANGE: typing.Tuple[float, float] = (8.0, 16.0)

CHAOS_TEMPO_RANGE: typing.Tuple[int, int] = (80, 160)
CHAOS_TEMPO_SECONDS = 4.0
CHAOS_EFFECTS_SECONDS = 2.0
AMBIENCE_RAMP_SECONDS = 4.0


class EvolutionDaemon:

	"""
	Slow background changes while the engine plays.

	Two timers always run: every ``evolution_seconds`` the scale changes at
	random, and every ``ambience_seconds`` the reverb send drifts somewhere
	between 20% and 50%.  With chaos mode on, a third timer fires every
	8-16 seconds (re-drawn each time) and applies one or two random actions.

	The timers never touch engine state directly.  Each change is handed to
	``transport.submit`` so it lands between pulses.  The public ``evolve_*``
	and ``chaos_step`` methods do one round each and can be called without
	an event loop.
	"""

	def __init__ (
		self,
		engine: "mesmer.engine.Engine",
		evolution_seconds: float = EVOLUTION_SECONDS,
		ambience_seconds: float = AMBIENCE_SECONDS,
		chaos_range: typing.Tuple[float, float] = CHAOS_RANGE,
		rng: typing.Optional[random.Random] = None,
		evolution: bool = True
	) -> None:

		self.engine = engine
		self.evolution_seconds = evolution_seconds
		self.ambience_seconds = ambience_seconds
		self.chaos_range = chaos_range
		self.rng = rng if rng is not None else random.Random()
		self.evolution = evolution
		self.chaos_enabled = False

		self._tasks: typing.Dict[str, asyncio.Task] = {}

		self.chaos_actions: typing.Dict[str, typing.Callable[[], typing.Any]] = {
			"drum_machine": self.randomize_drum_machine,
			"synth_preset": self.randomize_synth_preset,
			"synth_engine": self.randomize_synth_engine,
			"tempo": self.randomize_tempo,
			"scale": self.randomize_scale,
			"effects": self.randomize_effects,
		}

	@property
	def running (self) -> bool:
		return bool(self._tasks)

	def _spawn (self, name: str, body: typing.Callable[[], typing.Any], period: typing.Callable[[], float]) -> None:

		if name in self._tasks:
			return

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			logger.debug(f"No running event loop, {name} timer not started")
			return

		self._tasks[name] = loop.create_task(self._run(name, body, period))

	async def _run (self, name: str, body: typing.Callable[[], typing.Any], period: typing.Callable[[], float]) -> None:

		while True:

			await asyncio.sleep(period())

			try:
				body()
			except Exception:
				logger.exception(f"Error in {name} timer")

	def start (self) -> None:

		if self.evolution:
			self._spawn("scale", self.evolve_scale, lambda: self.evolution_seconds)
			self._spawn("ambience", self.evolve_ambience, lambda: self.ambience_seconds)

		if self.chaos_enabled:
			self._spawn("chaos", self.chaos_step, lambda: self.rng.uniform(*self.chaos_range))

	def stop (self) -> None:

		for task in self._tasks.values():
			task.cancel()

		self._tasks = {}

	def set_chaos (self, enabled: bool) -> None:

		self.chaos_enabled = enabled

		if not enabled:
			task = self._tasks.pop("chaos", None)
			if task is not None:
				task.cancel()
			return

		if self.engine.is_playing:
			self._spawn("chaos", self.chaos_step, lambda: self.rng.uniform(*self.chaos_range))

	def _submit (self, mutation: typing.Callable[[], typing.Any]) -> None:
		self.engine.transport.submit(mutation)

	# -- Evolution ------------------------------------------------------------

	def evolve_scale (self) -> typing.Optional[str]:

		if not self.engine.is_playing:
			return None

		name = self.rng.choice(list(mesmer.harmony.SCALES))
		self._submit(lambda: self.engine.set_scale(name))

		return name

	def evolve_ambience (self) -> typing.Optional[float]:

		if not self.engine.is_playing:
			return None

		wet = 0.2 + self.rng.random() * 0.3
		self._submit(lambda: self.engine.effects.ramp("reverb", wet, AMBIENCE_RAMP_SECONDS))

		return wet

	# -- Chaos ----------------------------------------------------------------

	def chaos_step (self) -> typing.List[str]:

		"""Run one or two random chaos actions (repeats allowed).  Returns their names."""

		if not self.engine.is_playing or not self.chaos_enabled:
			return []

		count = 1 if self.rng.random() < 0.5 else 2
		names = [self.rng.choice(list(self.chaos_actions)) for _ in range(count)]

		for name in names:
			self.chaos_actions[name]()

		return names

	def randomize_drum_machine (self) -> None:

		machines = [entry["value"] for entry in self.engine.get_drum_machines()]

		if not machines:
			return

		name = self.rng.choice(machines)
		self._submit(lambda: self.engine.change_drum_machine(name))

		logger.info(f"Chaos: switched to drum machine {name}")

	def randomize_synth_preset (self) -> None:

		backend = self.engine.router.backends.get(mesmer.backends.EngineId.PRESET)

		if backend is None:
			return

		choices: typing.Dict[str, str] = {}

		for voice in mesmer.constants.MELODIC_VOICES:
			presets = backend.presets_in(mesmer.backends.VOICE_PATCH_CATEGORIES[voice])
			if presets:
				choices[voice] = self.rng.choice(presets)

		def apply () -> None:
			for voice, preset in choices.items():
				self.engine.change_preset(voice, preset, mesmer.backends.EngineId.PRESET)

		self._submit(apply)

		logger.info(f"Chaos: changed instruments {choices}")

	def randomize_synth_engine (self) -> None:

		engine_id = self.rng.choice(list(self.engine.router.backends))
		self._submit(lambda: self.engine.set_synth_engine(engine_id))

		logger.info(f"Chaos: synth engine changed to {engine_id.value}")

	def randomize_tempo (self) -> None:

		bpm = self.rng.randint(*CHAOS_TEMPO_RANGE)
		self._submit(lambda: self.engine.set_bpm(bpm, seconds=CHAOS_TEMPO_SECONDS))

		logger.info(f"Chaos: BPM changed to {bpm}")

	def randomize_scale (self) -> None:

		name = self.rng.choice(list(mesmer.harmony.SCALES))
		self._submit(lambda: self.engine.set_scale(name))

		logger.info(f"Chaos: scale changed to {name}")

	def randomize_effects (self) -> None:

		reverb = self.rng.random() * 0.6
		delay = self.rng.random() * 0.4

		def apply () -> None:
			self.engine.effects.ramp("reverb", reverb, CHAOS_EFFECTS_SECONDS)
			self.engine.effects.ramp("delay", delay, CHAOS_EFFECTS_SECONDS)

		self._submit(apply)

		logger.info(f"Chaos: FX updated, reverb {reverb:.0%} delay {delay:.0%}")
