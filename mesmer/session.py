import dataclasses
import random
import typing

import mesmer.constants
import mesmer.easing
import mesmer.effects
import mesmer.event_emitter
import mesmer.harmony
import mesmer.patterns
import mesmer.router
import mesmer.transport


@dataclasses.dataclass
class SessionContext:

	"""
	The shared state every voice and drum task reads.

	Tasks hold a reference to this object and look fields up on each tick.
	Writers replace values (``harmony``, ``patterns.current``,
	``router.selection``) in single assignments; pattern steps are the only
	thing edited in place.
	"""

	transport: mesmer.transport.Transport
	router: mesmer.router.BackendRouter
	patterns: mesmer.patterns.PatternStore
	harmony: mesmer.harmony.HarmonyState
	events: mesmer.event_emitter.EventEmitter = dataclasses.field(default_factory=mesmer.event_emitter.EventEmitter)
	rng: random.Random = dataclasses.field(default_factory=random.Random)
	effects: typing.Optional[mesmer.effects.Effects] = None
	note_density: float = 50.0
	synth_volume: float = 0.5
	drum_volume: float = 0.5
	drum_volumes: typing.Dict[str, float] = dataclasses.field(default_factory=lambda: dict(mesmer.constants.DEFAULT_DRUM_VOLUMES))
	generator: mesmer.harmony.HarmonyGenerator = dataclasses.field(init=False)

	def __post_init__ (self) -> None:

		self.generator = mesmer.harmony.HarmonyGenerator(lambda: self.harmony, self.rng)

	@property
	def output_gain (self) -> mesmer.easing.RampedValue:

		"""The shared output level that pause/resume fade."""

		return self.router.output_gain
