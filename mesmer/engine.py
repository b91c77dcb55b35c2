import asyncio
import enum
import logging
import random
import signal
import typing

import mesmer.backends
import mesmer.constants
import mesmer.drums
import mesmer.easing
import mesmer.effects
import mesmer.event_emitter
import mesmer.evolution
import mesmer.harmony
import mesmer.midi_utils
import mesmer.patterns
import mesmer.router
import mesmer.session
import mesmer.transport
import mesmer.voices


logger = logging.getLogger(__name__)


class Mode (enum.Enum):

	GENERATIVE = "generative"
	AUTHORED = "authored"


# genre: (scale, root, bpm)
GENRES: typing.Dict[str, typing.Tuple[str, str, int]] = {
	"ambient": ("minor", "C3", 80),
	"techno": ("phrygian", "E3", 130),
	"house": ("major", "G3", 125),
	"trance": ("minor", "A3", 138),
	"dnb": ("minor", "D3", 174),
	"dubstep": ("phrygian", "F#2", 140),
	"jazz": ("dorian", "D3", 120),
	"funk": ("dorian", "E3", 110),
	"soul": ("minor", "C3", 95),
	"hiphop": ("minor", "A2", 90),
	"trap": ("minor", "F#2", 140),
	"lofi": ("pentatonic", "F3", 85),
	"chillwave": ("major", "D3", 95),
	"vaporwave": ("major", "F3", 70),
	"synthwave": ("minor", "E3", 120),
	"industrial": ("phrygian", "C3", 135),
	"drone": ("pentatonic", "A2", 60),
	"psychedelic": ("minor", "B2", 105),
	"experimental": ("phrygian", "G#2", 100),
	"minimal": ("pentatonic", "C3", 128),
	"idm": ("dorian", "F#3", 145),
	"breakbeat": ("minor", "E3", 135),
	"jungle": ("pentatonic", "D3", 165),
	"downtempo": ("minor", "G3", 75),
	"chillout": ("major", "C3", 80),
	"trip": ("minor", "E2", 90),
	"garage": ("minor", "G3", 130),
	"bassline": ("minor", "F2", 138),
	"grime": ("phrygian", "E2", 140),
	"footwork": ("minor", "C3", 160),
}

DEFAULT_GENRE_SETTINGS: typing.Tuple[str, str, int] = ("minor", "C3", 120)

TEMPO_RAMP_SECONDS = 2.0
PAUSE_FADE_SECONDS = 0.1

AuthoredTracks = typing.Dict[str, typing.List[typing.Dict[str, typing.Any]]]


class Engine:

	"""
	The realtime music engine: one clock, four melodic voices and a drum machine.

	The engine plays in one of two modes.  In *generative* mode the pad, bass,
	lead and arpeggio voices invent notes from the current scale and note
	density.  In *authored* mode they play step sequences supplied with
	:meth:`use_custom_patterns`.  The drum sequencer runs alongside either
	mode and is switched on and off independently.

	Every live change (pattern, synth engine, scale, tempo, density) is a
	write to shared state that the running tasks read on their next tick.
	Nothing is restarted, so the beat grid never stutters.

	Example:
		```python
		engine = mesmer.Engine(bpm=124, scale="dorian", key="D3", drums_enabled=True)
		engine.start()
		engine.change_drum_pattern("techno")
		engine.set_synth_engine("preset")
		```

	Steady-state operations never raise for bad musical input: unknown names
	are logged and ignored and out-of-range values are clamped.
	"""

	def __init__ (
		self,
		bpm: float = 120,
		scale: str = "minor",
		key: typing.Union[str, int] = mesmer.harmony.DEFAULT_ROOT,
		seed: typing.Optional[int] = None,
		drums_enabled: bool = False,
		pattern: str = "basic",
		synth_engine: typing.Union[mesmer.backends.EngineId, str] = mesmer.backends.EngineId.SYNTH,
		note_density: float = 50,
		output_device: typing.Optional[str] = None,
		midi_out: typing.Optional[typing.Any] = None,
		backends: typing.Optional[typing.Dict[mesmer.backends.EngineId, mesmer.backends.SynthesisBackend]] = None,
		drum_backend: typing.Optional[mesmer.backends.DrumKitBackend] = None,
		pattern_library: typing.Optional[mesmer.patterns.PatternLibrary] = None,
		custom_store: typing.Optional[mesmer.patterns.NamedPatternStore] = None,
		external_clock: bool = False,
		spin_wait: bool = False,
		evolution: bool = True
	) -> None:

		"""
		Build a stopped engine.

		Parameters:
			bpm: Initial tempo.
			scale: Initial scale name (see ``mesmer.harmony.SCALES``).
			key: Root note as a name (``"C3"``) or MIDI number.
			seed: Seed for every random choice the engine makes.  With a seed
				and an externally driven clock, playback is repeatable.
			drums_enabled: Start the drum sequencer with the voices.
			pattern: Initial built-in drum pattern.
			synth_engine: Initial melodic backend.
			note_density: Lead/arp density, 0-100.
			output_device: MIDI output port name to open.  Ignored when
				``midi_out`` is given.  With neither, the engine runs silently.
			midi_out: An already-open mido output port.
			backends: Replace the default melodic backends.
			drum_backend: Replace the default drum kit backend.
			pattern_library: Imported patterns addressable as ``"midi:<name>"``.
			custom_store: Where saved custom patterns live.
			external_clock: Never run the internal clock; drive it with
				``engine.transport.advance()``.
			spin_wait: Busy-wait the last millisecond of each pulse.
			evolution: Run the background scale/ambience evolution while playing.
		"""

		if midi_out is None and output_device is not None:
			_, midi_out = mesmer.midi_utils.select_output_device(output_device)

		self.midi_out = midi_out
		self.rng = random.Random(seed)
		self.events = mesmer.event_emitter.EventEmitter()

		self.transport = mesmer.transport.Transport(
			initial_bpm = bpm,
			external_clock = external_clock,
			spin_wait = spin_wait
		)

		if backends is None:
			backends = {
				mesmer.backends.EngineId.SYNTH: mesmer.backends.SynthBackend(self.transport, midi_out),
				mesmer.backends.EngineId.PRESET: mesmer.backends.PresetBackend(self.transport, midi_out),
				mesmer.backends.EngineId.SAMPLER: mesmer.backends.SampleBankBackend(self.transport, midi_out),
			}

		if drum_backend is None:
			drum_backend = mesmer.backends.DrumKitBackend(self.transport, midi_out)

		selection = mesmer.backends.EngineId.parse(synth_engine)

		if selection is None:
			raise ValueError(f"Unknown synth engine {synth_engine!r}")

		output_gain = mesmer.easing.RampedValue(1.0, minimum=0.0, maximum=1.0)
		self.transport.add_ramp(output_gain)

		self.router = mesmer.router.BackendRouter(backends, drum_backend, selection, output_gain)
		self.patterns = mesmer.patterns.PatternStore(pattern_library, custom_store, initial=pattern)
		self.effects = mesmer.effects.Effects(self.transport, self.events)

		self.session = mesmer.session.SessionContext(
			transport = self.transport,
			router = self.router,
			patterns = self.patterns,
			harmony = mesmer.harmony.HarmonyState.initial(scale, key),
			events = self.events,
			rng = self.rng,
			effects = self.effects,
			note_density = mesmer.easing.clamp(note_density, 0, 100)
		)

		self.drums = mesmer.drums.DrumSequencer(self.session)
		self.melodic_tracks: typing.List[mesmer.voices.Track] = []

		self.drums_enabled = drums_enabled
		self.mode = Mode.GENERATIVE
		self.custom_tracks: typing.Optional[AuthoredTracks] = None
		self.is_playing = False
		self.paused_gain: typing.Optional[float] = None
		self.chaos_mode = False
		self.genre: typing.Optional[str] = None

		self.daemon = mesmer.evolution.EvolutionDaemon(self, rng=self.rng, evolution=evolution)

	# -- Lifecycle ------------------------------------------------------------

	def start (self) -> None:

		"""
		Start playback.  Does nothing if already playing.

		If authored tracks were supplied before starting, playback begins
		in authored mode.
		"""

		if self.is_playing:
			return

		if self.custom_tracks:
			mode = Mode.AUTHORED
			tracks = self._build_authored_tracks(self.custom_tracks)
		else:
			mode = Mode.GENERATIVE
			tracks = self._build_generative_tracks()

		self.is_playing = True
		self.mode = mode
		self.melodic_tracks = tracks
		self.transport.start()
		self.router.load_pending()

		for track in self.melodic_tracks:
			track.attach()

		if self.drums_enabled:
			self.drums.attach()

		self.daemon.start()

		logger.info(f"Music started in {self.mode.value} mode" + (" (with drums)" if self.drums_enabled else ""))

		self.events.emit("start")

	def stop (self) -> None:

		"""Stop playback and dispose every task.  Does nothing if already stopped."""

		if not self.is_playing:
			return

		self.is_playing = False
		self.daemon.stop()

		self._detach_melodic()
		self.drums.detach()
		self.transport.stop()
		self.router.all_notes_off()

		if self.paused_gain is not None:
			self.router.output_gain.set(self.paused_gain)
			self.paused_gain = None

		logger.info("Music stopped")

		self.events.emit("stop")

	def pause (self) -> None:

		"""
		Fade the output to silence without stopping anything.

		The clock and every task keep running, so :meth:`resume` comes back
		exactly on the grid.
		"""

		if not self.is_playing or self.paused_gain is not None:
			return

		gain = self.router.output_gain
		self.paused_gain = gain.target
		gain.ramp_to(0.0, PAUSE_FADE_SECONDS)

		logger.info("Music paused")

		self.events.emit("pause")

	def resume (self) -> None:

		"""Fade back to the level recorded by :meth:`pause`."""

		if not self.is_playing or self.paused_gain is None:
			return

		self.router.output_gain.ramp_to(self.paused_gain, PAUSE_FADE_SECONDS)
		self.paused_gain = None

		logger.info("Music resumed")

		self.events.emit("resume")

	@property
	def is_paused (self) -> bool:
		return self.paused_gain is not None

	@property
	def active_tasks (self) -> typing.List[mesmer.transport.TaskHandle]:

		"""Every transport subscription owned by a voice or drum track."""

		handles = [track.handle for track in self.melodic_tracks if track.handle is not None]

		return handles + self.drums.handles()

	def close (self) -> None:

		"""Stop, release any sounding notes and close the MIDI port."""

		if self.is_playing:
			self.stop()
		else:
			self.router.all_notes_off()

		if self.midi_out is not None:
			try:
				self.midi_out.close()
			except Exception:
				logger.exception("Failed to close MIDI output")
			self.midi_out = None

	async def run (self) -> None:

		"""Play until SIGINT or SIGTERM."""

		logger.info("Playing. Press Ctrl+C to stop.")

		self.start()

		stop_event = asyncio.Event()
		loop = asyncio.get_running_loop()

		for sig in (signal.SIGINT, signal.SIGTERM):
			loop.add_signal_handler(sig, stop_event.set)

		try:
			await stop_event.wait()
		finally:
			self.stop()

	def play (self) -> None:

		"""Blocking entry point: run until interrupted."""

		try:
			asyncio.run(self.run())

		except KeyboardInterrupt:
			pass

	# -- Modes ----------------------------------------------------------------

	def _build_generative_tracks (self) -> typing.List[mesmer.voices.Track]:
		return [track_class(self.session) for track_class in mesmer.voices.GENERATIVE_TRACKS]

	def _build_authored_tracks (self, tracks: AuthoredTracks) -> typing.List[mesmer.voices.Track]:

		built: typing.List[mesmer.voices.Track] = []

		for voice in mesmer.constants.MELODIC_VOICES:

			entries = tracks.get(voice) or []

			if not entries:
				logger.info(f"No authored pattern for {voice}, skipping")
				continue

			built.append(mesmer.voices.AuthoredTrack(self.session, voice, entries))

		return built

	def _detach_melodic (self) -> None:

		for track in self.melodic_tracks:
			track.detach()

		self.melodic_tracks = []

	def use_custom_patterns (self, tracks: AuthoredTracks) -> None:

		"""
		Switch the melodic voices to authored step sequences.

		``tracks`` maps voice names to ``[{step, notes: [{note, duration, velocity}]}]``.
		Drum tasks are left running.  When stopped, the tracks are kept and
		used on the next :meth:`start`.
		"""

		self.custom_tracks = tracks
		self.mode = Mode.AUTHORED

		if not self.is_playing:
			logger.info("Not playing - authored patterns will be used when started")
			return

		built = self._build_authored_tracks(tracks)

		self._detach_melodic()
		self.melodic_tracks = built

		for track in self.melodic_tracks:
			track.attach()

		logger.info("Authored mode activated")

		self.events.emit("mode_changed", self.mode.value)

	def switch_to_generative_mode (self) -> None:

		"""Replace authored tracks with the generative voices.  Drum tasks are left running."""

		self.custom_tracks = None
		self.mode = Mode.GENERATIVE

		if not self.is_playing:
			return

		self._detach_melodic()
		self.melodic_tracks = self._build_generative_tracks()

		for track in self.melodic_tracks:
			track.attach()

		logger.info("Generative mode restored")

		self.events.emit("mode_changed", self.mode.value)

	# -- Musical parameters ---------------------------------------------------

	def set_bpm (self, value: float, seconds: float = TEMPO_RAMP_SECONDS) -> None:

		"""Glide to a new tempo (clamped to the transport's range) over ``seconds``."""

		bpm = mesmer.easing.clamp(float(value), self.transport.min_bpm, self.transport.max_bpm)

		self.transport.set_tempo(bpm, seconds)

	def set_scale (self, name: str) -> bool:

		if name not in mesmer.harmony.SCALES:
			logger.warning(f"Unknown scale {name!r}")
			return False

		self.session.harmony = self.session.harmony.with_scale(name)

		logger.info(f"Scale changed to {name}")

		self.events.emit("scale_changed", name, self.session.harmony.root_name)

		return True

	def set_key (self, note: typing.Union[str, int]) -> bool:

		"""Change the root note (``"E3"`` or a MIDI number)."""

		try:
			root = mesmer.harmony.parse_pitch(note)
		except (TypeError, ValueError):
			logger.warning(f"Unknown key {note!r}")
			return False

		self.session.harmony = self.session.harmony.with_root(root)

		logger.info(f"Key changed to {self.session.harmony.root_name}")

		self.events.emit("scale_changed", self.session.harmony.scale_name, self.session.harmony.root_name)

		return True

	def set_note_density (self, value: float) -> None:

		self.session.note_density = mesmer.easing.clamp(float(value), 0, 100)

		logger.info(f"Note density set to {self.session.note_density:.0f}%")

	def set_genre (self, name: str) -> None:

		"""
		Apply a genre's scale, root and tempo while playing.

		Unknown genres fall back to C minor at 120 BPM.
		"""

		scale, root, bpm = GENRES.get(name, DEFAULT_GENRE_SETTINGS)

		self.genre = name
		self.session.harmony = mesmer.harmony.HarmonyState(
			scale_name = scale,
			scale_intervals = mesmer.harmony.SCALES[scale],
			root_note = mesmer.harmony.note_name_to_midi(root),
			previous_scale_name = self.session.harmony.scale_name,
			previous_root = self.session.harmony.root_note
		)
		self.set_bpm(bpm)

		logger.info(f"Genre changed to {name}: {scale} in {root} at {bpm} BPM")

		self.events.emit("scale_changed", scale, root)

	def get_genres (self) -> typing.List[str]:
		return list(GENRES)

	def get_scales (self) -> typing.List[str]:
		return list(mesmer.harmony.SCALES)

	# -- Drums ----------------------------------------------------------------

	def set_drums (self, enabled: bool) -> None:

		"""Attach or detach the drum tasks only; melodic voices are untouched."""

		self.drums_enabled = bool(enabled)

		logger.info(f"Drums {'enabled' if self.drums_enabled else 'disabled'}")

		if not self.is_playing:
			return

		if self.drums_enabled:
			self.drums.attach()
		else:
			self.drums.detach()

	def change_drum_pattern (self, key: str) -> bool:

		"""Switch the current pattern; heard from the next step."""

		if not self.patterns.change(key):
			return False

		self.events.emit("pattern_changed", key)

		return True

	def load_custom_pattern (self, key: str) -> bool:

		"""Switch to a saved ``custom_<slug>`` pattern."""

		if not key.startswith(mesmer.patterns.CUSTOM_PREFIX):
			logger.warning(f"{key!r} is not a custom pattern key")
			return False

		return self.change_drum_pattern(key)

	def update_pattern_step (self, voice: str, step_index: int, on: bool) -> bool:
		return self.patterns.update_step(voice, step_index, on)

	def save_modified_pattern (self, name: str) -> typing.Optional[str]:
		return self.patterns.save_modified(name)

	def reset_pattern_to_default (self, key: str) -> bool:
		return self.patterns.reset_to_default(key)

	def get_current_pattern (self) -> mesmer.patterns.Pattern:
		return self.patterns.current

	def get_drum_patterns (self) -> typing.List[typing.Dict[str, str]]:
		return self.patterns.list_patterns()

	def set_drum_master_volume (self, value: float) -> None:

		"""User drum level, 0-100."""

		self.session.drum_volume = mesmer.easing.clamp(float(value), 0, 100) / 100.0

		logger.info(f"Drum volume: {value:.0f}% (multiplier {self.session.drum_volume:.2f})")

	def set_drum_volume (self, channel: str, volume: float) -> bool:

		"""Set one drum channel's level (0.0-1.0), or ``"master"``."""

		if channel not in self.session.drum_volumes:
			logger.warning(f"Unknown drum channel {channel!r}")
			return False

		self.session.drum_volumes[channel] = mesmer.easing.clamp(float(volume), 0.0, 1.0)

		return True

	def trigger_drum (self, name: str) -> bool:
		return mesmer.drums.trigger_drum(self.session, name)

	@property
	def drum_machine (self) -> typing.Optional[str]:

		drum_backend = self.router.drum_backend

		return drum_backend.kit if drum_backend is not None else None

	def change_drum_machine (self, name: str) -> bool:

		"""Load another drum machine kit.  The sequencer keeps running; hits are skipped until it is ready."""

		drum_backend = self.router.drum_backend

		if drum_backend is None or not drum_backend.load_kit(name):
			return False

		self.events.emit("kit_changed", name)

		return True

	def get_drum_machines (self) -> typing.List[typing.Dict[str, str]]:

		drum_backend = self.router.drum_backend
		kits = drum_backend.kits if drum_backend is not None else ()

		return [{"value": name, "label": mesmer.patterns.camel_label(name)} for name in kits]

	# -- Synthesis ------------------------------------------------------------

	def set_synth_engine (self, engine_id: typing.Union[mesmer.backends.EngineId, str]) -> bool:

		"""Route melodic notes to another backend from the next note on."""

		if not self.router.select(engine_id):
			return False

		self.events.emit("engine_changed", self.router.selection.value)

		return True

	def change_preset (self, voice: str, preset_id: str, engine_id: typing.Optional[typing.Union[mesmer.backends.EngineId, str]] = None) -> bool:
		return self.router.change_preset(voice, preset_id, engine_id)

	def set_volume (self, value: float) -> None:

		"""User synth level, 0-100."""

		self.session.synth_volume = mesmer.easing.clamp(float(value), 0, 100) / 100.0

		logger.info(f"Synth volume: {value:.0f}% (multiplier {self.session.synth_volume:.2f})")

	# -- Effects --------------------------------------------------------------

	def set_reverb (self, value: float) -> bool:
		return self.effects.set_wet("reverb", value)

	def set_delay (self, value: float) -> bool:
		return self.effects.set_wet("delay", value)

	def set_synth_reverb (self, value: float) -> bool:
		return self.effects.set_wet("synth_reverb", value)

	def set_synth_delay (self, value: float) -> bool:
		return self.effects.set_wet("synth_delay", value)

	def set_drum_reverb (self, value: float) -> bool:
		return self.effects.set_wet("drum_reverb", value)

	def set_drum_delay (self, value: float) -> bool:
		return self.effects.set_wet("drum_delay", value)

	def set_reverb_type (self, name: str) -> bool:
		return self.effects.set_reverb_type(name)

	def set_delay_type (self, name: str) -> bool:
		return self.effects.set_delay_type(name)

	# -- Chaos, events, state -------------------------------------------------

	def set_chaos_mode (self, enabled: bool) -> None:

		self.chaos_mode = bool(enabled)
		self.daemon.set_chaos(self.chaos_mode)

		logger.info(f"Chaos mode {'activated' if self.chaos_mode else 'deactivated'}")

	def on_event (self, event_name: str, callback: typing.Callable[..., typing.Any]) -> None:

		"""
		Register a callback for an engine event.

		Events: ``start``, ``stop``, ``pause``, ``resume``, ``step``, ``note``,
		``drum``, ``pattern_changed``, ``engine_changed``, ``scale_changed``,
		``effects_changed``, ``mode_changed``, ``kit_changed``.
		"""

		self.events.on(event_name, callback)

	def get_state (self) -> typing.Dict[str, typing.Any]:

		"""A plain snapshot of everything a control surface needs to display."""

		harmony = self.session.harmony
		bar, beat, sixteenth = self.transport.position()

		return {
			"is_playing": self.is_playing,
			"is_paused": self.is_paused,
			"mode": self.mode.value,
			"bpm": round(self.transport.bpm, 2),
			"target_bpm": self.transport.target_bpm,
			"scale": harmony.scale_name,
			"key": harmony.root_name,
			"previous_scale": harmony.previous_scale_name,
			"genre": self.genre,
			"note_density": self.session.note_density,
			"drums_enabled": self.drums_enabled,
			"pattern": self.patterns.current_key,
			"pattern_modified": self.patterns.current.is_modified,
			"drum_machine": self.drum_machine,
			"synth_engine": self.router.selection.value,
			"volume": round(self.session.synth_volume * 100),
			"drum_master_volume": round(self.session.drum_volume * 100),
			"output_gain": self.router.output_gain.value,
			"chaos_mode": self.chaos_mode,
			"active_tasks": len(self.active_tasks),
			"position": {"bar": bar, "beat": beat, "sixteenth": sixteenth},
			"effects": self.effects.snapshot(),
		}
