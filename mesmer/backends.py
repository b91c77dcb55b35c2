"""Sound-rendering backends.

Every backend offers the same three capabilities: ``play``,
``change_preset`` and ``is_ready``.  The engine ships three interchangeable
melodic backends plus a drum kit backend, all rendering to a MIDI output
port through mido:

- :class:`SynthBackend` - one oscillator-style General MIDI program per voice.
- :class:`PresetBackend` - richer named patches with their own volume; the
  loudest of the three, so the router trims its velocities.
- :class:`SampleBankBackend` - sample banks that must finish loading before a
  voice can play.
- :class:`DrumKitBackend` - drum machine kits on the General MIDI percussion
  channel.

With no MIDI port a backend still tracks presets and readiness, it just
sends nothing.
"""

import asyncio
import enum
import inspect
import logging
import typing

import mido

import mesmer.constants
import mesmer.transport


logger = logging.getLogger(__name__)


class EngineId (enum.Enum):

	"""Which backend renders the melodic voices."""

	SYNTH = "synth"
	PRESET = "preset"
	SAMPLER = "sampler"

	@classmethod
	def parse (cls, value: typing.Union["EngineId", str]) -> typing.Optional["EngineId"]:

		"""Accept an ``EngineId``, its value, its name or a legacy alias. Unknown values give None."""

		if isinstance(value, EngineId):
			return value

		key = str(value).strip().lower()

		for member in cls:
			if key in (member.value, member.name.lower()):
				return member

		return _ENGINE_ALIASES.get(key)


_ENGINE_ALIASES: typing.Dict[str, EngineId] = {
	"a": EngineId.SYNTH,
	"tonejs": EngineId.SYNTH,
	"b": EngineId.PRESET,
	"wad": EngineId.PRESET,
	"c": EngineId.SAMPLER,
	"dirt": EngineId.SAMPLER,
}


@typing.runtime_checkable
class SynthesisBackend (typing.Protocol):

	"""The capability set the router dispatches to."""

	def play (self, voice: str, note: int, duration: float, velocity: float) -> None:
		...

	def change_preset (self, voice: str, preset_id: str) -> bool:
		...

	def is_ready (self, voice: str) -> bool:
		...


def velocity_to_midi (velocity: float) -> int:

	"""Map a 0.0-1.0 velocity to a MIDI velocity (0-127)."""

	return max(0, min(127, int(round(velocity * 127))))


class MidiBackend:

	"""
	Shared MIDI plumbing for the concrete backends.

	Note-offs are scheduled on the transport with ``call_after`` so a note's
	length follows the clock (and is flushed when the clock stops).  A note
	started while the clock is stopped is released by the event loop instead,
	or held until :meth:`all_notes_off` when there is no loop either.
	"""

	name = "midi"

	# Release at once, rather than hold, when nothing can schedule the note-off.
	release_unscheduled = False

	def __init__ (
		self,
		transport: mesmer.transport.Transport,
		midi_out: typing.Optional[typing.Any] = None,
		channels: typing.Optional[typing.Dict[str, int]] = None
	) -> None:

		self.transport = transport
		self.midi_out = midi_out
		self.channels: typing.Dict[str, int] = dict(channels or mesmer.constants.VOICE_MIDI_CHANNELS)
		self.presets: typing.Dict[str, str] = {}
		self.active_notes: typing.Set[typing.Tuple[int, int]] = set()

	def _send (self, message: mido.Message) -> None:

		if self.midi_out is None:
			return

		try:
			self.midi_out.send(message)
		except Exception:
			logger.exception(f"{self.name}: MIDI send failed (device may be disconnected)")

	def _note_off (self, channel: int, note: int) -> None:

		self.active_notes.discard((channel, note))
		self._send(mido.Message("note_off", channel=channel, note=note, velocity=0))

	def _start_note (self, channel: int, note: int, duration: float, velocity: int) -> None:

		self._send(mido.Message("note_on", channel=channel, note=note, velocity=velocity))
		self.active_notes.add((channel, note))

		release = lambda: self._note_off(channel, note)

		if self.transport.running:
			self.transport.call_after(duration, release)
			return

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			if self.release_unscheduled:
				release()
			return

		loop.call_later(duration, release)

	def play (self, voice: str, note: int, duration: float, velocity: float) -> None:

		channel = self.channels.get(voice)

		if channel is None:
			logger.warning(f"{self.name}: no channel for voice {voice!r}")
			return

		midi_velocity = velocity_to_midi(velocity)

		if midi_velocity == 0:
			return

		self._start_note(channel, max(0, min(127, int(note))), duration, midi_velocity)

	def is_ready (self, voice: str) -> bool:
		return voice in self.channels

	def program_change (self, voice: str, program: int) -> None:

		channel = self.channels.get(voice)

		if channel is not None:
			self._send(mido.Message("program_change", channel=channel, program=program % 128))

	def set_channel_volume (self, voice: str, volume: float) -> None:

		channel = self.channels.get(voice)

		if channel is not None:
			self._send(mido.Message("control_change", channel=channel, control=mesmer.constants.MIDI_CC_VOLUME, value=velocity_to_midi(volume)))

	def all_notes_off (self) -> None:

		"""Release every sounding note and send All Notes Off on the backend's channels."""

		for channel, note in list(self.active_notes):
			self._note_off(channel, note)

		for channel in sorted(set(self.channels.values())):
			self._send(mido.Message("control_change", channel=channel, control=mesmer.constants.MIDI_CC_ALL_NOTES_OFF, value=0))


# Oscillator shapes mapped to the General MIDI program that sounds closest.
OSCILLATOR_PROGRAMS: typing.Dict[str, int] = {
	"sine": 79,
	"triangle": 82,
	"sawtooth": 81,
	"square": 80,
}


class SynthBackend (MidiBackend):

	"""
	Simple oscillator voices.

	Presets are oscillator shapes (``sine``, ``triangle``, ``sawtooth``,
	``square``).  The ``none`` preset mutes a voice until another shape is
	chosen.
	"""

	name = "synth"

	def __init__ (self, transport: mesmer.transport.Transport, midi_out: typing.Optional[typing.Any] = None, channels: typing.Optional[typing.Dict[str, int]] = None) -> None:

		super().__init__(transport, midi_out, channels)

		self.muted: typing.Set[str] = set()

		for voice in self.channels:
			self.presets[voice] = "sine"

	def change_preset (self, voice: str, preset_id: str) -> bool:

		if voice not in self.channels:
			logger.warning(f"synth: unknown voice {voice!r}")
			return False

		if preset_id == "none":
			self.muted.add(voice)
			self.presets[voice] = preset_id
			logger.info(f"synth: {voice} muted")
			return True

		if preset_id not in OSCILLATOR_PROGRAMS:
			logger.warning(f"synth: oscillator {preset_id!r} not found")
			return False

		self.muted.discard(voice)
		self.presets[voice] = preset_id
		self.program_change(voice, OSCILLATOR_PROGRAMS[preset_id])

		logger.info(f"synth: {voice} oscillator set to {preset_id}")

		return True

	def play (self, voice: str, note: int, duration: float, velocity: float) -> None:

		if voice in self.muted:
			return

		super().play(voice, note, duration, velocity)


# name: (program, volume)
PATCH_PRESETS: typing.Dict[str, typing.Tuple[int, float]] = {
	"warmPad": (89, 0.5),
	"spacePad": (94, 0.4),
	"dreamPad": (88, 0.3),
	"atmosphericPad": (99, 0.3),
	"drone": (95, 0.25),
	"ghost": (91, 0.3),
	"brightLead": (81, 0.6),
	"analogLead": (80, 0.5),
	"deepBass": (38, 0.8),
	"subBass": (39, 0.9),
	"acidBass": (87, 0.6),
	"electricPiano": (4, 0.5),
	"pluck": (45, 0.6),
	"piano": (0, 0.7),
	"digitalArp": (84, 0.4),
	"classicArp": (98, 0.5),
}

PATCH_CATEGORIES: typing.Dict[str, typing.List[str]] = {
	"pads": ["warmPad", "spacePad", "dreamPad", "atmosphericPad", "drone", "ghost"],
	"leads": ["brightLead", "analogLead"],
	"bass": ["deepBass", "subBass", "acidBass"],
	"plucks": ["electricPiano", "pluck", "piano"],
	"arps": ["digitalArp", "classicArp"],
}

DEFAULT_PATCHES: typing.Dict[str, str] = {
	"pad": "warmPad",
	"lead": "brightLead",
	"bass": "deepBass",
	"arp": "digitalArp",
}

# Which category chaos mode picks from for each voice.
VOICE_PATCH_CATEGORIES: typing.Dict[str, str] = {
	"pad": "pads",
	"lead": "leads",
	"bass": "bass",
	"arp": "arps",
}


class PresetBackend (MidiBackend):

	"""Named patches, each a General MIDI program plus a channel volume."""

	name = "preset"
	categories = PATCH_CATEGORIES

	def __init__ (self, transport: mesmer.transport.Transport, midi_out: typing.Optional[typing.Any] = None, channels: typing.Optional[typing.Dict[str, int]] = None) -> None:

		super().__init__(transport, midi_out, channels)

		for voice, preset in DEFAULT_PATCHES.items():
			if voice in self.channels:
				self.presets[voice] = preset

	def presets_in (self, category: str) -> typing.List[str]:
		return list(self.categories.get(category, []))

	def change_preset (self, voice: str, preset_id: str) -> bool:

		if voice not in self.channels:
			logger.warning(f"preset: unknown voice {voice!r}")
			return False

		if preset_id not in PATCH_PRESETS:
			logger.warning(f"preset: {preset_id!r} not found")
			return False

		program, volume = PATCH_PRESETS[preset_id]

		self.all_voice_notes_off(voice)
		self.program_change(voice, program)
		self.set_channel_volume(voice, volume)
		self.presets[voice] = preset_id

		logger.info(f"preset: {voice} changed to {preset_id}")

		return True

	def all_voice_notes_off (self, voice: str) -> None:

		channel = self.channels[voice]

		for active_channel, note in list(self.active_notes):
			if active_channel == channel:
				self._note_off(active_channel, note)


SAMPLE_BANK_CATEGORIES: typing.Dict[str, typing.List[str]] = {
	"pads": ["pad", "psr", "space", "breath", "wind", "feel", "gretsch", "jvbass", "lighter", "moog", "newnotes", "notes", "sugar"],
	"leads": ["arpy", "sine", "square", "saw", "supersquare", "supersaw", "trump", "sax", "monsterb", "ul", "popkick", "gtr"],
	"bass": ["bass", "bass0", "bass1", "bass2", "bass3", "bassdm", "bassfoo", "db", "dorkbot", "jvbass", "subroc3d", "wobble"],
	"plucks": ["pluck", "click", "jazz", "juno", "blip", "bottle", "stab"],
	"atmospheric": ["space", "cosmicg", "crow", "wind", "breath", "gretsch", "seawolf", "sid", "noise", "outdoor"],
	"percussive": ["tabla", "tabla2", "tablex", "jazz", "jvbass", "lighter", "outdoor", "industrial", "metal", "uxay"],
	"melodic": ["piano", "kalimba", "arp", "arpy", "voodoo", "sitar", "peri", "print", "realclaps"],
	"electronic": ["alphabet", "auto", "bin", "cpu", "diphone", "diphone2", "em2", "oc", "sid", "speakspell"],
}

DEFAULT_BANKS: typing.Dict[str, str] = {
	"pad": "pad",
	"lead": "arpy",
	"bass": "bass",
	"arp": "pluck",
}

BankLoader = typing.Callable[[str, typing.List[str]], typing.Union[bool, typing.Awaitable[bool]]]


class BankTracker:

	"""
	Tracks which named bank each slot uses and whether it has finished loading.

	A slot becomes not-ready the moment a new bank is requested.  Loading is
	done by an optional ``loader(bank, files)`` that returns a bool or an
	awaitable of one.  A load that finishes after a newer request for the
	same slot is ignored.  An awaitable load requested before an event loop
	is running is kept and started by :meth:`load_pending`.
	"""

	def __init__ (self, owner: str, loader: typing.Optional[BankLoader] = None) -> None:

		self.owner = owner
		self.loader = loader
		self.assigned: typing.Dict[str, str] = {}
		self._ready: typing.Dict[str, bool] = {}
		self._generation: typing.Dict[str, int] = {}
		self._pending: typing.Dict[str, typing.Tuple[str, typing.List[str], int]] = {}

	def is_ready (self, slot: str) -> bool:

		if self._pending:
			self.load_pending()

		return self._ready.get(slot, False)

	def _finish (self, slot: str, bank: str, generation: int, ok: bool) -> None:

		if self._generation.get(slot) != generation:
			logger.debug(f"{self.owner}: stale load of {bank!r} for {slot} ignored")
			return

		self._ready[slot] = ok

		if ok:
			logger.info(f"{self.owner}: {bank!r} ready for {slot}")
		else:
			logger.warning(f"{self.owner}: {bank!r} failed to load for {slot}")

	async def _await_load (self, slot: str, bank: str, generation: int, pending: typing.Awaitable[bool]) -> None:

		try:
			ok = bool(await pending)
		except Exception:
			logger.exception(f"{self.owner}: loading {bank!r} raised")
			ok = False

		self._finish(slot, bank, generation, ok)

	def request (self, slot: str, bank: str, files: typing.List[str]) -> None:

		generation = self._generation.get(slot, 0) + 1
		self._generation[slot] = generation
		self.assigned[slot] = bank
		self._ready[slot] = False
		self._pending.pop(slot, None)

		if self.loader is None:
			self._finish(slot, bank, generation, True)
			return

		self._begin(slot, bank, files, generation)

	def load_pending (self) -> None:

		"""Start every load that was waiting for an event loop."""

		if not self._pending:
			return

		try:
			asyncio.get_running_loop()
		except RuntimeError:
			return

		pending, self._pending = self._pending, {}

		for slot, (bank, files, generation) in pending.items():
			self._begin(slot, bank, files, generation)

	def _begin (self, slot: str, bank: str, files: typing.List[str], generation: int) -> None:

		try:
			result = self.loader(bank, files)
		except Exception:
			logger.exception(f"{self.owner}: loading {bank!r} raised")
			self._finish(slot, bank, generation, False)
			return

		if not inspect.isawaitable(result):
			self._finish(slot, bank, generation, bool(result))
			return

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			logger.info(f"{self.owner}: {bank!r} for {slot} will load once the event loop runs")
			if inspect.iscoroutine(result):
				result.close()
			self._pending[slot] = (bank, files, generation)
			return

		loop.create_task(self._await_load(slot, bank, generation, result))


class SampleBankBackend (MidiBackend):

	"""
	Sample banks from a manifest (``{bank: [sample files]}``).

	Each voice plays one bank.  Until the bank's loader reports success the
	voice is not ready and the router skips its notes.  On the MIDI port the
	bank is selected with a program change (its position in the manifest).
	"""

	name = "sampler"
	categories = SAMPLE_BANK_CATEGORIES

	def __init__ (
		self,
		transport: mesmer.transport.Transport,
		midi_out: typing.Optional[typing.Any] = None,
		manifest: typing.Optional[typing.Dict[str, typing.List[str]]] = None,
		loader: typing.Optional[BankLoader] = None,
		channels: typing.Optional[typing.Dict[str, int]] = None,
		default_banks: typing.Optional[typing.Dict[str, str]] = None
	) -> None:

		super().__init__(transport, midi_out, channels)

		if manifest is None:
			manifest = {bank: [] for banks in SAMPLE_BANK_CATEGORIES.values() for bank in banks}

		self.manifest = manifest
		self.banks = BankTracker(self.name, loader)

		for voice, bank in (default_banks if default_banks is not None else DEFAULT_BANKS).items():
			if voice in self.channels:
				self.change_preset(voice, bank)

	def is_ready (self, voice: str) -> bool:
		return self.banks.is_ready(voice)

	def presets_in (self, category: str) -> typing.List[str]:
		return [bank for bank in self.categories.get(category, []) if bank in self.manifest]

	def change_preset (self, voice: str, preset_id: str) -> bool:

		if voice not in self.channels:
			logger.warning(f"sampler: unknown voice {voice!r}")
			return False

		if preset_id not in self.manifest:
			logger.warning(f"sampler: bank {preset_id!r} not found in manifest")
			return False

		self.presets[voice] = preset_id
		self.program_change(voice, list(self.manifest).index(preset_id))
		self.banks.request(voice, preset_id, list(self.manifest[preset_id]))

		return True


DRUM_MACHINES: typing.Tuple[str, ...] = (
	"AJKPercusyn", "AkaiLinn", "AkaiMPC60", "AkaiXR10", "AlesisHR16", "AlesisSR16",
	"BossDR110", "BossDR220", "BossDR55", "BossDR550", "BossDR660", "CasioRZ1",
	"CasioSK1", "DoepferMS404", "EmuDrumulator", "EmuSP12", "KorgDDM110", "KorgKPR77",
	"KorgKR55", "KorgKRZ", "KorgM1", "KorgMinipops", "KorgT3", "Linn9000",
	"LinnDrum", "LinnLM1", "LinnLM2", "MFB512", "MPC1000", "OberheimDMX",
	"RhythmAce", "RolandCompurhythm1000", "RolandCompurhythm78", "RolandCompurhythm8000", "RolandD110", "RolandD70",
	"RolandDDR30", "RolandJD990", "RolandMC303", "RolandMT32", "RolandR8", "RolandS50",
	"RolandSystem100", "RolandTR505", "RolandTR606", "RolandTR626", "RolandTR707", "RolandTR808",
	"RolandTR909", "SakataDPM48", "SequentialCircuitsDrumtracks", "SequentialCircuitsTom", "SimmonsSDS5", "SoundmastersR88",
	"UnivoxMicroRhythmer12", "ViscoSpaceDrum", "XdrumLM8953", "YamahaRM50", "YamahaRX21", "YamahaRX5",
	"YamahaRY30", "YamahaTG33",
)

DEFAULT_DRUM_MACHINE = "RolandTR808"

_KIT_SLOT = "kit"


class DrumKitBackend (MidiBackend):

	"""
	Drum machine kits on the General MIDI percussion channel.

	Drum hits do not depend on the melodic engine selection.  Switching kit
	makes every drum channel not-ready until the new kit has loaded.
	"""

	name = "drums"
	release_unscheduled = True

	def __init__ (
		self,
		transport: mesmer.transport.Transport,
		midi_out: typing.Optional[typing.Any] = None,
		kits: typing.Sequence[str] = DRUM_MACHINES,
		loader: typing.Optional[BankLoader] = None,
		kit: str = DEFAULT_DRUM_MACHINE,
		hit_duration: float = 0.1
	) -> None:

		super().__init__(transport, midi_out, {voice: mesmer.constants.DRUM_MIDI_CHANNEL for voice in mesmer.constants.GM_DRUM_NOTES})

		self.kits = tuple(kits)
		self.banks = BankTracker(self.name, loader)
		self.hit_duration = hit_duration

		self.load_kit(kit)

	@property
	def kit (self) -> typing.Optional[str]:
		return self.banks.assigned.get(_KIT_SLOT)

	def load_kit (self, name: str) -> bool:

		if name not in self.kits:
			logger.warning(f"drums: kit {name!r} not found")
			return False

		self._send(mido.Message("program_change", channel=mesmer.constants.DRUM_MIDI_CHANNEL, program=self.kits.index(name) % 128))
		self.banks.request(_KIT_SLOT, name, [])

		logger.info(f"drums: switching kit to {name}")

		return True

	def is_ready (self, voice: str) -> bool:
		return voice in mesmer.constants.GM_DRUM_NOTES and self.banks.is_ready(_KIT_SLOT)

	def change_preset (self, voice: str, preset_id: str) -> bool:

		"""Drum channels share one kit, so this switches the whole kit."""

		return self.load_kit(preset_id)

	def play (self, voice: str, note: int, duration: float, velocity: float) -> None:

		midi_velocity = velocity_to_midi(velocity)

		if midi_velocity == 0:
			return

		self._start_note(mesmer.constants.DRUM_MIDI_CHANNEL, note, duration, midi_velocity)

	def hit (self, voice: str, velocity: float) -> None:

		"""Play one drum channel at ``velocity``."""

		note = mesmer.constants.GM_DRUM_NOTES.get(voice)

		if note is None:
			logger.warning(f"drums: unknown drum channel {voice!r}")
			return

		self.play(voice, note, self.hit_duration, velocity)
