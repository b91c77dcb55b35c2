"""Scales, pitch names and the note/chord generator.

Module-level constants:
- ``SCALES``: scale name to semitone offsets from the root (0-11).
- ``NOTE_NAME_TO_PC``: note names (``"C"``, ``"F#"``, ``"Bb"``) to pitch classes.
- ``BASE_OCTAVE``: the octave the root note is written in (3).

The current scale and root live in an immutable :class:`HarmonyState`.  Writers
(``Engine.set_scale``, the evolution daemon) build a new state and replace the
reference in one assignment, so a voice task always reads a consistent scale
and root pair.
"""

import dataclasses
import random
import re
import typing


BASE_OCTAVE = 3
DEFAULT_ROOT = "C3"


SCALES: typing.Dict[str, typing.Tuple[int, ...]] = {
	"minor":      (0, 2, 3, 5, 7, 8, 10),
	"major":      (0, 2, 4, 5, 7, 9, 11),
	"pentatonic": (0, 2, 4, 7, 9),
	"dorian":     (0, 2, 3, 5, 7, 9, 10),
	"phrygian":   (0, 1, 3, 5, 7, 8, 10),
}


NOTE_NAME_TO_PC: typing.Dict[str, int] = {
	"C": 0,
	"C#": 1,
	"Db": 1,
	"D": 2,
	"D#": 3,
	"Eb": 3,
	"E": 4,
	"F": 5,
	"F#": 6,
	"Gb": 6,
	"G": 7,
	"G#": 8,
	"Ab": 8,
	"A": 9,
	"A#": 10,
	"Bb": 10,
	"B": 11,
}

PC_TO_NOTE_NAME: typing.List[str] = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

_NOTE_PATTERN = re.compile(r"^([A-Ga-g])([#b]?)(-?\d+)$")


def validate_intervals (intervals: typing.Sequence[int]) -> typing.Tuple[int, ...]:

	"""Return ``intervals`` as a tuple, or raise ``ValueError`` if it is not a usable scale.

	A scale is a non-empty set of semitone offsets, each an integer 0-11.
	"""

	if not intervals:
		raise ValueError("A scale needs at least one interval")

	for value in intervals:
		if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 11:
			raise ValueError(f"Scale intervals must be integers 0-11, got {value!r}")

	return tuple(intervals)


def register_scale (name: str, intervals: typing.Sequence[int]) -> None:

	"""Add a custom scale to the table used by ``set_scale`` and scale evolution.

	Example:
		```python
		mesmer.register_scale("hirajoshi", [0, 2, 3, 7, 8])
		engine.set_scale("hirajoshi")
		```
	"""

	SCALES[name] = validate_intervals(intervals)


def note_name_to_midi (name: str) -> int:

	"""Convert a note name such as ``"C3"`` or ``"F#2"`` to a MIDI number (C4 = 60).

	Raises:
		ValueError: If the name cannot be parsed.
	"""

	match = _NOTE_PATTERN.match(name.strip())

	if match is None:
		raise ValueError(f"Unknown note name {name!r}")

	letter, accidental, octave = match.groups()
	pc = NOTE_NAME_TO_PC[letter.upper() + accidental]

	midi = (int(octave) + 1) * 12 + pc

	if not 0 <= midi <= 127:
		raise ValueError(f"Note {name!r} is outside the MIDI range")

	return midi


def midi_to_note_name (midi: int) -> str:

	"""``60`` -> ``"C4"``."""

	return f"{PC_TO_NOTE_NAME[midi % 12]}{midi // 12 - 1}"


def parse_pitch (value: typing.Union[str, int]) -> int:

	"""Accept either a note name or a MIDI number and return the MIDI number."""

	if isinstance(value, str):
		return note_name_to_midi(value)

	if not 0 <= int(value) <= 127:
		raise ValueError(f"MIDI note {value!r} is out of range")

	return int(value)


@dataclasses.dataclass(frozen=True)
class HarmonyState:

	"""The scale and root every melodic voice reads on each tick."""

	scale_name: str
	scale_intervals: typing.Tuple[int, ...]
	root_note: int
	previous_scale_name: typing.Optional[str] = None
	previous_root: typing.Optional[int] = None

	def __post_init__ (self) -> None:

		validate_intervals(self.scale_intervals)

	@classmethod
	def initial (cls, scale_name: str = "minor", root: typing.Union[str, int] = DEFAULT_ROOT) -> "HarmonyState":

		if scale_name not in SCALES:
			raise ValueError(f"Unknown scale {scale_name!r}")

		return cls(scale_name=scale_name, scale_intervals=SCALES[scale_name], root_note=parse_pitch(root))

	def with_scale (self, scale_name: str, intervals: typing.Optional[typing.Sequence[int]] = None) -> "HarmonyState":

		"""Return a new state using another scale, remembering the current one."""

		if intervals is None:
			intervals = SCALES[scale_name]

		return dataclasses.replace(
			self,
			scale_name = scale_name,
			scale_intervals = validate_intervals(intervals),
			previous_scale_name = self.scale_name
		)

	def with_root (self, root_note: int) -> "HarmonyState":

		"""Return a new state on another root, remembering the current one."""

		return dataclasses.replace(self, root_note=root_note, previous_root=self.root_note)

	@property
	def root_name (self) -> str:
		return midi_to_note_name(self.root_note)


class HarmonyGenerator:

	"""
	Turns the current :class:`HarmonyState` into concrete MIDI notes.

	The generator holds a getter rather than a state, so it always reads
	whichever state is current at the moment a note is requested.  All
	randomness comes from the ``rng`` it is given; seeding that ``random.Random``
	makes note choices repeatable.
	"""

	def __init__ (self, get_state: typing.Callable[[], HarmonyState], rng: typing.Optional[random.Random] = None) -> None:

		self._get_state = get_state
		self.rng = rng if rng is not None else random.Random()

	def _degree_note (self, state: HarmonyState, root: int, degree: int, octave: int) -> int:

		intervals = state.scale_intervals
		wraps, index = divmod(degree, len(intervals))

		note = root + intervals[index] + 12 * wraps + (octave - BASE_OCTAVE) * 12

		return max(0, min(127, note))

	def generate_note (self, octave: int = BASE_OCTAVE, degree: typing.Optional[int] = None) -> int:

		"""
		Return one note from the current scale.

		Parameters:
			octave: Octave to play in; ``BASE_OCTAVE`` keeps the root's own octave.
			degree: Scale degree index.  When None a degree is picked uniformly
				at random.  Indices past the end of the scale continue into the
				next octave.
		"""

		state = self._get_state()

		if degree is None:
			degree = self.rng.randrange(len(state.scale_intervals))

		return self._degree_note(state, state.root_note, degree, octave)

	def generate_chord (self, root: typing.Optional[typing.Union[str, int]] = None, octave: int = BASE_OCTAVE) -> typing.List[int]:

		"""
		Return a three-note chord built from scale degrees 0, 2 and 4.

		``root`` overrides the state's root (a note name or MIDI number).  On
		scales with fewer than five degrees the upper notes wrap into the next
		octave, so the result is always three ascending notes.
		"""

		state = self._get_state()
		root_note = state.root_note if root is None else parse_pitch(root)

		return [self._degree_note(state, root_note, degree, octave) for degree in (0, 2, 4)]
