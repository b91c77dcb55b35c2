"""Drum step patterns, the imported pattern library and the current-pattern pointer.

A :class:`Pattern` is a set of on/off step grids, one per drum channel.  The
drum tasks never hold a pattern themselves: on every step they ask the
:class:`PatternStore` for ``current`` and read the bit they need.  Changing
pattern is therefore a single reference assignment, and the change is heard
on the very next step without touching the clock.

Keys:
- Built-in patterns use their plain name (``"basic"``, ``"techno"``, ...).
- Imported library patterns are addressed as ``"midi:<name>"``.
- Saved custom patterns are ``"custom_<slug>"``.
"""

import copy
import dataclasses
import json
import logging
import os
import re
import typing

import yaml


logger = logging.getLogger(__name__)


LIBRARY_PREFIX = "midi:"
CUSTOM_PREFIX = "custom_"
BUILTIN_CATEGORY = "Built-in"


@dataclasses.dataclass
class Pattern:

	"""
	A named set of per-channel step grids.

	Channels may have different lengths; each one loops on its own length.
	"""

	key: str
	name: str
	steps: typing.Dict[str, typing.List[int]]
	is_modified: bool = False
	is_custom: bool = False
	original_key: typing.Optional[str] = None
	category: str = BUILTIN_CATEGORY

	@property
	def length (self) -> int:

		"""The longest channel's step count."""

		return max((len(row) for row in self.steps.values()), default=0)

	def hit (self, voice: str, step: int) -> bool:

		"""Return True when ``voice`` is on at ``step`` (wrapping on the channel's own length)."""

		row = self.steps.get(voice)

		if not row:
			return False

		return row[step % len(row)] == 1

	def copy (self) -> "Pattern":
		return copy.deepcopy(self)

	def to_dict (self) -> typing.Dict[str, typing.Any]:

		return {
			"name": self.name,
			"steps": {voice: list(row) for voice, row in self.steps.items()},
			"is_custom": self.is_custom,
			"original_key": self.original_key,
		}

	@classmethod
	def from_dict (cls, key: str, data: typing.Dict[str, typing.Any], category: str = BUILTIN_CATEGORY) -> "Pattern":

		"""Build a pattern from either ``{"name", "steps": {voice: [...]}}`` or a flat ``{voice: [...]}`` mapping."""

		raw_steps = data.get("steps")

		if raw_steps is None:
			raw_steps = {k: v for k, v in data.items() if isinstance(v, list)}

		steps = {voice: [1 if bit else 0 for bit in row] for voice, row in raw_steps.items()}

		return cls(
			key = key,
			name = data.get("name", key),
			steps = steps,
			is_custom = bool(data.get("is_custom", False)),
			original_key = data.get("original_key"),
			category = category
		)


def _row (*bits: int) -> typing.List[int]:
	return list(bits)


_EMPTY_8 = [0] * 8
_EMPTY_16 = [0] * 16


# name, steps
_BUILTIN_DEFINITIONS: typing.Dict[str, typing.Tuple[str, typing.Dict[str, typing.List[int]]]] = {

	"basic": ("Basic Rock", {
		"kick":    _row(1, 0, 0, 0, 1, 0, 0, 0),
		"snare":   _row(0, 0, 1, 0, 0, 0, 1, 0),
		"hihat":   _row(1, 1, 1, 1, 1, 1, 1, 1),
		"openhat": _row(0, 0, 0, 0, 0, 0, 1, 0),
		"clap":    _EMPTY_8,
		"rim":     _EMPTY_8,
		"cowbell": _EMPTY_8,
		"crash":   _row(1, 0, 0, 0, 0, 0, 0, 0),
		"tom1":    _EMPTY_8,
		"tom2":    _EMPTY_8,
		"tom3":    _row(0, 0, 0, 1, 0, 0, 0, 0),
	}),

	"techno": ("Techno 4/4", {
		"kick":    _row(1, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0),
		"snare":   _row(0, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0),
		"hihat":   _row(0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1),
		"openhat": _row(0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0, 0, 1),
		"clap":    _row(0, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0),
		"rim":     _EMPTY_16,
		"cowbell": _row(0, 0, 1, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0, 1, 0),
		"crash":   _row(1, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0),
		"tom1":    _EMPTY_16,
		"tom2":    _EMPTY_16,
		"tom3":    _EMPTY_16,
	}),

	"breakbeat": ("Breakbeat", {
		"kick":    _row(1, 0, 0, 0, 0, 0, 1, 0, 0, 1, 0, 0, 0, 0, 0, 0),
		"snare":   _row(0, 0, 0, 0, 1, 0, 0, 0, 0, 0, 1, 0, 1, 0, 0, 1),
		"hihat":   _row(1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0),
		"openhat": _row(0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0, 0, 0),
		"clap":    _EMPTY_16,
		"rim":     _row(0, 1, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0),
		"cowbell": _EMPTY_16,
		"crash":   _EMPTY_16,
		"tom1":    _row(0, 0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0, 0),
		"tom2":    _row(0, 0, 0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0),
		"tom3":    _row(0, 0, 0, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0, 0, 0, 0),
	}),

	"hiphop": ("Hip-Hop", {
		"kick":    _row(1, 0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 1, 0, 0, 0, 0),
		"snare":   _row(0, 0, 0, 0, 1, 0, 0, 1, 0, 0, 0, 0, 1, 0, 0, 0),
		"hihat":   _row(1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0, 1, 0),
		"openhat": _row(0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 1, 0),
		"clap":    _row(0, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0),
		"rim":     _row(0, 1, 0, 1, 0, 0, 0, 0, 0, 1, 0, 1, 0, 0, 0, 0),
		"cowbell": _EMPTY_16,
		"crash":   _EMPTY_16,
		"tom1":    _EMPTY_16,
		"tom2":    _EMPTY_16,
		"tom3":    _EMPTY_16,
	}),

	"ambient": ("Ambient", {
		"kick":    _row(1, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0),
		"snare":   _row(0, 0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0, 0, 0, 0, 0),
		"hihat":   _row(0, 0, 1, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0, 0, 0),
		"openhat": _row(0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0),
		"clap":    _EMPTY_16,
		"rim":     _EMPTY_16,
		"cowbell": _EMPTY_16,
		"crash":   _row(1, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0),
		"tom1":    _EMPTY_16,
		"tom2":    _EMPTY_16,
		"tom3":    _EMPTY_16,
	}),

	"jungle": ("Jungle/DnB", {
		"kick":    _row(1, 0, 0, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 1, 0, 0),
		"snare":   _row(0, 0, 1, 0, 0, 1, 0, 0, 1, 0, 0, 0, 1, 0, 1, 0),
		"hihat":   _row(1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1, 1, 0, 1),
		"openhat": _row(0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0, 0),
		"clap":    _EMPTY_16,
		"rim":     _row(0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0, 1),
		"cowbell": _EMPTY_16,
		"crash":   _EMPTY_16,
		"tom1":    _EMPTY_16,
		"tom2":    _EMPTY_16,
		"tom3":    _EMPTY_16,
	}),
}


def default_patterns () -> typing.Dict[str, Pattern]:

	"""Return fresh, unmodified copies of every built-in pattern."""

	return {
		key: Pattern(key=key, name=name, steps={voice: list(row) for voice, row in steps.items()})
		for key, (name, steps) in _BUILTIN_DEFINITIONS.items()
	}


def slugify (name: str) -> str:

	"""``"My Beat 2"`` -> ``"my_beat_2"``."""

	return re.sub(r"\s+", "_", name.strip().lower())


def camel_label (name: str) -> str:

	"""Split a CamelCase library name into words for display."""

	return re.sub(r"(?<!^)([A-Z])", r" \1", name).strip()


class PatternLibrary:

	"""
	A read-only collection of imported patterns.

	The document format (JSON or YAML) is::

		patterns:
		  FunkyDrummer: {kick: [...], snare: [...], ...}
		categories:
		  Funk: [FunkyDrummer]

	Patterns are addressed as ``"midi:<name>"``.
	"""

	def __init__ (
		self,
		patterns: typing.Optional[typing.Dict[str, typing.Dict[str, typing.Any]]] = None,
		categories: typing.Optional[typing.Dict[str, typing.List[str]]] = None
	) -> None:

		self.categories: typing.Dict[str, typing.List[str]] = dict(categories or {})
		self._patterns: typing.Dict[str, Pattern] = {}

		category_of = {name: category for category, names in self.categories.items() for name in names}

		for name, data in (patterns or {}).items():
			key = LIBRARY_PREFIX + name
			self._patterns[key] = Pattern.from_dict(key, data, category=category_of.get(name, "Imported"))

	@classmethod
	def load (cls, path: str) -> "PatternLibrary":

		"""
		Read a library document from disk.

		A missing or unreadable file is logged and gives an empty library, so
		the engine still runs on its built-in patterns.
		"""

		try:
			with open(path, "r") as f:
				data = yaml.safe_load(f) or {}

		except (OSError, yaml.YAMLError) as e:
			logger.error(f"Failed to load pattern library {path!r}: {e}")
			return cls()

		library = cls(data.get("patterns"), data.get("categories"))

		logger.info(f"Loaded {len(library)} library patterns in {len(library.categories)} categories")

		return library

	def __len__ (self) -> int:
		return len(self._patterns)

	def __contains__ (self, key: str) -> bool:
		return key in self._patterns

	def by_key (self, key: str) -> typing.Optional[Pattern]:
		return self._patterns.get(key)

	def keys (self) -> typing.List[str]:
		return list(self._patterns)


@typing.runtime_checkable
class NamedPatternStore (typing.Protocol):

	"""Simple key/value persistence for saved custom patterns."""

	def save (self, name: str, pattern: Pattern) -> None:
		...

	def load (self, name: str) -> typing.Optional[Pattern]:
		...

	def names (self) -> typing.List[str]:
		...


class MemoryPatternStore:

	"""Keeps saved patterns for the lifetime of the process."""

	def __init__ (self) -> None:

		self._patterns: typing.Dict[str, Pattern] = {}

	def save (self, name: str, pattern: Pattern) -> None:
		self._patterns[name] = pattern.copy()

	def load (self, name: str) -> typing.Optional[Pattern]:

		pattern = self._patterns.get(name)

		return pattern.copy() if pattern is not None else None

	def names (self) -> typing.List[str]:
		return list(self._patterns)


class JsonPatternStore:

	"""Persists saved patterns to a single JSON file keyed by pattern key."""

	def __init__ (self, path: str) -> None:

		self.path = path

	def _read (self) -> typing.Dict[str, typing.Any]:

		if not os.path.exists(self.path):
			return {}

		try:
			with open(self.path, "r") as f:
				return json.load(f)

		except (OSError, ValueError) as e:
			logger.error(f"Failed to read custom patterns from {self.path!r}: {e}")
			return {}

	def save (self, name: str, pattern: Pattern) -> None:

		data = self._read()
		data[name] = pattern.to_dict()

		with open(self.path, "w") as f:
			json.dump(data, f, indent=2)

	def load (self, name: str) -> typing.Optional[Pattern]:

		data = self._read()

		if name not in data:
			return None

		pattern = Pattern.from_dict(name, data[name], category="Custom")
		pattern.is_custom = True

		return pattern

	def names (self) -> typing.List[str]:
		return list(self._read())


class PatternStore:

	"""
	Owns every pattern the drum sequencer can play and the pointer to the current one.

	Example:
		```python
		store = PatternStore()
		store.change("techno")
		store.current.hit("kick", 4)   # True
		```
	"""

	def __init__ (
		self,
		library: typing.Optional[PatternLibrary] = None,
		custom_store: typing.Optional[NamedPatternStore] = None,
		initial: str = "basic"
	) -> None:

		self.library = library if library is not None else PatternLibrary()
		self.custom_store: NamedPatternStore = custom_store if custom_store is not None else MemoryPatternStore()
		self.builtins: typing.Dict[str, Pattern] = default_patterns()
		self.customs: typing.Dict[str, Pattern] = {}

		if initial not in self.builtins:
			raise ValueError(f"Unknown initial pattern {initial!r}")

		self.current: Pattern = self.builtins[initial]

	@property
	def current_key (self) -> str:
		return self.current.key

	def resolve (self, key: str) -> typing.Optional[Pattern]:

		"""Find a pattern by key across built-ins, the library and saved custom patterns."""

		if key.startswith(LIBRARY_PREFIX):
			return self.library.by_key(key)

		if key.startswith(CUSTOM_PREFIX):

			if key not in self.customs:
				loaded = self.custom_store.load(key)

				if loaded is None:
					return None

				loaded.key = key
				loaded.is_custom = True
				self.customs[key] = loaded

			return self.customs[key]

		return self.builtins.get(key)

	def change (self, key: str) -> bool:

		"""
		Point ``current`` at another pattern.

		Unknown keys are logged and leave the current pattern unchanged.
		"""

		pattern = self.resolve(key)

		if pattern is None:
			logger.warning(f"Pattern {key!r} not found - keeping {self.current.key!r}")
			return False

		self.current = pattern

		logger.info(f"Live-switched to pattern {pattern.name!r} ({key})")

		return True

	def update_step (self, voice: str, step_index: int, on: bool) -> bool:

		"""
		Set one step of the current pattern in place.

		A built-in pattern edited this way is flagged ``is_modified`` so it
		can be saved as a custom copy or reset.
		"""

		row = self.current.steps.get(voice)

		if row is None:
			logger.warning(f"Pattern {self.current.key!r} has no {voice!r} channel")
			return False

		if not 0 <= step_index < len(row):
			logger.warning(f"Step {step_index} is outside {voice!r} (length {len(row)})")
			return False

		row[step_index] = 1 if on else 0

		if self.current.key in self.builtins and not self.current.is_modified:
			self.current.is_modified = True
			logger.info(f"Built-in pattern {self.current.key!r} has been modified")

		return True

	def save_modified (self, name: str) -> typing.Optional[str]:

		"""
		Snapshot the current (modified, built-in) pattern as a custom pattern.

		Returns the new ``custom_<slug>`` key, or None when the current pattern
		is not a modified built-in.  Later edits to the built-in do not affect
		the saved copy.
		"""

		pattern = self.current

		if pattern.key not in self.builtins:
			logger.warning("Only modified built-in patterns can be saved")
			return None

		if not pattern.is_modified:
			logger.warning(f"Pattern {pattern.key!r} has not been modified")
			return None

		key = CUSTOM_PREFIX + slugify(name)

		saved = pattern.copy()
		saved.key = key
		saved.name = name
		saved.is_custom = True
		saved.is_modified = False
		saved.original_key = pattern.key
		saved.category = "Custom"

		self.custom_store.save(key, saved)
		self.customs[key] = saved.copy()

		logger.info(f"Saved custom pattern {name!r} as {key!r}")

		return key

	def reset_to_default (self, key: str) -> bool:

		"""Restore a built-in pattern to its original steps."""

		defaults = default_patterns()

		if key not in defaults:
			logger.warning(f"No built-in pattern {key!r} to reset")
			return False

		was_current = self.current is self.builtins[key]

		self.builtins[key] = defaults[key]

		if was_current:
			self.current = self.builtins[key]

		logger.info(f"Reset pattern {key!r} to default")

		return True

	def list_patterns (self) -> typing.List[typing.Dict[str, str]]:

		"""Every selectable pattern as ``{value, label, category, type}``."""

		entries = [
			{"value": key, "label": pattern.name, "category": BUILTIN_CATEGORY, "type": "builtin"}
			for key, pattern in self.builtins.items()
		]

		for category, names in self.library.categories.items():
			for name in names:
				entries.append({"value": LIBRARY_PREFIX + name, "label": camel_label(name), "category": category, "type": "midi"})

		for key in self.custom_store.names():
			pattern = self.resolve(key)
			if pattern is not None:
				entries.append({"value": key, "label": pattern.name, "category": "Custom", "type": "custom"})

		return entries
