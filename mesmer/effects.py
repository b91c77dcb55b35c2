"""Effect send levels and reverb/delay presets.

The engine does not process audio itself.  It keeps the state a host's
audio graph needs (wetness of each send plus the reverb and delay
character) and moves that state smoothly: every wetness change is a ramp
advanced by the transport clock.  Listeners on ``effects_changed`` receive
the send name and its new target.
"""

import dataclasses
import logging
import typing

import mesmer.easing
import mesmer.event_emitter
import mesmer.transport


logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class ReverbPreset:

	label: str
	decay: float
	wet: float
	pre_delay: float


@dataclasses.dataclass(frozen=True)
class DelayPreset:

	label: str
	time: str
	feedback: float
	wet: float


REVERB_PRESETS: typing.Dict[str, ReverbPreset] = {
	"hall": ReverbPreset("Hall", 4.0, 0.3, 0.01),
	"room": ReverbPreset("Room", 1.5, 0.25, 0.005),
	"plate": ReverbPreset("Plate", 2.5, 0.35, 0.0),
	"spring": ReverbPreset("Spring", 1.0, 0.4, 0.01),
	"chamber": ReverbPreset("Chamber", 3.0, 0.28, 0.015),
	"cathedral": ReverbPreset("Cathedral", 8.0, 0.4, 0.02),
	"none": ReverbPreset("None", 0.1, 0.0, 0.0),
}

DELAY_PRESETS: typing.Dict[str, DelayPreset] = {
	"eighth": DelayPreset("1/8 Note", "8n", 0.3, 0.2),
	"quarter": DelayPreset("1/4 Note", "4n", 0.35, 0.25),
	"dotted": DelayPreset("Dotted 1/8", "8n.", 0.4, 0.22),
	"slapback": DelayPreset("Slapback", "16n", 0.1, 0.3),
	"pingpong": DelayPreset("Ping-Pong", "8n", 0.4, 0.25),
	"tape": DelayPreset("Tape Echo", "4n", 0.5, 0.3),
	"long": DelayPreset("Long Delay", "2n", 0.6, 0.2),
	"none": DelayPreset("None", "8n", 0.0, 0.0),
}

# Beats per note value, for turning a delay time into seconds.
_NOTE_VALUE_BEATS: typing.Dict[str, float] = {
	"1n": 4.0,
	"2n": 2.0,
	"4n": 1.0,
	"8n": 0.5,
	"8n.": 0.75,
	"16n": 0.25,
}

DEFAULT_SENDS: typing.Dict[str, float] = {
	"reverb": 0.3,
	"delay": 0.2,
	"synth_reverb": 0.5,
	"synth_delay": 0.5,
	"drum_reverb": 0.0,
	"drum_delay": 0.0,
}

SETTER_RAMP_SECONDS = 0.5


def note_value_seconds (value: str, bpm: float) -> float:

	"""``note_value_seconds("8n", 120)`` -> ``0.25``."""

	return _NOTE_VALUE_BEATS[value] * 60.0 / bpm


class Effects:

	"""
	Ramped wetness for the master, synth and drum reverb/delay sends.

	Example:
		```python
		effects.set_wet("synth_reverb", 80)         # 0-100, glides over 0.5 s
		effects.ramp("reverb", 0.45, seconds=4.0)   # 0.0-1.0, any duration
		effects.set_reverb_type("cathedral")
		```
	"""

	def __init__ (self, transport: mesmer.transport.Transport, events: typing.Optional[mesmer.event_emitter.EventEmitter] = None) -> None:

		self.transport = transport
		self.events = events if events is not None else mesmer.event_emitter.EventEmitter()

		self.sends: typing.Dict[str, mesmer.easing.RampedValue] = {}

		for name, wet in DEFAULT_SENDS.items():
			ramp = mesmer.easing.RampedValue(wet, minimum=0.0, maximum=1.0)
			self.sends[name] = ramp
			transport.add_ramp(ramp)

		self.reverb_type = "hall"
		self.delay_type = "eighth"

	def wet (self, name: str) -> float:
		return self.sends[name].value

	def ramp (self, name: str, wet: float, seconds: float, shape: str = "linear") -> bool:

		"""
		Glide a send to ``wet`` (0.0-1.0, clamped) over ``seconds``.

		Ramps advance on transport pulses, so with the clock stopped the send
		jumps straight to ``wet``.
		"""

		if name not in self.sends:
			logger.warning(f"Unknown effect send {name!r}")
			return False

		send = self.sends[name]

		if self.transport.running:
			send.ramp_to(wet, seconds, shape)
		else:
			send.set(wet)

		self.events.emit("effects_changed", name, send.target)

		return True

	def set_wet (self, name: str, percent: float, seconds: float = SETTER_RAMP_SECONDS) -> bool:

		"""Set a send from a 0-100 control value."""

		return self.ramp(name, mesmer.easing.clamp(percent, 0, 100) / 100.0, seconds)

	def set_reverb_type (self, name: str) -> bool:

		"""Switch reverb character; the master reverb jumps to the preset's wetness."""

		preset = REVERB_PRESETS.get(name)

		if preset is None:
			logger.warning(f"Unknown reverb type {name!r}")
			return False

		self.reverb_type = name
		self.sends["reverb"].set(preset.wet)

		logger.info(f"Reverb changed to {preset.label}")
		self.events.emit("effects_changed", "reverb_type", name)

		return True

	def set_delay_type (self, name: str) -> bool:

		"""Switch delay character; the master delay jumps to the preset's wetness."""

		preset = DELAY_PRESETS.get(name)

		if preset is None:
			logger.warning(f"Unknown delay type {name!r}")
			return False

		self.delay_type = name
		self.sends["delay"].set(preset.wet)

		logger.info(f"Delay changed to {preset.label}")
		self.events.emit("effects_changed", "delay_type", name)

		return True

	def snapshot (self) -> typing.Dict[str, typing.Any]:

		reverb = REVERB_PRESETS[self.reverb_type]
		delay = DELAY_PRESETS[self.delay_type]

		state: typing.Dict[str, typing.Any] = {name: round(send.value, 4) for name, send in self.sends.items()}

		state.update({
			"reverb_type": self.reverb_type,
			"reverb_decay": reverb.decay,
			"reverb_pre_delay": reverb.pre_delay,
			"delay_type": self.delay_type,
			"delay_time": delay.time,
			"delay_seconds": note_value_seconds(delay.time, self.transport.bpm),
			"delay_feedback": delay.feedback,
		})

		return state
