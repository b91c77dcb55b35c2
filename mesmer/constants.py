"""Timing, voice and MIDI constants.

The transport uses **24 pulses per quarter note** (PPQN = 24) as its time base,
so every musical subdivision a track can subscribe to is a whole number of
pulses:

- ``SIXTEENTH = 6``: drum steps, arpeggio and authored steps
- ``EIGHTH = 12``: lead line
- ``HALF = 48``: bass
- ``TWO_BARS = 192``: pad chords

Voice names are plain strings.  Melodic voices are rendered by the selected
synthesis backend; drum voices are rendered by the drum kit backend using the
General MIDI percussion map on channel 10 (0-indexed channel 9).
"""

import typing


PULSES_PER_BEAT = 24

THIRTYSECOND = 3
SIXTEENTH = 6
EIGHTH = 12
QUARTER = 24
HALF = 48
WHOLE = 96
BAR = 96
TWO_BARS = 192

STEPS_PER_CYCLE = 16


MELODIC_VOICES: typing.Tuple[str, ...] = ("pad", "bass", "lead", "arp")

# Voices driven by the step sequencer.
DRUM_VOICES: typing.Tuple[str, ...] = ("kick", "snare", "hihat", "openhat")

# Every channel a pattern may carry.  Only DRUM_VOICES are sequenced; the
# rest can still be triggered by hand.
DRUM_CHANNELS: typing.Tuple[str, ...] = (
	"kick",
	"snare",
	"hihat",
	"openhat",
	"clap",
	"rim",
	"cowbell",
	"crash",
	"tom1",
	"tom2",
	"tom3",
)


# General MIDI Level 1 percussion notes for each drum channel.
GM_DRUM_NOTES: typing.Dict[str, int] = {
	"kick": 36,
	"rim": 37,
	"snare": 38,
	"clap": 39,
	"hihat": 42,
	"tom3": 45,
	"openhat": 46,
	"tom2": 47,
	"crash": 49,
	"tom1": 50,
	"cowbell": 56,
}

DRUM_MIDI_CHANNEL = 9

VOICE_MIDI_CHANNELS: typing.Dict[str, int] = {
	"pad": 0,
	"bass": 1,
	"lead": 2,
	"arp": 3,
}

MIDI_CC_VOLUME = 7
MIDI_CC_ALL_NOTES_OFF = 123


# Per-channel drum levels; "master" scales every channel.
DEFAULT_DRUM_VOLUMES: typing.Dict[str, float] = {
	"kick": 1.0,
	"snare": 0.8,
	"hihat": 0.6,
	"openhat": 0.5,
	"clap": 0.7,
	"rim": 0.6,
	"cowbell": 0.5,
	"crash": 0.4,
	"tom1": 0.7,
	"tom2": 0.7,
	"tom3": 0.7,
	"master": 1.0,
}
