"""
Mesmer - a realtime generative music engine that plays over MIDI.

Four melodic voices (pad, bass, lead, arpeggio) and a step drum machine run
on one shared pulse clock.  The voices either improvise from the current
scale or play authored step sequences, and everything can be changed live
without restarting the clock: drum pattern, synth engine, scale, key,
tempo, note density and effect sends.

Minimal example:

	```python
	import mesmer

	engine = mesmer.Engine(bpm=110, scale="dorian", key="D3", drums_enabled=True, output_device="IAC Driver Bus 1")
	engine.set_genre("lofi")
	engine.play()
	```

Package-level exports: ``Engine``, ``EngineId``, ``HarmonyState``, ``register_scale``.
"""

import mesmer.backends
import mesmer.engine
import mesmer.harmony


Engine = mesmer.engine.Engine
EngineId = mesmer.backends.EngineId
HarmonyState = mesmer.harmony.HarmonyState
register_scale = mesmer.harmony.register_scale
