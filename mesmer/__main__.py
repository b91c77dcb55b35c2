import argparse
import logging
import os
import typing

import yaml

import mesmer.engine
import mesmer.midi_utils
import mesmer.patterns


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def load_config (config_path: str = 'config.yaml') -> dict:

	"""
	Load configuration from a YAML file.

	A missing or empty file gives an empty config.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return {}

	with open(config_path, 'r') as f:
		return yaml.safe_load(f) or {}


def build_parser () -> argparse.ArgumentParser:

	parser = argparse.ArgumentParser(prog="mesmer", description="Realtime generative music over MIDI.")

	parser.add_argument("--config", default="config.yaml", help="YAML config file")
	parser.add_argument("--device", help="MIDI output port name")
	parser.add_argument("--bpm", type=float, help="initial tempo")
	parser.add_argument("--scale", help="initial scale")
	parser.add_argument("--key", help="root note, e.g. C3")
	parser.add_argument("--genre", help="apply a genre preset on start")
	parser.add_argument("--pattern", help="initial drum pattern")
	parser.add_argument("--drums", action="store_true", default=None, help="start with drums")
	parser.add_argument("--chaos", action="store_true", default=None, help="enable chaos mode")
	parser.add_argument("--seed", type=int, help="random seed")

	return parser


def engine_settings (config: dict, args: argparse.Namespace) -> typing.Dict[str, typing.Any]:

	"""Merge the ``engine`` config section with command line overrides (which win)."""

	section = config.get('engine', {}) or {}

	settings = {
		"bpm": section.get('bpm', 120),
		"scale": section.get('scale', "minor"),
		"key": section.get('key', "C3"),
		"pattern": section.get('pattern', "basic"),
		"drums_enabled": section.get('drums', False),
		"note_density": section.get('note_density', 50),
		"synth_engine": section.get('synth_engine', "synth"),
		"seed": section.get('seed'),
	}

	overrides = {
		"bpm": args.bpm,
		"scale": args.scale,
		"key": args.key,
		"pattern": args.pattern,
		"drums_enabled": args.drums,
		"seed": args.seed,
	}

	settings.update({name: value for name, value in overrides.items() if value is not None})

	return settings


def main (argv: typing.Optional[typing.List[str]] = None) -> None:

	"""
	Main entry point for the mesmer application.
	"""

	args = build_parser().parse_args(argv)
	config = load_config(args.config)

	logger.info("Mesmer starting...")

	device = args.device or (config.get('midi', {}) or {}).get('device_name')
	_, midi_out = mesmer.midi_utils.select_output_device(device)

	patterns_config = config.get('patterns', {}) or {}

	library_path = patterns_config.get('library')
	library = mesmer.patterns.PatternLibrary.load(library_path) if library_path else None

	store_path = patterns_config.get('custom_store')
	custom_store = mesmer.patterns.JsonPatternStore(store_path) if store_path else None

	engine = mesmer.engine.Engine(
		midi_out = midi_out,
		pattern_library = library,
		custom_store = custom_store,
		**engine_settings(config, args)
	)

	genre = args.genre or (config.get('engine', {}) or {}).get('genre')

	if genre:
		engine.set_genre(genre)

	chaos = args.chaos if args.chaos is not None else (config.get('engine', {}) or {}).get('chaos', False)

	engine.set_chaos_mode(bool(chaos))

	try:
		engine.play()
	finally:
		engine.close()


if __name__ == "__main__":
	main()
