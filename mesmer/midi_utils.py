import logging
import typing

import mido

logger = logging.getLogger(__name__)


def list_output_devices() -> typing.List[str]:
    """Names of the MIDI output ports mido can see (empty if the backend fails)."""
    try:
        return list(mido.get_output_names())
    except Exception as e:
        logger.error(f"Could not list MIDI outputs: {e}")
        return []


def select_output_device(device_name: typing.Optional[str] = None, prompt: bool = True) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:
    """
    Open the MIDI output the engine plays through.

    With `device_name`, only that port is opened.  Without it:
    - one available port is used directly,
    - several ports are offered on the console (when `prompt` is set),
    - no ports means the engine runs silently.

    Returns:
        A tuple of (device_name, midi_out_object), or (None, None) when nothing was opened.
    """
    outputs = list_output_devices()
    logger.info(f"Available MIDI outputs: {outputs}")

    if not outputs:
        logger.warning("No MIDI output devices found - running silently.")
        return None, None

    if device_name is not None and device_name not in outputs:
        logger.error(f"MIDI output device '{device_name}' not found. Available devices: {outputs}")
        return None, None

    selected_name = device_name

    if selected_name is None:
        if len(outputs) == 1 or not prompt:
            selected_name = outputs[0]
        else:
            selected_name = _prompt_for_device(outputs)

    try:
        midi_out = mido.open_output(selected_name)
    except Exception as e:
        logger.error(f"Failed to open MIDI output '{selected_name}': {e}")
        return None, None

    logger.info(f"Opened MIDI output: {selected_name}")
    return selected_name, midi_out


def _prompt_for_device(outputs: typing.List[str]) -> str:
    print("\nAvailable MIDI output devices:\n")
    for i, name in enumerate(outputs, 1):
        print(f"  {i}. {name}")
    print()

    while True:
        try:
            choice = int(input(f"Select a device (1-{len(outputs)}): "))
            if 1 <= choice <= len(outputs):
                break
        except ValueError:
            pass
        except EOFError:
            logger.warning(f"No console input - using {outputs[0]}")
            return outputs[0]
        print(f"Enter a number between 1 and {len(outputs)}.")

    selected_name = outputs[choice - 1]
    print(f"\nTip: skip this prompt with --device \"{selected_name}\"\n")
    return selected_name
