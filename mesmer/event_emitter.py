import asyncio
import inspect
import logging
import typing


logger = logging.getLogger(__name__)


CallbackType = typing.Callable[..., typing.Any]


class EventEmitter:

	"""
	A small event emitter for engine notifications (note, pattern_changed, ...).

	Listeners run synchronously inside the clock pulse that produced the
	event, so a listener that raises is logged and skipped rather than
	allowed to stall playback.
	"""

	def __init__ (self) -> None:

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}


	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.
		"""

		self._listeners.setdefault(event_name, []).append(callback)

	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		if event_name not in self._listeners or callback not in self._listeners[event_name]:
			raise ValueError(f"Callback not registered for event {event_name!r}")

		self._listeners[event_name].remove(callback)


	def listener_count (self, event_name: str) -> int:

		return len(self._listeners.get(event_name, []))


	def emit (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Call every listener for ``event_name``.

		Coroutine listeners are scheduled as tasks on the running loop; with no
		loop running they are dropped with a warning.
		"""

		if event_name not in self._listeners:
			return

		for callback in list(self._listeners[event_name]):

			if inspect.iscoroutinefunction(callback):

				try:
					loop = asyncio.get_running_loop()
				except RuntimeError:
					logger.warning(f"No running event loop for async listener on {event_name!r}")
					continue

				loop.create_task(callback(*args, **kwargs))
				continue

			try:
				callback(*args, **kwargs)
			except Exception:
				logger.exception(f"Listener for {event_name!r} raised")
