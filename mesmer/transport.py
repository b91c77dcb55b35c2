import asyncio
import collections
import dataclasses
import heapq
import itertools
import logging
import time
import typing

import mesmer.constants
import mesmer.easing


logger = logging.getLogger(__name__)


TickCallback = typing.Callable[[int, int], typing.Any]


@dataclasses.dataclass
class TaskHandle:

	"""
	A subscription to the transport at a fixed subdivision.

	``tick`` passed to the callback is the global subdivision index
	(``pulse // interval_pulses``), so two tasks on the same subdivision
	always agree on where they are in the bar regardless of when each was
	attached.
	"""

	name: str
	callback: TickCallback
	interval_pulses: int
	next_pulse: int
	active: bool = True
	fired: int = 0


@dataclasses.dataclass
class TempoTransition:

	"""State for a gradual tempo change measured in seconds."""

	start_bpm: float
	target_bpm: float
	total_seconds: float
	elapsed_seconds: float = 0.0
	easing_fn: mesmer.easing.EasingFn = dataclasses.field(default=mesmer.easing.linear)


class Transport:

	"""
	The shared pulse clock every musical task synchronises to.

	The clock counts pulses at 24 per quarter note.  Tasks subscribe at a
	subdivision (``SIXTEENTH``, ``EIGHTH``, ...) and are called on every
	boundary of that subdivision.  Within one pulse the work runs in a fixed
	order:

	1. Queued state mutations (``submit``) are applied.
	2. The tempo transition and every registered ramp advance by one pulse.
	3. Due one-shot callbacks (note-offs) fire.
	4. Subscribed tasks fire, in the order they subscribed.

	Because mutations are applied before any task runs, a write from a
	background timer is always fully visible to every task in the same pulse.

	With ``external_clock=True`` (or when no asyncio loop is running) the host
	drives time by calling :meth:`advance`.  Tests use this to step the clock
	deterministically.
	"""

	def __init__ (
		self,
		initial_bpm: float = 120,
		external_clock: bool = False,
		spin_wait: bool = False,
		min_bpm: float = 20,
		max_bpm: float = 300,
		tick_log: typing.Optional[typing.List[typing.Tuple[int, float]]] = None
	) -> None:

		"""Create a stopped transport.

		Parameters:
			initial_bpm: Tempo in BPM.
			external_clock: When True, never spawn the internal clock task; the
				host calls :meth:`advance` instead.
			spin_wait: When True, busy-wait the final millisecond of each pulse
				interval for tighter timing at the cost of CPU.
			min_bpm: Lower tempo bound; requests below it are clamped.
			max_bpm: Upper tempo bound; requests above it are clamped.
			tick_log: Optional list that receives ``(pulse, bpm)`` for every
				processed pulse.
		"""

		if min_bpm <= 0 or max_bpm < min_bpm:
			raise ValueError("Tempo bounds must be positive and ordered")

		self.external_clock = external_clock
		self.pulses_per_beat = mesmer.constants.PULSES_PER_BEAT
		self.min_bpm = min_bpm
		self.max_bpm = max_bpm
		self.tick_log = tick_log

		self.running: bool = False
		self.pulse_count: int = 0
		self.task: typing.Optional[asyncio.Task] = None

		self._subscriptions: typing.List[TaskHandle] = []
		self._one_shots: typing.List[typing.Tuple[int, int, typing.Callable[[], typing.Any]]] = []
		self._one_shot_counter = itertools.count()
		self._ramps: typing.List[mesmer.easing.RampedValue] = []
		self._mutations: typing.Deque[typing.Callable[[], typing.Any]] = collections.deque()
		self._dispatching: bool = False

		self._tempo_transition: typing.Optional[TempoTransition] = None

		self._spin_wait: bool = spin_wait
		self._spin_threshold: float = 0.001

		self.current_bpm: float = 0
		self.seconds_per_pulse: float = 0.0
		self.set_bpm_now(initial_bpm)


	@property
	def bpm (self) -> float:
		return self.current_bpm

	@property
	def target_bpm (self) -> float:

		"""The tempo the clock is heading to (the current tempo when no ramp is active)."""

		if self._tempo_transition is not None:
			return self._tempo_transition.target_bpm

		return self.current_bpm

	@property
	def is_ramping_tempo (self) -> bool:
		return self._tempo_transition is not None


	def _clamp_bpm (self, bpm: float) -> float:

		if bpm <= 0:
			raise ValueError("BPM must be positive")

		return mesmer.easing.clamp(float(bpm), self.min_bpm, self.max_bpm)


	def _apply_bpm (self, bpm: float) -> None:

		self.current_bpm = bpm
		self.seconds_per_pulse = 60.0 / bpm / self.pulses_per_beat


	def set_bpm_now (self, bpm: float) -> None:

		"""
		Instantly change the tempo, cancelling any transition in progress.
		"""

		self._tempo_transition = None
		self._apply_bpm(self._clamp_bpm(bpm))

		logger.info(f"BPM set to {self.current_bpm:.2f}")


	def set_tempo (self, bpm: float, seconds: float = 2.0, shape: typing.Union[str, mesmer.easing.EasingFn] = "linear") -> None:

		"""
		Glide to a new tempo over ``seconds`` of clock time.

		The transition advances with the pulses the clock actually processes,
		so the phase of every subscribed task is preserved throughout.
		"""

		target = self._clamp_bpm(bpm)

		if seconds <= 0 or target == self.current_bpm:
			self.set_bpm_now(target)
			return

		self._tempo_transition = TempoTransition(
			start_bpm = self.current_bpm,
			target_bpm = target,
			total_seconds = float(seconds),
			easing_fn = mesmer.easing.get_easing(shape)
		)

		logger.info(f"BPM transition: {self.current_bpm:.2f} -> {target:.2f} over {seconds:.1f}s ({shape!r})")


	def _next_boundary (self, interval_pulses: int, start_pulse: int = 0) -> int:

		base = self.pulse_count + 1 if self._dispatching else self.pulse_count
		base = max(base, start_pulse)

		return -(-base // interval_pulses) * interval_pulses


	def subscribe (self, callback: TickCallback, interval_pulses: int, name: str = "", start_pulse: int = 0) -> TaskHandle:

		"""
		Call ``callback(pulse, tick)`` on every ``interval_pulses`` boundary.

		The first call happens on the next boundary that has not been
		processed yet.  Subscribing from inside a running callback therefore
		never fires in the current pulse.
		"""

		if interval_pulses <= 0:
			raise ValueError("Subscription interval must be a positive number of pulses")

		handle = TaskHandle(
			name = name or getattr(callback, "__name__", "task"),
			callback = callback,
			interval_pulses = interval_pulses,
			next_pulse = self._next_boundary(interval_pulses, start_pulse)
		)

		self._subscriptions.append(handle)

		return handle


	def cancel (self, handle: TaskHandle) -> None:

		"""
		Stop a subscription.  No further ticks are delivered to it.
		"""

		handle.active = False

		if handle in self._subscriptions:
			self._subscriptions.remove(handle)


	@property
	def subscriptions (self) -> typing.List[TaskHandle]:
		return [h for h in self._subscriptions if h.active]


	def call_after (self, seconds: float, callback: typing.Callable[[], typing.Any]) -> None:

		"""
		Schedule a one-shot callback ``seconds`` from now at the current tempo.

		The delay is rounded to whole pulses and is always at least one pulse.
		"""

		pulses = max(1, round(seconds / self.seconds_per_pulse))

		heapq.heappush(self._one_shots, (self.pulse_count + pulses, next(self._one_shot_counter), callback))


	def add_ramp (self, ramp: mesmer.easing.RampedValue) -> None:

		if ramp not in self._ramps:
			self._ramps.append(ramp)

	def remove_ramp (self, ramp: mesmer.easing.RampedValue) -> None:

		if ramp in self._ramps:
			self._ramps.remove(ramp)


	def submit (self, mutation: typing.Callable[[], typing.Any]) -> None:

		"""
		Queue a state change to be applied at the start of the next pulse.

		Background timers write through here so that every task in a pulse
		sees the same state.  When the clock is stopped there is no next
		pulse, so the change is applied immediately.
		"""

		self._mutations.append(mutation)

		if not self.running:
			self._drain_mutations()


	def _drain_mutations (self) -> None:

		while self._mutations:

			mutation = self._mutations.popleft()

			try:
				mutation()
			except Exception:
				logger.exception("Queued state change failed")


	def start (self) -> None:

		"""Start the clock.  Calling it while running does nothing."""

		if self.running:
			return

		self.running = True

		logger.info("Transport started")

		if self.external_clock:
			return

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			logger.warning("No running event loop - the host must drive the transport with advance()")
			return

		self.task = loop.create_task(self._run_loop())


	def stop (self) -> None:

		"""
		Stop the clock, drop every subscription and reset the pulse count.

		Pending one-shots are fired immediately so no note is left hanging.
		"""

		if not self.running:
			return

		self.running = False

		if self.task is not None:
			self.task.cancel()
			self.task = None

		for handle in self._subscriptions:
			handle.active = False

		self._subscriptions = []

		pending = sorted(self._one_shots)
		self._one_shots = []

		for _, _, callback in pending:
			self._run_safely(callback, "note release")

		self._drain_mutations()

		if self._tempo_transition is not None:
			self.set_bpm_now(self._tempo_transition.target_bpm)

		self.pulse_count = 0

		logger.info("Transport stopped")


	def _run_safely (self, callback: typing.Callable[..., typing.Any], label: str, *args: typing.Any) -> None:

		try:
			callback(*args)
		except Exception:
			logger.exception(f"Error in {label}")


	def _advance_tempo (self) -> None:

		transition = self._tempo_transition

		if transition is None:
			return

		transition.elapsed_seconds += self.seconds_per_pulse

		if transition.elapsed_seconds >= transition.total_seconds:
			self._tempo_transition = None
			self._apply_bpm(transition.target_bpm)
			logger.info(f"BPM reached {self.current_bpm:.2f}")
			return

		progress = transition.elapsed_seconds / transition.total_seconds
		eased = transition.easing_fn(progress)

		self._apply_bpm(transition.start_bpm + (transition.target_bpm - transition.start_bpm) * eased)


	def _process_pulse (self, pulse: int) -> None:

		self._drain_mutations()

		dt = self.seconds_per_pulse
		self._advance_tempo()

		for ramp in list(self._ramps):
			ramp.advance(dt)

		while self._one_shots and self._one_shots[0][0] <= pulse:
			_, _, callback = heapq.heappop(self._one_shots)
			self._run_safely(callback, "one-shot callback")

		self._dispatching = True

		try:
			for handle in list(self._subscriptions):

				if not handle.active or handle.next_pulse > pulse:
					continue

				tick = pulse // handle.interval_pulses
				handle.next_pulse = (tick + 1) * handle.interval_pulses
				handle.fired += 1

				self._run_safely(handle.callback, f"task {handle.name!r}", pulse, tick)

		finally:
			self._dispatching = False

		if self.tick_log is not None:
			self.tick_log.append((pulse, self.current_bpm))


	def advance (self, pulses: int = 1) -> None:

		"""
		Process ``pulses`` pulses immediately.

		This is how an external clock (or a test) drives the transport.  It
		does nothing while the transport is stopped.
		"""

		for _ in range(pulses):

			if not self.running:
				return

			self._process_pulse(self.pulse_count)
			if self.running:
				self.pulse_count += 1


	def position (self) -> typing.Tuple[int, int, int]:

		"""Return ``(bar, beat, sixteenth)`` of the next pulse, all zero-based."""

		pulse = self.pulse_count
		bar = pulse // mesmer.constants.BAR
		beat = (pulse % mesmer.constants.BAR) // mesmer.constants.QUARTER
		sixteenth = (pulse % mesmer.constants.QUARTER) // mesmer.constants.SIXTEENTH

		return bar, beat, sixteenth


	async def _run_loop (self) -> None:

		"""Internal wall clock: process pulses as their time arrives."""

		next_pulse_time = time.perf_counter()

		while self.running:

			while self.running and time.perf_counter() >= next_pulse_time:
				self._process_pulse(self.pulse_count)
				if self.running:
					self.pulse_count += 1
				next_pulse_time += self.seconds_per_pulse

			if not self.running:
				break

			sleep_time = next_pulse_time - time.perf_counter()

			if sleep_time > 0:
				if self._spin_wait and sleep_time > self._spin_threshold:
					await asyncio.sleep(sleep_time - self._spin_threshold)
					while time.perf_counter() < next_pulse_time:
						pass
				else:
					await asyncio.sleep(sleep_time)
			else:
				await asyncio.sleep(0)
