"""Terminal implementation with optional Rich support.

This module intentionally avoids module-level imports of optional UI
dependencies so bootstrap paths (``--help``, ``--version``) remain
functional even when Rich is not installed.

:class:`RichTerminal` satisfies :class:`~vsts_pi.core.protocols.Terminal`:
command output goes to stdout, errors to stderr, and Ctrl+C (SIGINT) is
surfaced as a cancel-key event while at least one listener is
subscribed.
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from collections.abc import Callable
from types import FrameType
from typing import Any

from vsts_pi.exceptions import DependencyMissingError

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


def _load_rich_console_class() -> type[Any]:
	"""Return ``rich.console.Console`` class or raise ``DependencyMissingError``."""
	try:
		from rich.console import Console
	except ModuleNotFoundError as exc:
		raise DependencyMissingError(
			"rich is not installed. Install with: pip install rich",
		) from exc
	return Console


def get_rich_console(*, stderr: bool = False) -> Any:
	"""Create a Rich console instance targeting stdout or stderr."""
	console_class = _load_rich_console_class()
	return console_class(stderr=stderr, highlight=False)


def _try_rich_console(*, stderr: bool) -> Any | None:
	try:
		return get_rich_console(stderr=stderr)
	except DependencyMissingError:
		return None


class RichTerminal:
	"""Line-oriented terminal with a Ctrl+C event source.

	Parameters
	----------
	out, err:
		Rich consoles for stdout and stderr.  Created on demand when
		omitted; when Rich is unavailable plain ``print`` is used.
	handle_signals:
		Install a SIGINT handler while cancel listeners exist.  Only
		honoured on the main thread.
	"""

	def __init__(
		self,
		*,
		out: Any | None = None,
		err: Any | None = None,
		handle_signals: bool = True,
	) -> None:
		self._out = out if out is not None else _try_rich_console(stderr=False)
		self._err = err if err is not None else _try_rich_console(stderr=True)
		self._handle_signals = handle_signals
		self._listeners: list[Listener] = []
		self._lock = threading.RLock()
		self._previous_handler: Any = None
		self._signal_installed = False

	# ------------------------------------------------------------------
	# Output
	# ------------------------------------------------------------------

	def write_line(self, text: str = "") -> None:
		if self._out is None:
			print(text, flush=True)
			return
		self._out.print(text, markup=False, soft_wrap=True)

	def write_error(self, text: str) -> None:
		if self._err is None:
			print(text, file=sys.stderr, flush=True)
			return
		self._err.print(text, markup=False, style="bold red", soft_wrap=True)

	# ------------------------------------------------------------------
	# Cancel key
	# ------------------------------------------------------------------

	@property
	def cancel_listener_count(self) -> int:
		with self._lock:
			return len(self._listeners)

	def add_cancel_listener(self, listener: Listener) -> None:
		with self._lock:
			self._listeners.append(listener)
			if len(self._listeners) == 1:
				self._install_signal_handler()

	def remove_cancel_listener(self, listener: Listener) -> None:
		with self._lock:
			try:
				self._listeners.remove(listener)
			except ValueError:
				return
			if not self._listeners:
				self._restore_signal_handler()

	def notify_cancel(self) -> None:
		"""Invoke every subscribed cancel listener in subscription order."""
		with self._lock:
			listeners = list(self._listeners)
		for listener in listeners:
			listener()

	def _on_sigint(self, signum: int, frame: FrameType | None) -> None:
		logger.debug("Received signal %s", signum)
		self.notify_cancel()

	def _install_signal_handler(self) -> None:
		if not self._handle_signals or self._signal_installed:
			return
		if threading.current_thread() is not threading.main_thread():
			return
		self._previous_handler = signal.signal(signal.SIGINT, self._on_sigint)
		self._signal_installed = True

	def _restore_signal_handler(self) -> None:
		if not self._signal_installed:
			return
		if threading.current_thread() is not threading.main_thread():
			return
		previous = self._previous_handler
		signal.signal(
			signal.SIGINT,
			previous if previous is not None else signal.default_int_handler,
		)
		self._signal_installed = False
