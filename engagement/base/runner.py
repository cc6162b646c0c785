# ==============================================================================
# Base Runner Abstract Class
# ==============================================================================
"""
Lifecycle shared by the scheduled jobs.

A runner configures logging, turns SIGTERM/SIGINT into a stop request that
_run() polls through ``shutdown_requested``, and always calls _cleanup().
The signal handlers that were installed before run() are put back afterwards.
"""

import logging
import signal
from abc import ABC, abstractmethod
from typing import final

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
STOP_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class BaseRunner(ABC):
    """Base runner with signal-driven stop and guaranteed cleanup."""

    def __init__(self, log_level: str = "INFO"):
        self._shutdown_requested = False
        self._log_level = log_level
        self._previous_handlers: dict[int, object] = {}

    @final
    def run(self):
        """
        Run the job once.

        Returns:
            Whatever _run() returns, or None if interrupted from the keyboard
        """
        self._install_signal_handlers()
        self._setup_logging()
        try:
            return self._run()
        except KeyboardInterrupt:
            logger.info("Interrupted from keyboard")
            return None
        finally:
            self._cleanup()
            self._restore_signal_handlers()

    @abstractmethod
    def _run(self):
        """Job body."""
        ...

    def _install_signal_handlers(self) -> None:
        for signum in STOP_SIGNALS:
            self._previous_handlers[signum] = signal.getsignal(signum)
            signal.signal(signum, self._handle_signal)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            # None: the previous handler was not installed from Python
            if handler is not None:
                signal.signal(signum, handler)
        self._previous_handlers.clear()

    def _handle_signal(self, signum, frame) -> None:
        logger.info("Received signal %d, finishing current connection then stopping", signum)
        self._shutdown_requested = True

    def _setup_logging(self) -> None:
        logging.basicConfig(
            level=getattr(logging, self._log_level.upper(), logging.INFO),
            format=LOG_FORMAT,
        )

    def _cleanup(self) -> None:
        """Release resources. Optional override."""
        pass

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested
