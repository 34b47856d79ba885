"""Graceful stop on SIGINT/SIGTERM."""

import logging
import signal

logger = logging.getLogger(__name__)


class ShutdownService:
    """Stops the poll loop after the in-flight tick completes."""

    def __init__(self, cycle_controller):
        """
        Args:
            cycle_controller: Controller whose ``running`` flag ends the poll loop
        """
        self.cycle_controller = cycle_controller
        self.requested = False

    def shutdown(self) -> None:
        """
        Request a graceful stop.

        The engine is paused first so an analysis still in flight records its
        decision without sending an order.
        """
        self.requested = True
        logger.info("=" * 60)
        logger.info("SHUTDOWN REQUESTED")
        logger.info("=" * 60)
        self.cycle_controller.state.is_running = False
        self.cycle_controller.running = False
        logger.info("Finishing the current tick, no new orders will be sent")

    def register_signal_handlers(self) -> None:
        """
        Register SIGINT (Ctrl+C) and SIGTERM handlers.

        A second signal while already stopping aborts immediately.
        """
        def signal_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            if self.requested:
                logger.warning(f"Received {signal_name} again, aborting")
                raise KeyboardInterrupt
            logger.info(f"Received {signal_name}")
            self.shutdown()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        logger.info("Signal handlers registered (SIGINT, SIGTERM)")
