"""SIGTERM/SIGINT handling for the relay process."""

import asyncio
import logging
import signal

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_shutdown_handlers(shutdown_event: asyncio.Event) -> None:
    """Set ``shutdown_event`` when the process receives SIGTERM or SIGINT.

    Must be called from inside the running loop. A repeated signal while
    shutdown is already under way is logged and otherwise ignored.
    """
    loop = asyncio.get_running_loop()

    def on_signal(sig: signal.Signals) -> None:
        if shutdown_event.is_set():
            logger.warning("Shutdown already in progress, ignoring %s", sig.name)
            return
        logger.info("Received %s, shutting down", sig.name)
        shutdown_event.set()

    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, on_signal, sig)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(
                sig,
                lambda signum, _frame: loop.call_soon_threadsafe(on_signal, signal.Signals(signum)),
            )


__all__ = ["install_shutdown_handlers", "SHUTDOWN_SIGNALS"]
