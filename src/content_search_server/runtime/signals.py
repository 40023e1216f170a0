"""SIGINT/SIGTERM handling that lets the lifespan close storage cleanly."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
import logging
import signal
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from starlette.applications import Starlette


logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_shutdown_signals(
    app: Starlette,
    signals: Iterable[signal.Signals] = SHUTDOWN_SIGNALS,
) -> asyncio.Event:
    """Set ``app.state.shutdown_event`` on the first shutdown signal.

    The lifespan watches the event and releases the storage handle; repeated
    signals are ignored. Installing twice returns the existing event.
    """
    existing = getattr(app.state, "shutdown_event", None)
    if isinstance(existing, asyncio.Event):
        return existing

    shutdown_event = asyncio.Event()

    def _handler_for(sig: signal.Signals) -> Callable[[int, object | None], None]:
        def _handler(signum: int, frame: object | None) -> None:
            if shutdown_event.is_set():
                return
            logger.info("Received %s, closing content index", sig.name)
            shutdown_event.set()

        return _handler

    for sig in signals:
        try:
            signal.signal(sig, _handler_for(sig))
        except ValueError:
            # signal.signal only works in the main thread
            logger.debug("Cannot install %s handler outside the main thread", sig.name)

    app.state.shutdown_event = shutdown_event
    return shutdown_event
