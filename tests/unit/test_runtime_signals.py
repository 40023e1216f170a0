"""Tests for shutdown signal handling."""

import asyncio
import signal
from unittest.mock import Mock, patch

import pytest

from content_search_server.runtime.signals import install_shutdown_signals


pytestmark = pytest.mark.unit


def test_install_creates_event_and_handlers():
    app = Mock()
    app.state.shutdown_event = None
    with patch("content_search_server.runtime.signals.signal.signal") as register:
        event = install_shutdown_signals(app)
    assert isinstance(event, asyncio.Event)
    assert app.state.shutdown_event is event
    assert {call.args[0] for call in register.call_args_list} == {signal.SIGINT, signal.SIGTERM}


def test_handler_sets_event_once():
    app = Mock()
    app.state.shutdown_event = None
    with patch("content_search_server.runtime.signals.signal.signal") as register:
        event = install_shutdown_signals(app, signals=(signal.SIGTERM,))
    handler = register.call_args.args[1]
    handler(signal.SIGTERM, None)
    handler(signal.SIGTERM, None)
    assert event.is_set()


def test_existing_event_is_reused():
    app = Mock()
    existing = asyncio.Event()
    app.state.shutdown_event = existing
    assert install_shutdown_signals(app) is existing


def test_unsupported_context_is_tolerated():
    app = Mock()
    app.state.shutdown_event = None
    with patch("content_search_server.runtime.signals.signal.signal", side_effect=ValueError("not main thread")):
        event = install_shutdown_signals(app)
    assert not event.is_set()
