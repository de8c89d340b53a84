"""Tests for install_shutdown_handlers."""

import asyncio
import signal
from unittest.mock import patch

from relay.common.signals import SHUTDOWN_SIGNALS, install_shutdown_handlers


class TestInstallShutdownHandlers:
    async def test_registers_both_signals(self):
        loop = asyncio.get_running_loop()

        with patch.object(loop, "add_signal_handler") as add:
            install_shutdown_handlers(asyncio.Event())

        assert {c.args[0] for c in add.call_args_list} == set(SHUTDOWN_SIGNALS)

    async def test_signal_sets_event(self):
        loop = asyncio.get_running_loop()
        event = asyncio.Event()

        with patch.object(loop, "add_signal_handler") as add:
            install_shutdown_handlers(event)

        _sig, callback, sig_arg = add.call_args_list[0].args
        callback(sig_arg)
        assert event.is_set()

        # Second signal is ignored without error
        callback(sig_arg)
        assert event.is_set()

    async def test_falls_back_to_signal_module(self):
        loop = asyncio.get_running_loop()
        event = asyncio.Event()

        with (
            patch.object(loop, "add_signal_handler", side_effect=NotImplementedError),
            patch("relay.common.signals.signal.signal") as sig,
        ):
            install_shutdown_handlers(event)

        assert sig.call_count == 2
        handler = sig.call_args_list[0].args[1]
        handler(signal.SIGTERM, None)
        await asyncio.sleep(0)
        assert event.is_set()
