"""Tests for logging context variables."""

import asyncio

from core.logging.context import (
    clear_log_context,
    get_log_context,
    reset_log_context,
    set_log_context,
)


class TestLogContext:
    def test_defaults_empty(self):
        clear_log_context()
        assert get_log_context() == {"stage": "", "worker_id": "", "batch_id": ""}

    def test_set_all(self):
        set_log_context(stage="persistence", worker_id="brave-golden-tiger", batch_id="a1b2c3d4")
        assert get_log_context() == {
            "stage": "persistence",
            "worker_id": "brave-golden-tiger",
            "batch_id": "a1b2c3d4",
        }

    def test_none_leaves_value_untouched(self):
        set_log_context(stage="stream")
        set_log_context(worker_id="w-1")
        ctx = get_log_context()
        assert ctx["stage"] == "stream"
        assert ctx["worker_id"] == "w-1"

    def test_clear(self):
        set_log_context(stage="dlq", batch_id="b")
        clear_log_context()
        assert get_log_context()["stage"] == ""
        assert get_log_context()["batch_id"] == ""

    async def test_isolated_between_tasks(self):
        set_log_context(stage="main")

        async def child():
            set_log_context(stage="child")
            return get_log_context()["stage"]

        assert await asyncio.create_task(child()) == "child"
        assert get_log_context()["stage"] == "main"

    def test_reset_undoes_only_given_fields(self):
        set_log_context(stage="stream", batch_id="outer")
        tokens = set_log_context(batch_id="inner")

        reset_log_context(tokens)

        assert get_log_context()["batch_id"] == "outer"
        assert get_log_context()["stage"] == "stream"
