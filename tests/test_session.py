"""Tests for yura/channels/session.py."""

from __future__ import annotations

import asyncio

import pytest

from yura.channels.session import ChatState, ChatStateStore


class TestEnsure:
    def test_creates_on_first_sight(self):
        store = ChatStateStore()
        state = store.ensure("a@s.whatsapp.net")
        assert isinstance(state, ChatState)
        assert state.chat_id == "a@s.whatsapp.net"
        assert state.history == []
        assert state.ocr_docs == []

    def test_idempotent(self):
        store = ChatStateStore()
        assert store.ensure("a") is store.ensure("a")
        assert store.chat_count() == 1

    def test_chats_isolated(self):
        store = ChatStateStore()
        store.push_history(store.ensure("a"), "user", "hi")
        assert store.ensure("b").history == []
        assert store.chat_count() == 2

    def test_get_does_not_create(self):
        store = ChatStateStore()
        assert store.get("missing") is None
        assert store.chat_count() == 0


class TestPushHistory:
    def test_appends_in_order(self):
        store = ChatStateStore()
        state = store.ensure("a")
        store.push_history(state, "user", "question")
        store.push_history(state, "assistant", "answer")
        assert [(e.role, e.content) for e in state.history] == [
            ("user", "question"),
            ("assistant", "answer"),
        ]

    def test_twenty_one_entries_keep_last_twenty(self):
        store = ChatStateStore(max_history=20)
        state = store.ensure("a")
        for i in range(1, 22):
            store.push_history(state, "user", f"msg {i}")
        assert len(state.history) == 20
        assert [e.content for e in state.history] == [f"msg {i}" for i in range(2, 22)]
        assert "msg 1" not in [e.content for e in state.history]

    def test_custom_capacity(self):
        store = ChatStateStore(max_history=3)
        state = store.ensure("a")
        for i in range(10):
            store.push_history(state, "user", str(i))
        assert [e.content for e in state.history] == ["7", "8", "9"]


class TestAddDoc:
    def test_returns_ocr_id(self):
        store = ChatStateStore()
        state = store.ensure("a")
        doc_id = store.add_doc(state, "receipt total 42")
        assert doc_id.startswith("OCR-")
        assert doc_id[4:].isdigit()
        assert state.ocr_docs[-1].id == doc_id
        assert state.ocr_docs[-1].text == "receipt total 42"
        assert state.ocr_docs[-1].timestamp > 0

    def test_six_docs_keep_last_five(self):
        store = ChatStateStore(max_ocr_docs=5)
        state = store.ensure("a")
        ids = [store.add_doc(state, f"doc {i}") for i in range(6)]
        assert len(state.ocr_docs) == 5
        assert [d.id for d in state.ocr_docs] == ids[1:]
        assert [d.text for d in state.ocr_docs] == [f"doc {i}" for i in range(1, 6)]

    def test_ids_unique_within_same_millisecond(self, monkeypatch):
        monkeypatch.setattr("yura.channels.session.time.time", lambda: 1_700_000_000.0)
        store = ChatStateStore()
        state = store.ensure("a")
        ids = [store.add_doc(state, "same instant") for _ in range(3)]
        assert len(set(ids)) == 3
        assert ids[0] == "OCR-1700000000000"


class TestChatLock:
    def test_same_lock_per_chat(self):
        store = ChatStateStore()
        assert store.lock("a") is store.lock("a")
        assert store.lock("a") is not store.lock("b")

    @pytest.mark.asyncio
    async def test_lock_serialises_turns(self):
        store = ChatStateStore()
        state = store.ensure("a")

        async def turn(label: str, pause: float) -> None:
            async with store.lock("a"):
                store.push_history(state, "user", f"{label} question")
                await asyncio.sleep(pause)
                store.push_history(state, "assistant", f"{label} answer")

        await asyncio.gather(turn("first", 0.02), turn("second", 0.0))
        assert [e.content for e in state.history] == [
            "first question",
            "first answer",
            "second question",
            "second answer",
        ]
