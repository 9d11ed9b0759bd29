"""
Tests for JSON file session storage, the session manager and YAML history.
"""

import os

import pytest

from ai_agent_chat.history import sessions_to_yaml, yaml_to_sessions
from ai_agent_chat.model_catalog import ModelCatalog
from ai_agent_chat.session_manager import SessionManager
from ai_agent_chat.session_store import JsonFileSessionStore, new_message


@pytest.fixture
def store(tmp_path):
    return JsonFileSessionStore(str(tmp_path / "sessions"))


@pytest.fixture
def manager(store):
    return SessionManager(store, ModelCatalog(default_model_id="openai/gpt-4.1"))


class TestJsonFileSessionStore:
    def test_directory_created_lazily(self, store) -> None:
        assert not os.path.exists(store.sessions_dir)
        assert store.list() == []
        assert os.path.isdir(store.sessions_dir)

    def test_missing_session(self, store) -> None:
        assert store.get_by_id("nope") is None
        assert store.append_message("nope", new_message("user", "hi")) is None
        assert store.delete("nope") is False

    @pytest.mark.parametrize("session_id", ["../escape", "a/b", ""])
    def test_unsafe_ids_rejected(self, store, session_id) -> None:
        assert store.get_by_id(session_id) is None
        with pytest.raises(ValueError):
            store.save({"id": session_id})

    def test_append_message_bumps_updated_at(self, store) -> None:
        store.save({"id": "s1", "messages": [], "updatedAt": "2000-01-01T00:00:00.000Z"})
        session = store.append_message("s1", new_message("user", "hello", "m1"))
        assert session["messages"][0]["id"] == "m1"
        assert session["updatedAt"] > "2000-01-01T00:00:00.000Z"
        assert store.get_by_id("s1")["messages"][0]["content"] == "hello"

    def test_corrupt_file_skipped(self, store) -> None:
        store.save({"id": "good", "updatedAt": "2025-01-01T00:00:00.000Z"})
        with open(os.path.join(store.sessions_dir, "bad.json"), "w") as f:
            f.write("{not json")
        assert [s["id"] for s in store.list()] == ["good"]
        assert store.get_by_id("bad") is None


class TestSessionManager:
    def test_create_uses_default_model(self, manager) -> None:
        session = manager.create_session()
        assert session["modelId"] == "openai/gpt-4.1"
        assert session["createdAt"] == session["updatedAt"]
        assert manager.get_session(session["id"]) == session

    def test_unknown_default_falls_back_to_first_model(self, store) -> None:
        manager = SessionManager(store, ModelCatalog(default_model_id="missing"))
        assert manager.create_session()["modelId"] == "openai/gpt-4.1-nano"

    def test_update_missing(self, manager) -> None:
        assert manager.update_session("nope", title="x") is None


class TestHistory:
    def test_round_trip_keeps_unicode(self, manager) -> None:
        session = manager.create_session(title="日本語のチャット")
        text = sessions_to_yaml([session])
        assert "日本語のチャット" in text
        assert yaml_to_sessions(text) == [session]

    def test_missing_sessions_array(self) -> None:
        with pytest.raises(ValueError, match="missing sessions array"):
            yaml_to_sessions("version: '1.0'")

    @pytest.mark.parametrize("bad_id", ["123", "'../up'", "null"])
    def test_unusable_session_id(self, bad_id) -> None:
        content = f"sessions:\n- {{id: ok}}\n- {{id: {bad_id}}}\n"
        with pytest.raises(ValueError, match="Invalid session id"):
            yaml_to_sessions(content)
