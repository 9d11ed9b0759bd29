"""
Tests for the stream normalizer state machine.
"""

import pytest

from conftest import delta, parse_frames

from ai_agent_chat.errors import AgentStepLimitExceeded
from ai_agent_chat.events import SessionEventChannel
from ai_agent_chat.normalizer import ChatTurn, StreamNormalizer, TurnState


async def _fragments(*items, error=None):
    for item in items:
        yield item
    if error is not None:
        raise error


def _events(transport):
    return parse_frames(transport.getvalue())


class TestStreamNormalizer:
    """Normalization of raw fragments into chat events."""

    @pytest.mark.asyncio
    async def test_direct_stream_deltas_and_final_repeat(self, transport) -> None:
        persisted = []

        async def persist(turn):
            persisted.append((turn.turn_id, turn.accumulated_text))

        normalizer = StreamNormalizer(SessionEventChannel(transport), persist=persist)
        await normalizer.run(
            _fragments(delta("Hel"), delta("lo "), delta("world"))
        )

        events = _events(transport)
        assert events[0] == ("thinking", {"content": "Thinking..."})
        messages = [data for event, data in events if event == "message"]
        assert [m["content"] for m in messages] == ["Hel", "lo ", "world", "Hello world"]
        assert len({m["messageId"] for m in messages}) == 1
        assert messages[0]["messageId"] == normalizer.turn.turn_id
        assert events[-1] == ("done", {})
        assert persisted == [(normalizer.turn.turn_id, "Hello world")]
        assert normalizer.state is TurnState.DONE

    @pytest.mark.asyncio
    async def test_deltas_concatenate_to_accumulated_text(self, transport) -> None:
        normalizer = StreamNormalizer(SessionEventChannel(transport))
        await normalizer.run(
            _fragments({"content": "a"}, {"output": "b"}, {"steps": [{"result": "c"}]})
        )
        messages = [data["content"] for event, data in _events(transport) if event == "message"]
        assert "".join(messages[:-1]) == normalizer.turn.accumulated_text == "abc"
        assert messages[-1] == "abc"

    @pytest.mark.asyncio
    async def test_agent_messages_and_tool_progress(self, transport) -> None:
        normalizer = StreamNormalizer(SessionEventChannel(transport))
        await normalizer.run(
            _fragments(
                {
                    "agent": {
                        "messages": [
                            {
                                "role": "assistant",
                                "content": "",
                                "tool_calls": [{"name": "time_current_time", "args": {"input": "UTC"}}],
                            }
                        ]
                    }
                },
                {"messages": [{"role": "tool", "name": "time_current_time", "content": "12:00"}]},
                {"agent": {"messages": [{"kwargs": {"content": "It is noon."}}]}},
            )
        )
        events = _events(transport)
        thinking = [data["content"] for event, data in events if event == "thinking"]
        assert thinking == [
            "Thinking...",
            'Using tool: time_current_time with input: {"input": "UTC"}',
            "Tool output: 12:00",
        ]
        assert normalizer.turn.accumulated_text == "It is noon."

    @pytest.mark.asyncio
    async def test_iteration_shapes(self, transport) -> None:
        normalizer = StreamNormalizer(SessionEventChannel(transport))
        await normalizer.run(
            _fragments(
                {"iterations": [{"action": {"name": "calc", "args": {"x": 1}}}]},
                {"iterations": [{"action_result": "2"}]},
                {"iterations": [{"action_result": "ignored"}, {"result": {"output": "Two"}}]},
                {"iterations": []},
            )
        )
        events = _events(transport)
        thinking = [data["content"] for event, data in events if event == "thinking"]
        assert thinking[1:] == ['Using tool: calc with input: {"x": 1}', "Tool result: 2"]
        assert normalizer.turn.accumulated_text == "Two"

    @pytest.mark.asyncio
    async def test_unknown_fragments_ignored(self, transport) -> None:
        normalizer = StreamNormalizer(SessionEventChannel(transport))
        await normalizer.run(_fragments({"foo": 1}, delta(None), "text"))
        assert [event for event, _ in _events(transport)] == ["thinking", "done"]
        assert normalizer.turn.accumulated_text == ""

    @pytest.mark.asyncio
    async def test_long_tool_output_truncated(self, transport) -> None:
        normalizer = StreamNormalizer(SessionEventChannel(transport))
        await normalizer.run(_fragments({"messages": [{"name": "t", "content": "x" * 2000}]}))
        note = [data["content"] for event, data in _events(transport) if event == "thinking"][-1]
        assert note.startswith("Tool output: xxx")
        assert note.endswith("...")
        assert len(note) < 600

    @pytest.mark.asyncio
    async def test_step_limit_reported_as_error(self, transport) -> None:
        normalizer = StreamNormalizer(SessionEventChannel(transport))
        await normalizer.run(_fragments(delta("partial"), error=AgentStepLimitExceeded(10)))
        events = _events(transport)
        assert events[-2:] == [
            ("error", {"error": "Agent reached maximum number of steps without completing the task"}),
            ("done", {}),
        ]
        assert normalizer.state is TurnState.ERROR

    @pytest.mark.asyncio
    async def test_runtime_failure_reported_as_error(self, transport) -> None:
        normalizer = StreamNormalizer(SessionEventChannel(transport))
        await normalizer.run(_fragments(error=RuntimeError("stream broke")))
        assert _events(transport)[-2:] == [("error", {"error": "stream broke"}), ("done", {})]

    @pytest.mark.asyncio
    async def test_persist_failure_reported_as_error(self, transport) -> None:
        async def persist(turn):
            raise OSError("disk full")

        normalizer = StreamNormalizer(SessionEventChannel(transport), persist=persist)
        await normalizer.run(_fragments({"content": "hi"}))
        events = [event for event, _ in _events(transport)]
        assert events == ["thinking", "message", "message", "error", "done"]

    @pytest.mark.asyncio
    async def test_exactly_one_terminal_event(self, transport) -> None:
        normalizer = StreamNormalizer(SessionEventChannel(transport))
        await normalizer.run(_fragments({"content": "hi"}))
        await normalizer.fail("too late")
        await normalizer.progress("too late")
        events = [event for event, _ in _events(transport)]
        assert events.count("done") == 1
        assert "error" not in events
        assert events[-1] == "done"

    @pytest.mark.asyncio
    async def test_turn_ids_distinct_across_turns(self, transport) -> None:
        first = StreamNormalizer(SessionEventChannel(transport))
        second = StreamNormalizer(SessionEventChannel(transport))
        assert first.turn.turn_id != second.turn.turn_id

    @pytest.mark.asyncio
    async def test_thinking_emitted_once(self, transport) -> None:
        turn = ChatTurn()
        normalizer = StreamNormalizer(SessionEventChannel(transport), turn)
        await normalizer.start()
        await normalizer.run(_fragments())
        events = [event for event, _ in _events(transport)]
        assert events == ["thinking", "done"]
