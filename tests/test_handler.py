import pytest

from codex_bridge.core.models import ChatCompletionRequest, Message, StreamEvent, Usage
from codex_bridge.errors import BackendFailure, InvalidRequest
from tests.fakes import reply


def _request(*messages, **kwargs) -> ChatCompletionRequest:
    return ChatCompletionRequest(model="gpt-5-codex", messages=list(messages), **kwargs)


def _user(text):
    return {"role": "user", "content": text}


class TestComplete:
    @pytest.mark.asyncio
    async def test_single_shot(self, handler, backend):
        backend.queue(reply("Hello!", usage=Usage.from_counts(7, 2)))

        response = await handler.complete(_request(_user("Hi")), "chatcmpl-abc")

        assert response.id == "chatcmpl-abc"
        assert response.model == "gpt-5-codex"
        assert response.choices[0].message.content == "Hello!"
        assert response.choices[0].finish_reason == "stop"
        assert response.usage.total_tokens == 9

        handle, prompt, options = backend.calls[0]
        assert handle.thread_id is None
        assert prompt == "User: Hi"
        assert options.tools_enabled is False

    @pytest.mark.asyncio
    async def test_system_prompt_is_prepended(self, handler, backend):
        await handler.complete(_request({"role": "system", "content": "Be terse."}, _user("Hi")))
        assert backend.calls[0][1] == "Be terse.\n\nUser: Hi"

    @pytest.mark.asyncio
    async def test_usage_estimated_without_backend_usage(self, handler, backend):
        backend.queue(reply("12345678"))
        response = await handler.complete(_request(_user("Hi")))
        # "User: Hi" is 8 characters
        assert response.usage.model_dump() == {"prompt_tokens": 2, "completion_tokens": 2, "total_tokens": 4}

    @pytest.mark.asyncio
    async def test_backend_error_event_raises(self, handler, backend):
        backend.queue([StreamEvent.failure("quota exceeded")])
        with pytest.raises(BackendFailure, match="quota exceeded"):
            await handler.complete(_request(_user("Hi")))

    @pytest.mark.asyncio
    async def test_unexpected_backend_exception_is_wrapped(self, handler, backend):
        backend.queue([OSError("broken pipe")])
        with pytest.raises(BackendFailure, match="broken pipe"):
            await handler.complete(_request(_user("Hi")))


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "messages",
        [
            [],
            [{"role": "wizard", "content": "x"}],
            [{"role": "user", "content": ""}],
            [{"role": "system", "content": "only system"}],
            [{"role": "assistant", "content": ""}],
        ],
    )
    async def test_rejected_before_side_effects(self, handler, backend, sessions, messages):
        request = _request(*messages, session_id="s1")

        with pytest.raises(InvalidRequest):
            await handler.complete(request)

        assert backend.calls == []
        assert sessions.get("s1") is None

    def test_stream_validates_eagerly(self, handler, backend):
        with pytest.raises(InvalidRequest):
            handler.stream(_request())
        assert backend.calls == []

    def test_empty_render_leaves_session_untouched(self, handler, backend, sessions):
        sessions.resolve([Message(role="user", content="earlier")], "s1")
        request = _request({"role": "assistant", "content": ""}, session_id="s1", stream=True)

        with pytest.raises(InvalidRequest, match="No valid prompt"):
            handler.stream(request)

        assert backend.calls == []
        assert [m.content for m in sessions.get("s1").messages] == ["earlier"]


class TestSessions:
    @pytest.mark.asyncio
    async def test_second_turn_resumes_thread_with_full_history(self, handler, backend, sessions):
        backend.queue(reply("Nice to meet you.", thread_id="thread-42"))
        backend.queue(reply("You are Sam.", thread_id="thread-42"))

        await handler.complete(_request(_user("I am Sam."), session_id="s1"))
        await handler.complete(_request(_user("Who am I?"), session_id="s1"))

        first, second = backend.calls
        assert first[0].thread_id is None
        assert second[0].thread_id == "thread-42"
        assert second[1] == "User: I am Sam.\n\nAssistant: Nice to meet you.\n\nUser: Who am I?"

        snapshot = sessions.get("s1")
        assert snapshot.thread_id == "thread-42"
        assert snapshot.message_count == 4

    @pytest.mark.asyncio
    async def test_system_messages_reach_backend_but_are_not_stored(self, handler, backend, sessions):
        request = _request({"role": "system", "content": "Be terse."}, _user("Hi"), session_id="s1")

        await handler.complete(request)

        assert backend.calls[0][1].startswith("Be terse.\n\n")
        assert all(m.role != "system" for m in sessions.get("s1").messages)

    @pytest.mark.asyncio
    async def test_failed_run_keeps_user_message_only(self, handler, backend, sessions):
        backend.queue([StreamEvent.failure("boom")])
        with pytest.raises(BackendFailure):
            await handler.complete(_request(_user("Hi"), session_id="s1"))

        assert [m.role for m in sessions.get("s1").messages] == ["user"]


class TestTools:
    @pytest.mark.asyncio
    async def test_tool_calls_extracted_when_enabled(self, handler, backend, sessions):
        backend.queue(reply('I will call `read_file({"path":"a.txt"})` now.'))

        response = await handler.complete(_request(_user("Read a.txt"), enable_tools=True, session_id="s1"))

        choice = response.choices[0]
        assert choice.finish_reason == "tool_calls"
        assert choice.message.content is None
        assert choice.message.tool_calls[0].function.name == "read_file"
        assert backend.calls[0][2].tools_enabled is True
        # history keeps the raw answer text
        assert "read_file" in sessions.get("s1").messages[-1].content

    @pytest.mark.asyncio
    async def test_no_extraction_when_tools_disabled(self, handler, backend):
        backend.queue(reply('read_file({"path":"a.txt"})'))

        response = await handler.complete(_request(_user("Read a.txt")))

        assert response.choices[0].message.tool_calls is None
        assert response.choices[0].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_tool_choice_none_disables_tools(self, handler, backend):
        backend.queue(reply('read_file({"path":"a.txt"})'))
        response = await handler.complete(
            _request(_user("Read a.txt"), enable_tools=True, tool_choice="none")
        )
        assert response.choices[0].message.tool_calls is None
        assert backend.calls[0][2].tools_enabled is False

    @pytest.mark.asyncio
    async def test_declared_tools_are_described_in_prompt(self, handler, backend):
        tools = [{"type": "function", "function": {"name": "read_file", "description": "Read a file"}}]

        await handler.complete(_request(_user("Hi"), tools=tools))

        prompt = backend.calls[0][1]
        assert prompt.startswith("You have access to the following tools:")
        assert "- read_file: Read a file" in prompt
        assert prompt.endswith("User: Hi")


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_frames_and_persistence(self, handler, backend, sessions):
        backend.queue(reply("streamed", thread_id="t-s"))

        frames = [f async for f in handler.stream(_request(_user("Hi"), session_id="s1", stream=True), "chatcmpl-s")]

        assert frames[0].payload["id"] == "chatcmpl-s"
        assert frames[0].payload["choices"][0]["delta"] == {"role": "assistant", "content": "streamed"}
        assert frames[-1].is_done
        assert backend.closed == 1
        assert sessions.thread_of("s1") == "t-s"
        assert sessions.get("s1").messages[-1].content == "streamed"
