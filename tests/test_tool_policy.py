from codex_bridge.ai.tool_policy import (
    ToolPolicy,
    build_tool_context,
    inject_tool_context,
    should_enable_tools,
)
from codex_bridge.core.models import ChatCompletionRequest, Message, ToolSpec


def _request(**kwargs) -> ChatCompletionRequest:
    return ChatCompletionRequest(model="gpt-5-codex", messages=[{"role": "user", "content": "q"}], **kwargs)


def _tool(name: str, description: str | None = "does things", parameters=None) -> ToolSpec:
    return ToolSpec(function={"name": name, "description": description, "parameters": parameters})


class TestShouldEnableTools:
    def test_off_by_default(self):
        assert not should_enable_tools(_request())

    def test_enable_flag(self):
        assert should_enable_tools(_request(enable_tools=True))
        assert not should_enable_tools(_request(enable_tools=False))

    def test_declared_tools_or_functions(self):
        assert should_enable_tools(_request(tools=[_tool("read_file")]))
        assert should_enable_tools(_request(functions=[{"name": "f"}]))


class TestFromRequest:
    def test_disabled_disallows_every_registered_tool(self, tool_registry):
        policy = ToolPolicy.from_request(_request(), tool_registry)
        assert not policy.enabled
        assert policy.disallowed == frozenset(tool_registry.list_names())
        assert not policy.permits("read_file")

    def test_enabled_allows_everything(self, tool_registry):
        policy = ToolPolicy.from_request(_request(enable_tools=True), tool_registry)
        assert policy.enabled
        assert policy.allowed is None
        assert policy.permits("run_command")

    def test_declared_tools_narrow_the_allow_list(self, tool_registry):
        policy = ToolPolicy.from_request(_request(tools=[_tool("read_file")]), tool_registry)
        assert policy.allowed == frozenset({"read_file"})
        assert not policy.permits("write_file")

    def test_tool_choice_none_disables(self, tool_registry):
        policy = ToolPolicy.from_request(_request(enable_tools=True, tool_choice="none"), tool_registry)
        assert not policy.enabled

    def test_tool_choice_function_selects_one(self, tool_registry):
        choice = {"type": "function", "function": {"name": "web_search"}}
        policy = ToolPolicy.from_request(_request(enable_tools=True, tool_choice=choice), tool_registry)
        assert policy.allowed == frozenset({"web_search"})


class TestToolContext:
    def test_build_tool_context(self):
        context = build_tool_context([_tool("lookup", parameters={"type": "object"}), _tool("x", None)])
        assert context.startswith("You have access to the following tools:\n\n")
        assert '- lookup: does things\n  Parameters: {"type": "object"}' in context
        assert "- x: No description\n  Parameters: {}" in context

    def test_no_tools_leaves_messages_alone(self):
        messages = [Message(role="user", content="q")]
        assert inject_tool_context(messages, None) == messages

    def test_appends_to_existing_system_message(self):
        messages = [Message(role="system", content="Base."), Message(role="user", content="q")]
        result = inject_tool_context(messages, [_tool("lookup")])

        assert result[0].content.startswith("Base.\n\nYou have access")
        assert messages[0].content == "Base."

    def test_prepends_system_message_when_missing(self):
        result = inject_tool_context([Message(role="user", content="q")], [_tool("lookup")])
        assert [m.role for m in result] == ["system", "user"]
        assert "- lookup: does things" in result[0].content
