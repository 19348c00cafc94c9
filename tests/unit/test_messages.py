import pytest

from langchain_core.messages import AIMessage, ChatMessage, HumanMessage, ToolMessage

from fluxion.interfaces.chat_app.messages import (
    convert_client_message,
    convert_langchain_message,
    message_text,
    parse_client_messages,
)


class TestClientMessages:

    def test_convert_roles(self):
        assert isinstance(convert_client_message({"role": "user", "content": "q"}), HumanMessage)
        assert isinstance(convert_client_message({"role": "assistant", "content": "a"}), AIMessage)
        other = convert_client_message({"role": "system", "content": "s"})
        assert isinstance(other, ChatMessage)
        assert other.role == "system"

    def test_parse_keeps_only_user_and_assistant(self):
        parsed = parse_client_messages([
            {"role": "system", "content": "ignored"},
            {"role": "user", "content": "What is Kotter's model?"},
            {"role": "assistant", "content": "An 8-step process."},
            {"role": "function", "content": "ignored"},
        ])

        assert [type(m) for m in parsed] == [HumanMessage, AIMessage]

    @pytest.mark.parametrize("content", ["", "   ", None])
    def test_parse_drops_empty_content(self, content):
        assert parse_client_messages([{"role": "user", "content": content}]) == []

    def test_parse_keeps_non_string_content(self):
        parsed = parse_client_messages([{"role": "user", "content": [{"type": "text", "text": "hi"}]}])
        assert len(parsed) == 1

    def test_parse_handles_missing_list(self):
        assert parse_client_messages(None) == []


class TestLangchainMessages:

    def test_convert_langchain_message(self):
        assert convert_langchain_message(HumanMessage(content="q")) == {"content": "q", "role": "user"}
        assert convert_langchain_message(AIMessage(content="a")) == {
            "content": "a",
            "role": "assistant",
            "tool_calls": [],
        }
        assert convert_langchain_message(ToolMessage(content="t", tool_call_id="c1")) == {
            "content": "t",
            "role": "tool",
        }

    def test_message_text_flattens_blocks(self):
        message = AIMessage(content=[{"type": "text", "text": "Hello "}, {"type": "image_url", "image_url": {"url": "https://example.com/a.png"}}, "world"])
        assert message_text(message) == "Hello world"

    def test_message_text_plain(self):
        assert message_text(AIMessage(content="plain")) == "plain"
        assert message_text("raw") == "raw"

    def test_assistant_blocks_become_text(self):
        message = AIMessage(
            content=[{"type": "text", "text": "Build a "}, {"type": "text", "text": "guiding coalition."}],
            tool_calls=[{"name": "search_web", "args": {"query": "kotter"}, "id": "c1"}],
        )

        converted = convert_langchain_message(message)

        assert converted["content"] == "Build a guiding coalition."
        assert converted["tool_calls"][0]["name"] == "search_web"
