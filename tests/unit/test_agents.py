"""
Unit tests for the chat agents.

Most tests replace the LangChain agent graph with a MagicMock so they drive
invoke/stream with hand-written message sequences; one streams through a
real agent graph backed by a fake chat model.
"""
import pytest
from unittest.mock import MagicMock, patch

from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage, ToolMessage
from langgraph.errors import GraphRecursionError

from fluxion.assistant.pipelines.agents import ChangeManagementAgent, KnowledgeAgent
from fluxion.assistant.pipelines.agents.middleware import handle_tool_errors
from fluxion.assistant.prompts import CHANGE_MANAGEMENT_AGENT_PROMPT, KNOWLEDGE_AGENT_PROMPT

CREATE_AGENT = "fluxion.assistant.pipelines.agents.base_react.create_agent"


class FakeToolCallingModel(GenericFakeChatModel):
    """Replays canned replies token by token and accepts tool binding."""

    def bind_tools(self, tools, **kwargs):
        return self


@pytest.fixture
def llm():
    model = MagicMock()
    model.invoke.return_value = AIMessage(content="Here is what I found so far.")
    return model


@pytest.fixture
def retriever():
    return MagicMock()


@pytest.fixture
def graph():
    return MagicMock()


@pytest.fixture
def agent(base_config, llm, retriever, graph, monkeypatch):
    monkeypatch.delenv("SERPAPI_API_KEY", raising=False)
    monkeypatch.delenv("SERPAPI_API_KEY_FILE", raising=False)
    with patch(CREATE_AGENT, return_value=graph):
        yield ChangeManagementAgent(base_config, llm=llm, retriever=retriever)


# =============================================================================
# Construction
# =============================================================================

class TestAgentConstruction:

    def test_change_management_tools(self, base_config, llm, retriever):
        with patch(CREATE_AGENT) as mock_create:
            ChangeManagementAgent(base_config, llm=llm, retriever=retriever)

        kwargs = mock_create.call_args.kwargs
        assert [t.name for t in kwargs["tools"]] == ["search_uploaded_documents", "search_web"]
        assert kwargs["system_prompt"] == CHANGE_MANAGEMENT_AGENT_PROMPT
        assert kwargs["middleware"] == [handle_tool_errors]
        assert kwargs["model"] is llm

    def test_documents_tool_uses_k_5(self, base_config, llm):
        vector_manager = MagicMock()
        with patch(CREATE_AGENT):
            ChangeManagementAgent(base_config, llm=llm, vector_manager=vector_manager)
        vector_manager.as_retriever.assert_called_once_with(k=5)

    def test_knowledge_agent(self, base_config, llm):
        vector_manager = MagicMock()
        with patch(CREATE_AGENT) as mock_create:
            KnowledgeAgent(base_config, llm=llm, vector_manager=vector_manager)

        kwargs = mock_create.call_args.kwargs
        assert [t.name for t in kwargs["tools"]] == ["search_latest_knowledge"]
        assert kwargs["system_prompt"] == KNOWLEDGE_AGENT_PROMPT
        vector_manager.as_retriever.assert_called_once_with(k=None)

    def test_missing_retriever_source(self, base_config, llm):
        with patch(CREATE_AGENT), pytest.raises(ValueError):
            KnowledgeAgent(base_config, llm=llm)

    def test_llm_built_from_config(self, base_config, retriever):
        with patch(CREATE_AGENT), patch("fluxion.assistant.pipelines.agents.base_react.get_model") as mock_get_model:
            ChangeManagementAgent(base_config, retriever=retriever)

        mock_get_model.assert_called_once_with(
            "gemini",
            "gemini-2.0-flash",
            {
                "base_url": None,
                "default_model": None,
                "extra_kwargs": {"temperature": 0, "max_output_tokens": 2048},
            },
        )

    def test_agent_is_not_rebuilt_when_tools_unchanged(self, agent, graph):
        with patch(CREATE_AGENT) as mock_create:
            assert agent.refresh_agent() is graph
        mock_create.assert_not_called()


# =============================================================================
# invoke
# =============================================================================

class TestInvoke:

    def test_returns_all_messages(self, agent, graph):
        question = HumanMessage(content="How do I build a coalition?")
        run = [
            question,
            AIMessage(content="", tool_calls=[{"name": "search_uploaded_documents", "args": {"query": "coalition"}, "id": "c1"}]),
            ToolMessage(content="Pick influential sponsors.", tool_call_id="c1"),
            AIMessage(content="Start with influential sponsors."),
        ]
        graph.invoke.return_value = {"messages": run}

        output = agent.invoke([question])

        assert output.answer == "Start with influential sponsors."
        assert output.messages == run
        assert output.final is True
        graph.invoke.assert_called_once_with({"messages": [question]}, {"recursion_limit": 25})

    def test_recursion_limit_wraps_up(self, agent, graph, llm):
        graph.invoke.side_effect = GraphRecursionError("too many steps")
        question = HumanMessage(content="Compare every change model ever.")

        output = agent.invoke([question])

        assert output.answer == "Here is what I found so far."
        assert output.metadata["recursion_exhausted"] is True
        assert output.messages[0] is question
        assert isinstance(output.messages[-1], AIMessage)
        llm.invoke.assert_called_once()

    def test_wrap_up_failure_has_fallback_text(self, agent, graph, llm):
        graph.invoke.side_effect = GraphRecursionError("too many steps")
        llm.invoke.side_effect = RuntimeError("quota")

        output = agent.invoke([HumanMessage(content="q")])

        assert "wasn't able to finish" in output.answer

    def test_run_adds_no_per_request_state(self, agent, graph, retriever):
        """The cached agent is shared by request threads; runs must not stash results on it."""
        retriever.invoke.return_value = []
        graph.invoke.return_value = {"messages": [HumanMessage(content="q"), AIMessage(content="a")]}
        attributes_before = set(vars(agent))

        output = agent.invoke([HumanMessage(content="q")])

        assert set(vars(agent)) == attributes_before
        assert not hasattr(agent, "_documents")
        assert not hasattr(output, "source_documents")

    def test_invalid_recursion_limit_falls_back(self, agent):
        agent.chat_config = {"recursion_limit": "lots"}
        assert agent._recursion_limit() == 25


# =============================================================================
# stream
# =============================================================================

class TestStream:

    def test_streams_text_deltas(self, agent, graph):
        graph.stream.return_value = iter([
            (AIMessageChunk(content=""), {"langgraph_node": "model"}),
            (ToolMessage(content="doc text", tool_call_id="c1"), {"langgraph_node": "tools"}),
            (AIMessageChunk(content="Hel"), {"langgraph_node": "model"}),
            (AIMessageChunk(content=[{"type": "text", "text": "lo"}]), {"langgraph_node": "model"}),
        ])

        outputs = list(agent.stream([HumanMessage(content="hi")]))

        deltas = [o.metadata["delta"] for o in outputs if not o.final]
        assert deltas == ["Hel", "lo"]
        assert outputs[-1].final is True
        assert outputs[-1].answer == "Hello"
        assert graph.stream.call_args.kwargs == {
            "stream_mode": "messages",
            "config": {"recursion_limit": 25},
        }

    def test_recursion_during_stream(self, agent, graph):
        def _events(*args, **kwargs):
            yield (AIMessageChunk(content="Partial"), {})
            raise GraphRecursionError("too many steps")

        graph.stream.side_effect = _events

        outputs = list(agent.stream([HumanMessage(content="hi")]))

        deltas = [o.metadata["delta"] for o in outputs if not o.final]
        assert deltas == ["Partial", "\n\nHere is what I found so far."]
        assert outputs[-1].answer == "Partial\n\nHere is what I found so far."
        assert outputs[-1].metadata["recursion_exhausted"] is True

    def test_empty_stream(self, agent, graph):
        graph.stream.return_value = iter([])

        outputs = list(agent.stream([HumanMessage(content="hi")]))

        assert len(outputs) == 1
        assert outputs[0].answer == ""
        assert outputs[0].messages == []

    def test_streams_through_real_agent_graph(self, base_config, retriever):
        model = FakeToolCallingModel(messages=iter([AIMessage(content="hello there world")]))
        agent = KnowledgeAgent(base_config, llm=model, retriever=retriever)

        outputs = list(agent.stream([HumanMessage(content="Say hello")]))

        deltas = [o.metadata["delta"] for o in outputs if not o.final]
        assert deltas == ["hello", " ", "there", " ", "world"]
        assert outputs[-1].final is True
        assert outputs[-1].answer == "hello there world"
        retriever.invoke.assert_not_called()
