from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from langchain.agents import create_agent
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage, HumanMessage, SystemMessage
from langgraph.errors import GraphRecursionError
from langgraph.graph.state import CompiledStateGraph

from fluxion.assistant.pipelines.agents.middleware import handle_tool_errors
from fluxion.assistant.providers import get_model
from fluxion.assistant.utils.output_dataclass import PipelineOutput
from fluxion.utils.logging import get_logger

logger = get_logger(__name__)


class BaseReActAgent:
    """
    BaseReActAgent provides the shared structure for the chat agents: it builds
    the LLM from the configured provider, assembles tools from a registry and
    runs a LangChain agent graph over a list of chat messages.

    Subclasses set ``SYSTEM_PROMPT`` and ``DEFAULT_TOOLS`` and implement
    ``get_tool_registry``.
    """
    DEFAULT_RECURSION_LIMIT = 25
    SYSTEM_PROMPT: str = ""
    DEFAULT_TOOLS: Sequence[str] = ()

    def __init__(
        self,
        config: Dict[str, Any],
        *args,
        llm: Optional[Any] = None,
        tool_names: Optional[Sequence[str]] = None,
        default_provider: Optional[str] = None,
        default_model: Optional[str] = None,
        **kwargs,
    ) -> None:
        self.config = config
        services_cfg = self.config.get("services", {}) if isinstance(self.config.get("services", {}), dict) else {}
        self.chat_config = services_cfg.get("chat_app", {}) if isinstance(services_cfg, dict) else {}
        self.default_provider = default_provider or self.chat_config.get("default_provider")
        self.default_model = default_model or self.chat_config.get("default_model")
        self.selected_tool_names: List[str] = list(tool_names if tool_names is not None else self.DEFAULT_TOOLS)
        self._static_tools: Optional[List[Callable]] = None
        self._active_tools: List[Callable] = []
        self.agent: Optional[CompiledStateGraph] = None
        self.agent_llm: Optional[Any] = llm
        self.agent_prompt: str = self.SYSTEM_PROMPT

        if self.agent_llm is None:
            self._init_llms()

    def _init_llms(self) -> None:
        """Initialise the chat model for the agent."""
        if not self.default_provider or not self.default_model:
            raise ValueError(
                f"services.chat_app.default_provider and default_model are required for {self.__class__.__name__}"
            )
        providers_config = self.chat_config.get("providers", {}) if isinstance(self.chat_config, dict) else {}
        provider_config = self._build_provider_config(self.default_provider, providers_config)
        self.agent_llm = get_model(self.default_provider, self.default_model, provider_config)

    @staticmethod
    def _build_provider_config(provider: str, providers_config: Dict[str, Any]) -> dict:
        provider_key = provider.lower() if isinstance(provider, str) else str(provider)
        cfg = providers_config.get(provider_key, {}) if isinstance(providers_config, dict) else {}
        if not cfg:
            return {}

        extra = {
            key: cfg[key]
            for key in ("temperature", "max_output_tokens", "top_p", "top_k")
            if cfg.get(key) is not None
        }
        return {
            "base_url": cfg.get("base_url"),
            "default_model": cfg.get("default_model"),
            "extra_kwargs": extra,
        }

    # =========================================================================
    # Tools
    # =========================================================================

    def get_tool_registry(self) -> Dict[str, Callable[[], Any]]:
        """Return a mapping of tool names to callables that build tools."""
        return {}

    def _select_tools_from_registry(self, tool_names: Sequence[str]) -> List[Callable]:
        registry = self.get_tool_registry() or {}
        tools: List[Callable] = []
        for name in tool_names:
            builder = registry.get(name)
            if not builder:
                logger.warning("Tool '%s' not found in registry for %s", name, self.__class__.__name__)
                continue
            built = builder()
            if isinstance(built, (list, tuple)):
                tools.extend(list(built))
            elif built is not None:
                tools.append(built)
        return tools

    def rebuild_static_tools(self) -> List[Callable]:
        """Recompute and cache the static tool list."""
        self._static_tools = self._select_tools_from_registry(self.selected_tool_names)
        return self._static_tools

    @property
    def tools(self) -> List[Callable]:
        """Return the cached static tools, rebuilding if necessary."""
        if self._static_tools is None:
            return self.rebuild_static_tools()
        return list(self._static_tools)

    def refresh_agent(self, *, force: bool = False) -> CompiledStateGraph:
        """Ensure the agent graph reflects the current tool set."""
        toolset = self.tools
        requires_refresh = (
            force
            or self.agent is None
            or len(toolset) != len(self._active_tools)
            or any(a is not b for a, b in zip(toolset, self._active_tools))
        )
        if requires_refresh:
            logger.debug("Refreshing agent %s", self.__class__.__name__)
            self.agent = self._create_agent(toolset)
            self._active_tools = list(toolset)
        return self.agent

    def _create_agent(self, tools: Sequence[Callable]) -> CompiledStateGraph:
        """Create the agent graph with the LLM, tools, and system prompt."""
        logger.debug("Creating agent %s with %d tools", self.__class__.__name__, len(tools))
        return create_agent(
            model=self.agent_llm,
            tools=list(tools),
            middleware=[handle_tool_errors],
            system_prompt=self.agent_prompt,
        )

    # =========================================================================
    # Running
    # =========================================================================

    def invoke(self, messages: Sequence[BaseMessage]) -> PipelineOutput:
        """Run the agent to completion and return every message of the run."""
        logger.debug("Invoking %s", self.__class__.__name__)
        agent_inputs = self._prepare_agent_inputs(messages)
        recursion_limit = self._recursion_limit()
        try:
            answer_output = self.agent.invoke(agent_inputs, {"recursion_limit": recursion_limit})
        except GraphRecursionError as exc:
            logger.warning(
                "Recursion limit hit for %s (limit=%s): %s",
                self.__class__.__name__,
                recursion_limit,
                exc,
            )
            return self._handle_recursion_limit_error(
                error=exc,
                recursion_limit=recursion_limit,
                latest_messages=list(agent_inputs["messages"]),
            )
        result_messages = self._extract_messages(answer_output)
        return self._build_output_from_messages(result_messages)

    def stream(self, messages: Sequence[BaseMessage]) -> Iterator[PipelineOutput]:
        """
        Stream the agent's text as it is generated.

        Yields non-final outputs whose ``metadata["delta"]`` is the new text,
        then one final output whose ``answer`` is all streamed text.
        """
        logger.debug("Streaming %s", self.__class__.__name__)
        agent_inputs = self._prepare_agent_inputs(messages)
        recursion_limit = self._recursion_limit()

        accumulated_content = ""
        tool_messages: List[BaseMessage] = []
        try:
            for event in self.agent.stream(
                agent_inputs,
                stream_mode="messages",
                config={"recursion_limit": recursion_limit},
            ):
                for message in self._extract_messages(event):
                    if not isinstance(message, AIMessageChunk):
                        tool_messages.append(message)
                        continue
                    content = self._message_content(message)
                    if not content:
                        continue
                    accumulated_content += content
                    yield self._text_output(content, accumulated_content)
        except GraphRecursionError as exc:
            logger.warning(
                "Recursion limit hit during stream for %s (limit=%s): %s",
                self.__class__.__name__,
                recursion_limit,
                exc,
            )
            recursion_output = self._handle_recursion_limit_error(
                error=exc,
                recursion_limit=recursion_limit,
                latest_messages=list(agent_inputs["messages"]) + tool_messages,
            )
            wrap_up = recursion_output.answer
            if accumulated_content and wrap_up:
                wrap_up = "\n\n" + wrap_up
            if wrap_up:
                accumulated_content += wrap_up
                yield self._text_output(wrap_up, accumulated_content)
            recursion_output.answer = accumulated_content
            yield recursion_output
            return

        logger.debug("Stream finished with %d characters", len(accumulated_content))
        yield PipelineOutput(
            answer=accumulated_content,
            messages=[AIMessage(content=accumulated_content)] if accumulated_content else [],
            metadata={"event_type": "final"},
            final=True,
        )

    def _text_output(self, delta: str, accumulated: str) -> PipelineOutput:
        return PipelineOutput(
            answer=accumulated,
            metadata={"event_type": "text", "delta": delta},
            final=False,
        )

    def _prepare_agent_inputs(self, messages: Sequence[BaseMessage]) -> Dict[str, Any]:
        self.refresh_agent()
        return {"messages": list(messages)}

    def _extract_messages(self, payload: Any) -> List[BaseMessage]:
        """Pull LangChain messages from a stream/update payload."""
        if isinstance(payload, BaseMessage):
            return [payload]
        if isinstance(payload, list) and all(isinstance(msg, BaseMessage) for msg in payload):
            return list(payload)
        if isinstance(payload, tuple) and payload and isinstance(payload[0], BaseMessage):
            return [payload[0]]
        if isinstance(payload, dict):
            messages = payload.get("messages")
            if isinstance(messages, list) and all(isinstance(msg, BaseMessage) for msg in messages):
                return list(messages)
        return []

    def _message_content(self, message: BaseMessage) -> str:
        """Normalise message content to plain text."""
        content = getattr(message, "content", "")
        if isinstance(content, list):
            parts = []
            for part in content:
                if isinstance(part, str):
                    parts.append(part)
                elif isinstance(part, dict) and part.get("type") == "text":
                    parts.append(str(part.get("text", "")))
            return "".join(parts)
        return str(content or "")

    def _build_output_from_messages(self, messages: Sequence[BaseMessage]) -> PipelineOutput:
        """Create a PipelineOutput from the agent's message history."""
        answer_text = ""
        for message in reversed(list(messages)):
            if isinstance(message, AIMessage):
                answer_text = self._message_content(message)
                break
        return PipelineOutput(
            answer=answer_text or "No answer generated by the agent.",
            messages=list(messages),
            metadata={"event_type": "final"},
            final=True,
        )

    def _recursion_limit(self) -> int:
        """Read and validate recursion limit from config."""
        value = self.chat_config.get("recursion_limit") if isinstance(self.chat_config, dict) else None
        if value is None:
            return self.DEFAULT_RECURSION_LIMIT
        try:
            limit = int(value)
            if limit <= 0:
                raise ValueError("recursion_limit must be positive")
            return limit
        except (TypeError, ValueError):
            logger.warning(
                "Invalid recursion_limit '%s' for %s; using default %s",
                value,
                self.__class__.__name__,
                self.DEFAULT_RECURSION_LIMIT,
            )
            return self.DEFAULT_RECURSION_LIMIT

    def _last_user_message_content(self, messages: Sequence[BaseMessage]) -> Optional[str]:
        for msg in reversed(list(messages or [])):
            if isinstance(msg, HumanMessage):
                return self._message_content(msg)
        return None

    def _handle_recursion_limit_error(
        self,
        *,
        error: Exception,
        recursion_limit: int,
        latest_messages: Sequence[BaseMessage],
    ) -> PipelineOutput:
        """Build a best-effort response after recursion exhaustion."""
        wrap_message = self._generate_wrap_up_message(
            recursion_limit=recursion_limit,
            latest_messages=latest_messages,
        )
        messages: List[BaseMessage] = list(latest_messages) + [wrap_message]
        return PipelineOutput(
            answer=self._message_content(wrap_message),
            messages=messages,
            metadata={
                "event_type": "final",
                "recursion_exhausted": True,
                "recursion_limit": recursion_limit,
                "error": str(error),
            },
            final=True,
        )

    def _generate_wrap_up_message(
        self,
        *,
        recursion_limit: int,
        latest_messages: Sequence[BaseMessage],
    ) -> BaseMessage:
        """Perform a single LLM-only wrap-up to answer without further tool calls."""
        user_question = self._last_user_message_content(latest_messages) or "Unavailable"
        prompt = (
            "You are finalizing an interrupted agent run. It hit its step limit "
            f"({recursion_limit}) and can no longer call tools. Answer the user's request "
            "as well as possible from the conversation so far, and say briefly that the "
            "search was cut short. Do NOT call tools.\n\n"
            f"User request:\n{user_question}"
        )
        try:
            response = self.agent_llm.invoke(
                [
                    SystemMessage(content=prompt),
                    HumanMessage(content="Provide the final response now."),
                ]
            )
            if isinstance(response, BaseMessage):
                return AIMessage(content=self._message_content(response))
            return AIMessage(content=str(response))
        except Exception as exc:
            logger.error("Failed to generate wrap-up message after recursion limit: %s", exc)
            return AIMessage(
                content=(
                    "I wasn't able to finish researching this question. "
                    "Please try asking again, perhaps more specifically."
                )
            )
