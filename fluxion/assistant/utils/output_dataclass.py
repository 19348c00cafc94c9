from dataclasses import dataclass, field
from typing import Any, Dict, List

from langchain_core.messages import BaseMessage


@dataclass
class PipelineOutput:
    """Result (or streamed partial result) of an agent run."""

    answer: str = ""
    messages: List[BaseMessage] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    final: bool = True

    @property
    def event_type(self) -> str:
        return self.metadata.get("event_type", "final" if self.final else "text")
