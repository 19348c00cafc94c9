from .base_react import BaseReActAgent
from .change_management_agent import ChangeManagementAgent, KnowledgeAgent

__all__ = [
    "BaseReActAgent",
    "ChangeManagementAgent",
    "KnowledgeAgent",
]
