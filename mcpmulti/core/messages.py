"""Conversation messages exchanged with the model backend during one query."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union


@dataclass
class UserText:
    text: str


@dataclass
class ModelText:
    text: str


@dataclass
class CapabilityRequest:
    """One tool invocation requested by the model."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelCapabilityRequest:
    requests: List[CapabilityRequest]


@dataclass
class CapabilityResultEntry:
    """Result of one requested invocation, tagged with the request id."""

    id: str
    output: str
    is_error: bool = False


@dataclass
class CapabilityResultList:
    results: List[CapabilityResultEntry]


ConversationMessage = Union[UserText, ModelText, ModelCapabilityRequest, CapabilityResultList]
