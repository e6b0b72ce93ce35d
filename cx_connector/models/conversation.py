# /cx_connector/models/conversation.py

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from cx_connector.crawler.definitions import TerminationReason

# Conversation data on both sides of the crawler: the lightweight turns a
# branch accumulates while walking, and the serializable scripts and
# utterance lists handed to the test framework.

SENDER_USER = "me"
SENDER_BOT = "bot"


# --- Crawl side ---

@dataclass(frozen=True)
class Turn:
    """One step of a crawled conversation. Immutable, so branches can share instances."""
    sender: str
    text: Optional[str] = None
    asserted_intent: Optional[str] = None


@dataclass(frozen=True)
class CandidateConversation:
    """A finished branch, stored once per unique intent trail."""
    conversation: Tuple[Turn, ...]
    intent_trail: Tuple[str, ...]
    reason: TerminationReason


# --- Output side ---

class OutputModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Asserter(OutputModel):
    name: str
    args: List[str] = Field(default_factory=list)


class Button(OutputModel):
    text: Optional[str] = None
    payload: Optional[Any] = None


class LogicHook(OutputModel):
    name: str
    args: List[str] = Field(default_factory=list)


class ConvoStep(OutputModel):
    sender: str
    message_text: Optional[Union[str, List[str]]] = None
    buttons: Optional[List[Button]] = None
    asserters: Optional[List[Asserter]] = None
    logic_hooks: Optional[List[LogicHook]] = None


class ConvoHeader(OutputModel):
    name: str
    external_id: Optional[str] = None
    description: Optional[str] = None


class Convo(OutputModel):
    header: ConvoHeader
    conversation: List[ConvoStep] = Field(default_factory=list)


class UtteranceRecord(OutputModel):
    """
    Training phrases of one intent. The crawler flips `include` on the very
    same instance the harvester later filters on, so records are never copied.
    """
    name: str
    external_id: str
    utterances: List[str] = Field(default_factory=list)
    include: bool = True


class ImportResult(OutputModel):
    convos: List[Convo] = Field(default_factory=list)
    utterances: List[UtteranceRecord] = Field(default_factory=list)
    termination_reasons: Dict[str, int] = Field(default_factory=dict)
    flows_crawled: int = 0
    pages_crawled: int = 0
