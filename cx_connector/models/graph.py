# /cx_connector/models/graph.py

import logging
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from cx_connector.errors import StructuralInvariantViolation

# Pydantic models of the Dialogflow CX resources the crawler reads. Field
# aliases follow the camelCase JSON of the v3 REST API. Flow and page nodes
# are frozen: once fetched and cached they never change during a crawl.

logger = logging.getLogger(__name__)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @classmethod
    def from_api(cls, data: Dict[str, Any]):
        """
        Builds the model from a raw REST payload. Malformed payloads are
        rejected eagerly instead of being half-parsed.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            name = data.get("name") if isinstance(data, dict) else None
            raise StructuralInvariantViolation(f"Malformed {cls.__name__} {name or '<unnamed>'}: {e}") from e

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# --- Intents ---

class Part(ApiModel):
    text: str = ""
    parameter_id: Optional[str] = None


class TrainingPhrase(ApiModel):
    id: Optional[str] = None
    parts: List[Part] = Field(default_factory=list)
    repeat_count: Optional[int] = None

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts).strip()

    @classmethod
    def from_text(cls, text: str) -> "TrainingPhrase":
        return cls(parts=[Part(text=text)], repeat_count=1)


class Intent(ApiModel):
    name: str
    display_name: str = ""
    training_phrases: List[TrainingPhrase] = Field(default_factory=list)
    description: Optional[str] = None
    labels: Optional[Dict[str, str]] = None
    is_fallback: Optional[bool] = None
    priority: Optional[int] = None


# --- Fulfillments ---

class ResponseText(ApiModel):
    text: List[str] = Field(default_factory=list)


class ResponseMessage(ApiModel):
    text: Optional[ResponseText] = None
    payload: Optional[Dict[str, Any]] = None


class Fulfillment(ApiModel):
    messages: List[ResponseMessage] = Field(default_factory=list)
    webhook: Optional[str] = None
    tag: Optional[str] = None

    def response_text(self) -> str:
        """Texts of one message are joined by commas, messages by newlines."""
        chunks = []
        for message in self.messages:
            if message.text and message.text.text:
                chunks.append(",".join(message.text.text))
        return "\n".join(chunks)


# --- Graph nodes ---

class TransitionRoute(ApiModel):
    name: str = ""
    intent: Optional[str] = None
    condition: Optional[str] = None
    target_page: Optional[str] = None
    target_flow: Optional[str] = None
    trigger_fulfillment: Optional[Fulfillment] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def single_target(self):
        if self.target_page and self.target_flow:
            raise ValueError(f"transition route {self.name or '<unnamed>'} declares both targetPage and targetFlow")
        return self

    @property
    def has_messages(self) -> bool:
        return bool(self.trigger_fulfillment and self.trigger_fulfillment.messages)


class EventHandler(ApiModel):
    name: str = ""
    event: Optional[str] = None
    target_page: Optional[str] = None
    target_flow: Optional[str] = None
    trigger_fulfillment: Optional[Fulfillment] = None


class Form(ApiModel):
    parameters: List[Dict[str, Any]] = Field(default_factory=list)


class GraphNode(ApiModel):
    """Common shape of flows and pages: a named node with ordered outgoing routes."""
    name: str
    display_name: str = ""
    transition_routes: List[TransitionRoute] = Field(default_factory=list)
    event_handlers: List[EventHandler] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="before")
    @classmethod
    def name_anonymous_routes(cls, data):
        # Routes are tracked by name across the whole crawl, so every route needs one
        if isinstance(data, dict) and isinstance(data.get("transitionRoutes"), list):
            node_name = data.get("name", "")
            routes = []
            for index, route in enumerate(data["transitionRoutes"]):
                if isinstance(route, dict) and not route.get("name"):
                    route = {**route, "name": f"{node_name}/transitionRoutes/{index}"}
                routes.append(route)
            data = {**data, "transitionRoutes": routes}
        return data


class FlowNode(GraphNode):
    description: Optional[str] = None


class PageNode(GraphNode):
    form: Optional[Form] = None
    entry_fulfillment: Optional[Fulfillment] = None


class Agent(ApiModel):
    name: str
    display_name: str = ""
    start_flow: str
    default_language_code: Optional[str] = None


# --- Test cases ---

class TextInput(ApiModel):
    text: str = ""


class EventInput(ApiModel):
    event: str = ""


class DtmfInput(ApiModel):
    digits: str = ""
    finish_digit: Optional[str] = None


class QueryInput(ApiModel):
    text: Optional[TextInput] = None
    event: Optional[EventInput] = None
    dtmf: Optional[DtmfInput] = None
    language_code: Optional[str] = None


class UserInput(ApiModel):
    input: Optional[QueryInput] = None
    injected_parameters: Optional[Dict[str, Any]] = None
    is_webhook_enabled: Optional[bool] = None
    enable_sentiment_analysis: Optional[bool] = None


class IntentReference(ApiModel):
    name: Optional[str] = None
    display_name: Optional[str] = None


class VirtualAgentOutput(ApiModel):
    triggered_intent: Optional[IntentReference] = None
    text_responses: List[ResponseText] = Field(default_factory=list)
    session_parameters: Optional[Dict[str, Any]] = None


class ConversationTurn(ApiModel):
    user_input: Optional[UserInput] = None
    virtual_agent_output: Optional[VirtualAgentOutput] = None


class TestCase(ApiModel):
    __test__ = False

    name: str
    display_name: str = ""
    tags: List[str] = Field(default_factory=list)
    test_case_conversation_turns: List[ConversationTurn] = Field(default_factory=list)
