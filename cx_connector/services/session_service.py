# /cx_connector/services/session_service.py

import inspect
import json
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from cx_connector.config.settings import Settings, settings, validate_settings
from cx_connector.errors import GraphFetchError, SessionError
from cx_connector.models.conversation import SENDER_BOT
from cx_connector.services.graph_store import GraphStore
from cx_connector.services.intents_service import get_metadata as extract_metadata

# Live conversation session against the agent: every user message becomes a
# detectIntent call and every text response becomes a bot message for the
# test framework. Text and events only; rich content is passed through as
# source data but not rendered.

logger = logging.getLogger(__name__)

QUERY_PARAMS_KEYS = ("SET_DIALOGFLOWCX_QUERYPARAMS", "SET_DIALOGFLOW_CONTEXT")


def extract_intent(query_result: Dict[str, Any]) -> Dict[str, Any]:
    match = query_result.get("match") or {}
    intent = match.get("intent")
    if intent:
        return {"name": intent.get("displayName"), "confidence": match.get("confidence")}
    return {}


def extract_entities(fields: Dict[str, Any], key_prefix: str = "") -> List[Dict[str, Any]]:
    """Flattens nested parameters into name/value pairs, e.g. `address.city`."""
    entities = []
    for key, value in fields.items():
        name = f"{key_prefix}.{key}" if key_prefix else key
        entities.extend(_entity_values(name, value))
    return entities


def _entity_values(name: str, value: Any) -> List[Dict[str, Any]]:
    if value is None:
        return []
    if isinstance(value, (str, int, float, bool)):
        return [{"name": name, "value": value}]
    if isinstance(value, list):
        entities = []
        for index, item in enumerate(value):
            entities.extend(_entity_values(f"{name}.{index}", item))
        return entities
    if isinstance(value, dict):
        return extract_entities(value, name)
    logger.debug(f"Unsupported entity kind for {name}, skipping entity.")
    return []


def _parse_payload(payload: Any) -> Any:
    if isinstance(payload, str):
        try:
            return json.loads(payload)
        except ValueError:
            return payload
    return payload


class DialogflowCXConnector:
    def __init__(self, queue_bot_says: Callable[[Dict[str, Any]], Any], settings_obj: Optional[Settings] = None, store: Optional[GraphStore] = None):
        self.queue_bot_says = queue_bot_says
        self.settings = settings_obj or settings
        self.store = store
        self._owns_store = store is None
        self.session_path: Optional[str] = None
        self.query_params: Dict[str, Any] = {}

    def validate(self):
        validate_settings(self.settings)

    async def build(self):
        if self.store is None:
            self.store = GraphStore(self.settings)
            self._owns_store = True

    async def start(self):
        if self.store is None:
            raise SessionError("Connector not built")
        base_path = self.settings.environment_path or self.settings.agent_path
        self.session_path = f"{base_path}/sessions/{uuid.uuid1()}"
        self.query_params = dict(self.settings.dialogflowcx_query_params)
        logger.info(f"Using Dialogflow CX session path: {self.session_path}")

        for welcome in self.settings.dialogflowcx_welcome_text:
            request = self._welcome_request(welcome)
            try:
                response = await self.store.detect_intent(self.session_path, request)
            except GraphFetchError as e:
                raise SessionError(f"Cannot send welcome message {welcome!r} to Dialogflow CX: {e}") from e
            if self.settings.dialogflowcx_process_welcome_text_response:
                await self._process_response(response)
            else:
                logger.debug(f"Processing of welcome message response skipped for {welcome!r}")

    def _welcome_request(self, welcome: Any) -> Dict[str, Any]:
        welcome_message = _parse_payload(welcome)
        button_payload = None
        if isinstance(welcome_message, dict) and welcome_message.get("buttons"):
            button = welcome_message["buttons"][0]
            button_payload = button.get("payload") or button.get("text")

        query_input: Dict[str, Any] = {"languageCode": self.settings.dialogflowcx_language_code}
        extra_params: Dict[str, Any] = {}
        if button_payload:
            self._apply_event(query_input, extra_params, button_payload)
        else:
            query_input["text"] = {"text": welcome if isinstance(welcome, str) else ""}

        request: Dict[str, Any] = {"queryInput": query_input}
        if not self.settings.dialogflowcx_ignore_query_params_for_welcome:
            request["queryParams"] = {**self.query_params, **extra_params}
        return request

    @staticmethod
    def _apply_event(query_input: Dict[str, Any], extra_params: Dict[str, Any], payload: Any):
        payload = _parse_payload(payload)
        if isinstance(payload, dict) and payload.get("name"):
            query_input["event"] = {"event": payload["name"]}
            if payload.get("languageCode"):
                query_input["languageCode"] = payload["languageCode"]
            if payload.get("parameters"):
                extra_params["parameters"] = payload["parameters"]
        else:
            query_input["event"] = {"event": payload if isinstance(payload, str) else json.dumps(payload)}

    async def user_says(self, msg: Dict[str, Any]):
        if self.store is None or self.session_path is None:
            raise SessionError("Connector not started")
        if msg.get("media"):
            raise SessionError("Media attachments are not supported by this connector")

        query_input: Dict[str, Any] = {"languageCode": self.settings.dialogflowcx_language_code}
        extra_params: Dict[str, Any] = {}
        buttons = msg.get("buttons") or []
        if buttons and (buttons[0].get("payload") or buttons[0].get("text")):
            self._apply_event(query_input, extra_params, buttons[0].get("payload") or buttons[0].get("text"))
        else:
            query_input["text"] = {"text": msg.get("messageText") or ""}

        for key in QUERY_PARAMS_KEYS:
            if msg.get(key):
                params = _parse_payload(msg[key])
                if not isinstance(params, dict):
                    raise SessionError(f"{key} must be a JSON object")
                extra_params.update(params)

        request = {"queryInput": query_input, "queryParams": {**self.query_params, **extra_params}}
        msg["sourceData"] = request
        logger.debug(f"Dialogflow CX request: {json.dumps(request)}")
        try:
            response = await self.store.detect_intent(self.session_path, request)
        except GraphFetchError as e:
            raise SessionError(f"Cannot send message to Dialogflow CX: {e}") from e
        await self._process_response(response)

    async def _queue(self, bot_msg: Dict[str, Any]):
        result = self.queue_bot_says(bot_msg)
        if inspect.isawaitable(result):
            await result

    async def _process_response(self, response: Dict[str, Any]):
        query_result = response.get("queryResult") or {}
        match = query_result.get("match") or {}
        nlp = {
            "intent": extract_intent(query_result),
            "entities": extract_entities(match.get("parameters") or {}),
        }

        message_sent = False
        for response_message in query_result.get("responseMessages") or []:
            texts = (response_message.get("text") or {}).get("text") or []
            if not texts:
                continue
            await self._queue({"sender": SENDER_BOT, "messageText": texts[0], "sourceData": query_result, "nlp": nlp})
            message_sent = True
        if not message_sent:
            await self._queue({"sender": SENDER_BOT, "sourceData": query_result, "nlp": nlp})

    async def get_metadata(self) -> Optional[Dict[str, Any]]:
        """Coverage metadata of the agent, when extraction is enabled in the settings."""
        return await extract_metadata(self.store, self.settings)

    async def stop(self):
        self.session_path = None
        self.query_params = {}

    async def clean(self):
        if self.store is not None and self._owns_store:
            await self.store.aclose()
        self.store = None
