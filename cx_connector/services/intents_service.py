# /cx_connector/services/intents_service.py

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union

from cx_connector.config.options import ExportOptions, ImportOptions, ImportSource
from cx_connector.config.settings import Settings, settings, validate_settings
from cx_connector.crawler.assembler import ConversationAssembler
from cx_connector.crawler.definitions import sentinel_label
from cx_connector.crawler.dedup import DeduplicationFilter
from cx_connector.crawler.engine import TraversalEngine
from cx_connector.crawler.harvester import UtteranceHarvester
from cx_connector.crawler.identifiers import local_id
from cx_connector.crawler.validator import validate_flow_path, validate_utterance_record
from cx_connector.errors import ConfigurationError, ExportError, GraphFetchError
from cx_connector.models.conversation import ImportResult, UtteranceRecord
from cx_connector.models.graph import GraphNode, Intent, TrainingPhrase
from cx_connector.services.agent_export import intents_from_agent_package
from cx_connector.services.graph_store import GraphStore
from cx_connector.services.test_case_service import convos_from_test_cases
from cx_connector.utils.logging import StatusReporter

# Import and export of conversations and utterances. These are the entry
# points the test framework (and the scripts/ folder) call.

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _store_scope(store: Optional[GraphStore], settings_obj: Optional[Settings]):
    """Uses the given store, or opens (and finally closes) one for the configured agent."""
    if store is not None:
        yield store
        return
    own_store = GraphStore(validate_settings(settings_obj or settings))
    try:
        yield own_store
    finally:
        await own_store.aclose()


async def import_intents(
    options: Union[ImportOptions, Dict[str, Any], None] = None,
    store: Optional[GraphStore] = None,
    settings_obj: Optional[Settings] = None,
    status_callback=None,
) -> ImportResult:
    """
    Downloads utterances and/or conversations from the agent.

    Args:
        options: ImportOptions or an option dict (camelCase keys accepted)
        store: GraphStore to use; one is created from the settings if omitted
        settings_obj: connection settings, defaults to the environment
        status_callback: optional callable(message, details) for progress lines

    Returns:
        ImportResult with convos, utterances and crawl statistics
    """
    if not isinstance(options, ImportOptions):
        options = ImportOptions.model_validate(options or {})
    status = StatusReporter(logger, status_callback)

    async with _store_scope(store, settings_obj) as graph_store:
        status(f"Using Dialogflow CX agent \"{graph_store.agent_path}\"")

        if options.source == ImportSource.TEST_SET:
            test_cases = await graph_store.list_test_cases()
            convos = convos_from_test_cases(test_cases)
            status(f"Converted {len(convos)} of {len(test_cases)} test cases to conversations")
            return ImportResult(convos=convos)

        if options.source == ImportSource.TRAINING_SET_BULK:
            content = await graph_store.export_agent()
            intents = intents_from_agent_package(content, graph_store.agent_path, graph_store.language_code)
        else:
            intents = await graph_store.list_intents()
        status(f"Downloaded {len(intents)} intents")

        crawl = options.source == ImportSource.TRAINING_SET
        harvester = UtteranceHarvester(focused=crawl and options.focused, status_callback=status_callback)
        intent_records = harvester.collect(intents)
        if not crawl:
            return ImportResult(utterances=harvester.results())

        if options.focused:
            check = validate_flow_path(graph_store.agent_path, options.flow_to_crawl)
            if not check["is_valid"]:
                raise ConfigurationError(check["message"])
            status(f"Focused crawl on flow {options.flow_to_crawl}")

        agent = await graph_store.get_agent()
        engine = TraversalEngine(graph_store, options, status_callback=status_callback)
        session = await engine.crawl(agent.start_flow, intent_records)

        survivors = DeduplicationFilter().apply(session.candidates.values())
        convos = ConversationAssembler().render_all(survivors)
        utterances = harvester.results()
        status(f"{len(convos)} conversations and {len(utterances)} utterance lists left after deduplication")
        return ImportResult(
            convos=convos,
            utterances=utterances,
            termination_reasons=session.histogram(),
            flows_crawled=session.flows.fetched_count,
            pages_crawled=session.pages.fetched_count,
        )


def _unique(utterances: List[str]) -> List[str]:
    result = []
    for utterance in utterances:
        utterance = (utterance or "").strip()
        if utterance and utterance not in result:
            result.append(utterance)
    return result


def _replace_phrases(intent: Intent, utterances: List[str]) -> List[TrainingPhrase]:
    """New phrase list; phrases that stay keep their ids and parameter annotations."""
    existing = {phrase.text: phrase for phrase in intent.training_phrases}
    return [existing.get(utterance) or TrainingPhrase.from_text(utterance) for utterance in utterances]


async def export_intents(
    utterances: List[Union[UtteranceRecord, Dict[str, Any]]],
    options: Union[ExportOptions, Dict[str, Any], None] = None,
    store: Optional[GraphStore] = None,
    settings_obj: Optional[Settings] = None,
    status_callback=None,
) -> Dict[str, int]:
    """Writes utterance lists back as intent training phrases. Returns created/updated/skipped counts."""
    if not isinstance(options, ExportOptions):
        options = ExportOptions.model_validate(options or {})
    status = StatusReporter(logger, status_callback)
    summary = {"created": 0, "updated": 0, "skipped": 0}

    if not utterances:
        status("No utterances to export")
        return summary

    async with _store_scope(store, settings_obj) as graph_store:
        try:
            current = await graph_store.list_intents()
        except GraphFetchError as e:
            raise ExportError(f"Dialogflow CX API download current intents failed: {e}") from e
        by_name = {intent.display_name: intent for intent in current}

        for record in utterances:
            if isinstance(record, UtteranceRecord):
                name, new_utterances = record.name, _unique(record.utterances)
            else:
                name, new_utterances = record.get("name", ""), _unique(record.get("utterances") or [])

            check = validate_utterance_record(name, new_utterances)
            if not check["is_valid"]:
                status(f"Writing to intent \"{name}\" skipped. {check['message']}")
                summary["skipped"] += 1
                continue

            old_intent = by_name.get(name)
            try:
                if old_intent is None:
                    await graph_store.create_intent(Intent(
                        name="",
                        display_name=name,
                        training_phrases=[TrainingPhrase.from_text(u) for u in new_utterances],
                    ))
                    status(f"Writing to intent \"{name}\" successful. Created with {len(new_utterances)} utterances")
                    summary["created"] += 1
                    continue

                old_texts = [phrase.text for phrase in old_intent.training_phrases]
                if options.delete_old_utterances:
                    if old_texts == new_utterances:
                        status(f"Writing to intent \"{name}\" skipped. No changes")
                        summary["skipped"] += 1
                        continue
                    phrases = _replace_phrases(old_intent, new_utterances)
                    message = f"Replaced {len(old_texts)} utterances with {len(new_utterances)} utterances"
                else:
                    missing = [u for u in new_utterances if u not in old_texts]
                    if not missing:
                        status(f"Writing to intent \"{name}\" skipped. No new utterances")
                        summary["skipped"] += 1
                        continue
                    phrases = old_intent.training_phrases + [TrainingPhrase.from_text(u) for u in missing]
                    message = f"Added {len(missing)} utterances"

                await graph_store.update_intent(old_intent.model_copy(update={"training_phrases": phrases}))
                status(f"Writing to intent \"{name}\" successful. {message}")
                summary["updated"] += 1
            except GraphFetchError as e:
                action = "create" if old_intent is None else "update"
                raise ExportError(f"Dialogflow CX API {action} intent \"{name}\" failed: {e}") from e

    return summary


async def get_flows(store: Optional[GraphStore] = None, settings_obj: Optional[Settings] = None) -> List[Dict[str, str]]:
    """Flows of the agent as id/name pairs, e.g. to pick the flow for a focused crawl."""
    async with _store_scope(store, settings_obj) as graph_store:
        flows = await graph_store.list_flows()
    return [{"id": flow.name, "name": flow.display_name} for flow in flows]


def _target_fields(target_page: Optional[str], target_flow: Optional[str]) -> Dict[str, Optional[str]]:
    command = sentinel_label(target_page) if target_page else None
    return {
        "targetFlowId": local_id(target_flow) if target_flow else None,
        "targetPageId": local_id(target_page) if target_page and not command else None,
        "targetCommand": command,
    }


def _node_transitions(node: GraphNode, intents: Dict[str, Dict[str, Any]], owner: Dict[str, str]) -> List[Dict[str, Any]]:
    """Transition routes and event handlers of a flow or page; marks the intents they consume as used."""
    transitions = []
    for route in node.transition_routes:
        intent_id = local_id(route.intent) if route.intent else None
        if intent_id in intents:
            intents[intent_id]["used"] = True
        entry = {"id": route.name, "intentId": intent_id, "condition": route.condition}
        entry.update(_target_fields(route.target_page, route.target_flow))
        transitions.append(entry)
    for handler in node.event_handlers:
        entry = {"id": handler.name, "event": handler.event}
        entry.update(_target_fields(handler.target_page, handler.target_flow))
        transitions.append(entry)
    return [{**{k: v for k, v in entry.items() if v is not None}, **owner} for entry in transitions]


async def get_metadata(store: Optional[GraphStore] = None, settings_obj: Optional[Settings] = None) -> Optional[Dict[str, Any]]:
    """
    Static test coverage metadata of the agent: every flow and page with its
    transitions, and which intents any transition consumes. Returns None
    unless `dialogflowcx_extract_test_coverage` is enabled.
    """
    settings_obj = settings_obj or settings
    if not settings_obj.dialogflowcx_extract_test_coverage:
        return None

    async with _store_scope(store, settings_obj) as graph_store:
        agent = await graph_store.get_agent()
        intents = {
            local_id(intent.name): {"path": intent.name, "displayName": intent.display_name}
            for intent in await graph_store.list_intents()
        }
        flows: Dict[str, Dict[str, Any]] = {}
        pages: Dict[str, Dict[str, Any]] = {}
        for flow in await graph_store.list_flows():
            flow_id = local_id(flow.name)
            flows[flow_id] = {
                "path": flow.name,
                "displayName": flow.display_name,
                "transitionRoutes": _node_transitions(flow, intents, {"flowId": flow_id}),
            }
            for page in await graph_store.list_pages(flow.name):
                page_id = local_id(page.name)
                pages[page_id] = {
                    "path": page.name,
                    "displayName": page.display_name,
                    "flowId": flow_id,
                    "transitionRoutes": _node_transitions(page, intents, {"pageId": page_id}),
                }

    logger.info(f"Extracted coverage metadata of {len(flows)} flows and {len(pages)} pages")
    return {
        "dialogflowcx": {
            "startFlowId": local_id(agent.start_flow),
            "intentIdToIntent": intents,
            "flowIdToFlow": flows,
            "pageIdToPage": pages,
        }
    }
