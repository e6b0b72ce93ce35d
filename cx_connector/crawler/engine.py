# /cx_connector/crawler/engine.py

"""
Depth-first walker over the flow/page graph of a Dialogflow CX agent.

Every outgoing transition route of a flow or page opens a branch. A branch
collects the conversation a user would have when following the routes
(user turns for consumed intents, bot turns for fulfillment texts) until a
termination policy stops it. Finished branches become candidate
conversations on the shared CrawlSession.

Routes of one node are walked in declared order. A route whose condition is
the literal "true" and that has no target hands its advanced branch to the
next route of the same node; every other route starts from a fresh clone.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Protocol, Tuple, Union

from cx_connector.config.options import ImportOptions
from cx_connector.crawler.context import CrawlSession, TraversalContext
from cx_connector.crawler.definitions import (
    TRUE_CONDITION,
    TerminationReason,
    is_default_welcome_intent,
    sentinel_label,
)
from cx_connector.models.conversation import SENDER_BOT, SENDER_USER, Turn, UtteranceRecord
from cx_connector.models.graph import FlowNode, PageNode, TransitionRoute
from cx_connector.services.node_cache import NodeCache
from cx_connector.utils.logging import StatusReporter
from cx_connector.utils.metrics import crawl_terminations_counter, unresolved_intent_counter

logger = logging.getLogger(__name__)

SESSION_PARAMETER_PATTERN = re.compile(r"\$session\.params\.[A-Za-z0-9_\-]+(?:\.[A-Za-z0-9_\-]+)*")
WILDCARD = "*"


def scrub_session_parameters(text: str) -> str:
    """Replaces session parameter references, whose runtime values are unknown, with a wildcard."""
    return SESSION_PARAMETER_PATTERN.sub(WILDCARD, text)


class GraphReader(Protocol):
    async def get_flow(self, flow_path: str) -> FlowNode: ...

    async def get_page(self, page_path: str) -> PageNode: ...


class StepKind(Enum):
    CONTINUE = "continue"
    DESCENDED = "descended"
    FINISHED = "finished"


@dataclass(frozen=True)
class StepResult:
    kind: StepKind
    reason: Optional[TerminationReason] = None

    @classmethod
    def finished(cls, reason: TerminationReason) -> "StepResult":
        return cls(StepKind.FINISHED, reason)


CONTINUE = StepResult(StepKind.CONTINUE)
DESCENDED = StepResult(StepKind.DESCENDED)


class TraversalEngine:
    def __init__(self, store: GraphReader, options: ImportOptions, status_callback=None):
        self.store = store
        self.options = options
        self.status = StatusReporter(logger, status_callback)

    def new_session(self, start_flow: str, intents: Dict[str, UtteranceRecord]) -> CrawlSession:
        return CrawlSession(
            options=self.options,
            entry_flow=start_flow,
            intents=intents,
            flows=NodeCache("flow", self.store.get_flow),
            pages=NodeCache("page", self.store.get_page),
        )

    async def crawl(self, start_flow: str, intents: Dict[str, UtteranceRecord]) -> CrawlSession:
        """
        Walks the graph from the start flow. A failed flow or page fetch
        aborts the whole crawl: a partial crawl would silently produce an
        incomplete test suite.
        """
        session = self.new_session(start_flow, intents)
        self.status("Crawling conversations")
        try:
            await self.crawl_flow(start_flow, session.root_context(), session)
        finally:
            await session.close()
        self.status(
            f"Crawling conversations finished, {len(session.candidates)} candidate conversations found. "
            f"Fetched {session.flows.fetched_count} flows and {session.pages.fetched_count} pages",
            session.histogram(),
        )
        return session

    # --- Nodes ---

    async def crawl_flow(self, flow_path: str, context: TraversalContext, session: CrawlSession):
        options = session.options
        if flow_path in context.visited_flows and not options.continue_on_duplicate_flow:
            self._finish(context, session, TerminationReason.FLOW_ALREADY_VISITED, flow_path)
            return

        if (
            options.max_flows_after_entry_flow is not None
            and flow_path != session.entry_flow
            and flow_path not in context.visited_flows
            and len(context.visited_flows - {session.entry_flow}) >= options.max_flows_after_entry_flow
        ):
            self._finish(context, session, TerminationReason.MAX_FLOWS_REACHED, flow_path)
            return

        if options.focused and flow_path == options.flow_to_crawl and not context.crawling_target_flow:
            if not self._enter_target_flow(context, session):
                return

        context.visited_flows.add(flow_path)
        flow = await session.flows.get(flow_path)
        if flow.event_handlers:
            self.status(f"Event handlers detected in flow {flow.display_name} in path {flow_path}", level=logging.DEBUG)
        self.status(f"Crawling flow \"{flow.display_name}\"", level=logging.DEBUG)
        context.push(flow.display_name)
        await self._walk_routes(flow, context, session)

    async def crawl_page(self, page_path: str, context: TraversalContext, session: CrawlSession):
        label = sentinel_label(page_path)
        if label:
            self._finish(context, session, TerminationReason.SENTINEL_PAGE, label)
            return

        if page_path in context.visited_pages and not session.options.continue_on_duplicate_page:
            self._finish(context, session, TerminationReason.PAGE_ALREADY_VISITED, page_path)
            return
        context.visited_pages.add(page_path)

        page = await session.pages.get(page_path)
        if page.form:
            self.status(f"Form detected in page {page.display_name}", level=logging.DEBUG)
        if page.event_handlers:
            self.status(f"Event handlers detected in page {page.display_name} in path {page_path}", level=logging.DEBUG)
        self.status(f"Crawling page \"{page.display_name}\" path: {page_path}", level=logging.DEBUG)
        context.push(page.display_name)
        await self._walk_routes(page, context, session)

    async def _walk_routes(self, node: Union[FlowNode, PageNode], context: TraversalContext, session: CrawlSession):
        if not node.transition_routes:
            self._finish(context, session, TerminationReason.NO_ROUTES, node.display_name)
            return
        if session.options.prefetch:
            self._prefetch_targets(node, session)

        base = context
        branch = context
        result: Optional[StepResult] = None
        for route in node.transition_routes:
            if result is not None and result.kind is StepKind.CONTINUE:
                base = branch
            branch = base.clone()
            result = await self.step(route, branch, session)

        if result.kind is StepKind.CONTINUE:
            self._finish(branch, session, TerminationReason.END_OF_ROUTES, node.display_name)

    def _prefetch_targets(self, node: Union[FlowNode, PageNode], session: CrawlSession):
        for route in node.transition_routes:
            if route.target_page and not sentinel_label(route.target_page):
                session.pages.prefetch(route.target_page)
            elif route.target_flow:
                session.flows.prefetch(route.target_flow)

    def _enter_target_flow(self, context: TraversalContext, session: CrawlSession) -> bool:
        """
        Bookkeeping when a branch reaches the target flow for the first time.
        Only the shortest approaches to the target flow survive.
        """
        length = len(context.conversation)
        shortest = session.shortest_to_target
        if shortest is not None and length > shortest:
            self._finish(context, session, TerminationReason.LONGER_THAN_SHORTEST_PATH, f"{length} > {shortest} turns")
            return False
        if shortest is None or length < shortest:
            discarded = session.discard_candidates()
            if discarded:
                self.status(f"Shorter path to target flow found ({length} turns), discarding {discarded} conversations")
            session.shortest_to_target = length
        context.crawling_target_flow = True
        return True

    # --- Transitions ---

    async def step(self, route: TransitionRoute, context: TraversalContext, session: CrawlSession) -> StepResult:
        """Applies one transition route to a branch."""
        options = session.options
        max_length = options.max_conversation_length

        if route.name in session.visited_transitions:
            return self._finish(context, session, TerminationReason.ROUTE_ALREADY_USED, route.name)
        session.visited_transitions.add(route.name)

        if len(context.conversation) >= max_length:
            return self._finish(context, session, TerminationReason.MAX_LENGTH_REACHED)

        pending = []
        consumed: Optional[UtteranceRecord] = None
        include_consumed = False
        if route.intent:
            record = session.intents.get(route.intent)
            if record is None:
                unresolved_intent_counter.inc()
                self.status(
                    f"Intent \"{route.intent}\" referenced by transition route {route.name} not found, ignoring it",
                    level=logging.WARNING,
                )
            elif not record.utterances:
                return self._finish(context, session, TerminationReason.INTENT_WITHOUT_EXAMPLES, record.name)
            else:
                consumed = record
                if not (options.skip_welcome_message and is_default_welcome_intent(route.intent)):
                    user_text, include_consumed = self._user_text(record, context, options)
                    pending.append(Turn(SENDER_USER, text=user_text))

        if route.has_messages or consumed:
            bot_text = scrub_session_parameters(route.trigger_fulfillment.response_text()) if route.trigger_fulfillment else ""
            pending.append(Turn(SENDER_BOT, text=bot_text or None, asserted_intent=consumed.name if consumed else None))

        if len(context.conversation) + len(pending) > max_length:
            return self._finish(context, session, TerminationReason.MAX_LENGTH_REACHED)
        context.conversation.extend(pending)
        if consumed:
            context.intent_trail.append(route.intent)
            if include_consumed:
                consumed.include = True

        if pending and len(context.conversation) >= max_length:
            return self._finish(context, session, TerminationReason.MAX_LENGTH_REACHED)

        if (
            options.focused
            and not context.crawling_target_flow
            and session.shortest_to_target is not None
            and len(context.conversation) > session.shortest_to_target
        ):
            return self._finish(context, session, TerminationReason.LONGER_THAN_SHORTEST_PATH)

        if route.target_page:
            await self.crawl_page(route.target_page, context, session)
            return DESCENDED
        if route.target_flow:
            await self.crawl_flow(route.target_flow, context, session)
            return DESCENDED
        if route.condition and route.condition.strip().lower() == TRUE_CONDITION:
            return CONTINUE
        if route.condition:
            return self._finish(context, session, TerminationReason.UNHANDLED_CONDITION, route.condition)
        return self._finish(context, session, TerminationReason.NO_TARGET, route.name)

    @staticmethod
    def _user_text(record: UtteranceRecord, context: TraversalContext, options: ImportOptions) -> Tuple[str, bool]:
        """
        Text of the user turn for a consumed intent and whether the intent's
        utterance list must be exported for it. The intent name refers to the
        exported utterance list; outside the target flow of a focused crawl
        the first training phrase is used verbatim instead.
        """
        if not options.focused:
            return record.name, False
        if context.crawling_target_flow or options.flow_to_crawl_include_foreign_utterances:
            return record.name, True
        return record.utterances[0], False

    def _finish(self, context: TraversalContext, session: CrawlSession, reason: TerminationReason, detail: Optional[str] = None) -> StepResult:
        session.termination_counts[reason] += 1
        crawl_terminations_counter.labels(reason=reason.name.lower()).inc()
        stored = session.store_candidate(context, reason)
        message = f"Finishing conversation: {reason.label}"
        if detail:
            message += f" ({detail})"
        if stored:
            message += f", stored as candidate #{len(session.candidates)}"
        self.status(message, {"stack": " > ".join(context.stack)} if context.stack else None)
        return StepResult.finished(reason)
