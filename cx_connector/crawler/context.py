# /cx_connector/crawler/context.py

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from cx_connector.config.options import ImportOptions
from cx_connector.crawler.definitions import TerminationReason
from cx_connector.models.conversation import CandidateConversation, Turn, UtteranceRecord
from cx_connector.models.graph import FlowNode, PageNode
from cx_connector.services.node_cache import NodeCache


@dataclass
class TraversalContext:
    """
    State of one DFS branch.

    `visited_transitions` is the crawl-wide set and is shared by reference
    with every other branch. All other fields belong to this branch alone
    and are copied by `clone()` whenever the walk forks.
    """
    visited_transitions: Set[str]
    visited_flows: Set[str] = field(default_factory=set)
    visited_pages: Set[str] = field(default_factory=set)
    conversation: List[Turn] = field(default_factory=list)
    intent_trail: List[str] = field(default_factory=list)
    crawling_target_flow: bool = False
    stack: Optional[List[str]] = None

    def clone(self) -> "TraversalContext":
        # Turns are frozen, so copying the list isolates the branch completely
        return TraversalContext(
            visited_transitions=self.visited_transitions,
            visited_flows=set(self.visited_flows),
            visited_pages=set(self.visited_pages),
            conversation=list(self.conversation),
            intent_trail=list(self.intent_trail),
            crawling_target_flow=self.crawling_target_flow,
            stack=list(self.stack) if self.stack is not None else None,
        )

    def push(self, node_name: str):
        if self.stack is not None:
            self.stack.append(node_name)


@dataclass
class CrawlSession:
    """
    Crawl-wide state shared by all branches: node caches, used routes,
    finished candidates and the termination histogram.
    """
    options: ImportOptions
    entry_flow: str
    intents: Dict[str, UtteranceRecord]
    flows: NodeCache[FlowNode]
    pages: NodeCache[PageNode]
    visited_transitions: Set[str] = field(default_factory=set)
    candidates: Dict[Tuple[str, ...], CandidateConversation] = field(default_factory=dict)
    termination_counts: Counter = field(default_factory=Counter)
    shortest_to_target: Optional[int] = None

    def root_context(self) -> TraversalContext:
        return TraversalContext(
            visited_transitions=self.visited_transitions,
            stack=[] if self.options.record_stack else None,
        )

    def store_candidate(self, context: TraversalContext, reason: TerminationReason) -> bool:
        """Keeps the branch's conversation unless it is empty, unwanted or its intent trail is known."""
        if not reason.keeps_conversation or not context.conversation:
            return False
        if self.options.focused and not context.crawling_target_flow:
            return False
        trail = tuple(context.intent_trail)
        if trail in self.candidates:
            return False
        self.candidates[trail] = CandidateConversation(
            conversation=tuple(context.conversation),
            intent_trail=trail,
            reason=reason,
        )
        return True

    def discard_candidates(self) -> int:
        count = len(self.candidates)
        self.candidates.clear()
        return count

    def histogram(self) -> Dict[str, int]:
        return {reason.label: count for reason, count in self.termination_counts.most_common()}

    async def close(self):
        await self.flows.close()
        await self.pages.close()
