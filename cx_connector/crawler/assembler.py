# /cx_connector/crawler/assembler.py

from typing import List, Sequence

from cx_connector.crawler.identifiers import conversation_external_id
from cx_connector.models.conversation import (
    Asserter,
    CandidateConversation,
    Convo,
    ConvoHeader,
    ConvoStep,
    Turn,
)

INTENT_ASSERTER = "INTENT"


class ConversationAssembler:
    """Renders crawled candidates into test framework conversation scripts."""

    def __init__(self, name_prefix: str = "Convo"):
        self.name_prefix = name_prefix

    def render_step(self, turn: Turn) -> ConvoStep:
        step = ConvoStep(sender=turn.sender, message_text=turn.text)
        if turn.asserted_intent:
            step.asserters = [Asserter(name=INTENT_ASSERTER, args=[turn.asserted_intent])]
        return step

    def render(self, candidate: CandidateConversation, number: int, total: int) -> Convo:
        width = len(str(total))
        return Convo(
            header=ConvoHeader(
                name=f"{self.name_prefix} {number:0{width}d}",
                external_id=conversation_external_id(candidate.intent_trail),
            ),
            conversation=[self.render_step(turn) for turn in candidate.conversation],
        )

    def render_all(self, candidates: Sequence[CandidateConversation]) -> List[Convo]:
        total = len(candidates)
        return [self.render(candidate, number, total) for number, candidate in enumerate(candidates, start=1)]
