# /cx_connector/crawler/dedup.py

from typing import Iterable, List, Tuple

from cx_connector.models.conversation import CandidateConversation

# A conversation whose intent trail is a strict prefix of another one tests
# nothing the longer conversation does not test as well.


def is_strict_prefix(shorter: Tuple[str, ...], longer: Tuple[str, ...]) -> bool:
    return len(shorter) < len(longer) and longer[:len(shorter)] == shorter


class DeduplicationFilter:
    def apply(self, candidates: Iterable[CandidateConversation]) -> List[CandidateConversation]:
        """
        Collapses identical intent trails (the earliest candidate wins) and
        drops candidates dominated by a longer trail. Order is preserved.
        """
        unique: List[CandidateConversation] = []
        seen = set()
        for candidate in candidates:
            if candidate.intent_trail in seen:
                continue
            seen.add(candidate.intent_trail)
            unique.append(candidate)

        return [
            candidate for candidate in unique
            if not any(is_strict_prefix(candidate.intent_trail, other.intent_trail) for other in unique)
        ]
