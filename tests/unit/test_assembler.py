# /tests/unit/test_assembler.py
import hashlib
import json

from cx_connector.crawler.assembler import INTENT_ASSERTER, ConversationAssembler
from cx_connector.crawler.definitions import TerminationReason
from cx_connector.crawler.identifiers import conversation_external_id, local_id, utterance_external_id
from cx_connector.models.conversation import SENDER_BOT, SENDER_USER, CandidateConversation, Turn


def make_candidate(trail=("intents/a",)):
    return CandidateConversation(
        conversation=(
            Turn(SENDER_USER, text="Order Pizza"),
            Turn(SENDER_BOT, text="Which size?", asserted_intent="Order Pizza"),
        ),
        intent_trail=trail,
        reason=TerminationReason.NO_ROUTES,
    )


def test_render_produces_framework_schema():
    convo = ConversationAssembler().render(make_candidate(), number=1, total=1)

    assert convo.to_dict() == {
        "header": {"name": "Convo 1", "externalId": conversation_external_id(("intents/a",))},
        "conversation": [
            {"sender": "me", "messageText": "Order Pizza"},
            {"sender": "bot", "messageText": "Which size?", "asserters": [{"name": INTENT_ASSERTER, "args": ["Order Pizza"]}]},
        ],
    }


def test_names_are_zero_padded_to_total_width():
    candidates = [make_candidate((f"intents/{n}",)) for n in range(12)]

    convos = ConversationAssembler().render_all(candidates)

    assert [c.header.name for c in convos][:2] == ["Convo 01", "Convo 02"]
    assert convos[-1].header.name == "Convo 12"


def test_bot_turn_without_text_keeps_only_the_assertion():
    candidate = CandidateConversation(
        conversation=(Turn(SENDER_BOT, asserted_intent="Welcome"),),
        intent_trail=(),
        reason=TerminationReason.NO_ROUTES,
    )

    [step] = ConversationAssembler().render(candidate, 1, 1).to_dict()["conversation"]

    assert step == {"sender": "bot", "asserters": [{"name": "INTENT", "args": ["Welcome"]}]}


def test_conversation_external_id_is_a_content_hash_of_the_trail():
    trail = ["projects/p/intents/a", "projects/p/intents/b"]

    assert conversation_external_id(trail) == hashlib.md5(json.dumps(trail).encode("utf-8")).hexdigest()
    assert conversation_external_id(tuple(trail)) == conversation_external_id(trail)
    assert conversation_external_id(trail) != conversation_external_id(trail[:1])


def test_utterance_external_id():
    assert local_id("projects/p/locations/l/agents/a/intents/abc-def") == "abc-def"
    assert utterance_external_id("projects/p/intents/abc-def_1.2 3") == "abcdef123"
    hashed = utterance_external_id("projects/p/intents/" + "x" * 33)
    assert hashed == hashlib.md5(("x" * 33).encode("utf-8")).hexdigest()
