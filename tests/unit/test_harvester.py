# /tests/unit/test_harvester.py
from cx_connector.crawler.harvester import UtteranceHarvester
from cx_connector.models.graph import Intent

AGENT = "projects/p/locations/global/agents/a"


def intent(intent_id, display_name, *phrases):
    return Intent.from_api({
        "name": f"{AGENT}/intents/{intent_id}",
        "displayName": display_name,
        "trainingPhrases": [{"parts": [{"text": text} for text in phrase]} for phrase in phrases],
    })


def test_distinct_phrases_in_encounter_order():
    harvester = UtteranceHarvester()
    harvester.collect([intent("book", "Book", ["book a ", "table"], ["cancel"], ["book a table "], ["  "])])

    [record] = harvester.results()
    assert record.name == "Book"
    assert record.utterances == ["book a table", "cancel"]
    assert record.include is True


def test_intents_without_phrases_are_dropped_and_logged(caplog):
    statuses = []
    harvester = UtteranceHarvester(status_callback=lambda message, details: statuses.append(message))
    harvester.collect([intent("empty", "Empty"), intent("greet", "Greet", ["hi"])])

    assert [record.name for record in harvester.results()] == ["Greet"]
    assert "Ignoring \"Empty\" from utterances because no entry found" in statuses


def test_focused_mode_keeps_only_flagged_intents():
    harvester = UtteranceHarvester(focused=True)
    records = harvester.collect([intent("a", "A", ["a"]), intent("b", "B", ["b"])])

    assert harvester.results() == []
    records[f"{AGENT}/intents/b"].include = True
    assert [record.name for record in harvester.results()] == ["B"]


def test_external_ids_are_stable_and_bounded():
    harvester = UtteranceHarvester()
    records = harvester.collect([
        intent("3f2a-41b0_99.c", "Short", ["x"]),
        intent("a" * 40, "Long", ["y"]),
    ])

    assert records[f"{AGENT}/intents/3f2a-41b0_99.c"].external_id == "3f2a41b099c"
    long_id = records[f"{AGENT}/intents/{'a' * 40}"].external_id
    assert len(long_id) == 32
    assert long_id == UtteranceHarvester().collect([intent("a" * 40, "Long", ["y"])])[f"{AGENT}/intents/{'a' * 40}"].external_id
