# /cx_connector/crawler/harvester.py

import logging
from typing import Dict, Iterable, List

from cx_connector.crawler.identifiers import utterance_external_id
from cx_connector.models.conversation import UtteranceRecord
from cx_connector.models.graph import Intent
from cx_connector.utils.logging import StatusReporter

logger = logging.getLogger(__name__)


class UtteranceHarvester:
    """
    Builds one utterance record per intent of the agent. The records are
    handed to the crawler as its intent table; in focused-flow mode the
    crawler marks the intents it references, and `results()` keeps only those.
    """

    def __init__(self, focused: bool = False, status_callback=None):
        self.focused = focused
        self.status = StatusReporter(logger, status_callback)
        self.records: Dict[str, UtteranceRecord] = {}

    def collect(self, intents: Iterable[Intent]) -> Dict[str, UtteranceRecord]:
        for intent in intents:
            utterances: List[str] = []
            for text in (phrase.text for phrase in intent.training_phrases):
                if text and text not in utterances:
                    utterances.append(text)
            self.records[intent.name] = UtteranceRecord(
                name=intent.display_name,
                external_id=utterance_external_id(intent.name),
                utterances=utterances,
                include=not self.focused,
            )
            self.status(f"Successfully extracted intent \"{intent.display_name}\" utterances: {len(utterances)}", level=logging.DEBUG)
        return self.records

    def results(self) -> List[UtteranceRecord]:
        output = []
        for record in self.records.values():
            if not record.utterances:
                self.status(f"Ignoring \"{record.name}\" from utterances because no entry found")
                continue
            if not record.include:
                continue
            output.append(record)
        return output
