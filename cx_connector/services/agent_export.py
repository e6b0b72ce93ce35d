# /cx_connector/services/agent_export.py

import io
import json
import logging
import zipfile
from typing import List

from cx_connector.errors import StructuralInvariantViolation
from cx_connector.models.graph import Intent

# Reads intents out of an agent exported as JSON package (a zip archive):
#   intents/<name>/<name>.json                         intent metadata
#   intents/<name>/trainingPhrases/<language>.json     training phrases

logger = logging.getLogger(__name__)


def intents_from_agent_package(content: bytes, agent_path: str, language_code: str) -> List[Intent]:
    try:
        archive = zipfile.ZipFile(io.BytesIO(content))
    except zipfile.BadZipFile as e:
        raise StructuralInvariantViolation(f"Agent export is not a JSON package: {e}") from e

    intents = []
    with archive:
        entries = set(archive.namelist())
        for entry in sorted(entries):
            parts = entry.split("/")
            if len(parts) != 3 or parts[0] != "intents" or parts[2] != f"{parts[1]}.json":
                continue
            folder = parts[1]
            try:
                metadata = json.loads(archive.read(entry))
                phrases_entry = f"intents/{folder}/trainingPhrases/{language_code}.json"
                phrases = []
                if phrases_entry in entries:
                    phrases = json.loads(archive.read(phrases_entry)).get("trainingPhrases", [])
            except json.JSONDecodeError as e:
                raise StructuralInvariantViolation(f"Malformed intent {folder} in agent export: {e}") from e

            intent_id = metadata.get("name") or folder
            intents.append(Intent.from_api({
                "name": intent_id if intent_id.startswith("projects/") else f"{agent_path}/intents/{intent_id}",
                "displayName": metadata.get("displayName") or folder,
                "trainingPhrases": phrases,
            }))

    logger.info(f"Read {len(intents)} intents from agent export")
    return intents
