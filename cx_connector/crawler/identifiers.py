# /cx_connector/crawler/identifiers.py

import hashlib
import json
import re
from typing import Iterable

# External identifiers must be stable across runs: downstream uploads use
# them to update instead of duplicate. The test framework limits them to
# 32 characters.

MAX_EXTERNAL_ID_LENGTH = 32

_SEPARATORS = re.compile(r"[-_.\s]")


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def local_id(path: str) -> str:
    """Last segment of a resource path, e.g. the uuid of an intent."""
    return path.rstrip("/").rsplit("/", 1)[-1]


def utterance_external_id(intent_path: str) -> str:
    external_id = _SEPARATORS.sub("", local_id(intent_path))
    if len(external_id) > MAX_EXTERNAL_ID_LENGTH:
        return md5_hex(external_id)
    return external_id


def conversation_external_id(intent_trail: Iterable[str]) -> str:
    return md5_hex(json.dumps(list(intent_trail)))


def external_id_for_test_case(test_case_path: str) -> str:
    return md5_hex(test_case_path)
