# /cx_connector/config/options.py

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Options of one import or export run. Field names accept the camelCase
# spelling as well, so option bags from the test framework map directly.


class ImportSource(str, Enum):
    TRAINING_SET = "TrainingSet"
    TRAINING_SET_UTTERANCES_ONLY = "TrainingSetUtterancesOnly"
    TRAINING_SET_BULK = "TrainingSetBulk"
    TEST_SET = "TestSet"


class ImportOptions(BaseModel):
    source: ImportSource = Field(default=ImportSource.TRAINING_SET, description="Where conversations and utterances come from")
    max_conversation_length: int = Field(default=10, ge=1, description="Maximum number of turns in one crawled conversation")
    skip_welcome_message: bool = Field(default=False, description="Suppress the user turn of the default welcome intent")
    continue_on_duplicate_page: bool = Field(default=False, description="Keep crawling when a branch enters a page twice")
    continue_on_duplicate_flow: bool = Field(default=False, description="Keep crawling when a branch enters a flow twice")
    flow_to_crawl: Optional[str] = Field(default=None, description="Flow path that activates focused-flow mode")
    flow_to_crawl_include_foreign_utterances: bool = Field(
        default=False,
        description="In focused-flow mode, reference utterances of intents consumed outside the target flow too",
    )
    max_flows_after_entry_flow: Optional[int] = Field(default=None, ge=0, description="Cap on distinct flows a branch enters after the entry flow")
    prefetch: bool = Field(default=True, description="Fetch the targets of a node's routes ahead of the walk")
    record_stack: bool = Field(default=False, description="Keep the visited node names on every branch for debugging")

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    @field_validator("flow_to_crawl", mode="before")
    @classmethod
    def blank_flow_means_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def focused(self) -> bool:
        return self.flow_to_crawl is not None


class ExportOptions(BaseModel):
    delete_old_utterances: bool = Field(default=True, description="Replace existing training phrases instead of appending")

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)
