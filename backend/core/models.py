"""
models.py — Canonical record schema shared by every pipeline stage.

Raw spreadsheet rows are turned into ItemRecord objects once, at the
ingestion boundary. Nothing downstream looks at raw column names except the
payload reconstructor, which scans ``payload_fields`` for image chunks.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple, Union

YearKey = Union[int, str]
GroupKey = Tuple[str, YearKey]


# ── Canonical column names ──────────────────────────────────────────

SUBJECT_COL = "Subject"
YEAR_COL = "Year"
ITEM_COL = "Question (Item)"
KIND_COL = "MC/ER"
CONTENT_COL = "Question Per Content"
OUTCOME_COL = "Question Per Outcome"
SCHOOL_MEAN_COL = "School Mean (Item)"
STATE_MEAN_COL = "State Mean (Item)"
MAX_MARK_COL = "Max Mark (Item)"

REQUIRED_COLUMNS = [SUBJECT_COL, YEAR_COL, ITEM_COL]
CANONICAL_COLUMNS = [
    SUBJECT_COL, YEAR_COL, ITEM_COL, KIND_COL, CONTENT_COL, OUTCOME_COL,
    SCHOOL_MEAN_COL, STATE_MEAN_COL, MAX_MARK_COL,
]

# Question images are split across columns HSC_BASE64_0, HSC_BASE64_1, ...
CHUNK_FIELD_PREFIX = "HSC_BASE64_"


class ItemKind(str, Enum):
    MC = "MC"
    ER = "ER"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "ItemKind":
        cleaned = str(value or "").strip().upper()
        if cleaned == "MC":
            return cls.MC
        if cleaned == "ER":
            return cls.ER
        return cls.UNKNOWN


class TagField(str, Enum):
    """Which tag column an aggregation is keyed on."""

    CONTENT = "content"
    OUTCOME = "outcome"

    @property
    def short_name(self) -> str:
        return "QPC" if self is TagField.CONTENT else "QPO"

    @property
    def column(self) -> str:
        return CONTENT_COL if self is TagField.CONTENT else OUTCOME_COL


@dataclass
class ItemRecord:
    """One exam item observation for a subject/year."""

    subject: str
    year: YearKey
    item_label: str
    item_kind: ItemKind = ItemKind.UNKNOWN
    content_tag: str = ""
    outcome_tag: str = ""
    school_mean: float = 0.0
    state_mean: float = 0.0
    max_mark: float = 0.0
    payload_fields: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def group_key(self) -> GroupKey:
        return (self.subject, self.year)

    def tag(self, tag_field: TagField) -> str:
        value = self.content_tag if tag_field is TagField.CONTENT else self.outcome_tag
        return str(value or "").strip()
