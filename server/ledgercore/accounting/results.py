from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ledgercore.accounting.posting import JournalLineInput
from ledgercore.models import JournalEntry


class PostingStatus(str, Enum):
    POSTED = "posted"
    ALREADY_POSTED = "already_posted"
    NO_LINES = "no_lines"
    UNBALANCED = "unbalanced"
    INVALID_LINE = "invalid_line"
    NOT_FOUND = "not_found"
    ALREADY_REVERSED = "already_reversed"
    NOT_REVERSIBLE = "not_reversible"


SUCCESS_STATUSES = {PostingStatus.POSTED, PostingStatus.ALREADY_POSTED}


@dataclass
class PostingResult:
    status: PostingStatus
    entry: Optional[JournalEntry] = None
    message: Optional[str] = None
    skipped_lines: list[JournalLineInput] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in SUCCESS_STATUSES
