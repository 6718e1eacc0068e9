"""
Conflict check schemas shared by the detector, the batch service and the API
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Union
import enum

from keytao.models.batch import PullRequestAction
from keytao.models.phrase import PhraseType


class ConflictKind(str, enum.Enum):
    EXACT_DUPLICATE = "exact_duplicate"
    CODE_OCCUPIED = "code_occupied"
    MISSING_OLD_WORD = "missing_old_word"
    SOURCE_MISSING = "source_missing"
    TARGET_EXISTS = "target_exists"
    DELETE_MISSING = "delete_missing"
    BATCH_DUPLICATE = "batch_duplicate"
    BATCH_COLLISION = "batch_collision"


class SuggestionAction(str, enum.Enum):
    CANCEL = "Cancel"
    ADJUST = "Adjust"
    RESOLVED = "Resolved"


class Suggestion(BaseModel):
    action: SuggestionAction
    word: Optional[str] = None
    from_code: Optional[str] = None
    to_code: Optional[str] = None
    reason: str


class PhraseSnapshot(BaseModel):
    id: int
    word: str
    code: str
    weight: int
    user_id: int
    type: Optional[PhraseType] = None

    model_config = {"from_attributes": True}


class ConflictVerdict(BaseModel):
    has_conflict: bool
    code: str
    kind: Optional[ConflictKind] = None
    current_phrase: Optional[PhraseSnapshot] = None
    impact: Optional[str] = None
    suggestions: List[Suggestion] = []
    suggested_weight: Optional[int] = None


class EditItem(BaseModel):
    """One proposed edit as seen by conflict checks"""
    id: Optional[Union[int, str]] = None
    action: PullRequestAction
    word: Optional[str] = None
    old_word: Optional[str] = None
    code: str
    weight: Optional[int] = None
    type: Optional[PhraseType] = None
    phrase_id: Optional[int] = None


class BatchConflictResult(BaseModel):
    id: Optional[Union[int, str]] = None
    conflict: ConflictVerdict
    calculated_weight: Optional[int] = None


class BatchConflictRequest(BaseModel):
    items: List[EditItem] = Field(..., min_length=1)


class BatchConflictResponse(BaseModel):
    results: List[BatchConflictResult]
    has_unresolved_conflicts: bool
