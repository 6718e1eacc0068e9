"""
Phrase schemas for API requests/responses
"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from keytao.models.phrase import PhraseType, PhraseStatus


class PhraseRead(BaseModel):
    id: int
    word: str
    code: str
    type: PhraseType
    status: PhraseStatus
    weight: int
    remark: Optional[str] = None
    user_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PhraseTypeCount(BaseModel):
    type: PhraseType
    count: int


class PhraseImportRequest(BaseModel):
    """Tab-separated ``word<TAB>code`` lines imported into one type"""
    lines: List[str] = Field(..., min_length=1)
    type: PhraseType = PhraseType.PHRASE
    start_index: int = Field(0, ge=0, description="Line number offset of the first line, for chunked uploads")


class ImportLineError(BaseModel):
    line: int
    content: str
    reason: str


class PhraseImportResult(BaseModel):
    total: int
    imported: int
    skipped: int
    errors: List[ImportLineError] = []
