"""
Phrase API endpoints - browse and export the published dictionary
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from keytao.core.db import get_db
from keytao.core.dependencies import AuthContext, get_auth_context, require_admin
from keytao.models.phrase import PhraseType
from keytao.schemas.base import Envelope, Page
from keytao.schemas.phrase import (
    PhraseImportRequest,
    PhraseImportResult,
    PhraseRead,
    PhraseTypeCount,
)
from keytao.services.phrase_import_service import PhraseImportService
from keytao.services.phrase_service import PhraseService
from keytao.services.rime_converter import dictionary_path

router = APIRouter(prefix="/phrases", tags=["phrases"])
admin_router = APIRouter(prefix="/admin/phrases", tags=["admin"])


@router.get("", response_model=Envelope[Page[PhraseRead]])
async def list_phrases(
    phrase_type: Optional[PhraseType] = Query(None, alias="type"),
    code: Optional[str] = Query(None, max_length=16, description="Code prefix"),
    word: Optional[str] = Query(None, max_length=255),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """
    List phrases

    - **type**: Optional phrase type
    - **code**: Optional code prefix
    - **word**: Optional substring of the word
    """
    items, total = PhraseService(db).list_phrases(phrase_type, code, word, page, page_size)
    return Envelope(status="ok", data=Page(
        items=[PhraseRead.model_validate(p) for p in items],
        total=total,
        page=page,
        page_size=page_size,
    ))


@router.get("/by-code", response_model=Envelope[list[PhraseRead]])
async def phrases_by_code(code: str = Query(..., min_length=1, max_length=16), db: Session = Depends(get_db)):
    phrases = PhraseService(db).get_by_code(code)
    return Envelope(status="ok", data=[PhraseRead.model_validate(p) for p in phrases])


@router.get("/by-word", response_model=Envelope[list[PhraseRead]])
async def phrases_by_word(word: str = Query(..., min_length=1, max_length=255), db: Session = Depends(get_db)):
    phrases = PhraseService(db).get_by_word(word)
    return Envelope(status="ok", data=[PhraseRead.model_validate(p) for p in phrases])


@router.get("/stats", response_model=Envelope[list[PhraseTypeCount]])
async def phrase_stats(db: Session = Depends(get_db)):
    counts = PhraseService(db).count_by_type()
    return Envelope(status="ok", data=[PhraseTypeCount(type=t, count=c) for t, c in counts])


@router.get("/export/{phrase_type}", response_class=PlainTextResponse)
async def export_phrases(
    phrase_type: PhraseType,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(get_auth_context),
):
    """Download one phrase type as a Rime dictionary file"""
    content = PhraseService(db).export_type(phrase_type)
    filename = dictionary_path(phrase_type).rsplit("/", 1)[-1]
    return PlainTextResponse(
        content,
        media_type="text/yaml; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@admin_router.post("/import", response_model=Envelope[PhraseImportResult])
async def import_phrases(
    payload: PhraseImportRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
):
    """
    Import ``word<TAB>code`` lines

    - **lines**: At most the configured number of lines per request
    - **start_index**: Offset for reported line numbers when uploading in chunks
    """
    result = PhraseImportService(db).import_lines(
        payload.lines, auth.user_id, payload.type, payload.start_index
    )
    return Envelope(status="ok", data=result)
