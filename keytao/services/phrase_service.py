"""
Phrase Service - read access to the published dictionary
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from keytao.models.phrase import Phrase, PhraseStatus, PhraseType
from keytao.services.rime_converter import RimeEntry, build_header, dict_version, render_rime_dict


class PhraseService:
    """Queries over the phrase store"""

    def __init__(self, db: Session):
        self.db = db

    def list_phrases(
        self,
        phrase_type: Optional[PhraseType] = None,
        code_prefix: Optional[str] = None,
        word: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Phrase], int]:
        """
        List phrases with optional filters

        Args:
            phrase_type: Only this type
            code_prefix: Codes starting with this prefix
            word: Words containing this text
            page: 1-based page number
            page_size: Page size

        Returns:
            (phrases on the page, total matching)
        """
        stmt = select(Phrase)
        if phrase_type:
            stmt = stmt.where(Phrase.type == phrase_type)
        if code_prefix:
            stmt = stmt.where(Phrase.code.startswith(code_prefix, autoescape=True))
        if word:
            stmt = stmt.where(Phrase.word.contains(word, autoescape=True))

        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        stmt = (
            stmt.order_by(Phrase.code, Phrase.weight.desc(), Phrase.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(self.db.execute(stmt).scalars().all()), total

    def get_by_code(self, code: str) -> List[Phrase]:
        """All entries at a code, highest weight first"""
        stmt = select(Phrase).where(Phrase.code == code).order_by(Phrase.weight.desc(), Phrase.id)
        return list(self.db.execute(stmt).scalars().all())

    def get_by_word(self, word: str) -> List[Phrase]:
        stmt = select(Phrase).where(Phrase.word == word).order_by(Phrase.code)
        return list(self.db.execute(stmt).scalars().all())

    def count_by_type(self) -> List[Tuple[PhraseType, int]]:
        stmt = select(Phrase.type, func.count(Phrase.id)).group_by(Phrase.type).order_by(Phrase.type)
        return [(row[0], row[1]) for row in self.db.execute(stmt).all()]

    def export_type(self, phrase_type: PhraseType, now: Optional[datetime] = None) -> str:
        """
        Render all finished phrases of one type as a Rime dictionary file
        """
        stmt = (
            select(Phrase)
            .where(Phrase.type == phrase_type, Phrase.status == PhraseStatus.FINISH)
            .order_by(Phrase.code, Phrase.weight.desc())
        )
        entries = [RimeEntry(p.word, p.code, p.weight) for p in self.db.execute(stmt).scalars()]
        header = build_header(phrase_type, dict_version(now or datetime.utcnow()))
        return render_rime_dict(header, entries)
