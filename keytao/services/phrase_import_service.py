"""
Phrase Import Service - admin bulk import of ``word<TAB>code`` lines
"""
import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select, func, tuple_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from keytao.config.settings import get_settings
from keytao.core.exceptions import ImportLimitExceededError
from keytao.core.validation import code_error
from keytao.models.phrase import Phrase, PhraseStatus, PhraseType, default_weight
from keytao.schemas.phrase import ImportLineError, PhraseImportResult

logger = logging.getLogger(__name__)


class PhraseImportService:
    """Validates and inserts imported dictionary lines"""

    def __init__(self, db: Session, max_lines: Optional[int] = None):
        self.db = db
        self.max_lines = max_lines or get_settings().imports.max_lines_per_request

    def import_lines(
        self,
        lines: Sequence[str],
        user_id: int,
        phrase_type: PhraseType = PhraseType.PHRASE,
        start_index: int = 0,
    ) -> PhraseImportResult:
        """
        Import lines into the phrase store.

        Args:
            lines: ``word<TAB>code`` lines
            user_id: Owner recorded on the new phrases
            phrase_type: Type for every imported phrase
            start_index: Offset added to reported line numbers

        Returns:
            Counts plus one error per rejected line

        Raises:
            ImportLimitExceededError: If more lines than allowed are sent
        """
        if len(lines) > self.max_lines:
            raise ImportLimitExceededError(len(lines), self.max_lines)

        errors: List[ImportLineError] = []
        valid: List[Tuple[int, str, str, str]] = []
        for offset, raw in enumerate(lines):
            line_no = start_index + offset + 1
            parsed = self._parse_line(raw)
            if isinstance(parsed, str):
                errors.append(ImportLineError(line=line_no, content=raw, reason=parsed))
                continue
            valid.append((line_no, raw, parsed[0], parsed[1]))

        existing = self._existing_combinations({(w, c) for _, _, w, c in valid})
        code_counts = self._code_counts({c for _, _, _, c in valid})

        seen: Set[Tuple[str, str]] = set()
        placed: Counter = Counter()
        base = default_weight(phrase_type)
        rows: List[Tuple[int, str, Phrase]] = []
        for line_no, raw, word, code in valid:
            key = (word, code)
            if key in existing or key in seen:
                errors.append(ImportLineError(
                    line=line_no, content=raw,
                    reason=f"Combination already exists ({word} - {code})",
                ))
                continue
            seen.add(key)
            weight = base + code_counts.get(code, 0) + placed[code]
            placed[code] += 1
            rows.append((line_no, raw, Phrase(
                word=word, code=code, type=phrase_type,
                status=PhraseStatus.FINISH, weight=weight, user_id=user_id,
            )))

        imported = self._insert(rows, errors)
        self.db.commit()

        errors.sort(key=lambda e: e.line)
        logger.info(
            f"Imported {imported} of {len(lines)} phrase lines",
            extra={"imported": imported, "rejected": len(errors), "phrase_type": phrase_type.value},
        )
        return PhraseImportResult(
            total=len(lines),
            imported=imported,
            skipped=len(lines) - imported,
            errors=errors,
        )

    def _parse_line(self, raw) -> "Tuple[str, str] | str":
        if not isinstance(raw, str):
            return "Invalid line"
        parts = raw.split("\t")
        if len(parts) < 2:
            return "Missing tab separator"
        word, code = parts[0].strip(), parts[1].strip()
        if not word:
            return "Word must not be empty"
        reason = code_error(code)
        if reason:
            return f"Invalid code: {reason}"
        return word, code

    def _existing_combinations(self, keys: Set[Tuple[str, str]]) -> Set[Tuple[str, str]]:
        if not keys:
            return set()
        stmt = select(Phrase.word, Phrase.code).where(tuple_(Phrase.word, Phrase.code).in_(list(keys)))
        return {(row[0], row[1]) for row in self.db.execute(stmt).all()}

    def _code_counts(self, codes: Set[str]) -> Dict[str, int]:
        if not codes:
            return {}
        stmt = (
            select(Phrase.code, func.count(Phrase.id))
            .where(Phrase.code.in_(list(codes)))
            .group_by(Phrase.code)
        )
        return {row[0]: row[1] for row in self.db.execute(stmt).all()}

    def _insert(self, rows: List[Tuple[int, str, Phrase]], errors: List[ImportLineError]) -> int:
        """
        Bulk insert inside a savepoint; on a unique violation retry row by row
        so the failure is attributed to a specific line.
        """
        if not rows:
            return 0
        try:
            with self.db.begin_nested():
                self.db.add_all([phrase for _, _, phrase in rows])
                self.db.flush()
            return len(rows)
        except IntegrityError as exc:
            logger.warning(f"Bulk phrase insert failed, retrying row by row: {exc.orig}")

        imported = 0
        for line_no, raw, template in rows:
            phrase = Phrase(
                word=template.word, code=template.code, type=template.type,
                status=template.status, weight=template.weight, user_id=template.user_id,
            )
            try:
                with self.db.begin_nested():
                    self.db.add(phrase)
                    self.db.flush()
                imported += 1
            except IntegrityError as exc:
                if self._combination_exists(template.word, template.code):
                    reason = f"Combination already exists ({template.word} - {template.code})"
                else:
                    reason = f"Insert failed ({template.word} - {template.code}): {exc.orig}"
                errors.append(ImportLineError(line=line_no, content=raw, reason=reason))
        return imported

    def _combination_exists(self, word: str, code: str) -> bool:
        stmt = select(func.count(Phrase.id)).where(Phrase.word == word, Phrase.code == code)
        return self.db.execute(stmt).scalar_one() > 0
