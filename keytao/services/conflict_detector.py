"""
Conflict Detector - checks one proposed edit against the phrase store
"""
import logging
from typing import Iterable, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from keytao.core.validation import MAX_CODE_LENGTH, is_valid_code
from keytao.models.batch import PullRequestAction
from keytao.models.phrase import Phrase, PhraseType, default_weight
from keytao.schemas.conflict import (
    ConflictKind,
    ConflictVerdict,
    EditItem,
    PhraseSnapshot,
    Suggestion,
    SuggestionAction,
)

logger = logging.getLogger(__name__)

ALTERNATIVE_SUFFIXES = ("a", "i", "o", "u", "v")


def snapshot(phrase: Phrase) -> PhraseSnapshot:
    return PhraseSnapshot.model_validate(phrase)


def alternative_codes(code: str) -> list[str]:
    """Candidate secondary codes: one extra vowel-ish key, or the last key doubled."""
    candidates = [code + suffix for suffix in ALTERNATIVE_SUFFIXES]
    if code:
        candidates.append(code + code[-1])
    return [c for c in candidates if len(c) <= MAX_CODE_LENGTH and is_valid_code(c)]


class ConflictDetector:
    """
    Read-only conflict checks for a single edit.

    The same (edit, store snapshot) pair always yields the same verdict;
    nothing here writes to the session.
    """

    def __init__(self, db: Session):
        self.db = db

    def check_conflict(self, edit: EditItem) -> ConflictVerdict:
        """
        Check whether an edit collides with the current phrase store.

        Args:
            edit: Proposed Create, Change or Delete

        Returns:
            ConflictVerdict describing the collision, if any
        """
        if edit.action == PullRequestAction.CHANGE:
            return self._check_change(edit)
        if edit.action == PullRequestAction.DELETE:
            return self._check_delete(edit)
        return self._check_create(edit)

    # Lookups

    def find_phrase(self, word: Optional[str], code: str) -> Optional[Phrase]:
        if word is None:
            return None
        stmt = select(Phrase).where(Phrase.word == word, Phrase.code == code)
        return self.db.execute(stmt).scalar_one_or_none()

    def count_at_code(self, code: str, phrase_type: Optional[PhraseType] = None) -> int:
        stmt = select(func.count(Phrase.id)).where(Phrase.code == code)
        if phrase_type is not None:
            stmt = stmt.where(Phrase.type == phrase_type)
        return self.db.execute(stmt).scalar_one()

    def is_code_available(self, code: str) -> bool:
        return self.count_at_code(code) == 0

    def find_alternative_code(self, code: str, taken: Iterable[str] = ()) -> Optional[str]:
        """
        First free secondary code for ``code``.

        Args:
            code: Occupied code
            taken: Codes already claimed elsewhere (e.g. by other edits in a batch)

        Returns:
            A free code, or None if every candidate is used or too long
        """
        taken = set(taken)
        for candidate in alternative_codes(code):
            if candidate not in taken and self.is_code_available(candidate):
                return candidate
        return None

    # Per-action checks

    def _check_create(self, edit: EditItem) -> ConflictVerdict:
        excluded_id = edit.phrase_id

        exact_stmt = select(Phrase).where(Phrase.word == edit.word, Phrase.code == edit.code)
        if excluded_id:
            exact_stmt = exact_stmt.where(Phrase.id != excluded_id)
        exact = self.db.execute(exact_stmt).scalars().first()
        if exact:
            return ConflictVerdict(
                has_conflict=True,
                code=edit.code,
                kind=ConflictKind.EXACT_DUPLICATE,
                current_phrase=snapshot(exact),
                impact=f'"{edit.word}" already exists at code "{edit.code}"; the combination cannot be added twice',
                suggestions=[Suggestion(
                    action=SuggestionAction.CANCEL,
                    word=edit.word,
                    reason="This word and code combination is already in the dictionary",
                )],
            )

        occupant_stmt = (
            select(Phrase)
            .where(Phrase.code == edit.code)
            .order_by(Phrase.weight.desc(), Phrase.id)
        )
        other_code_stmt = (
            select(Phrase)
            .where(Phrase.word == edit.word, Phrase.code != edit.code)
            .order_by(Phrase.id)
        )
        if excluded_id:
            occupant_stmt = occupant_stmt.where(Phrase.id != excluded_id)
            other_code_stmt = other_code_stmt.where(Phrase.id != excluded_id)
        occupant = self.db.execute(occupant_stmt).scalars().first()
        same_word = self.db.execute(other_code_stmt).scalars().first()

        if occupant:
            impact = f'Code "{edit.code}" is occupied by "{occupant.word}"; will create secondary entry at this code'
            if same_word:
                impact += f'; "{edit.word}" also exists at code "{same_word.code}"'
            base = default_weight(edit.type or PhraseType.PHRASE)
            return ConflictVerdict(
                has_conflict=True,
                code=edit.code,
                kind=ConflictKind.CODE_OCCUPIED,
                current_phrase=snapshot(occupant),
                impact=impact,
                suggestions=self._occupied_suggestions(edit, occupant),
                suggested_weight=base + self.count_at_code(edit.code),
            )

        if same_word:
            return ConflictVerdict(
                has_conflict=False,
                code=edit.code,
                current_phrase=snapshot(same_word),
                impact=f'"{edit.word}" already exists at code "{same_word.code}"; this adds a multi-code entry',
            )

        return ConflictVerdict(has_conflict=False, code=edit.code)

    def _occupied_suggestions(self, edit: EditItem, occupant: Phrase) -> list[Suggestion]:
        suggestions = []
        alternative = self.find_alternative_code(edit.code)
        if alternative:
            suggestions.append(Suggestion(
                action=SuggestionAction.ADJUST,
                word=edit.word,
                from_code=edit.code,
                to_code=alternative,
                reason=f'Use the free secondary code "{alternative}" instead',
            ))
        if occupant.weight > (edit.weight or 0):
            suggestions.append(Suggestion(
                action=SuggestionAction.CANCEL,
                word=edit.word,
                reason=f'Existing entry "{occupant.word}" has a higher weight',
            ))
        return suggestions

    def _check_change(self, edit: EditItem) -> ConflictVerdict:
        source = self.find_phrase(edit.old_word, edit.code)
        if source is None and edit.phrase_id:
            source = self.db.get(Phrase, edit.phrase_id)

        if source is None:
            if not edit.old_word:
                return ConflictVerdict(
                    has_conflict=True,
                    code=edit.code,
                    kind=ConflictKind.MISSING_OLD_WORD,
                    impact="A change must name the word it replaces",
                    suggestions=[Suggestion(
                        action=SuggestionAction.CANCEL,
                        word=edit.word,
                        reason="Specify the old word to change",
                    )],
                )
            return ConflictVerdict(
                has_conflict=True,
                code=edit.code,
                kind=ConflictKind.SOURCE_MISSING,
                impact=f'"{edit.old_word}" does not exist at code "{edit.code}"; nothing to change',
                suggestions=[Suggestion(
                    action=SuggestionAction.CANCEL,
                    word=edit.word,
                    reason="The old word was not found; check the code and old word",
                )],
            )

        if edit.word != source.word:
            target_stmt = select(Phrase).where(
                Phrase.word == edit.word,
                Phrase.code == edit.code,
                Phrase.id != source.id,
            )
            target = self.db.execute(target_stmt).scalars().first()
            if target:
                return ConflictVerdict(
                    has_conflict=True,
                    code=edit.code,
                    kind=ConflictKind.TARGET_EXISTS,
                    current_phrase=snapshot(target),
                    impact=f'"{edit.word}" already exists at code "{edit.code}"',
                    suggestions=[Suggestion(
                        action=SuggestionAction.CANCEL,
                        word=edit.word,
                        reason="The new word already exists at this code and would be duplicated",
                    )],
                )

        return ConflictVerdict(has_conflict=False, code=edit.code, current_phrase=snapshot(source))

    def _check_delete(self, edit: EditItem) -> ConflictVerdict:
        target = self.find_phrase(edit.word, edit.code)
        if target is None and edit.phrase_id:
            target = self.db.get(Phrase, edit.phrase_id)

        if target is None:
            # Soft notice: deleting a missing entry would be a no-op
            return ConflictVerdict(
                has_conflict=True,
                code=edit.code,
                kind=ConflictKind.DELETE_MISSING,
                impact=f'"{edit.word}" (code {edit.code}) does not exist; nothing to delete',
                suggestions=[Suggestion(
                    action=SuggestionAction.CANCEL,
                    word=edit.word,
                    reason="The entry is not in the dictionary; check the word and code",
                )],
            )

        return ConflictVerdict(has_conflict=False, code=edit.code, current_phrase=snapshot(target))
