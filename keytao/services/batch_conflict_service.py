"""
Batch Conflict Service - conflict verdicts and weights for an ordered batch

Edits are checked against the phrase store, then against each other.
Item order is significant: it is the order approval applies edits in, so it
decides weight stacking, which edit of a duplicate pair is flagged, and
which resolutions are valid.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from keytao.core.exceptions import ValidationError
from keytao.models.batch import PullRequestAction
from keytao.models.phrase import PhraseType, default_weight
from keytao.schemas.conflict import (
    BatchConflictResult,
    ConflictKind,
    ConflictVerdict,
    EditItem,
    Suggestion,
    SuggestionAction,
)
from keytao.services.conflict_detector import ConflictDetector

logger = logging.getLogger(__name__)

# Conflicts where the new row would share the occupant's exact (word, code);
# under the uniqueness constraint only an earlier edit can make room.
ORDER_SENSITIVE_KINDS = {ConflictKind.EXACT_DUPLICATE, ConflictKind.TARGET_EXISTS}

# Database conflicts that name an occupying phrase another edit can vacate
RESOLVABLE_KINDS = ORDER_SENSITIVE_KINDS | {ConflictKind.CODE_OCCUPIED}


@dataclass
class _BatchFlag:
    kind: ConflictKind
    impact: str
    suggestion: Suggestion


@dataclass
class _ItemState:
    """Working state for one item; database and in-batch findings stay separate."""

    verdict: ConflictVerdict
    flags: List[_BatchFlag] = field(default_factory=list)
    resolved_by: Optional[Tuple[int, str]] = None

    @property
    def has_open_db_conflict(self) -> bool:
        return self.verdict.has_conflict and self.resolved_by is None

    def has_flag(self, kind: ConflictKind) -> bool:
        return any(f.kind == kind for f in self.flags)


def creates_live_entry(item: EditItem) -> bool:
    """True when applying the item leaves a new (word, code) row behind."""
    if item.action == PullRequestAction.CREATE:
        return True
    return item.action == PullRequestAction.CHANGE and item.word != item.old_word


def resolution_reason(resolver: EditItem, verdict: ConflictVerdict) -> Optional[str]:
    """
    Describe how ``resolver`` vacates the phrase behind ``verdict``.

    Returns:
        A reason string, or None if the resolver does not touch that phrase
    """
    phrase = verdict.current_phrase
    if not verdict.has_conflict or phrase is None or verdict.kind not in RESOLVABLE_KINDS:
        return None
    if resolver.code != phrase.code:
        return None
    if resolver.action == PullRequestAction.DELETE and (
        resolver.word == phrase.word or (resolver.phrase_id is not None and resolver.phrase_id == phrase.id)
    ):
        return f'deletes the occupying entry "{phrase.word}"'
    if resolver.action == PullRequestAction.CHANGE and resolver.old_word == phrase.word:
        return f'changes "{resolver.old_word}" to "{resolver.word}"'
    return None


def has_unresolved_conflicts(results: Sequence[BatchConflictResult]) -> bool:
    return any(r.conflict.has_conflict for r in results)


def unresolved(results: Sequence[BatchConflictResult]) -> List[BatchConflictResult]:
    return [r for r in results if r.conflict.has_conflict]


class BatchConflictService:
    """Computes per-item conflict verdicts and weights for a batch of edits"""

    def __init__(self, db: Session, detector: Optional[ConflictDetector] = None):
        self.db = db
        self.detector = detector or ConflictDetector(db)

    def check_batch_conflicts_with_weight(self, items: Sequence[EditItem]) -> List[BatchConflictResult]:
        """
        Check an ordered batch of edits.

        Args:
            items: Edits in batch order

        Returns:
            One result per item, in the same order

        Raises:
            ValidationError: If ``items`` is empty
        """
        if not items:
            raise ValidationError("Batch conflict check requires at least one edit")
        items = list(items)

        # Database pass
        states = [_ItemState(verdict=self.detector.check_conflict(item)) for item in items]
        weights = self.calculate_weights(items)

        # Intra-batch pass, every ordered pair: O(n^2) in batch size
        batch_codes = {item.code for item in items}
        for i in range(len(items)):
            for j in range(i + 1, len(items)):
                self._compare_pair(items, states, i, j, batch_codes)

        results = [
            BatchConflictResult(
                id=item.id,
                conflict=self._final_verdict(items, state),
                calculated_weight=weights[idx],
            )
            for idx, (item, state) in enumerate(zip(items, states))
        ]

        blocked = sum(1 for r in results if r.conflict.has_conflict)
        logger.info(
            f"Checked batch of {len(items)} edits: {blocked} unresolved conflicts",
            extra={"batch_size": len(items), "unresolved": blocked},
        )
        return results

    def calculate_weights(self, items: Sequence[EditItem]) -> List[Optional[int]]:
        """
        Weights for Create items, in order.

        The k-th Create at a (code, type) gets
        ``base(type) + existing(code, type) + k``.

        Returns:
            One weight per item; None for Change and Delete
        """
        existing: Dict[Tuple[str, PhraseType], int] = {}
        placed: Dict[Tuple[str, PhraseType], int] = {}
        weights: List[Optional[int]] = []
        for item in items:
            if item.action != PullRequestAction.CREATE:
                weights.append(None)
                continue
            phrase_type = item.type or PhraseType.PHRASE
            key = (item.code, phrase_type)
            if key not in existing:
                existing[key] = self.detector.count_at_code(item.code, phrase_type)
            weights.append(default_weight(phrase_type) + existing[key] + placed.get(key, 0))
            placed[key] = placed.get(key, 0) + 1
        return weights

    def _compare_pair(
        self,
        items: List[EditItem],
        states: List[_ItemState],
        i: int,
        j: int,
        batch_codes: set,
    ) -> None:
        earlier, later = items[i], items[j]

        # A later edit vacating the earlier item's occupant
        if states[i].has_open_db_conflict and states[i].verdict.kind not in ORDER_SENSITIVE_KINDS:
            reason = resolution_reason(later, states[i].verdict)
            if reason:
                states[i].resolved_by = (j, reason)
        # An earlier edit vacating the later item's occupant
        if states[j].has_open_db_conflict:
            reason = resolution_reason(earlier, states[j].verdict)
            if reason:
                states[j].resolved_by = (i, reason)

        resolves_pair = (
            (states[i].resolved_by is not None and states[i].resolved_by[0] == j)
            or (states[j].resolved_by is not None and states[j].resolved_by[0] == i)
        )

        if (
            earlier.action == PullRequestAction.CREATE
            and later.action == PullRequestAction.CREATE
            and earlier.word == later.word
            and earlier.code == later.code
        ):
            if not states[j].has_flag(ConflictKind.BATCH_DUPLICATE):
                states[j].flags.append(_BatchFlag(
                    kind=ConflictKind.BATCH_DUPLICATE,
                    impact=f"Duplicate within batch: same entry as edit #{i + 1}",
                    suggestion=Suggestion(
                        action=SuggestionAction.CANCEL,
                        word=later.word,
                        reason=f"Edit #{i + 1} already adds this entry",
                    ),
                ))
            return

        if (
            not resolves_pair
            and earlier.code == later.code
            and creates_live_entry(earlier)
            and creates_live_entry(later)
            and not states[i].has_flag(ConflictKind.BATCH_COLLISION)
        ):
            alternative = self.detector.find_alternative_code(earlier.code, taken=batch_codes)
            states[i].flags.append(_BatchFlag(
                kind=ConflictKind.BATCH_COLLISION,
                impact=f'Will collide with batch edit #{j + 1} at code "{earlier.code}"',
                suggestion=Suggestion(
                    action=SuggestionAction.ADJUST,
                    word=earlier.word,
                    from_code=earlier.code,
                    to_code=alternative,
                    reason=(
                        f'Use "{alternative}" to avoid a secondary entry'
                        if alternative else "Pick a different code for one of the two edits"
                    ),
                ),
            ))

    def _final_verdict(self, items: List[EditItem], state: _ItemState) -> ConflictVerdict:
        verdict = state.verdict
        if state.flags:
            return verdict.model_copy(update={
                "has_conflict": True,
                "kind": state.flags[0].kind,
                "impact": "; ".join(f.impact for f in state.flags),
                "suggestions": [f.suggestion for f in state.flags],
            })
        if state.resolved_by is not None:
            index, reason = state.resolved_by
            resolver = items[index]
            return verdict.model_copy(update={
                "has_conflict": False,
                "impact": f"Conflict resolved by batch edit #{index + 1} ({reason})",
                "suggestions": [Suggestion(
                    action=SuggestionAction.RESOLVED,
                    word=resolver.word or resolver.old_word,
                    reason=f"Edit #{index + 1} {reason}",
                )],
            })
        return verdict
