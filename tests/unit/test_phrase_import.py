"""
Unit tests for bulk phrase import
"""
import pytest
from sqlalchemy import select

from keytao.core.exceptions import ImportLimitExceededError
from keytao.models.phrase import Phrase, PhraseType
from keytao.services.phrase_import_service import PhraseImportService


def test_import_valid_lines(db_session, test_user):
    result = PhraseImportService(db_session).import_lines(
        ["如果\trjgl", "但是\tdjsi"], test_user.id, PhraseType.PHRASE
    )

    assert result.total == 2
    assert result.imported == 2
    assert result.skipped == 0
    assert result.errors == []
    words = {p.word for p in db_session.execute(select(Phrase)).scalars()}
    assert words == {"如果", "但是"}


def test_import_weights_stack_per_code(db_session, test_user, add_phrase):
    add_phrase("已有", "rjgl")

    PhraseImportService(db_session).import_lines(
        ["如果\trjgl", "乳鸽\trjgl", "单字\tdz"], test_user.id, PhraseType.PHRASE
    )

    weights = {
        p.word: p.weight
        for p in db_session.execute(select(Phrase).where(Phrase.user_id == test_user.id)).scalars()
    }
    assert weights["如果"] == 101
    assert weights["乳鸽"] == 102
    assert weights["单字"] == 100


def test_import_reports_bad_lines_with_offset(db_session, test_user, add_phrase):
    add_phrase("如果", "rjgl")

    result = PhraseImportService(db_session).import_lines(
        ["如果\trjgl", "没有分隔符", "坏码\tab1", "好词\thcci", "好词\thcci"],
        test_user.id,
        start_index=100,
    )

    assert result.imported == 1
    assert result.skipped == 4
    by_line = {e.line: e.reason for e in result.errors}
    assert "already exists" in by_line[101]
    assert by_line[102] == "Missing tab separator"
    assert by_line[103].startswith("Invalid code")
    assert "already exists" in by_line[105]


def test_import_limit(db_session, test_user):
    service = PhraseImportService(db_session, max_lines=2)

    with pytest.raises(ImportLimitExceededError):
        service.import_lines(["a\taa", "b\tbb", "c\tcc"], test_user.id)


def test_bulk_failure_falls_back_to_row_inserts(db_session, test_user, monkeypatch):
    """A unique violation the pre-check missed is attributed to its row"""
    service = PhraseImportService(db_session)
    monkeypatch.setattr(service, "_existing_combinations", lambda keys: set())
    db_session.add(Phrase(word="如果", code="rjgl", type=PhraseType.PHRASE, weight=100, user_id=test_user.id))
    db_session.commit()

    result = service.import_lines(["新词\txnci", "如果\trjgl"], test_user.id)

    assert result.imported == 1
    assert [e.line for e in result.errors] == [2]
    assert "already exists" in result.errors[0].reason
