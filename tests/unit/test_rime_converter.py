"""
Unit tests for Rime dictionary parsing, merging and rendering
"""
from datetime import datetime
from types import SimpleNamespace

from keytao.models.batch import PullRequestAction
from keytao.models.phrase import PhraseType
from keytao.services.rime_converter import (
    RimeEntry,
    apply_dictionary_change,
    build_dictionary_changes,
    dict_version,
    dictionary_path,
    generate_sync_summary,
    merge_entries,
    parse_rime_dict,
    render_rime_dict,
)

UPSTREAM = """# Rime dictionary
# encoding: utf-8
---
name: keytao.phrase
version: "2024.01.01"
sort: by_weight
...

如果\trjgl\t100
但是\tdjsi\t100
# 注释
坏行
"""


def edit(action, word=None, code=None, old_word=None, weight=None, phrase_type=PhraseType.PHRASE):
    return SimpleNamespace(action=action, word=word, code=code, old_word=old_word, weight=weight, type=phrase_type)


def test_dictionary_path_and_version():
    assert dictionary_path(PhraseType.PHRASE) == "rime/phrase.dict.yaml"
    assert dictionary_path(PhraseType.CSS_SINGLE, "dicts/") == "dicts/css-single.dict.yaml"
    assert dict_version(datetime(2024, 1, 5)) == "2024.01.05"


def test_parse_skips_comments_and_malformed_rows():
    parsed = parse_rime_dict(UPSTREAM)

    assert parsed.header["name"] == "keytao.phrase"
    assert [e.key for e in parsed.entries] == [("如果", "rjgl"), ("但是", "djsi")]
    assert parsed.entries[0].weight == 100


def test_parse_empty_text():
    parsed = parse_rime_dict(None)

    assert parsed.header == {}
    assert parsed.entries == []


def test_merge_new_entries_win():
    existing = [RimeEntry("如果", "rjgl", 100), RimeEntry("但是", "djsi", 100)]
    merged = merge_entries(existing, [RimeEntry("如果", "rjgl", 150)], removals=[("但是", "djsi")])

    assert merged == [RimeEntry("如果", "rjgl", 150)]


def test_render_then_parse_keeps_entries():
    text = render_rime_dict({"name": "keytao.phrase"}, [RimeEntry("乙", "b", 5), RimeEntry("甲", "a", 9)])

    assert text.startswith("# Rime dictionary")
    parsed = parse_rime_dict(text)
    assert parsed.header["columns"] == ["text", "code", "weight"]
    assert [e.word for e in parsed.entries] == ["甲", "乙"]


def test_build_changes_groups_by_type():
    changes = build_dictionary_changes([
        edit(PullRequestAction.CREATE, "新词", "xnci", weight=100),
        edit(PullRequestAction.CREATE, "字", "zi", weight=10, phrase_type=PhraseType.SINGLE),
        edit(PullRequestAction.CHANGE, "如何", "rjgl", old_word="如果"),
        edit(PullRequestAction.DELETE, "但是", "djsi"),
    ])

    assert list(changes) == [PhraseType.PHRASE, PhraseType.SINGLE]
    phrase_change = changes[PhraseType.PHRASE]
    assert phrase_change.item_count == 3
    assert ("如果", "rjgl") in phrase_change.removals
    assert ("但是", "djsi") in phrase_change.removals
    assert phrase_change.renames[("如何", "rjgl")] == ("如果", "rjgl")


def test_apply_change_merges_with_upstream():
    changes = build_dictionary_changes([
        edit(PullRequestAction.CREATE, "新词", "xnci", weight=100),
        edit(PullRequestAction.CHANGE, "如何", "rjgl", old_word="如果"),
    ])

    text = apply_dictionary_change(UPSTREAM, changes[PhraseType.PHRASE], "2024.02.01")

    parsed = parse_rime_dict(text)
    entries = {e.key: e.weight for e in parsed.entries}
    assert entries == {("但是", "djsi"): 100, ("如何", "rjgl"): 100, ("新词", "xnci"): 100}
    assert parsed.header["version"] == "2024.02.01"
    assert parsed.header["name"] == "keytao.phrase"


def test_apply_change_without_upstream_creates_file():
    changes = build_dictionary_changes([edit(PullRequestAction.CREATE, "字", "zi", weight=10, phrase_type=PhraseType.SINGLE)])

    text = apply_dictionary_change(None, changes[PhraseType.SINGLE], "2024.02.01")

    parsed = parse_rime_dict(text)
    assert parsed.header["name"] == "keytao.single"
    assert [e.key for e in parsed.entries] == [("字", "zi")]


def test_later_delete_removes_entry_created_in_same_sync():
    changes = build_dictionary_changes([
        edit(PullRequestAction.CREATE, "甲", "jjjj", weight=100),
        edit(PullRequestAction.DELETE, "甲", "jjjj"),
    ])
    change = changes[PhraseType.PHRASE]

    assert change.upserts == []
    assert change.removals == [("甲", "jjjj")]
    parsed = parse_rime_dict(apply_dictionary_change(UPSTREAM, change, "2024.02.01"))
    assert ("甲", "jjjj") not in {e.key for e in parsed.entries}


def test_later_create_restores_deleted_entry():
    changes = build_dictionary_changes([
        edit(PullRequestAction.DELETE, "如果", "rjgl"),
        edit(PullRequestAction.CREATE, "如果", "rjgl", weight=120),
    ])
    change = changes[PhraseType.PHRASE]

    assert change.removals == []
    parsed = parse_rime_dict(apply_dictionary_change(UPSTREAM, change, "2024.02.01"))
    assert {e.key: e.weight for e in parsed.entries}[("如果", "rjgl")] == 120


def test_change_of_entry_created_in_same_sync_keeps_its_weight():
    changes = build_dictionary_changes([
        edit(PullRequestAction.CREATE, "甲", "jjjj", weight=103),
        edit(PullRequestAction.CHANGE, "乙", "jjjj", old_word="甲"),
    ])

    parsed = parse_rime_dict(apply_dictionary_change(None, changes[PhraseType.PHRASE], "2024.02.01"))

    assert {e.key: e.weight for e in parsed.entries} == {("乙", "jjjj"): 103}


def test_sync_summary_lists_counts_and_batches():
    edits = [
        edit(PullRequestAction.CREATE, "新词", "xnci"),
        edit(PullRequestAction.DELETE, "但是", "djsi"),
    ]
    batches = [SimpleNamespace(id=3, description="补充常用词\n详细说明")]

    summary = generate_sync_summary(edits, batches)

    assert "总计: **1** 条词条" in summary
    assert "新增 1, 删除 1" in summary
    assert "#3 补充常用词" in summary
