"""
Rime dictionary conversion

Reads and writes ``*.dict.yaml`` files: a YAML header between ``---`` and
``...`` followed by tab-separated ``word<TAB>code[<TAB>weight]`` rows.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from keytao.models.batch import PullRequestAction
from keytao.models.phrase import PHRASE_TYPE_CONFIGS, PhraseType, rime_file_name

logger = logging.getLogger(__name__)

DICT_PREFIX = "keytao"
DICT_SUFFIX = ".dict.yaml"

EntryKey = Tuple[str, str]


@dataclass(frozen=True)
class RimeEntry:
    word: str
    code: str
    weight: Optional[int] = None

    @property
    def key(self) -> EntryKey:
        return (self.word, self.code)


@dataclass
class RimeDict:
    header: Dict[str, Any]
    entries: List[RimeEntry]


@dataclass
class DictionaryChange:
    """Net effect of a set of edits on one dictionary file"""
    phrase_type: PhraseType
    # key -> final entry, or None when the key ends up removed
    operations: "OrderedDict[EntryKey, Optional[RimeEntry]]" = field(default_factory=OrderedDict)
    # new key -> key it replaces, for weight inheritance on Change
    renames: Dict[EntryKey, EntryKey] = field(default_factory=dict)
    item_count: int = 0

    @property
    def upserts(self) -> List[RimeEntry]:
        return [entry for entry in self.operations.values() if entry is not None]

    @property
    def removals(self) -> List[EntryKey]:
        return [key for key, entry in self.operations.items() if entry is None]

    def upsert(self, entry: RimeEntry) -> None:
        self.operations.pop(entry.key, None)
        self.operations[entry.key] = entry

    def remove(self, key: EntryKey) -> None:
        self.operations.pop(key, None)
        self.operations[key] = None


def dictionary_name(phrase_type: PhraseType) -> str:
    return f"{DICT_PREFIX}.{rime_file_name(phrase_type)}"


def dictionary_path(phrase_type: PhraseType, dict_dir: str = "rime") -> str:
    return f"{dict_dir.rstrip('/')}/{rime_file_name(phrase_type)}{DICT_SUFFIX}"


def dict_version(now: datetime) -> str:
    return now.strftime("%Y.%m.%d")


def parse_rime_dict(text: Optional[str]) -> RimeDict:
    """
    Parse dictionary text into header and entries.

    Comment lines and blank lines in the body are ignored; rows with fewer
    than two columns are skipped.
    """
    if not text:
        return RimeDict(header={}, entries=[])

    lines = text.splitlines()
    header: Dict[str, Any] = {}
    body_start = 0
    if "---" in (line.strip() for line in lines):
        start = next(i for i, line in enumerate(lines) if line.strip() == "---")
        end = next((i for i in range(start + 1, len(lines)) if lines[i].strip() == "..."), None)
        if end is not None:
            loaded = yaml.safe_load("\n".join(lines[start + 1:end]))
            header = loaded if isinstance(loaded, dict) else {}
            body_start = end + 1

    entries: List[RimeEntry] = []
    for lineno, raw in enumerate(lines[body_start:], start=body_start + 1):
        line = raw.rstrip("\r")
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        parts = line.split("\t")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            logger.debug(f"Skipping malformed dictionary row {lineno}: {line!r}")
            continue
        weight = None
        if len(parts) > 2 and parts[2].strip():
            try:
                weight = int(parts[2].strip())
            except ValueError:
                weight = None
        entries.append(RimeEntry(word=parts[0], code=parts[1], weight=weight))
    return RimeDict(header=header, entries=entries)


def merge_entries(
    existing: Iterable[RimeEntry],
    new: Iterable[RimeEntry],
    removals: Iterable[EntryKey] = (),
) -> List[RimeEntry]:
    """
    Union of two entry lists keyed by (word, code); new entries win.
    Keys in ``removals`` are dropped from the existing side first.
    """
    removed = set(removals)
    merged: "OrderedDict[EntryKey, RimeEntry]" = OrderedDict()
    for entry in existing:
        if entry.key not in removed:
            merged[entry.key] = entry
    for entry in new:
        merged[entry.key] = entry
    return list(merged.values())


def render_rime_dict(header: Dict[str, Any], entries: Sequence[RimeEntry]) -> str:
    """Render header and entries, sorted by code then weight descending."""
    has_weight = any(e.weight is not None for e in entries)
    header = dict(header)
    header["columns"] = ["text", "code", "weight"] if has_weight else ["text", "code"]

    lines = ["# Rime dictionary", "# encoding: utf-8", "---"]
    lines.append(yaml.safe_dump(header, allow_unicode=True, sort_keys=False).rstrip("\n"))
    lines.append("...")
    lines.append("")

    for entry in sorted(entries, key=lambda e: (e.code, -(e.weight or 0))):
        parts = [entry.word, entry.code]
        if has_weight:
            parts.append("" if entry.weight is None else str(entry.weight))
        lines.append("\t".join(parts))

    return "\n".join(lines) + "\n"


def build_header(phrase_type: PhraseType, version: str, base: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    header = dict(base or {})
    header["name"] = dictionary_name(phrase_type)
    header["version"] = version
    header.setdefault("sort", "by_weight")
    return header


def build_dictionary_changes(edits: Iterable[Any]) -> "OrderedDict[PhraseType, DictionaryChange]":
    """
    Group approved edits by phrase type into per-file changes.

    Edits are folded in order, so a later edit on the same (word, code)
    replaces the effect of an earlier one: a Create followed by a Delete
    leaves a removal, a Delete followed by a Create leaves the entry.

    Args:
        edits: PullRequest rows (or anything with the same attributes), in
            application order

    Returns:
        Changes keyed by type, in first-seen order
    """
    changes: "OrderedDict[PhraseType, DictionaryChange]" = OrderedDict()
    for edit in edits:
        phrase_type = PhraseType(edit.type or PhraseType.PHRASE)
        change = changes.setdefault(phrase_type, DictionaryChange(phrase_type=phrase_type))
        change.item_count += 1

        if edit.action == PullRequestAction.CREATE:
            if edit.word and edit.code:
                change.upsert(RimeEntry(edit.word, edit.code, edit.weight))
        elif edit.action == PullRequestAction.CHANGE:
            new_key = (edit.word, edit.code)
            weight = edit.weight
            if edit.old_word and edit.old_word != edit.word:
                old_key = (edit.old_word, edit.code)
                # Moving an entry created earlier in the same set keeps its weight
                earlier = change.operations.get(old_key)
                if weight is None and earlier is not None:
                    weight = earlier.weight
                change.remove(old_key)
                change.renames[new_key] = change.renames.get(old_key, old_key)
            if edit.word and edit.code:
                change.upsert(RimeEntry(edit.word, edit.code, weight))
        elif edit.action == PullRequestAction.DELETE:
            if edit.word and edit.code:
                change.remove((edit.word, edit.code))
    return changes


def apply_dictionary_change(existing_text: Optional[str], change: DictionaryChange, version: str) -> str:
    """
    Merge a change into an upstream dictionary file and render the result.

    Upserts without a weight keep the weight of the entry they replace.
    """
    current = parse_rime_dict(existing_text)
    by_key = {e.key: e for e in current.entries}

    upserts = []
    for entry in change.upserts:
        if entry.weight is None:
            previous = by_key.get(change.renames.get(entry.key, entry.key))
            if previous is not None and previous.weight is not None:
                entry = RimeEntry(entry.word, entry.code, previous.weight)
        upserts.append(entry)

    entries = merge_entries(current.entries, upserts, change.removals)
    return render_rime_dict(build_header(change.phrase_type, version, current.header), entries)


def generate_sync_summary(edits: Iterable[Any], batches: Iterable[Any] = ()) -> str:
    """Markdown pull request body with per-type counts and included batches."""
    stats: "OrderedDict[PhraseType, Dict[str, int]]" = OrderedDict()
    total_entries = 0
    for edit in edits:
        phrase_type = PhraseType(edit.type or PhraseType.PHRASE)
        counts = stats.setdefault(phrase_type, {"create": 0, "change": 0, "delete": 0})
        if edit.action == PullRequestAction.CREATE:
            counts["create"] += 1
            total_entries += 1
        elif edit.action == PullRequestAction.CHANGE:
            counts["change"] += 1
            total_entries += 1
        else:
            counts["delete"] += 1

    lines = ["## 词库同步更新", "", "### 更新统计", "", f"- 总计: **{total_entries}** 条词条", ""]
    for phrase_type, counts in stats.items():
        parts = []
        if counts["create"]:
            parts.append(f"新增 {counts['create']}")
        if counts["change"]:
            parts.append(f"修改 {counts['change']}")
        if counts["delete"]:
            parts.append(f"删除 {counts['delete']}")
        if parts:
            label = PHRASE_TYPE_CONFIGS[phrase_type].label
            lines.append(f"- **{label}**: {', '.join(parts)}")

    batch_list = list(batches)
    if batch_list:
        lines.extend(["", "### 包含批次", ""])
        for batch in batch_list:
            description = (batch.description or "").strip().splitlines()
            title = description[0] if description else "(无描述)"
            lines.append(f"- #{batch.id} {title}")

    lines.extend(["", "---", "", "_此PR由KeyTao管理系统自动生成_"])
    return "\n".join(lines)
