"""Typed bug records parsed from the Markdown the Tester writes.

Testers write free-form Markdown, but every orchestration decision (critical
gating, counts, deployment readiness) is made on ``BugRecord`` values so that
formatting drift only has to be handled here.

Recognised entries, one per line. The severity marker may sit anywhere in
the line, inside bold text or a table cell::

    - 🔴 CRITICAL: src/app.py:42 - crashes on empty input
      Fix: guard against None
    - [x] 🟠 HIGH: login - session not persisted (FIXED)
    ### 🟡 MEDIUM - README typo
    1. **Bug #1** 🔴 CRITICAL: crash on login
    | 🟠 HIGH | src/api.py | 500 on empty body |
    Severity: 🔴 CRITICAL - data loss

Negated tags ("NOT FIXED yet", "Status: unresolved") leave an entry open.

A heading carrying only a severity (``## 🔴 CRITICAL``) applies that severity
to the bullet lines below it, up to the next heading.
"""

import re
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

class Severity(str, Enum):
    """Bug severities, most severe first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def emoji(self) -> str:
        return _EMOJI[self]

    @property
    def marker(self) -> str:
        """Marker testers are asked to write, e.g. ``🔴 CRITICAL``."""
        return f"{self.emoji} {self.value.upper()}"

    @property
    def blocks_deployment(self) -> bool:
        return self is Severity.CRITICAL

    @property
    def surfaced_automatically(self) -> bool:
        """Whether the automatic loops report this severity.

        Medium and low bugs only show up on the manual reporting path.
        """
        return self in (Severity.CRITICAL, Severity.HIGH)

_RANKS = {Severity.CRITICAL: 0, Severity.HIGH: 1, Severity.MEDIUM: 2, Severity.LOW: 3}
_EMOJI = {Severity.CRITICAL: "🔴", Severity.HIGH: "🟠", Severity.MEDIUM: "🟡", Severity.LOW: "🟢"}
_EMOJI_TO_SEVERITY = {emoji: severity for severity, emoji in _EMOJI.items()}

class BugRecord(BaseModel):
    """One defect entry."""

    severity: Severity
    description: str = ""
    location: Optional[str] = None
    suggested_fix: Optional[str] = None
    fixed: bool = False
    line_number: int = 0

    def summary(self) -> str:
        parts = [self.severity.marker]
        if self.location:
            parts.append(self.location)
        if self.description:
            parts.append(f"- {self.description}" if self.location else self.description)
        if self.fixed:
            parts.append("(fixed)")
        return " ".join(parts)

# Leading heading/bullet/number prefix and optional checkbox
PREFIX_PATTERN = re.compile(r"^\s*(?P<prefix>#{1,6}\s+|[-*+]\s+|\d+[.)]\s+)?(?:\[(?P<check>[ xX])\]\s+)?")
# Severity marker anywhere in the line: emoji with an optional word, a
# bracketed word, or a bare uppercase word used as a tag ("HIGH: ...",
# "HIGH - ...", "Severity: HIGH")
MARKER_PATTERN = re.compile(
    r"(?P<emoji>🔴|🟠|🟡|🟢)\s*(?:\[?(?P<emoji_word>CRITICAL|HIGH|MEDIUM|LOW)\]?(?=[:\s]|$))?"
    r"|\[(?P<bracket_word>CRITICAL|HIGH|MEDIUM|LOW)\]"
    r"|(?<![\w-])(?P<word>CRITICAL|HIGH|MEDIUM|LOW)(?=\s*:|\s+-\s|\s*$)"
)
EMPHASIS_PATTERN = re.compile(r"\*\*")
CONTINUATION_PATTERN = re.compile(
    r"^\s*(?:[-*+]\s+)?(?P<key>location|file|suggested fix|fix|status)\s*:\s*(?P<value>.*)$",
    re.IGNORECASE,
)
BULLET_PATTERN = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(?:\[(?P<check>[ xX])\]\s+)?(?P<rest>.+)$")
FIXED_PATTERN = re.compile(r"\b(?:FIXED|RESOLVED)\b|✅")
FIXED_STATUS_PATTERN = re.compile(r"\b(?:fixed|resolved|verified|done)\b", re.IGNORECASE)
NEGATED_FIX_PATTERN = re.compile(
    r"\b(?:not|never|no longer|isn't|wasn't|un)[\s-]*(?:(?:yet|been|being|fully)\s+)?"
    r"(?:fixed|resolved|verified|done)\b",
    re.IGNORECASE,
)
FIXED_TAG_PATTERN = re.compile(r"\s*(?:✅\s*)?\(?\b(?:FIXED|RESOLVED)\b\)?\s*|\s*✅\s*")
INLINE_FIX_PATTERN = re.compile(r"\s+(?:Suggested fix|Fix):\s*", re.IGNORECASE)
LOCATION_PATTERN = re.compile(r"^`?[\w./\\-]*(?:/[\w.-]+|\.\w{1,5})(?::\d+)?`?$")

# Text before a marker that names the field rather than the bug
_LEAD_LABELS = ("", "severity", "priority")

def _normalize(line: str) -> str:
    """Drop bold markers and turn a table row into `` - `` separated cells."""
    text = EMPHASIS_PATTERN.sub("", line)
    if text.lstrip().startswith("|"):
        cells = [cell.strip() for cell in text.strip().strip("|").split("|")]
        text = " - ".join(cell for cell in cells if cell)
    return text

def _is_fixed(text: str, pattern: "re.Pattern[str]" = FIXED_PATTERN) -> bool:
    """Whether ``text`` marks a fix, ignoring negated ones like "NOT FIXED yet"."""
    return bool(pattern.search(NEGATED_FIX_PATTERN.sub(" ", text)))

def _split_rest(rest: str) -> Dict[str, Optional[str]]:
    """Split the text after the severity into location, description and fix."""
    text = rest.strip().lstrip(":-– ").strip()
    if _is_fixed(text):
        text = FIXED_TAG_PATTERN.sub(" ", text).strip().rstrip(":-– ")

    suggested_fix = None
    fix_parts = INLINE_FIX_PATTERN.split(text, maxsplit=1)
    if len(fix_parts) == 2:
        text, suggested_fix = fix_parts[0].strip(), fix_parts[1].strip()

    location = None
    head, sep, tail = text.partition(" - ")
    if sep and LOCATION_PATTERN.match(head.strip()):
        location = head.strip().strip("`")
        text = tail.strip()

    return {"location": location, "description": text, "suggested_fix": suggested_fix}

def _severity_of(marker: "re.Match[str]") -> Severity:
    word = marker.group("emoji_word") or marker.group("bracket_word") or marker.group("word")
    if word:
        return Severity(word.lower())
    return _EMOJI_TO_SEVERITY[marker.group("emoji")]

def _title_from(lead: str) -> str:
    lead = lead.strip().rstrip(":-– ").strip()
    return "" if lead.lower() in _LEAD_LABELS else lead

def _apply_continuation(record: BugRecord, key: str, value: str) -> None:
    key = key.lower()
    value = value.strip()
    if key in ("location", "file"):
        record.location = value.strip("`") or record.location
    elif key in ("fix", "suggested fix"):
        record.suggested_fix = value or record.suggested_fix
    elif key == "status":
        record.fixed = _is_fixed(value, FIXED_STATUS_PATTERN)

def parse_bug_report(text: Optional[str]) -> List[BugRecord]:
    """Parse bug entries out of Markdown text. Missing text yields no records."""
    records: List[BugRecord] = []
    if not text:
        return records

    current: Optional[BugRecord] = None
    section_severity: Optional[Severity] = None
    heading_title: Optional[str] = None

    for line_number, raw in enumerate(text.splitlines(), start=1):
        if not raw.strip():
            continue
        line = _normalize(raw)

        continuation = CONTINUATION_PATTERN.match(line)
        if current is not None and continuation:
            _apply_continuation(current, continuation.group("key"), continuation.group("value"))
            continue

        prefix = PREFIX_PATTERN.match(line)
        is_heading = line.lstrip().startswith("#")
        marker = MARKER_PATTERN.search(line, prefix.end())

        if marker is not None:
            severity = _severity_of(marker)
            lead = line[prefix.end():marker.start()]
            rest = line[marker.end():]
            if is_heading and not lead.strip() and not rest.strip(" :-–"):
                section_severity = severity
                heading_title = None
                current = None
                continue
            fields = _split_rest(rest)
            if not fields["description"]:
                fields["description"] = _title_from(lead) or heading_title or ""
            current = BugRecord(
                severity=severity,
                fixed=prefix.group("check") in ("x", "X") or _is_fixed(line),
                line_number=line_number,
                **fields,
            )
            records.append(current)
            continue

        if is_heading:
            section_severity = None
            current = None
            heading_title = line.lstrip().lstrip("#").strip()
            continue

        bullet = BULLET_PATTERN.match(line)
        if section_severity is not None and bullet and not line[0].isspace():
            rest = bullet.group("rest")
            current = BugRecord(
                severity=section_severity,
                fixed=bullet.group("check") in ("x", "X") or _is_fixed(rest),
                line_number=line_number,
                **_split_rest(rest),
            )
            records.append(current)

    return records

def unresolved(records: Iterable[BugRecord], severity: Optional[Severity] = None) -> List[BugRecord]:
    """Records not yet fixed, optionally limited to one severity."""
    return [
        r for r in records if not r.fixed and (severity is None or r.severity is severity)
    ]

def count_by_severity(records: Iterable[BugRecord], include_fixed: bool = False) -> Dict[Severity, int]:
    counts = {severity: 0 for severity in Severity}
    for record in records:
        if include_fixed or not record.fixed:
            counts[record.severity] += 1
    return counts

def has_unresolved_critical(records: Iterable[BugRecord]) -> bool:
    return any(r.severity.blocks_deployment and not r.fixed for r in records)

def deployment_ready(records: Iterable[BugRecord], tests_passed: bool) -> bool:
    """Ready iff no unresolved critical bug and the last test run succeeded."""
    return tests_passed and not has_unresolved_critical(records)
