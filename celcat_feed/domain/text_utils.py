"""Text helpers for CELCAT descriptions.

CELCAT packs everything about an event into an HTML ``description``: module
code, course name, professor, room, group. These helpers clean that blob and
pull the human-readable pieces back out. The heuristics target the French
vocabulary used by the Bordeaux timetable.
"""

from __future__ import annotations

import html
import re
from collections.abc import Sequence
from typing import Optional

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"[ \t\u00a0]+")

# "Bâtiment A29 - A29/ Salle 105" -> "Bâtiment A29/ Salle 105"
_DUPLICATE_TOKEN_RE = re.compile(r"\b(\w+)\s*-\s*\1\b")

ROOM_RE = re.compile(
    r"(?:salle\s+\w+|amphi(?:th[ée][aâ]tre)?\s+\w+|\bb[âa]t(?:iment|\.)|\b[A-Z]\d{2,3}\b|cremi)",
    re.IGNORECASE,
)

_MODULE_CODE_RE = re.compile(r"^\d[A-Z0-9]+\s+", re.IGNORECASE)
_TYPE_ONLY_RE = re.compile(
    r"^(?:Cours|TD|TP|CM|Examen|Examens|Contr[ôo]le Continu|TD Machine|TP Machine)$",
    re.IGNORECASE,
)

_UPPER = "A-ZÀÂÄÇÈÉÊËÎÏÔÖÙÛÜ"
_LOWER = "a-zàâäçèéêëîïôöùûü"
_HAS_LOWER_RE = re.compile(f"[{_LOWER}]")
_SURNAME_FIRSTNAME_RE = (re.compile(f"^[{_UPPER}][{_UPPER}-]+$"), re.compile(f"^[{_UPPER}][{_LOWER}]+$"))
_NAME_WORD_RE = re.compile(f"^(?:[{_UPPER}][{_UPPER}{_LOWER}'-]*|[{_UPPER}]\\.?)$")
_SINGLE_NAME_RE = re.compile(f"^[{_UPPER}][{_LOWER}'-]+$")


def clean_description_text(text: Optional[str]) -> str:
    """Strip HTML, decode entities and drop blank lines.

    ``<br>`` becomes a newline; every remaining line is trimmed.
    """
    if not text:
        return ""
    txt = _BR_RE.sub("\n", text)
    txt = _TAG_RE.sub("", txt)
    txt = html.unescape(txt)
    lines = (_WS_RE.sub(" ", line).strip() for line in re.split(r"\r?\n", txt))
    return "\n".join(line for line in lines if line)


def split_lines(text: str) -> list[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def collapse_duplicate_building(location: str) -> str:
    """Collapse ``X - X`` so a building identifier is never repeated back-to-back."""
    previous = None
    while previous != location:
        previous = location
        location = _DUPLICATE_TOKEN_RE.sub(r"\1", location)
    return location


def normalize_location(location: Optional[str]) -> str:
    if not location:
        return ""
    collapsed = collapse_duplicate_building(location)
    return _WS_RE.sub(" ", collapsed).strip(" ,-")


def is_room_line(line: str) -> bool:
    lowered = line.lower()
    if "salle" in lowered or "amphi" in lowered or "bât" in lowered:
        return True
    if "/" in line and "-" not in line:
        return True
    return bool(ROOM_RE.search(line))


def find_room_line(lines: Sequence[str]) -> Optional[str]:
    for line in lines:
        if ROOM_RE.search(line):
            return line.strip()
    return None


def _looks_like_professor_pair(words: Sequence[str]) -> bool:
    """``DUPONT Jean`` style: upper-case surname then capitalized first name."""
    if len(words) != 2:
        return False
    surname_re, firstname_re = _SURNAME_FIRSTNAME_RE
    return bool(surname_re.match(words[0]) and firstname_re.match(words[1]))


def extract_course_name(lines: Sequence[str]) -> Optional[tuple[int, str]]:
    """Find the line holding the human course name.

    Skips module codes, bare type labels, rooms and professor names; prefers
    long mixed-case lines, otherwise a short line with lower-case letters.

    Returns:
        (line index, course name) or None
    """
    for index, line in enumerate(lines):
        if _MODULE_CODE_RE.match(line) or _TYPE_ONLY_RE.match(line):
            continue
        if is_room_line(line):
            continue

        words = line.split()
        if _looks_like_professor_pair(words):
            continue

        has_lower = bool(_HAS_LOWER_RE.search(line))
        if len(line) >= 18 or len(words) >= 3:
            upper_words = [w for w in words if len(w) > 1 and w == w.upper()]
            mostly_upper = len(upper_words) > len(words) / 2
            if has_lower and not mostly_upper:
                return index, line
        elif has_lower:
            lower_inside = any(_HAS_LOWER_RE.search(word[1:]) for word in words)
            if lower_inside or len(words) == 1:
                return index, line
    return None


def extract_professor(
    lines: Sequence[str],
    course_name: str,
    course_index: Optional[int],
    stopwords: Sequence[str] = (),
) -> Optional[str]:
    """Find a professor name among the description lines.

    Two to four capitalized words anywhere, or a single capitalized word
    appearing after the course-name line.
    """
    stop = {word.lower() for word in stopwords}
    for index, line in enumerate(lines):
        if line == course_name or _TYPE_ONLY_RE.match(line):
            continue
        if not 3 < len(line) < 60 or line[0].isdigit() or "/" in line:
            continue
        if is_room_line(line) or "cremi" in line.lower():
            continue

        words = line.split()
        if any(word.lower() in stop for word in words):
            continue
        if 2 <= len(words) <= 4 and all(_NAME_WORD_RE.match(word) for word in words):
            return line
        if (
            len(words) == 1
            and course_index is not None
            and index > course_index
            and _SINGLE_NAME_RE.match(line)
        ):
            return line
    return None


def strip_module_code(module: str) -> str:
    stripped = _MODULE_CODE_RE.sub("", module).strip()
    return stripped or module.strip()
