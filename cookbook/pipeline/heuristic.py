"""Heuristic extraction: fixed structural rules for deterministic recipe parsing.

Fast, deterministic, no AI cost. Always runs, so every segment gets candidates
even when the pattern library is empty. Each rule type carries a fixed
confidence reflecting how reliable that rule has proven in practice.

Two generations are kept side by side as independent strategies:
``heuristic.v1`` (section-bound parser) and ``heuristic.v2`` (line classifier).
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from cookbook.pipeline.models import (
    ALL_FIELDS,
    LIST_FIELDS,
    ParseCandidate,
    Segment,
    StrategyKind,
)
from cookbook.pipeline.vocabulary import (
    LocaleVocabulary,
    get_vocabulary,
    parse_amount,
    quantity_pattern,
)

if TYPE_CHECKING:
    from cookbook.pipeline.strategies import ExtractionContext

# Rule-type confidences (v2)
TITLE_FIRST_LINE = 0.7
TITLE_HEADING = 0.8
SERVINGS_KEYWORD = 0.9
TIME_LABELED = 0.8
TIME_UNLABELED = 0.5
INGREDIENT_WITH_UNIT = 0.85
INGREDIENT_QUANTITY_ONLY = 0.6
INGREDIENT_SECTION_LINE = 0.5
STEP_ORDINAL = 0.85
STEP_IMPERATIVE = 0.65
STEP_SECTION_PROSE = 0.6

# Rule-type confidences (v1)
V1_TITLE = 0.6
V1_SERVINGS = 0.8
V1_TIME_LABELED = 0.7
V1_TIME_FALLBACK = 0.4
V1_INGREDIENT_WITH_UNIT = 0.75
V1_INGREDIENT_QUANTITY_ONLY = 0.5
V1_STEP_NUMBERED = 0.75

METADATA_LINE_MAX = 40
HEADER_LINE_MAX = 50

_ORDINAL_RX = re.compile(r"^(?P<num>\d+)[.)]\s+(?P<text>.+)$")
_BULLET_RX = re.compile(r"^[-•*·]\s*")
_TITLE_NOISE_RX = re.compile(r"\d+\s*(?:kcal|min|minuten|std|stunden|personen)\b.*$", re.I)

Found = dict[str, tuple[Any, float]]


def build_candidates(
    segment: Segment, strategy_id: str, fields: tuple[str, ...], found: Found
) -> list[ParseCandidate]:
    """One candidate per attempted field; missing fields come back empty at 0.0."""
    candidates: list[ParseCandidate] = []
    for field_name in fields:
        if field_name in found:
            value, confidence = found[field_name]
        else:
            value, confidence = ([] if field_name in LIST_FIELDS else None), 0.0
        candidates.append(
            ParseCandidate(
                segment_id=segment.segment_id,
                strategy_id=strategy_id,
                field_name=field_name,
                value=value,
                confidence=round(confidence, 4),
            )
        )
    return candidates


def list_confidence(entries: list[dict[str, Any]]) -> float:
    if not entries:
        return 0.0
    return sum(e["confidence"] for e in entries) / len(entries)


def clean_title(line: str) -> str:
    return _TITLE_NOISE_RX.sub("", _BULLET_RX.sub("", line)).strip(" :-–")


def _is_heading(line: str) -> bool:
    return line.isupper() and any(c.isalpha() for c in line)


def _header_kind(line: str, vocab: LocaleVocabulary) -> str | None:
    """Section header kind. The keyword opens the line ("Zutaten für 4 Personen")
    or sits inside a digit-free label ending in a colon ("Für den Teig, Zutaten:")."""
    if len(line) > HEADER_LINE_MAX:
        return None
    lower = line.lower().lstrip("#*-• ")
    has_digits = any(c.isdigit() for c in lower)
    for kind, headers in (("ingredients", vocab.ingredient_headers), ("steps", vocab.step_headers)):
        for header in headers:
            rx = rf"\b{re.escape(header)}\b"
            if re.match(rx, lower):
                return kind
            if not has_digits and lower.endswith(":") and re.search(rx, lower):
                return kind
    return None


class _Matchers:
    """Compiled locale regexes shared by both heuristic generations."""

    def __init__(self, locale: str) -> None:
        vocab = get_vocabulary(locale)
        self.vocab = vocab
        self.quantity = quantity_pattern(locale)
        servings = "|".join(re.escape(w) for w in vocab.servings_words)
        self.servings = re.compile(
            rf"(?P<count>\d+)\s*(?:{servings})\b|\b(?:für|serves|makes)\s+(?P<count2>\d+)",
            re.IGNORECASE,
        )
        minutes = "|".join(re.escape(w) for w in vocab.minute_words)
        hours = "|".join(re.escape(w) for w in vocab.hour_words)
        self.time = re.compile(
            rf"(?P<value>\d+(?:[.,]\d+)?)\s*(?:(?P<min>{minutes})|(?P<hour>{hours}))\b\.?",
            re.IGNORECASE,
        )

    def header(self, line: str) -> str | None:
        """Header kind, unless the line is a timing label ("Preparation time: 10 min")."""
        kind = _header_kind(line, self.vocab)
        if kind is not None and self.minutes(line) is not None:
            return None
        return kind

    def servings_count(self, line: str) -> int | None:
        match = self.servings.search(line)
        if match is None:
            return None
        return int(match.group("count") or match.group("count2"))

    def minutes(self, line: str) -> int | None:
        match = self.time.search(line)
        if match is None:
            return None
        value = float(match.group("value").replace(",", "."))
        if match.group("hour"):
            value *= 60
        return int(round(value))

    def time_label(self, line: str) -> str | None:
        """Return "prep", "cook", "total" or None for an unlabeled time line."""
        lower = line.lower()
        if any(w in lower for w in self.vocab.total_words):
            return "total"
        if any(w in lower for w in self.vocab.cook_words):
            return "cook"
        if any(w in lower for w in self.vocab.prep_words):
            return "prep"
        return None

    def ingredient(self, line: str, confidence_with_unit: float, confidence_bare: float):
        match = self.quantity.match(line)
        if match is None:
            return None
        unit = (match.group("unit") or "").lower()
        name = re.split(r"[,;(]", match.group("name"))[0].strip()
        if len(name) < 2:
            return None
        return {
            "amount": parse_amount(match.group("amount")),
            "unit": unit,
            "name": name,
            "confidence": confidence_with_unit if unit else confidence_bare,
        }

    def is_imperative(self, line: str) -> bool:
        words = re.findall(r"[^\W\d_]+", line.lower())
        if len(words) < 2:
            return False
        return words[0] in self.vocab.leading_verbs or words[-1] in self.vocab.trailing_verbs


class HeuristicParserV2:
    """Line classifier: every line is assigned to at most one field by fixed rules."""

    strategy_id = "heuristic.v2"
    kind = StrategyKind.HEURISTIC

    def __init__(self, locale: str = "de") -> None:
        self._m = _Matchers(locale)

    async def extract(
        self,
        segment: Segment,
        context: ExtractionContext | None = None,
        fields: tuple[str, ...] = ALL_FIELDS,
    ) -> list[ParseCandidate]:
        return build_candidates(segment, self.strategy_id, fields, self.parse(segment.raw_text))

    def parse(self, text: str) -> Found:
        m = self._m
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        found: Found = {}
        if not lines:
            return found

        first = lines[0]
        title = clean_title(first) or first
        found["title"] = (title, TITLE_HEADING if _is_heading(first) else TITLE_FIRST_LINE)

        ingredients: list[dict[str, Any]] = []
        steps: list[dict[str, Any]] = []
        section: str | None = None
        last_was_step = False

        for idx, line in enumerate(lines):
            header = m.header(line)
            if header is not None:
                section = header
                last_was_step = False
                self._take_metadata(line, found)
                continue

            short = len(line) <= METADATA_LINE_MAX
            if short and section != "steps" and self._take_metadata(line, found):
                last_was_step = False
                continue
            if idx == 0:
                continue

            ordinal = _ORDINAL_RX.match(line)
            if ordinal:
                steps.append({"text": ordinal.group("text").strip(), "confidence": STEP_ORDINAL})
                last_was_step = True
                continue

            if section != "steps":
                entry = m.ingredient(line, INGREDIENT_WITH_UNIT, INGREDIENT_QUANTITY_ONLY)
                if entry is not None:
                    ingredients.append(entry)
                    last_was_step = False
                    continue
                if section == "ingredients" and short and not line.endswith("."):
                    ingredients.append(
                        {
                            "amount": None,
                            "unit": "",
                            "name": _BULLET_RX.sub("", line).strip(),
                            "confidence": INGREDIENT_SECTION_LINE,
                        }
                    )
                    continue

            if last_was_step and line[0].islower():
                steps[-1]["text"] = f"{steps[-1]['text']} {line}"
                continue
            if m.is_imperative(line):
                steps.append({"text": _BULLET_RX.sub("", line), "confidence": STEP_IMPERATIVE})
                last_was_step = True
            elif section == "steps" and len(line) >= 25:
                steps.append({"text": _BULLET_RX.sub("", line), "confidence": STEP_SECTION_PROSE})
                last_was_step = True

        found["ingredients"] = (ingredients, list_confidence(ingredients))
        found["steps"] = (steps, list_confidence(steps))
        return found

    def _take_metadata(self, line: str, found: Found) -> bool:
        """Consume servings and timing lines; True if the line was metadata."""
        m = self._m
        count = m.servings_count(line)
        if count is not None:
            found.setdefault("servings", (count, SERVINGS_KEYWORD))
            return True

        minutes = m.minutes(line)
        if minutes is None:
            return False
        label = m.time_label(line)
        if label == "cook":
            found["cook_time"] = (minutes, TIME_LABELED)
        elif label == "prep":
            found["prep_time"] = (minutes, TIME_LABELED)
        elif label is None and "prep_time" not in found and "cook_time" not in found:
            found["prep_time"] = (minutes, TIME_UNLABELED)
        return True


class HeuristicParserV1:
    """Section-bound parser: ingredients only below an ingredient header,
    steps only as numbered lines below a step header."""

    strategy_id = "heuristic.v1"
    kind = StrategyKind.HEURISTIC

    def __init__(self, locale: str = "de") -> None:
        self._m = _Matchers(locale)

    async def extract(
        self,
        segment: Segment,
        context: ExtractionContext | None = None,
        fields: tuple[str, ...] = ALL_FIELDS,
    ) -> list[ParseCandidate]:
        return build_candidates(segment, self.strategy_id, fields, self.parse(segment.raw_text))

    def parse(self, text: str) -> Found:
        m = self._m
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        found: Found = {}

        for idx, line in enumerate(lines[:5]):
            if 5 < len(line) < 60 and (idx == 0 or _is_heading(line)):
                found["title"] = (clean_title(line) or line, V1_TITLE)
                break

        for line in lines:
            count = m.servings_count(line)
            if count is not None:
                found["servings"] = (count, V1_SERVINGS)
                break

        for line in lines:
            minutes = m.minutes(line)
            if minutes is None or len(line) > METADATA_LINE_MAX:
                continue
            label = m.time_label(line)
            if label in ("cook", "prep"):
                found[f"{label}_time"] = (minutes, V1_TIME_LABELED)
            elif label is None and not ({"prep_time", "cook_time"} & found.keys()):
                found["prep_time"] = (minutes, V1_TIME_FALLBACK)

        ingredients: list[dict[str, Any]] = []
        steps: list[dict[str, Any]] = []
        section: str | None = None
        for line in lines:
            header = m.header(line)
            if header is not None:
                section = header
                continue
            if section == "ingredients":
                entry = m.ingredient(line, V1_INGREDIENT_WITH_UNIT, V1_INGREDIENT_QUANTITY_ONLY)
                if entry is not None and m.servings_count(line) is None:
                    ingredients.append(entry)
            elif section == "steps":
                ordinal = _ORDINAL_RX.match(line)
                if ordinal:
                    steps.append(
                        {"text": ordinal.group("text").strip(), "confidence": V1_STEP_NUMBERED}
                    )
                elif steps and len(line) >= 15:
                    steps[-1]["text"] = f"{steps[-1]['text']} {line}"

        found["ingredients"] = (ingredients, list_confidence(ingredients))
        found["steps"] = (steps, list_confidence(steps))
        return found
