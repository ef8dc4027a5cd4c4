"""Pattern rule definitions: learned, fingerprint-scoped line layouts.

A RuleDefinition records where a publisher family puts its title, which words
head the ingredient and step sections, and how ingredient and step lines are
laid out. Applying it to a segment yields field values plus a structural
match score: the share of the rule's expected cues actually present.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel

from cookbook.pipeline.heuristic import HEADER_LINE_MAX, clean_title
from cookbook.pipeline.vocabulary import get_vocabulary, parse_amount

PATTERN_FIELDS: tuple[str, ...] = ("title", "servings", "ingredients", "steps")

IngredientLayout = Literal["amount_first", "name_first"]
StepLayout = Literal["numbered", "bulleted", "lines"]

_AMOUNT = r"(?P<amount>\d+(?:[.,/]\d+)?(?:\s*[-–]\s*\d+(?:[.,]\d+)?)?|[½¼¾⅓⅔])"
_BULLET = r"(?:[-•*·]\s*)?"
_STEP_PATTERNS: dict[str, str] = {
    "numbered": r"^\d+[.)]\s+(?P<text>.+)$",
    "bulleted": r"^[-•*·]\s*(?P<text>.+)$",
    "lines": r"^(?P<text>.+)$",
}


class RuleDefinition(BaseModel):
    """Serializable description of one document family's recipe layout."""

    locale: str = "de"
    title_line: int = 0
    ingredient_headers: tuple[str, ...] = ()
    step_headers: tuple[str, ...] = ()
    ingredient_layout: IngredientLayout = "amount_first"
    step_layout: StepLayout = "numbered"
    extra_units: tuple[str, ...] = ()
    servings_words: tuple[str, ...] = ()

    model_config = {"frozen": True}


@dataclass
class RuleMatch:
    """Values a rule extracted from one segment, with the structural score."""

    values: dict[str, Any] = field(default_factory=dict)
    structural_score: float = 0.0


@dataclass(frozen=True)
class _CompiledRule:
    ingredient: re.Pattern[str]
    step: re.Pattern[str]
    servings: re.Pattern[str]


def ingredient_regex(layout: IngredientLayout, units: tuple[str, ...]) -> re.Pattern[str]:
    unit_alt = "|".join(re.escape(u) for u in sorted(set(units), key=len, reverse=True))
    if layout == "name_first":
        body = (
            rf"^{_BULLET}(?P<name>[^\W\d_][^\d]*?)[\s:,]+{_AMOUNT}"
            rf"\s*(?:(?P<unit>{unit_alt})\.?)?\s*$"
        )
    else:
        body = (
            rf"^{_BULLET}{_AMOUNT}\s*(?:(?P<unit>{unit_alt})\.?(?=\s|$))?"
            r"\s+(?P<name>[^\W\d_].*?)\s*$"
        )
    return re.compile(body, re.IGNORECASE)


def step_regex(layout: StepLayout) -> re.Pattern[str]:
    return re.compile(_STEP_PATTERNS[layout])


@lru_cache(maxsize=256)
def _compile(definition: RuleDefinition) -> _CompiledRule:
    vocab = get_vocabulary(definition.locale)
    units = vocab.units + definition.extra_units
    words = definition.servings_words or vocab.servings_words
    servings_alt = "|".join(re.escape(w) for w in words)
    return _CompiledRule(
        ingredient=ingredient_regex(definition.ingredient_layout, units),
        step=step_regex(definition.step_layout),
        servings=re.compile(rf"(?P<count>\d+)\s*(?:{servings_alt})\b", re.IGNORECASE),
    )


def _find_header(lines: list[str], headers: tuple[str, ...], start: int = 0) -> int | None:
    if not headers:
        return None
    rx = re.compile(rf"(?:{'|'.join(re.escape(h) for h in headers)})\b")
    for idx in range(start, len(lines)):
        line = lines[idx]
        if len(line) <= HEADER_LINE_MAX and rx.match(line.lower().lstrip("#*-• ")):
            return idx
    return None


def apply_rule(definition: RuleDefinition, text: str) -> RuleMatch:
    """Extract pattern fields from segment text using one rule definition."""
    compiled = _compile(definition)
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    match = RuleMatch()
    if not lines:
        return match

    cues: list[bool] = []
    has_title = definition.title_line < len(lines)
    cues.append(has_title)
    if has_title:
        raw = lines[definition.title_line]
        match.values["title"] = clean_title(raw) or raw

    ing_header = _find_header(lines, definition.ingredient_headers)
    step_header = _find_header(
        lines, definition.step_headers, start=(ing_header or 0)
    )
    if definition.ingredient_headers:
        cues.append(ing_header is not None)
    if definition.step_headers:
        cues.append(step_header is not None)

    first_body = definition.title_line + 1 if has_title else 0
    ing_start = ing_header + 1 if ing_header is not None else first_body
    ing_end = step_header if step_header is not None and step_header > ing_start else len(lines)

    ingredients: list[dict[str, Any]] = []
    last_ingredient = ing_start - 1
    for idx in range(ing_start, ing_end):
        line = lines[idx]
        if compiled.servings.search(line):
            continue
        found = compiled.ingredient.match(line)
        if found is None:
            continue
        ingredients.append(
            {
                "amount": parse_amount(found.group("amount")),
                "unit": (found.group("unit") or "").lower(),
                "name": re.split(r"[,;(]", found.group("name"))[0].strip(),
            }
        )
        last_ingredient = idx
    match.values["ingredients"] = ingredients
    cues.append(bool(ingredients))

    step_start = step_header + 1 if step_header is not None else last_ingredient + 1
    steps: list[str] = []
    for line in lines[max(step_start, first_body):]:
        found = compiled.step.match(line)
        if found is not None:
            steps.append(found.group("text").strip())
        elif steps:
            steps[-1] = f"{steps[-1]} {line}"
    match.values["steps"] = steps
    cues.append(bool(steps))

    for line in lines:
        servings = compiled.servings.search(line)
        if servings:
            match.values["servings"] = int(servings.group("count"))
            break

    match.structural_score = sum(cues) / len(cues)
    return match


def _norm(value: Any) -> str:
    return " ".join(str(value).split()).casefold()


def reproduction_score(values: dict[str, Any], corrected: dict[str, Any]) -> float:
    """How closely extracted values reproduce a human-corrected draft, in [0, 1]."""
    scores: list[float] = []

    if corrected.get("title"):
        scores.append(float(_norm(values.get("title", "")) == _norm(corrected["title"])))
    if corrected.get("servings") is not None:
        scores.append(float(values.get("servings") == corrected["servings"]))

    wanted_names = [_norm(i["name"]) for i in corrected.get("ingredients") or []]
    if wanted_names:
        got = {_norm(i["name"]) for i in values.get("ingredients") or []}
        scores.append(sum(1 for n in wanted_names if n in got) / len(wanted_names))

    wanted_steps = [_norm(s) for s in corrected.get("steps") or []]
    if wanted_steps:
        got_steps = {_norm(s) for s in values.get("steps") or []}
        scores.append(sum(1 for s in wanted_steps if s in got_steps) / len(wanted_steps))

    if not scores:
        return 0.0
    return sum(scores) / len(scores)
