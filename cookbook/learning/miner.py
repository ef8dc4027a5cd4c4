"""Pattern miner: turns accumulated corrections into a new library version.

For every fingerprint with examples the current rule has not yet seen, the
miner derives a rule definition from the corrected drafts and keeps whichever
of the current and derived definitions reproduces those drafts better.

Each new example then moves the rule's success rate. A correction with real
deltas is ground truth the rule has just been revised against and counts in
its favour, as does a confirmation the rule reproduces. A confirmation the
rule cannot reproduce is a failure; the rate only decays once
``failure_streak_limit`` failures arrive in a row. Rules for fingerprints
without new examples are carried over unchanged.
"""

from __future__ import annotations

import logging
import re
from collections import Counter, defaultdict
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from cookbook.config.settings import LearningConfig
from cookbook.learning.store import CorrectedFields, TrainingExample
from cookbook.patterns.library import (
    PatternLibrary,
    PatternLibraryVersion,
    PatternRule,
    update_success_rate,
)
from cookbook.patterns.rules import (
    RuleDefinition,
    apply_rule,
    ingredient_regex,
    reproduction_score,
    step_regex,
)
from cookbook.pipeline.heuristic import HEADER_LINE_MAX, clean_title
from cookbook.pipeline.vocabulary import get_vocabulary
from cookbook.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

_STEP_LAYOUT_ORDER = ("numbered", "bulleted", "lines")


class MiningReport(BaseModel):
    """What one mining pass changed."""

    library_version: int
    published: bool = False
    created: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    pruned: list[str] = Field(default_factory=list)
    examples_consumed: int = 0


def rule_id_for(fingerprint: str) -> str:
    return f"rule-{fingerprint}"


def _norm(text: Any) -> str:
    return " ".join(str(text).split()).casefold()


def _header_text(lines: list[str], idx: int, taken: set[int]) -> str | None:
    """The section keyword a line contributes, if it can serve as a header."""
    if idx < 0 or idx in taken:
        return None
    line = lines[idx]
    if len(line) > HEADER_LINE_MAX or line.endswith("."):
        return None
    text = re.split(r"[\d(:]", line.lower().lstrip("#*-• "))[0].strip()
    if not text or len(text.split()) > 3:
        return None
    return text


def derive_definition(examples: list[TrainingExample], locale: str = "de") -> RuleDefinition:
    """Infer a rule definition from where corrected values sit in the source text."""
    vocab = get_vocabulary(locale)
    extra_units = sorted(
        {
            ing["unit"].lower()
            for ex in examples
            for ing in ex.corrected_draft.field_values()["ingredients"]
            if ing["unit"] and ing["unit"].lower() not in vocab.units
        }
    )
    units = vocab.units + tuple(extra_units)
    layouts = {
        "amount_first": ingredient_regex("amount_first", units),
        "name_first": ingredient_regex("name_first", units),
    }

    title_lines: Counter[int] = Counter()
    ingredient_headers: Counter[str] = Counter()
    step_headers: Counter[str] = Counter()
    ingredient_layouts: Counter[str] = Counter()
    step_layouts: Counter[str] = Counter()
    servings_words: Counter[str] = Counter()

    for ex in examples:
        target = ex.corrected_draft.field_values()
        lines = [line.strip() for line in ex.source_text.splitlines() if line.strip()]
        taken: set[int] = set()

        if target["title"]:
            wanted = _norm(target["title"])
            for idx, line in enumerate(lines):
                if _norm(line) == wanted or _norm(clean_title(line)) == wanted:
                    title_lines[idx] += 1
                    taken.add(idx)
                    break

        ingredient_idx: list[int] = []
        for ing in target["ingredients"]:
            name = _norm(ing["name"])
            if not name:
                continue
            for idx, line in enumerate(lines):
                if idx not in taken and name in _norm(line):
                    ingredient_idx.append(idx)
                    break
        if ingredient_idx:
            header = _header_text(lines, min(ingredient_idx) - 1, taken)
            if header:
                ingredient_headers[header] += 1
                taken.add(min(ingredient_idx) - 1)
            for idx in sorted(set(ingredient_idx)):
                for layout, rx in layouts.items():
                    if rx.match(lines[idx]):
                        ingredient_layouts[layout] += 1
                        break
            taken.update(ingredient_idx)

        step_idx: list[int] = []
        for step in target["steps"]:
            needle = _norm(step)[:20]
            if not needle:
                continue
            for idx, line in enumerate(lines):
                if idx not in taken and needle in _norm(line):
                    step_idx.append(idx)
                    break
        if step_idx:
            header = _header_text(lines, min(step_idx) - 1, taken)
            if header:
                step_headers[header] += 1
            for idx in sorted(set(step_idx)):
                layout = next(
                    name for name in _STEP_LAYOUT_ORDER if step_regex(name).match(lines[idx])
                )
                step_layouts[layout] += 1

        if target["servings"] is not None:
            rx = re.compile(rf"\b{int(target['servings'])}\s*([^\W\d_]+)")
            for line in lines:
                found = rx.search(line)
                if found and found.group(1).lower() not in vocab.units:
                    servings_words[found.group(1).lower()] += 1
                    break

    title_line = min(title_lines, key=lambda i: (-title_lines[i], i)) if title_lines else 0
    step_layout = (
        max(step_layouts, key=lambda k: (step_layouts[k], -_STEP_LAYOUT_ORDER.index(k)))
        if step_layouts
        else "numbered"
    )
    ingredient_layout = (
        "name_first"
        if ingredient_layouts["name_first"] > ingredient_layouts["amount_first"]
        else "amount_first"
    )
    return RuleDefinition(
        locale=locale,
        title_line=title_line,
        ingredient_headers=tuple(h for h, _ in ingredient_headers.most_common(3)),
        step_headers=tuple(h for h, _ in step_headers.most_common(3)),
        ingredient_layout=ingredient_layout,
        step_layout=step_layout,
        extra_units=tuple(extra_units),
        servings_words=tuple(w for w, _ in servings_words.most_common(3)),
    )


def score_example(definition: RuleDefinition, example: TrainingExample) -> float:
    result = apply_rule(definition, example.source_text)
    return reproduction_score(result.values, example.corrected_draft.field_values())


class PatternMiner:
    """Batch job: reads a learning-store snapshot, publishes a new library version."""

    def __init__(
        self,
        library: PatternLibrary,
        config: LearningConfig | None = None,
        locale: str = "de",
    ) -> None:
        self._library = library
        self._config = config or LearningConfig()
        self._locale = locale

    def mine(self, examples: list[TrainingExample]) -> MiningReport:
        snapshot = self._library.snapshot()
        report = MiningReport(library_version=snapshot.version)

        by_fingerprint: dict[str, list[TrainingExample]] = defaultdict(list)
        for example in examples:
            by_fingerprint[example.document_fingerprint].append(example)

        rules = {rule.rule_id: rule for rule in snapshot.rules}
        for fingerprint, group in by_fingerprint.items():
            rule_id = rule_id_for(fingerprint)
            current = rules.get(rule_id)
            fresh = group[current.sample_count:] if current else group
            if not fresh:
                continue

            updated = self._mine_fingerprint(fingerprint, group, fresh, current)
            if updated is None:
                continue
            rules[rule_id] = updated
            report.examples_consumed += len(fresh)
            (report.updated if current else report.created).append(rule_id)
            if not updated.active and (current is None or current.active):
                report.pruned.append(rule_id)

        if not report.examples_consumed:
            logger.info("pattern miner: no new examples, library stays at v%d", snapshot.version)
            return report

        version = self._library.publish(
            PatternLibraryVersion(version=snapshot.version + 1, rules=tuple(rules.values()))
        )
        report.library_version = version.version
        report.published = True
        logger.info(
            "pattern miner: v%d published (%d created, %d updated, %d pruned)",
            version.version,
            len(report.created),
            len(report.updated),
            len(report.pruned),
        )
        return report

    def _mine_fingerprint(
        self,
        fingerprint: str,
        group: list[TrainingExample],
        fresh: list[TrainingExample],
        current: PatternRule | None,
    ) -> PatternRule | None:
        cfg = self._config
        sample_count = len(group)
        fresh_ids = {ex.example_id for ex in fresh}
        usable = [ex for ex in group if self._usable(ex, report=ex.example_id in fresh_ids)]
        fresh = [ex for ex in usable if ex.example_id in fresh_ids]
        if not fresh:
            if current is None:
                return None
            return current.model_copy(update={"sample_count": sample_count})

        try:
            derived = derive_definition(usable, self._locale)
            definition = derived
            if current is not None and current.rule_definition != derived:
                current_score = _mean(score_example(current.rule_definition, ex) for ex in usable)
                derived_score = _mean(score_example(derived, ex) for ex in usable)
                if current_score >= derived_score:
                    definition = current.rule_definition

            rate = current.success_rate if current else cfg.initial_success_rate
            streak = current.failure_streak if current else 0
            for example in fresh:
                if example.diff or score_example(definition, example) >= cfg.reproduction_threshold:
                    rate = update_success_rate(rate, 1.0, cfg.ema_alpha)
                    streak = 0
                    continue
                streak += 1
                if streak >= cfg.failure_streak_limit:
                    rate = update_success_rate(rate, 0.0, cfg.ema_alpha)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.MINER_EXAMPLE_SKIPPED,
                message=str(exc),
                suppressed=True,
                details={"fingerprint": fingerprint, "examples": len(fresh)},
            )
            return None

        return PatternRule(
            rule_id=rule_id_for(fingerprint),
            fingerprint=fingerprint,
            rule_definition=definition,
            success_rate=round(rate, 6),
            sample_count=sample_count,
            failure_streak=streak,
            active=rate >= cfg.prune_floor,
        )

    def _usable(self, example: TrainingExample, report: bool) -> bool:
        """Whether the corrected values have the types a rule can reproduce."""
        try:
            CorrectedFields.model_validate(example.corrected_draft.field_values())
        except ValidationError as exc:
            if report:
                emit_structured_error(
                    logger,
                    code=ErrorCode.MINER_EXAMPLE_SKIPPED,
                    message=f"training example {example.example_id} has mistyped values",
                    suppressed=True,
                    details={
                        "fingerprint": example.document_fingerprint,
                        "errors": exc.error_count(),
                    },
                )
            return False
        return True


def _mean(values) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0
