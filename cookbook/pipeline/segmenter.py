"""Segmenter: splits a document into ordered, contiguous candidate-recipe spans.

Cut points come from the extractor's boundary hints and from layout markers
(form feeds, runs of blank lines). A block opens a new segment when it starts
at a hint or looks like the head of a recipe; every other block is folded into
its neighbour so that the segments always tile the whole document.
"""

from __future__ import annotations

import logging
import re

from cookbook.config.settings import SegmentationConfig
from cookbook.pipeline.models import DocumentInput, Segment
from cookbook.pipeline.vocabulary import get_vocabulary, quantity_pattern

logger = logging.getLogger(__name__)

_SEPARATOR_RX = re.compile(r"(?:\n[ \t]*){3,}|\f")
_ORDINAL_RX = re.compile(r"^\s*\d+[.)]\s+\S")


class SegmentationError(Exception):
    """Raised when a document holds no recognizable recipe boundary."""


class Segmenter:
    """Produces Segments for one document. Stateless between documents."""

    def __init__(self, config: SegmentationConfig | None = None, locale: str = "de") -> None:
        self._config = config or SegmentationConfig()
        self._locale = locale
        self._vocab = get_vocabulary(locale)
        words = "|".join(re.escape(w) for w in self._vocab.servings_words)
        self._servings_rx = re.compile(
            rf"\d+\s*(?:{words})\b|\b(?:für|serves|makes)\s+\d+", re.IGNORECASE
        )

    def segment(self, document: DocumentInput) -> list[Segment]:
        text = document.text
        if not text.strip():
            raise SegmentationError(f"Document {document.document_id} is empty")

        hints = set(document.boundary_hints)
        blocks = self._blocks(text, hints)

        spans: list[list[int]] = []
        for start, end in blocks:
            if self._starts_recipe(text[start:end], start in hints):
                spans.append([start, end])
            elif spans:
                spans[-1][1] = end

        if not spans:
            raise SegmentationError(
                f"Document {document.document_id} has no recognizable recipe boundary"
            )

        # Leading front matter belongs to the first recipe.
        spans[0][0] = 0
        spans[-1][1] = len(text)

        segments = [
            Segment(
                index=idx,
                offset_range=(start, end),
                raw_text=text[start:end],
                heading_guess=_first_line(text[start:end]),
            )
            for idx, (start, end) in enumerate(spans)
        ]
        logger.info(
            "segmented document %s into %d segments", document.document_id, len(segments)
        )
        return segments

    @staticmethod
    def _blocks(text: str, hints: set[int]) -> list[tuple[int, int]]:
        cuts = {0, len(text)} | hints
        cuts.update(match.end() for match in _SEPARATOR_RX.finditer(text))
        ordered = sorted(cuts)
        return [(a, b) for a, b in zip(ordered, ordered[1:]) if a < b]

    def _starts_recipe(self, block: str, at_hint: bool) -> bool:
        first = _first_line(block)
        if first is None:
            return False
        if at_hint:
            return True
        if len(first) > self._config.max_title_length:
            return False
        if not (first[0].isupper() or first[0].isdigit()):
            return False
        return self.indicator_score(block) >= self._config.min_indicator_score

    def indicator_score(self, block: str) -> int:
        """Count of recipe cues present: ingredients, steps, servings."""
        lower = block.lower()
        lines = block.splitlines()
        ingredient_rx = quantity_pattern(self._locale)

        has_ingredients = any(h in lower for h in self._vocab.ingredient_headers) or any(
            (m := ingredient_rx.match(line)) is not None and m.group("unit") for line in lines
        )
        has_steps = any(h in lower for h in self._vocab.step_headers) or any(
            _ORDINAL_RX.match(line) for line in lines
        )
        has_servings = self._servings_rx.search(block) is not None
        return int(has_ingredients) + int(has_steps) + int(has_servings)


def _first_line(text: str) -> str | None:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return None
