"""A structural document signature built from layout cues, not words."""

from __future__ import annotations

import hashlib
import re

_NUMBERED_DOT_RX = re.compile(r"^\s*\d+\.\s")
_NUMBERED_PAREN_RX = re.compile(r"^\s*\d+\)\s")
_BULLET_RX = re.compile(r"^\s*[-•*·]\s")
_GLUED_UNIT_RX = re.compile(r"^\s*\d+[^\W\d_]{1,3}\s")
_SPACED_UNIT_RX = re.compile(r"^\s*\d+\s[^\W\d_]{1,3}\s")


def _bucket(value: float, edges: tuple[float, ...]) -> int:
    for idx, edge in enumerate(edges):
        if value < edge:
            return idx
    return len(edges)


def layout_features(text: str) -> dict[str, int]:
    """Coarse, bucketed typography features of a document."""
    lines = [line for line in text.splitlines() if line.strip()]
    total = max(len(lines), 1)

    def share(rx: re.Pattern[str]) -> float:
        return sum(1 for line in lines if rx.match(line)) / total

    upper_headings = sum(
        1 for line in lines if line.strip().isupper() and len(line.strip()) < 60
    )
    colon_headers = sum(1 for line in lines if line.rstrip().endswith(":"))
    avg_len = sum(len(line.strip()) for line in lines) / total

    return {
        "pages": _bucket(text.count("\f") + 1, (2, 5, 20, 100)),
        "avg_line": _bucket(avg_len, (20, 40, 70, 120)),
        "upper_headings": _bucket(upper_headings / total, (0.01, 0.05, 0.15)),
        "colon_headers": _bucket(colon_headers / total, (0.01, 0.05, 0.15)),
        "numbered_dot": _bucket(share(_NUMBERED_DOT_RX), (0.01, 0.1, 0.3)),
        "numbered_paren": _bucket(share(_NUMBERED_PAREN_RX), (0.01, 0.1, 0.3)),
        "bullets": _bucket(share(_BULLET_RX), (0.01, 0.1, 0.3)),
        "glued_units": _bucket(share(_GLUED_UNIT_RX), (0.01, 0.1, 0.3)),
        "spaced_units": _bucket(share(_SPACED_UNIT_RX), (0.01, 0.1, 0.3)),
        "blank_runs": _bucket(len(re.findall(r"\n{3,}", text)) / total, (0.01, 0.05, 0.2)),
    }


def compute_fingerprint(text: str) -> str:
    """Stable 16-hex-char signature; identical layouts hash identically."""
    features = layout_features(text)
    canonical = ";".join(f"{key}={features[key]}" for key in sorted(features))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]
