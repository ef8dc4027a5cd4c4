"""Locale vocabularies for units, section headers and instruction verbs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache


@dataclass(frozen=True)
class LocaleVocabulary:
    locale: str
    units: tuple[str, ...]
    servings_words: tuple[str, ...]
    prep_words: tuple[str, ...]
    cook_words: tuple[str, ...]
    total_words: tuple[str, ...]
    minute_words: tuple[str, ...]
    hour_words: tuple[str, ...]
    ingredient_headers: tuple[str, ...]
    step_headers: tuple[str, ...]
    leading_verbs: tuple[str, ...]
    trailing_verbs: tuple[str, ...]

    @property
    def unit_pattern(self) -> str:
        # Longest first so "kg" wins over "g".
        ordered = sorted(self.units, key=len, reverse=True)
        return "|".join(re.escape(u) for u in ordered)


_GERMAN = LocaleVocabulary(
    locale="de",
    units=(
        "g", "kg", "mg", "ml", "cl", "dl", "l", "el", "tl", "esslöffel", "teelöffel",
        "prise", "prisen", "msp", "messerspitze", "stück", "stk", "scheibe", "scheiben",
        "zehe", "zehen", "bund", "dose", "dosen", "packung", "päckchen", "pck", "becher",
        "tasse", "tassen", "handvoll", "zweig", "zweige", "blatt", "blätter",
    ),
    servings_words=("personen", "person", "portionen", "portion"),
    prep_words=("vorbereit", "zubereit", "arbeitszeit", "aktiv", "prep"),
    cook_words=("koch", "back", "brat", "gar", "ruhe"),
    total_words=("gesamt", "insgesamt", "total"),
    minute_words=("min", "minute", "minuten"),
    hour_words=("std", "stunde", "stunden", "h"),
    ingredient_headers=("zutaten", "du brauchst", "das brauchst", "einkaufsliste"),
    step_headers=("zubereitung", "anleitung", "so geht", "schritte", "und so wird"),
    leading_verbs=(
        "gib", "gebe", "schneide", "rühre", "mische", "koche", "backe", "brate", "lass",
        "lasse", "heize", "füge", "würze", "schäle", "hacke", "verrühre", "streue",
        "nimm", "stelle", "serviere", "wasche", "erhitze",
    ),
    trailing_verbs=(
        "sieben", "schneiden", "rühren", "verrühren", "mischen", "vermischen", "kochen",
        "backen", "braten", "anbraten", "geben", "hinzufügen", "würzen", "abschmecken",
        "schälen", "hacken", "servieren", "waschen", "erhitzen", "vorheizen", "kneten",
        "ruhen", "lassen", "garen", "streuen", "verteilen", "abgießen", "pürieren",
        "unterheben", "aufkochen", "köcheln", "einrühren", "stellen", "legen",
    ),
)

_ENGLISH = LocaleVocabulary(
    locale="en",
    units=(
        "g", "kg", "mg", "ml", "l", "oz", "lb", "lbs", "cup", "cups", "tbsp", "tsp",
        "tablespoon", "tablespoons", "teaspoon", "teaspoons", "pinch", "clove", "cloves",
        "can", "cans", "slice", "slices", "bunch", "package", "stick", "sticks", "handful",
    ),
    servings_words=("servings", "serving", "portions", "people", "persons"),
    prep_words=("prep", "preparation", "active"),
    cook_words=("cook", "bake", "roast", "fry", "simmer"),
    total_words=("total", "overall"),
    minute_words=("min", "mins", "minute", "minutes"),
    hour_words=("h", "hr", "hrs", "hour", "hours"),
    ingredient_headers=("ingredients", "you will need", "shopping list"),
    step_headers=("instructions", "method", "directions", "preparation", "steps"),
    leading_verbs=(
        "add", "bake", "beat", "boil", "bring", "chop", "combine", "cook", "cut", "fold",
        "fry", "heat", "knead", "let", "mix", "place", "pour", "preheat", "put", "remove",
        "roast", "season", "serve", "sift", "simmer", "slice", "spread", "sprinkle",
        "stir", "transfer", "whisk",
    ),
    trailing_verbs=(),
)

_VOCABULARIES: dict[str, LocaleVocabulary] = {v.locale: v for v in (_GERMAN, _ENGLISH)}


def get_vocabulary(locale: str) -> LocaleVocabulary:
    """Return the vocabulary for a configured locale."""
    try:
        return _VOCABULARIES[locale]
    except KeyError:
        raise ValueError(f"Unsupported locale: {locale}") from None


@lru_cache(maxsize=None)
def quantity_pattern(locale: str) -> re.Pattern[str]:
    """Ingredient line: quantity, optional unit, name ("200g Mehl", "2 Eier")."""
    vocab = get_vocabulary(locale)
    return re.compile(
        r"^\s*(?:[-•*·]\s*)?"
        r"(?P<amount>\d+(?:[.,/]\d+)?(?:\s*[-–]\s*\d+(?:[.,]\d+)?)?|[½¼¾⅓⅔])"
        rf"\s*(?:(?P<unit>{vocab.unit_pattern})\.?(?=\s|$))?"
        r"\s+(?P<name>[^\W\d_].*?)\s*$",
        re.IGNORECASE,
    )


def parse_amount(raw: str) -> float | None:
    """Parse "200", "1,5", "1/2", "300-400" (lower bound) or a vulgar fraction."""
    fractions = {"½": 0.5, "¼": 0.25, "¾": 0.75, "⅓": 1 / 3, "⅔": 2 / 3}
    text = raw.strip()
    if text in fractions:
        return fractions[text]
    text = re.split(r"\s*[-–]\s*", text)[0]
    if "/" in text:
        numerator, _, denominator = text.partition("/")
        try:
            return float(numerator) / float(denominator)
        except (ValueError, ZeroDivisionError):
            return None
    try:
        return float(text.replace(",", "."))
    except ValueError:
        return None
