"""Alias pattern recognition for entity names.

Detects the ways narrative text refers to the same entity:
- Titles: "Count Dracula" / "Dracula"
- Leading articles: "The Boy Who Lived"
- Epithet suffixes: "Alexander the Great"
- Full vs short names: "Harry Potter" / "Harry"
- Spelling variants via phonetic codes: "Dracula" / "Drakula"

All functions are pure. Phonetic helpers return False / [] until the encoder
has been loaded (see ``phonetics.ensure_phonetic_ready``).
"""

from __future__ import annotations

import re

from narrative_graph.resolution import phonetics

# ── Title Patterns ──────────────────────────────────────────────────────────

TITLES = [
    "mr",
    "mrs",
    "ms",
    "miss",
    "dr",
    "professor",
    "prof",
    "sir",
    "lord",
    "lady",
    "count",
    "countess",
    "duke",
    "duchess",
    "king",
    "queen",
    "prince",
    "princess",
    "captain",
    "general",
    "colonel",
    "major",
    "sergeant",
    "detective",
    "officer",
    "father",
    "mother",
    "brother",
    "sister",
    "uncle",
    "aunt",
    "grandpa",
    "grandma",
    "grandfather",
    "grandmother",
]

TITLE_PATTERN = re.compile(rf"^({'|'.join(TITLES)})\.?\s+", re.IGNORECASE)

# ── Article Patterns ────────────────────────────────────────────────────────

ARTICLES = ["the", "a", "an", "that", "this"]

ARTICLE_PATTERN = re.compile(rf"^({'|'.join(ARTICLES)})\s+", re.IGNORECASE)

# ── Epithet Suffixes ────────────────────────────────────────────────────────

EPITHET_SUFFIXES = [
    "the great",
    "the terrible",
    "the wise",
    "the brave",
    "the bold",
    "the elder",
    "the younger",
    "the first",
    "the second",
    "the third",
    "jr",
    "junior",
    "sr",
    "senior",
]

EPITHET_SUFFIX_PATTERN = re.compile(
    rf",?\s+({'|'.join(EPITHET_SUFFIXES)})$",
    re.IGNORECASE,
)

_EPITHET_PHRASE_PATTERNS = [
    re.compile(r"who \w+", re.IGNORECASE),  # "The Boy Who Lived"
    re.compile(r"of the ", re.IGNORECASE),  # "Lord of the Rings"
    re.compile(r"the \w+ one", re.IGNORECASE),  # "The Chosen One"
]

_WHITESPACE = re.compile(r"\s+")


def _strip_affixes(name: str) -> str:
    name = ARTICLE_PATTERN.sub("", name, count=1)
    name = TITLE_PATTERN.sub("", name, count=1)
    name = EPITHET_SUFFIX_PATTERN.sub("", name, count=1)
    return _WHITESPACE.sub(" ", name).strip()


def normalize_name_for_matching(name: str) -> str:
    """Normalize a name by removing an article, a title and an epithet.

    Each pass lowercases, strips one leading article, one leading title and
    one trailing epithet suffix, then collapses whitespace. Passes repeat
    until the result is stable, so the function is idempotent even for
    stacked prefixes ("The Count" is "count", "Mr Dr Who" is "who").

    Examples:
        "Harry Potter" -> "harry potter"
        "The Count Dracula" -> "dracula"
        "Alexander the Great" -> "alexander"
        "  Professor   Snape " -> "snape"
    """
    normalized = name.lower().strip()
    while True:
        stripped = _strip_affixes(normalized)
        if stripped == normalized:
            return stripped
        normalized = stripped


def extract_title(name: str) -> str | None:
    """Return the leading title of ``name`` (lowercased), if any."""
    match = TITLE_PATTERN.match(name)
    return match.group(1).lower() if match else None


def extract_epithet(name: str) -> str | None:
    """Return the trailing epithet suffix of ``name`` (lowercased), if any."""
    match = EPITHET_SUFFIX_PATTERN.search(name)
    return match.group(1).lower() if match else None


def get_name_tokens(name: str) -> list[str]:
    """Words of the normalized name, dropping single characters."""
    return [w for w in normalize_name_for_matching(name).split(" ") if len(w) > 1]


def token_overlap(name1: str, name2: str) -> float:
    """Jaccard similarity of the two names' token sets (0 if either is empty)."""
    tokens1 = set(get_name_tokens(name1))
    tokens2 = set(get_name_tokens(name2))

    if not tokens1 or not tokens2:
        return 0.0

    return len(tokens1 & tokens2) / len(tokens1 | tokens2)


def is_substring_match(name1: str, name2: str) -> bool:
    """Check if one normalized name contains the other."""
    norm1 = normalize_name_for_matching(name1)
    norm2 = normalize_name_for_matching(name2)

    if len(norm1) < 2 or len(norm2) < 2:
        return False

    return norm1 in norm2 or norm2 in norm1


def share_title(name1: str, name2: str) -> bool:
    """Check if both names carry the same title (e.g. both "Count")."""
    title1 = extract_title(name1)
    return title1 is not None and title1 == extract_title(name2)


def is_likely_epithet(name: str) -> bool:
    """Detect descriptive references like "The Boy Who Lived"."""
    normalized = name.lower()

    if normalized.startswith("the ") and len(normalized.split(" ")) >= 3:
        return True

    return any(p.search(normalized) for p in _EPITHET_PHRASE_PATTERNS)


def generate_alias_variants(name: str) -> list[str]:
    """Variations of ``name`` that might refer to the same entity.

    Order: the name itself, its normalized form, title-only forms, then the
    first and last tokens. Lowercased and deduplicated, first occurrence wins.
    """
    variants = [name]
    normalized = normalize_name_for_matching(name)

    if normalized != name.lower():
        variants.append(normalized)

    title = extract_title(name)
    if title:
        variants.append(title)
        variants.append(f"the {title}")

    tokens = get_name_tokens(name)
    if len(tokens) > 1:
        variants.append(tokens[0])
        variants.append(tokens[-1])

    return list(dict.fromkeys(v.lower() for v in variants))


def compute_alias_pattern_score(name1: str, name2: str) -> float:
    """Tiered alias likelihood between two names, in [0, 1]."""
    if normalize_name_for_matching(name1) == normalize_name_for_matching(name2):
        return 1.0

    if is_substring_match(name1, name2):
        return 0.85

    if share_title(name1, name2):
        return 0.7

    overlap = token_overlap(name1, name2)
    if overlap > 0:
        return 0.5 + overlap * 0.3

    return 0.0


# ── Phonetic Matching ───────────────────────────────────────────────────────


def phonetic_match(name1: str, name2: str) -> bool:
    """Check if the normalized names share a primary double metaphone code.

    Codes must be at least 2 characters. Returns False (never raises) while
    the encoder is not loaded.
    """
    if not phonetics.is_phonetic_ready():
        return False

    norm1 = normalize_name_for_matching(name1)
    norm2 = normalize_name_for_matching(name2)

    if len(norm1) < 2 or len(norm2) < 2:
        return False

    code1 = phonetics.primary_code(norm1)
    code2 = phonetics.primary_code(norm2)

    return code1 is not None and code1 == code2 and len(code1) >= 2


def get_phonetic_codes(name: str) -> list[str]:
    """Primary phonetic code of each name token (codes of length >= 2)."""
    if not phonetics.is_phonetic_ready():
        return []

    codes: list[str] = []
    for token in get_name_tokens(name):
        code = phonetics.primary_code(token)
        if code and len(code) >= 2:
            codes.append(code)
    return codes
