"""Free-text search token normalization.

Turns what people type into the quick-search box ("Benc Seria 5", "yamaha t max", "a 4") into
the tokens listings are actually written with ("benz", "5-series", "tmax", "a 4"). Passes run in
a fixed order and each one works on the previous pass's output. Running the pipeline again on
its own output leaves it unchanged.
"""

import re

from listing_search.core import MAX_GENERAL_SEARCH_LENGTH, MAX_SEARCH_TOKENS, ValidationError

_TYPO_CORRECTIONS = {
    "benc": "benz",
    "mercedez": "mercedes",
    "seri": "series",
    "seria": "series",
    "serija": "series",
    "klas": "class",
    "klasa": "class",
    "clas": "class",
}

# Literal adjacent pairs written as one word in listings
_UNIT_PAIRS = {("t", "max"): "tmax"}

# Makes whose model line is named "<n> series"; the make token is absorbed into the series token
_SERIES_MAKES = frozenset({"bmw"})

# Never fused with a neighbouring number or letter ("benz 190" stays two tokens)
_NO_FUSION = frozenset({"benz", "mercedes"})

_DIGITS_RE = re.compile(r"^\d+$", re.ASCII)
_NUMERIC_RE = re.compile(r"^\d+(?:\.\d+)?$", re.ASCII)


def _is_digits(token: str) -> bool:
    return bool(_DIGITS_RE.match(token))


def _is_numeric(token: str) -> bool:
    return bool(_NUMERIC_RE.match(token))


def _split_tokens(raw: str) -> list[str]:
    return raw.replace(",", " ").lower().split()[:MAX_SEARCH_TOKENS]


def _correct_typos(tokens: list[str]) -> list[str]:
    return [_TYPO_CORRECTIONS.get(t, t) for t in tokens]


def _fuse_unit_pairs(tokens: list[str]) -> list[str]:
    out: list[str] = []
    i = 0
    while i < len(tokens):
        if i + 1 < len(tokens) and (tokens[i], tokens[i + 1]) in _UNIT_PAIRS:
            out.append(_UNIT_PAIRS[(tokens[i], tokens[i + 1])])
            i += 2
            continue
        out.append(tokens[i])
        i += 1
    return out


def _swap_series(tokens: list[str]) -> list[str]:
    """'series 5' -> '5 series'. Only a numeric follower is swapped, once."""
    out = list(tokens)
    i = 0
    while i < len(out) - 1:
        if out[i] == "series" and _is_digits(out[i + 1]):
            out[i], out[i + 1] = out[i + 1], out[i]
            i += 2
            continue
        i += 1
    return out


def _collapse_series(tokens: list[str]) -> list[str]:
    """Fuse '<n> series' into '<n>-series'.

    When a series make sits right before or after the pair, the first such triple collapses into
    the single series token; other pairs keep their neighbours.
    """
    out = list(tokens)
    for i in range(len(out) - 2):
        a, b, c = out[i], out[i + 1], out[i + 2]
        if a in _SERIES_MAKES and _is_digits(b) and c == "series":
            out[i:i + 3] = [f"{b}-series"]
            break
        if _is_digits(a) and b == "series" and c in _SERIES_MAKES:
            out[i:i + 3] = [f"{a}-series"]
            break

    fused: list[str] = []
    i = 0
    while i < len(out):
        if i + 1 < len(out) and _is_digits(out[i]) and out[i + 1] == "series":
            fused.append(f"{out[i]}-series")
            i += 2
            continue
        fused.append(out[i])
        i += 1
    return fused


def _fuse_single_chars(tokens: list[str]) -> list[str]:
    """'a 4' -> 'a 4' (one token), 'c klasse' -> 'c-klasse'."""
    out = list(tokens)
    i = 0
    while i < len(out) - 1:
        current, nxt = out[i], out[i + 1]
        if len(current) == 1 and current.isalpha() and current not in _NO_FUSION:
            out[i] = f"{current} {nxt}" if _is_numeric(nxt) else f"{current}-{nxt}"
            del out[i + 1]
            continue
        i += 1
    return out


def _fuse_model_numbers(tokens: list[str]) -> list[str]:
    """'x 5'-style leftovers and 'golf 7': attach a bare number to the word before it."""
    out = list(tokens)
    i = 1
    while i < len(out):
        current, prev = out[i], out[i - 1]
        if (
            _is_digits(current)
            and not _is_numeric(prev)
            and "-" not in prev
            and " " not in prev
            and prev not in _NO_FUSION
        ):
            out[i - 1] = f"{prev} {current}" if prev == "golf" else f"{prev}-{current}"
            del out[i]
            continue
        i += 1
    return out


def normalize_general_search(raw: str | None) -> list[str]:
    """Normalize a free-text search string into at most 10 lowercase search tokens.

    Raises ValidationError when the raw input is longer than 75 characters.
    """
    if not raw:
        return []
    if len(raw) > MAX_GENERAL_SEARCH_LENGTH:
        raise ValidationError("General search too long")

    tokens = _split_tokens(raw)
    tokens = _correct_typos(tokens)
    tokens = _fuse_unit_pairs(tokens)
    tokens = _swap_series(tokens)
    tokens = _collapse_series(tokens)
    tokens = _fuse_single_chars(tokens)
    tokens = _fuse_model_numbers(tokens)
    return tokens
