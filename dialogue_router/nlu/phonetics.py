"""
String similarity measures for misheard and misspelled Spanish words.

Used by the phonetic intent strategy and by voice transcription
correction. All functions accept raw strings and normalize them first.
"""

import re
import unicodedata

_SOUNDEX_CODES = {
    "b": "1", "f": "1", "p": "1", "v": "1",
    "c": "2", "g": "2", "j": "2", "k": "2", "q": "2", "s": "2", "x": "2", "z": "2",
    "d": "3", "t": "3",
    "l": "4",
    "m": "5", "n": "5",
    "r": "6",
}


def _fold(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", (value or "").lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9\s]", "", stripped).strip()


def soundex_es(word: str) -> str:
    """Four-character Soundex code with Spanish consonant groups.

    ``b/v`` and ``c/k/q/s/z`` share codes, so "kero" and "quero" collide.
    """
    s = _fold(word)
    if not s:
        return ""
    result = s[0].upper()
    prev = _SOUNDEX_CODES.get(s[0], "")
    for ch in s[1:]:
        code = _SOUNDEX_CODES.get(ch, "")
        if code and code != prev:
            result += code
        prev = code
    return (result + "000")[:4]


def phonetic_similarity(a: str, b: str) -> float:
    sa, sb = soundex_es(a), soundex_es(b)
    if not sa or not sb:
        return 0.0
    return 1.0 if sa == sb else 0.0


def jaro_winkler(a: str, b: str) -> float:
    """Jaro-Winkler similarity in [0, 1] with the standard 0.1 prefix scale."""
    s1, s2 = _fold(a), _fold(b)
    if s1 == s2:
        return 1.0
    len1, len2 = len(s1), len(s2)
    if not len1 or not len2:
        return 0.0

    window = max(max(len1, len2) // 2 - 1, 0)
    s1_matches = [False] * len1
    s2_matches = [False] * len2
    matches = 0
    for i, ch in enumerate(s1):
        for j in range(max(0, i - window), min(i + window + 1, len2)):
            if s2_matches[j] or s2[j] != ch:
                continue
            s1_matches[i] = s2_matches[j] = True
            matches += 1
            break
    if not matches:
        return 0.0

    transpositions = 0
    k = 0
    for i in range(len1):
        if not s1_matches[i]:
            continue
        while not s2_matches[k]:
            k += 1
        if s1[i] != s2[k]:
            transpositions += 1
        k += 1

    jaro = (
        matches / len1 + matches / len2 + (matches - transpositions / 2) / matches
    ) / 3
    prefix = 0
    for x, y in zip(s1[:4], s2[:4]):
        if x != y:
            break
        prefix += 1
    return jaro + prefix * 0.1 * (1 - jaro)


def combined_similarity(a: str, b: str, phonetic_weight: float = 0.3) -> float:
    """Blend of Soundex agreement and Jaro-Winkler similarity."""
    return phonetic_weight * phonetic_similarity(a, b) + (1 - phonetic_weight) * jaro_winkler(a, b)


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Edit-distance similarity: 1.0 for identical strings, 0.0 for disjoint ones."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / longest
