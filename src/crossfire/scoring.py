"""Word validation, trivia answer matching, points and the victory rule."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence
import re
import unicodedata

from .content import MULTIPLE_CHOICE, Question
from .puzzle import Word

PLAYING = "playing"
VICTORY = "victory"
TIE = "tie"

# Scrabble tile values; Ñ as in the Spanish set
LETTER_VALUES: Dict[str, int] = {
    **dict.fromkeys("AEILNORSTU", 1),
    **dict.fromkeys("DG", 2),
    **dict.fromkeys("BCMP", 3),
    **dict.fromkeys("FHVWY", 4),
    "K": 5,
    **dict.fromkeys("JX", 8),
    **dict.fromkeys("QZ", 10),
    "Ñ": 8,
}

STOP_WORDS = frozenset(
    {
        # es
        "el", "la", "los", "las", "de", "del", "en", "un", "una", "al", "lo",
        "y", "o", "con", "por", "para",
        # en
        "the", "a", "an", "of", "in", "on", "at", "to", "and", "or", "for",
        "with", "by",
    }
)

_SEPARATORS = re.compile(r"[,;:.]")


def validate_word(word: Word, attempt: str) -> bool:
    return word.answer.upper() == attempt.upper()


def _strip_marks(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_for_comparison(text: str) -> str:
    return _strip_marks(text.strip().lower())


def key_words(text: str) -> List[str]:
    cleaned = _SEPARATORS.sub(" ", normalize_for_comparison(text))
    return [w for w in cleaned.split() if w not in STOP_WORDS]


def validate_answer(question: Question, answer: str) -> bool:
    """Decide whether ``answer`` counts as correct for ``question``.

    Exact (normalized) matches always win. Multiple-choice questions accept
    nothing else. Open questions whose canonical answer is a comma list need
    the same set of key words in any order; other open questions accept
    partial names ("Picasso" for "Pablo Picasso") and substring containment
    when the contained side is at least three characters long.
    """
    given = normalize_for_comparison(answer)
    correct = normalize_for_comparison(question.answer)

    if given == correct:
        return True
    if question.kind == MULTIPLE_CHOICE:
        return False

    correct_words = key_words(question.answer)
    given_words = key_words(answer)
    if not given_words:
        return False

    if "," in question.answer:
        return set(correct_words) == set(given_words)

    if all(w in correct_words for w in given_words):
        return True

    if len(given) >= 3 and given in correct:
        return True
    if len(correct) >= 3 and correct in given:
        return True
    return False


def letter_value(letter: str) -> int:
    upper = letter.upper()
    if upper in LETTER_VALUES:
        return LETTER_VALUES[upper]
    return LETTER_VALUES.get(_strip_marks(upper), 0)


def base_score(answer: str) -> int:
    return sum(letter_value(ch) for ch in answer)


def calculate_score(word: Word, is_correct: bool, used_hint: bool = False) -> int:
    base = base_score(word.answer)
    if not is_correct:
        return base
    if used_hint:
        return (base * 3) // 2
    return base * 2


def check_victory(
    scores: Sequence[int], completed_count: int, total_words: int, threshold: int
) -> str:
    first, second = scores[0] >= threshold, scores[1] >= threshold
    if first and second:
        return TIE
    if first or second:
        return VICTORY
    if completed_count >= total_words:
        return TIE if scores[0] == scores[1] else VICTORY
    return PLAYING


def winner_index(scores: Sequence[int]) -> Optional[int]:
    if scores[0] == scores[1]:
        return None
    return 0 if scores[0] > scores[1] else 1
