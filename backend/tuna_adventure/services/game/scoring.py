import re
from typing import Iterable, List, Sequence, Tuple

STOP_WORDS = frozenset({
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of',
    'with', 'by', 'is', 'are', 'was', 'were', 'be', 'been', 'have', 'has',
    'had', 'do', 'does', 'did', 'will', 'would', 'could', 'should',
})

# (minimum overlap ratio, score), checked top-down
SCORE_THRESHOLDS: Sequence[Tuple[float, int]] = (
    (0.8, 15),
    (0.6, 12),
    (0.4, 10),
    (0.2, 7),
    (0.1, 5),
)

_NON_WORD = re.compile(r'[^\w\s]')


class Scorer:
    """Interface for decision scoring.

    Implementations must be deterministic and must not raise: whatever the
    input, they return a non-negative integer.
    """

    def score(self, decision: str, rationale: str, reference_answer: str, reference_rationale: str) -> int:
        raise NotImplementedError


def extract_keywords(text: str) -> List[str]:
    """Lower-case, strip punctuation, drop stop words and tokens of two chars or less.

    Returns unique keywords in first-seen order.
    """
    words = _NON_WORD.sub(' ', (text or '').lower()).split()
    return list(dict.fromkeys(w for w in words if len(w) > 2 and w not in STOP_WORDS))


def overlap_ratio(reference: Iterable[str], submission: Iterable[str]) -> float:
    reference = list(reference)
    submission = list(submission)
    matched = [
        keyword for keyword in reference
        if any(keyword in candidate or candidate in keyword for candidate in submission)
    ]
    return len(matched) / max(len(reference), 1)


def ratio_to_score(ratio: float) -> int:
    for threshold, points in SCORE_THRESHOLDS:
        if ratio >= threshold:
            return points
    return 0


class KeywordOverlapScorer(Scorer):
    """Scores by keyword overlap with the scenario's reference answer."""

    def score(self, decision, rationale, reference_answer, reference_rationale):
        submission = extract_keywords(f"{decision or ''} {rationale or ''}")
        if not submission:
            return 0
        reference = extract_keywords(f"{reference_answer or ''} {reference_rationale or ''}")
        return ratio_to_score(overlap_ratio(reference, submission))
