"""
processing/sentiment.py
=======================
Chat message scorer.

Chat lines are short and slangy, and the dashboard labels them on an
unbounded additive scale: every word that appears in the VADER lexicon
contributes its mean valence (roughly -4 … +4) and the message score is the
sum. A single clearly positive word ("love", "great") flips a line to
positive; words with a weak valence need company.

Label thresholds are strict:
    score >  1  → "positive"
    score < -1  → "negative"
    otherwise   → "neutral"
"""

import string

from vaderSentiment.vaderSentiment import SentimentIntensityAnalyzer

POSITIVE_THRESHOLD = 1.0
NEGATIVE_THRESHOLD = -1.0

# Module-level singleton; loading the lexicon takes ~50 ms.
_analyzer = SentimentIntensityAnalyzer()

_STRIP = string.punctuation + "“”‘’…"


def label_for_score(score: float) -> str:
    """Map a numeric sentiment score to its label."""
    if score > POSITIVE_THRESHOLD:
        return "positive"
    if score < NEGATIVE_THRESHOLD:
        return "negative"
    return "neutral"


def _tokens(text: str) -> list[str]:
    words = (w.strip(_STRIP) for w in text.lower().split())
    return [w for w in words if w]


def analyze_sentiment(text: str) -> tuple[float, str]:
    """
    Score `text` against the VADER lexicon.

    Returns
    -------
    score : float, sum of word valences (unbounded, signed)
    label : "positive" | "neutral" | "negative"
    """
    lexicon = _analyzer.lexicon
    score = round(sum(lexicon.get(tok, 0.0) for tok in _tokens(text or "")), 4)
    return score, label_for_score(score)
