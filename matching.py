"""Interest matching using cosine similarity over tag vectors."""
import math
from collections import Counter
from typing import Iterable, List


def vectorize(tags: Iterable[str]) -> Counter:
    # Lowercase and count via Counter
    return Counter([t.strip().lower() for t in (tags or []) if t and isinstance(t, str)])


def cosine_similarity(a: Counter, b: Counter) -> float:
    if not a or not b:
        return 0.0
    common = set(a.keys()) & set(b.keys())
    dot = sum(a[t] * b[t] for t in common)
    mag_a = math.sqrt(sum(v * v for v in a.values()))
    mag_b = math.sqrt(sum(v * v for v in b.values()))
    if mag_a == 0 or mag_b == 0:
        return 0.0
    return dot / (mag_a * mag_b)


def rank_events_by_interests(events: List[dict], interests: Iterable[str]) -> List[dict]:
    """Order events by how well their tags match ``interests``.

    Ties keep the soonest event first, so callers should pass events sorted
    by start time.
    """
    my_vec = vectorize(interests)
    scored = []
    for position, event in enumerate(events):
        score = cosine_similarity(my_vec, vectorize(event.get("tags") or []))
        scored.append((score, position, event))
    scored.sort(key=lambda x: (-x[0], x[1]))
    return [{**event, "matchScore": round(score, 4)} for score, _, event in scored]
