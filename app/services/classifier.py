from typing import Callable, Iterable, Optional

from app.config import settings

DeferralPredicate = Callable[[str], bool]


def normalize_for_matching(text: str) -> str:
    return " ".join((text or "").casefold().split())


class KeywordClassifier:
    """Defers messages mentioning any configured keyword (substring match)."""

    def __init__(self, keywords: Optional[Iterable[str]] = None):
        source = keywords if keywords is not None else settings.deferral_keywords
        self.keywords = [normalize_for_matching(k) for k in source if k and k.strip()]

    def __call__(self, message: str) -> bool:
        normalized = normalize_for_matching(message)
        return any(keyword in normalized for keyword in self.keywords)


def resolve_deferral(
    hint: Optional[bool],
    message: str,
    predicate: Optional[DeferralPredicate] = None,
) -> bool:
    """Caller-supplied hint wins; otherwise the predicate decides, if any."""
    if hint is not None:
        return bool(hint)
    if predicate is None:
        return False
    return predicate(message)
