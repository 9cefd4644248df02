import collections


class StablePartialFilter:
    """Holds back interim words until they survive ``threshold`` consecutive hypotheses.

    Each interim hypothesis is split into words; the emitted text is the longest
    word prefix shared by the last ``threshold`` hypotheses. Nothing is emitted
    until that prefix grows, so callers see a monotonic, stable partial.
    A threshold of ``None`` or 1 passes every hypothesis through.
    """

    def __init__(self, threshold: int | None = None) -> None:
        if threshold is not None and threshold < 1:
            raise ValueError(f"Stable partial threshold must be positive, got {threshold}")
        self._threshold = threshold or 1
        self._history: collections.deque[list[str]] = collections.deque(maxlen=self._threshold)
        self._last_emitted: list[str] = []

    @property
    def threshold(self) -> int:
        return self._threshold

    def feed(self, text: str) -> str | None:
        words = text.split()
        if self._threshold == 1:
            return text if words else None

        self._history.append(words)
        if len(self._history) < self._threshold:
            return None

        stable = _common_prefix(list(self._history))
        if len(stable) <= len(self._last_emitted):
            return None
        self._last_emitted = stable
        return " ".join(stable)

    def reset(self) -> None:
        self._history.clear()
        self._last_emitted = []


def _common_prefix(hypotheses: list[list[str]]) -> list[str]:
    prefix: list[str] = []
    for words in zip(*hypotheses):
        if any(word != words[0] for word in words[1:]):
            break
        prefix.append(words[0])
    return prefix
