"""Inverted index of key frames by visual word, for loop and relocalisation queries."""

from __future__ import annotations

import contextlib
import threading
from collections.abc import Iterable

NEIGHBOUR_COUNT = 10
COMMON_WORDS_RATIO = 0.8
RETAIN_RATIO = 0.75


def _unique(keyframes: Iterable) -> list:
    return list(dict.fromkeys(keyframes))


class KeyFrameDatabase:
    """Finds key frames that share visual words with a query.

    ``vocabulary`` must support ``len()`` (the number of words) and
    ``score(bow_a, bow_b)``. Key frames provide ``id``, ``bow_vec`` (a mapping
    from word id to weight), ``connected_keyframes()``,
    ``best_covisibility_keyframes(n)`` and the ``loop_*`` and ``reloc_*``
    bookkeeping attributes, which the queries update.
    """

    def __init__(self, vocabulary):
        self._vocabulary = vocabulary
        self._lock = threading.Lock()
        self._inverted: list[list] = [[] for _ in range(len(vocabulary))]

    def add(self, keyframe) -> None:
        """Index a key frame under each of its words."""
        with self._lock:
            for word in keyframe.bow_vec:
                self._inverted[word].append(keyframe)

    def erase(self, keyframe) -> None:
        """Remove a key frame from the lists of its words."""
        with self._lock:
            for word in keyframe.bow_vec:
                with contextlib.suppress(ValueError):
                    self._inverted[word].remove(keyframe)

    def clear(self) -> None:
        """Forget every indexed key frame."""
        with self._lock:
            self._inverted = [[] for _ in range(len(self._vocabulary))]

    def detect_loop_candidates(self, keyframe, min_score: float) -> list:
        """Key frames, not connected to ``keyframe``, that may close a loop with it."""
        connected = keyframe.connected_keyframes()
        sharing = []
        with self._lock:
            for word in keyframe.bow_vec:
                for other in self._inverted[word]:
                    if other.loop_query != keyframe.id:
                        other.loop_words = 0
                        if other not in connected:
                            other.loop_query = keyframe.id
                            sharing.append(other)
                    other.loop_words += 1

        if not sharing:
            return []

        min_common = int(max(kf.loop_words for kf in sharing) * COMMON_WORDS_RATIO)

        scored = []
        for other in sharing:
            if other.loop_words > min_common:
                score = self._vocabulary.score(keyframe.bow_vec, other.bow_vec)
                other.loop_score = score
                if score >= min_score:
                    scored.append((score, other))

        if not scored:
            return []

        accumulated = []
        best_accumulated = min_score
        for score, other in scored:
            best_score = score
            total = score
            best = other
            for neighbour in other.best_covisibility_keyframes(NEIGHBOUR_COUNT):
                if neighbour.loop_query == keyframe.id and neighbour.loop_words > min_common:
                    total += neighbour.loop_score
                    if neighbour.loop_score > best_score:
                        best = neighbour
                        best_score = neighbour.loop_score
            accumulated.append((total, best))
            best_accumulated = max(best_accumulated, total)

        threshold = RETAIN_RATIO * best_accumulated
        return _unique(kf for total, kf in accumulated if total > threshold)

    def detect_relocalization_candidates(self, frame) -> list:
        """Key frames that look like ``frame``, best groups first in index order."""
        sharing = []
        with self._lock:
            for word in frame.bow_vec:
                for other in self._inverted[word]:
                    if other.reloc_query != frame.id:
                        other.reloc_words = 0
                        other.reloc_query = frame.id
                        sharing.append(other)
                    other.reloc_words += 1

        if not sharing:
            return []

        min_common = int(max(kf.reloc_words for kf in sharing) * COMMON_WORDS_RATIO)

        scored = []
        for other in sharing:
            if other.reloc_words > min_common:
                score = self._vocabulary.score(frame.bow_vec, other.bow_vec)
                other.reloc_score = score
                scored.append((score, other))

        if not scored:
            return []

        accumulated = []
        best_accumulated = 0.0
        for score, other in scored:
            best_score = score
            total = score
            best = other
            for neighbour in other.best_covisibility_keyframes(NEIGHBOUR_COUNT):
                if neighbour.reloc_query != frame.id:
                    continue
                total += neighbour.reloc_score
                if neighbour.reloc_score > best_score:
                    best = neighbour
                    best_score = neighbour.reloc_score
            accumulated.append((total, best))
            best_accumulated = max(best_accumulated, total)

        threshold = RETAIN_RATIO * best_accumulated
        return _unique(kf for total, kf in accumulated if total > threshold)