import pytest

from semslam.keyframe_database import KeyFrameDatabase


class FakeVocabulary:
    def __init__(self, size=10):
        self.size = size

    def __len__(self):
        return self.size

    def score(self, a, b):
        return sum(min(a[w], b[w]) for w in a if w in b)


class FakeKeyFrame:
    def __init__(self, kf_id, bow_vec, connected=(), neighbours=()):
        self.id = kf_id
        self.bow_vec = dict(bow_vec)
        self.loop_query = 0
        self.loop_words = 0
        self.loop_score = 0.0
        self.reloc_query = 0
        self.reloc_words = 0
        self.reloc_score = 0.0
        self.connected = set(connected)
        self.neighbours = list(neighbours)

    def connected_keyframes(self):
        return set(self.connected)

    def best_covisibility_keyframes(self, n):
        return self.neighbours[:n]


class FakeFrame:
    def __init__(self, frame_id, bow_vec):
        self.id = frame_id
        self.bow_vec = dict(bow_vec)


BOW = {1: 0.5, 2: 0.5}


def make_db(*keyframes):
    db = KeyFrameDatabase(FakeVocabulary())
    for kf in keyframes:
        db.add(kf)
    return db


def test_loop_candidates_exclude_connected_and_weak():
    a = FakeKeyFrame(1, BOW)
    b = FakeKeyFrame(2, {1: 0.5})
    c = FakeKeyFrame(3, BOW)
    db = make_db(a, b, c)
    query = FakeKeyFrame(5, BOW, connected=[c])
    assert db.detect_loop_candidates(query, 0.1) == [a]
    assert a.loop_words == 2
    assert a.loop_score == pytest.approx(1.0)


def test_loop_candidates_respect_min_score():
    a = FakeKeyFrame(1, BOW)
    db = make_db(a)
    query = FakeKeyFrame(5, BOW)
    assert db.detect_loop_candidates(query, 2.0) == []


def test_loop_candidates_without_shared_words():
    a = FakeKeyFrame(1, {3: 1.0})
    db = make_db(a)
    query = FakeKeyFrame(5, BOW)
    assert db.detect_loop_candidates(query, 0.0) == []


def test_loop_candidates_accumulate_and_deduplicate():
    a = FakeKeyFrame(1, BOW)
    b = FakeKeyFrame(2, {1: 0.5, 2: 0.1})
    a.neighbours = [b]
    b.neighbours = [a]
    db = make_db(a, b)
    query = FakeKeyFrame(5, BOW)
    result = db.detect_loop_candidates(query, 0.0)
    assert result == [a]


def test_loop_candidates_drop_low_accumulated():
    a = FakeKeyFrame(1, BOW)
    b = FakeKeyFrame(2, {1: 0.25, 2: 0.25})
    db = make_db(a, b)
    query = FakeKeyFrame(5, BOW)
    assert db.detect_loop_candidates(query, 0.0) == [a]


def test_erase_removes_keyframe():
    a = FakeKeyFrame(1, BOW)
    b = FakeKeyFrame(2, BOW)
    db = make_db(a, b)
    db.erase(a)
    assert db.detect_loop_candidates(FakeKeyFrame(5, BOW), 0.0) == [b]


def test_erase_unknown_keyframe_is_harmless():
    a = FakeKeyFrame(1, BOW)
    db = make_db(a)
    db.erase(FakeKeyFrame(9, BOW))
    assert db.detect_loop_candidates(FakeKeyFrame(5, BOW), 0.0) == [a]


def test_clear_forgets_everything():
    a = FakeKeyFrame(1, BOW)
    db = make_db(a)
    db.clear()
    assert db.detect_loop_candidates(FakeKeyFrame(5, BOW), 0.0) == []
    assert db.detect_relocalization_candidates(FakeFrame(7, BOW)) == []


def test_add_word_outside_vocabulary_raises():
    db = KeyFrameDatabase(FakeVocabulary(size=2))
    with pytest.raises(IndexError):
        db.add(FakeKeyFrame(1, {5: 1.0}))


def test_relocalization_keeps_close_scores_in_order():
    a = FakeKeyFrame(1, BOW)
    b = FakeKeyFrame(2, {1: 0.5, 2: 0.3})
    db = make_db(a, b)
    result = db.detect_relocalization_candidates(FakeFrame(7, BOW))
    assert result == [a, b]
    assert a.reloc_query == 7
    assert b.reloc_words == 2


def test_relocalization_includes_connected_keyframes():
    a = FakeKeyFrame(1, BOW)
    db = make_db(a)
    query_frame = FakeFrame(7, BOW)
    assert db.detect_relocalization_candidates(query_frame) == [a]


def test_relocalization_uses_neighbour_accumulation():
    a = FakeKeyFrame(1, BOW)
    b = FakeKeyFrame(2, {1: 0.5, 2: 0.3})
    b.neighbours = [a]
    db = make_db(a, b)
    assert db.detect_relocalization_candidates(FakeFrame(7, BOW)) == [a]


def test_relocalization_without_shared_words():
    db = make_db(FakeKeyFrame(1, {4: 1.0}))
    assert db.detect_relocalization_candidates(FakeFrame(7, BOW)) == []