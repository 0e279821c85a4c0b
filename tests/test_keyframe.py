import numpy as np
import pytest

from semslam.frame import Frame, KeyPoint
from semslam.keyframe import KeyFrame

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])


class FakePoint:
    def __init__(self, position=(0.0, 0.0, 1.0), bad=False):
        self.position = np.array(position, dtype=float)
        self.bad = bad
        self.obs = {}
        self.erased = []

    def is_bad(self):
        return self.bad

    def observations(self):
        return dict(self.obs)

    def erase_observation(self, keyframe):
        self.erased.append(keyframe)
        self.obs.pop(keyframe, None)

    def index_in_keyframe(self, keyframe):
        return self.obs.get(keyframe, -1)

    def world_position(self):
        return self.position


class FakeMap:
    def __init__(self):
        self.erased = []

    def erase_keyframe(self, keyframe):
        self.erased.append(keyframe)


class FakeDatabase:
    def __init__(self):
        self.erased = []

    def erase(self, keyframe):
        self.erased.append(keyframe)


def make_frame(keypoints=None, pose=None, n_extra=0):
    if keypoints is None:
        keypoints = [KeyPoint(100, 100), KeyPoint(105, 102), KeyPoint(400, 300), KeyPoint(320, 240)]
    keypoints = list(keypoints) + [KeyPoint(50 + i, 50) for i in range(n_extra)]
    depth = np.full((480, 640), 2.0)
    depth[300, 400] = 0.0
    frame = Frame(keypoints, depth, 0.0, K, bf=40.0)
    frame.set_pose(np.eye(4) if pose is None else pose)
    return frame


def make_kf(world_map=None, database=None, **kwargs):
    return KeyFrame(make_frame(**kwargs), world_map, database)


def pose_with(rotation_z=0.3, translation=(1.0, -2.0, 0.5)):
    c, s = np.cos(rotation_z), np.sin(rotation_z)
    pose = np.eye(4)
    pose[:3, :3] = [[c, -s, 0], [s, c, 0], [0, 0, 1]]
    pose[:3, 3] = translation
    return pose


def test_frame_without_pose_rejected():
    frame = Frame([KeyPoint(10, 10)], np.ones((480, 640)), 0.0, K)
    with pytest.raises(ValueError):
        KeyFrame(frame)


def test_pose_inverse_and_center():
    pose = pose_with()
    kf = make_kf(pose=pose)
    assert np.allclose(kf.pose_inverse() @ kf.pose(), np.eye(4))
    assert np.allclose(kf.camera_center(), -pose[:3, :3].T @ pose[:3, 3])
    assert np.allclose(kf.rotation(), pose[:3, :3])
    assert np.allclose(kf.translation(), pose[:3, 3])


def test_pose_returns_copy():
    kf = make_kf()
    kf.pose()[0, 3] = 99.0
    assert kf.pose()[0, 3] == 0.0


def test_stereo_center_identity():
    kf = make_kf()
    assert kf.stereo_center == pytest.approx([kf.mb / 2, 0.0, 0.0, 1.0])


def test_connections_ordered_by_weight():
    a, b, c, d, e = (make_kf() for _ in range(5))
    a.add_connection(b, 20)
    a.add_connection(c, 30)
    a.add_connection(d, 10)
    assert a.covisible_keyframes() == [c, b, d]
    assert a.best_covisibility_keyframes(2) == [c, b]
    assert a.best_covisibility_keyframes(10) == [c, b, d]
    assert a.connected_keyframes() == {b, c, d}
    assert a.weight(c) == 30
    assert a.weight(e) == 0


def test_covisibles_by_weight():
    a, b, c, d = (make_kf() for _ in range(4))
    a.add_connection(b, 20)
    a.add_connection(c, 30)
    a.add_connection(d, 10)
    assert a.covisibles_by_weight(15) == [c, b]
    assert a.covisibles_by_weight(5) == []


def test_erase_connection_reorders():
    a, b, c = (make_kf() for _ in range(3))
    a.add_connection(b, 20)
    a.add_connection(c, 30)
    a.erase_connection(c)
    assert a.covisible_keyframes() == [b]
    assert a.weight(c) == 0


def test_update_connections_links_and_parent():
    root = make_kf(n_extra=20)
    child = make_kf(n_extra=20)
    for i in range(20):
        point = FakePoint()
        point.obs = {root: i, child: i}
        root.add_map_point(point, i)
        child.add_map_point(point, i)
    child.update_connections()
    assert child.covisible_keyframes() == [root]
    assert child.weight(root) == 20
    assert root.weight(child) == 20
    assert child.parent() is root
    assert root.has_child(child)


def test_update_connections_below_threshold_keeps_best():
    root = make_kf()
    other = make_kf()
    kf = make_kf()
    for i in range(3):
        point = FakePoint()
        point.obs = {root: i, kf: i}
        kf.add_map_point(point, i)
    single = FakePoint()
    single.obs = {other: 0, kf: 3}
    kf.add_map_point(single, 3)
    kf.update_connections()
    assert kf.connected_keyframes() == {root, other}
    assert kf.covisible_keyframes() == [root]
    assert root.weight(kf) == 3
    assert other.weight(kf) == 0


def test_map_points_and_tracking_counts():
    kf = make_kf()
    good = FakePoint()
    good.obs = {kf: 0, object(): 1}
    bad = FakePoint(bad=True)
    single = FakePoint()
    single.obs = {kf: 2}
    kf.add_map_point(good, 0)
    kf.add_map_point(bad, 1)
    kf.add_map_point(single, 2)
    assert kf.map_points() == {good, single}
    assert kf.tracked_map_points(0) == 2
    assert kf.tracked_map_points(2) == 1
    assert kf.map_point(1) is bad


def test_erase_map_point_by_recorded_index():
    kf = make_kf()
    point = FakePoint()
    point.obs = {kf: 2}
    kf.add_map_point(point, 2)
    kf.erase_map_point(point)
    assert kf.map_point(2) is None
    other = FakePoint()
    kf.replace_map_point_match(1, other)
    kf.erase_map_point_match(1)
    assert kf.map_point_matches() == [None] * 4


def test_features_in_area():
    kf = make_kf()
    assert sorted(kf.features_in_area(100, 100, 10)) == [0, 1]
    assert kf.features_in_area(600, 20, 5) == []


def test_is_in_image():
    kf = make_kf()
    assert kf.is_in_image(0, 0)
    assert not kf.is_in_image(640, 100)
    assert not kf.is_in_image(10, -1)


def test_unproject_matches_frame():
    frame = make_frame(pose=pose_with())
    kf = KeyFrame(frame)
    assert np.allclose(kf.unproject_stereo(0), frame.unproject_stereo(0))
    assert np.allclose(kf.unproject_stereo(3), frame.unproject_stereo(3))
    assert kf.unproject_stereo(2) is None


def test_scene_median_depth():
    kf = make_kf()
    for index, z in enumerate((5.0, 1.0, 3.0)):
        kf.add_map_point(FakePoint((0.0, 0.0, z)), index)
    assert kf.compute_scene_median_depth(2) == pytest.approx(3.0)
    assert kf.compute_scene_median_depth(1) == pytest.approx(5.0)


def test_scene_median_depth_without_points():
    with pytest.raises(ValueError):
        make_kf().compute_scene_median_depth(2)


def test_set_bad_flag_reassigns_children():
    world_map, database = FakeMap(), FakeDatabase()
    root = make_kf()
    kf = make_kf(world_map=world_map, database=database)
    child = make_kf()
    kf.change_parent(root)
    child.change_parent(kf)
    child.add_connection(root, 25)
    root.add_connection(kf, 30)
    kf.add_connection(root, 30)
    point = FakePoint()
    point.obs = {kf: 0}
    kf.add_map_point(point, 0)

    kf.set_bad_flag()

    assert kf.is_bad()
    assert child.parent() is root
    assert root.has_child(child)
    assert not root.has_child(kf)
    assert root.weight(kf) == 0
    assert point.erased == [kf]
    assert world_map.erased == [kf]
    assert database.erased == [kf]
    assert np.allclose(kf.tcp, np.eye(4))


def test_set_bad_flag_unconnected_child_goes_to_parent():
    root = make_kf()
    kf = make_kf()
    child = make_kf()
    kf.change_parent(root)
    child.change_parent(kf)
    kf.set_bad_flag()
    assert child.parent() is root


def test_not_erase_defers_removal():
    root = make_kf()
    kf = make_kf()
    kf.change_parent(root)
    kf.set_not_erase()
    kf.set_bad_flag()
    assert not kf.is_bad()
    kf.set_erase()
    assert kf.is_bad()


def test_loop_edge_keeps_keyframe():
    root = make_kf()
    kf = make_kf()
    kf.change_parent(root)
    kf.add_loop_edge(root)
    kf.set_bad_flag()
    kf.set_erase()
    assert not kf.is_bad()
    assert kf.loop_edges() == {root}


def test_children_and_erase_child():
    a, b = make_kf(), make_kf()
    a.add_child(b)
    assert a.children() == {b}
    a.erase_child(b)
    assert not a.has_child(b)