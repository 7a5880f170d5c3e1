"""Tests for the live recognition loop controller."""

import threading
import time

import pytest

from recognition_platform.errors import AlreadyRunning, ModelsNotLoaded
from recognition_platform.recognition.controller import RecognitionController
from recognition_platform.recognition.types import (
    UNKNOWN_NAME,
    ControllerState,
    Detection,
    Region,
)
from tests.fakes import FakeEmbedder, FakeFrameSource, face, identity, make_config

ALICE = identity('Alice', 0, 0, 0, 0)
BOB = identity('Bob', 1, 1, 1, 1)
REGION = Region(10, 20, 100, 120)


class Harness:
    """Controller wired to fakes, with the published lists recorded."""

    def __init__(self, **config_overrides):
        self.frames = FakeFrameSource()
        self.embedder = FakeEmbedder()
        self.published = []
        self.controller = RecognitionController(
            self.frames,
            self.embedder,
            make_config(**config_overrides),
            sink=self.published.append,
        )
        self.controller.set_known_identities([ALICE, BOB])


@pytest.fixture
def harness():
    h = Harness()
    yield h
    h.controller.shutdown()


def _recognition_threads():
    return [t for t in threading.enumerate() if t.name.startswith('Recognition-') and t.is_alive()]


class TestStartStop:
    """State transitions."""

    def test_initial_state_is_idle(self, harness):
        assert harness.controller.state is ControllerState.IDLE
        assert harness.controller.detections == ()

    def test_start_enters_sampling(self, harness):
        harness.controller.start()
        assert harness.controller.state is ControllerState.SAMPLING
        assert harness.controller.is_running

    def test_start_without_models_fails_and_schedules_nothing(self, harness):
        harness.embedder.ready = False
        before = len(_recognition_threads())

        with pytest.raises(ModelsNotLoaded):
            harness.controller.start()

        assert harness.controller.state is ControllerState.IDLE
        assert len(_recognition_threads()) == before

    def test_start_can_be_retried_once_models_load(self, harness):
        harness.embedder.ready = False
        with pytest.raises(ModelsNotLoaded):
            harness.controller.start()

        harness.embedder.ready = True
        harness.controller.start()
        assert harness.controller.is_running

    def test_second_start_raises_and_keeps_one_timer(self, harness):
        before = len(_recognition_threads())
        harness.controller.start()

        with pytest.raises(AlreadyRunning):
            harness.controller.start()

        assert len(_recognition_threads()) == before + 1

    def test_stop_clears_detections_immediately(self, harness):
        harness.embedder.faces = [face(0.3, 0, 0, 0)]
        harness.controller.start()
        assert harness.controller.tick()
        assert len(harness.controller.detections) == 1

        harness.controller.stop()

        assert harness.controller.state is ControllerState.IDLE
        assert harness.controller.detections == ()
        assert harness.published[-1] == ()

    def test_stop_when_idle_is_noop(self, harness):
        harness.controller.stop()
        assert harness.controller.state is ControllerState.IDLE
        assert harness.published == []

    def test_tick_while_idle_does_nothing(self, harness):
        assert harness.controller.tick() is False
        assert harness.embedder.calls == 0


class TestTick:
    """Sampling, matching and publishing."""

    def test_recognizes_known_face(self, harness):
        harness.embedder.faces = [face(0.3, 0, 0, 0, region=REGION)]
        harness.controller.start()

        assert harness.controller.tick() is True

        (detection,) = harness.controller.detections
        assert detection.name == 'Alice'
        assert detection.confidence == pytest.approx(0.7)
        assert detection.region == REGION
        assert harness.published[-1] == harness.controller.detections

    def test_best_match_wins_per_face(self, harness):
        harness.embedder.faces = [face(0.1, 0, 0, 0), face(0.9, 1, 1, 1)]
        harness.controller.start()
        harness.controller.tick()

        names = [d.name for d in harness.controller.detections]
        assert names == ['Alice', 'Bob']

    def test_sub_threshold_faces_are_dropped(self, harness):
        harness.embedder.faces = [face(0.5, 0, 0, 0), face(0.3, 0, 0, 0)]
        harness.controller.start()
        harness.controller.tick()

        assert [d.name for d in harness.controller.detections] == ['Alice']
        assert all(d.confidence > 0.6 for d in harness.controller.detections)

    def test_sub_threshold_faces_reported_as_unknown_when_enabled(self):
        h = Harness(report_unknown_faces=True)
        h.embedder.faces = [face(0.5, 0, 0, 0)]
        h.controller.start()
        try:
            h.controller.tick()
            (detection,) = h.controller.detections
            assert detection.name == UNKNOWN_NAME
            assert detection.confidence == pytest.approx(0.5)
            assert not detection.is_known
        finally:
            h.controller.shutdown()

    def test_list_is_replaced_not_merged(self, harness):
        harness.embedder.faces = [face(0.1, 0, 0, 0), face(0.9, 1, 1, 1)]
        harness.controller.start()
        harness.controller.tick()
        assert len(harness.controller.detections) == 2

        harness.embedder.faces = [face(0.9, 1, 1, 1)]
        harness.controller.tick()

        assert [d.name for d in harness.controller.detections] == ['Bob']

    def test_empty_known_set_keeps_previous_list(self, harness):
        harness.embedder.faces = [face(0.3, 0, 0, 0)]
        harness.controller.start()
        harness.controller.tick()
        previous = harness.controller.detections

        harness.controller.set_known_identities([])
        assert harness.controller.tick() is False

        assert harness.controller.detections == previous

    def test_empty_known_set_does_not_raise_on_first_tick(self, harness):
        harness.controller.set_known_identities([])
        harness.controller.start()

        assert harness.controller.tick() is False
        assert harness.controller.detections == ()
        assert harness.embedder.calls == 0

    def test_missing_frame_keeps_previous_list(self, harness):
        harness.embedder.faces = [face(0.3, 0, 0, 0)]
        harness.controller.start()
        harness.controller.tick()
        previous = harness.controller.detections

        harness.frames.frame = None
        assert harness.controller.tick() is False
        assert harness.controller.detections == previous

    def test_models_unloaded_mid_session_keeps_previous_list(self, harness):
        harness.embedder.faces = [face(0.3, 0, 0, 0)]
        harness.controller.start()
        harness.controller.tick()
        previous = harness.controller.detections

        harness.embedder.ready = False
        assert harness.controller.tick() is False
        assert harness.controller.detections == previous

    def test_detection_failure_publishes_empty_list(self, harness):
        harness.embedder.faces = [face(0.3, 0, 0, 0)]
        harness.controller.start()
        harness.controller.tick()

        harness.embedder.error = RuntimeError('bad frame')
        assert harness.controller.tick() is True
        assert harness.controller.detections == ()
        assert harness.controller.is_running

    def test_detection_timeout_publishes_empty_and_skips_overlap(self):
        h = Harness(detection_timeout_seconds=0.05)
        h.embedder.faces = [face(0.3, 0, 0, 0)]
        h.embedder.gate = threading.Event()
        h.controller.start()
        try:
            assert h.controller.tick() is True
            assert h.controller.detections == ()

            # Previous detection call is still running
            assert h.controller.tick() is False
            assert h.embedder.calls == 1
        finally:
            h.embedder.gate.set()
            h.controller.shutdown()

    def test_wrong_dimension_face_is_skipped(self, harness):
        harness.embedder.faces = [face(0.3, 0, 0), face(0.3, 0, 0, 0)]
        harness.controller.start()
        harness.controller.tick()

        assert [d.name for d in harness.controller.detections] == ['Alice']

    def test_mixed_length_snapshot_still_recognizes(self, harness):
        harness.controller.set_known_identities([ALICE, identity('Short', 0, 0, 0)])
        harness.embedder.faces = [face(0.3, 0, 0, 0)]
        harness.controller.start()
        harness.controller.tick()

        assert harness.controller.known_identities == (ALICE,)
        assert [d.name for d in harness.controller.detections] == ['Alice']

    def test_published_list_is_immutable(self, harness):
        harness.embedder.faces = [face(0.3, 0, 0, 0)]
        harness.controller.start()
        harness.controller.tick()

        assert isinstance(harness.controller.detections, tuple)
        assert isinstance(harness.controller.detections[0], Detection)

    def test_sink_failure_does_not_break_tick(self):
        def broken_sink(detections):
            raise RuntimeError('sink down')

        controller = RecognitionController(
            FakeFrameSource(), FakeEmbedder([face(0.3, 0, 0, 0)]), make_config(), sink=broken_sink
        )
        controller.set_known_identities([ALICE])
        controller.start()
        try:
            assert controller.tick() is True
            assert controller.detections[0].name == 'Alice'
        finally:
            controller.shutdown()


class TestConcurrency:
    """Stop races and periodic scheduling."""

    def test_tick_finishing_after_stop_is_discarded(self, harness):
        harness.embedder.faces = [face(0.3, 0, 0, 0)]
        harness.embedder.gate = threading.Event()
        harness.controller.start()

        results = []
        worker = threading.Thread(target=lambda: results.append(harness.controller.tick()))
        worker.start()
        assert harness.embedder.entered.wait(2)

        harness.controller.stop()
        assert harness.controller.detections == ()

        harness.embedder.gate.set()
        worker.join(2)

        assert results == [False]
        assert harness.controller.detections == ()
        assert harness.published[-1] == ()

    def test_restart_after_stop_ignores_old_tick(self, harness):
        harness.embedder.faces = [face(0.3, 0, 0, 0)]
        harness.embedder.gate = threading.Event()
        harness.controller.start()

        worker = threading.Thread(target=harness.controller.tick)
        worker.start()
        assert harness.embedder.entered.wait(2)

        harness.controller.stop()
        harness.controller.start()
        harness.embedder.gate.set()
        worker.join(2)

        assert harness.controller.detections == ()

    @pytest.mark.slow
    def test_periodic_ticks_once_per_interval(self):
        h = Harness(sampling_interval_seconds=0.05)
        h.embedder.faces = [face(0.3, 0, 0, 0)]
        h.controller.start()
        with pytest.raises(AlreadyRunning):
            h.controller.start()

        time.sleep(0.5)
        h.controller.shutdown()

        # ~10 intervals; a duplicate timer would give ~20
        assert 3 <= h.embedder.calls <= 12
        assert h.controller.detections == ()


class TestKnownSnapshot:
    """Snapshot replacement and reload."""

    def test_refresh_replaces_snapshot(self):
        loader_calls = []

        def loader():
            loader_calls.append(1)
            return [BOB]

        controller = RecognitionController(
            FakeFrameSource(), FakeEmbedder(), make_config(), known_loader=loader
        )
        controller.set_known_identities([ALICE])

        assert controller.refresh_known_identities() is True
        assert controller.known_identities == (BOB,)
        assert loader_calls == [1]

    def test_refresh_failure_keeps_previous_snapshot(self):
        def loader():
            raise RuntimeError('backend down')

        controller = RecognitionController(
            FakeFrameSource(), FakeEmbedder(), make_config(), known_loader=loader
        )
        controller.set_known_identities([ALICE])

        assert controller.refresh_known_identities() is False
        assert controller.known_identities == (ALICE,)

    def test_refresh_without_loader(self, harness):
        assert harness.controller.refresh_known_identities() is False
        assert harness.controller.known_identities == (ALICE, BOB)

    def test_older_load_finishing_last_is_discarded(self):
        release_first = threading.Event()
        first_entered = threading.Event()
        results = iter([[ALICE], [ALICE, BOB]])

        def loader():
            snapshot = next(results)
            if len(snapshot) == 1:
                first_entered.set()
                release_first.wait(5)
            return snapshot

        controller = RecognitionController(
            FakeFrameSource(), FakeEmbedder(), make_config(), known_loader=loader
        )
        outcome = []
        slow = threading.Thread(target=lambda: outcome.append(controller.refresh_known_identities()))
        slow.start()
        assert first_entered.wait(2)

        assert controller.refresh_known_identities() is True
        release_first.set()
        slow.join(2)

        assert outcome == [False]
        assert controller.known_identities == (ALICE, BOB)

    def test_periodic_reload_runs_off_the_sampling_thread(self):
        release = threading.Event()
        loader_threads = []

        def loader():
            loader_threads.append(threading.current_thread().name)
            release.wait(5)
            return [BOB]

        controller = RecognitionController(
            FakeFrameSource(), FakeEmbedder(), make_config(reload_known_interval=1),
            known_loader=loader
        )
        try:
            reload_thread = controller._maybe_reload_known()
            assert reload_thread is not None
            # a reload already in flight is not started twice
            assert controller._maybe_reload_known() is None

            release.set()
            reload_thread.join(2)
        finally:
            release.set()

        assert loader_threads == ['KnownReload-test-cam']
        assert controller.known_identities == (BOB,)
