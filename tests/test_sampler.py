"""
Tests for calibrig.sampler.
"""

import cv2
import numpy as np
import pytest

from calibrig.errors import DecodeError, InsufficientFramesError
from calibrig.sampler import OpenCVVideo, SlotCursor, open_video, sample_video

from conftest import FakeVideo, make_frame


class CountingConsumer:
    """Accepts frames for which ``accept(position)`` is true."""

    def __init__(self, video, accept=lambda position: True):
        self.video = video
        self.accept = accept
        self.positions = []

    def __call__(self, frame):
        position = self.video.reads[-1]
        self.positions.append(position)
        return self.accept(position)


class TestSlotCursor:
    def test_position_follows_slot_and_attempts(self):
        cursor = SlotCursor(target=4, stride=10, skip=5, max_bad_attempts=2)
        assert cursor.position == 0

        cursor.reject()
        assert cursor.position == 5
        cursor.accept()
        assert (cursor.step, cursor.bad_attempt, cursor.position) == (1, 0, 10)

    def test_slot_abandoned_after_max_bad_attempts(self):
        cursor = SlotCursor(target=2, stride=10, skip=5, max_bad_attempts=2)

        assert cursor.reject() is True
        assert cursor.reject() is True
        assert cursor.reject() is False
        assert (cursor.step, cursor.bad_attempt, cursor.filled) == (1, 0, 0)

    def test_done(self):
        cursor = SlotCursor(target=1, stride=10, skip=5, max_bad_attempts=0)
        assert not cursor.done
        cursor.reject()
        assert cursor.done


class TestSampleVideo:
    def test_all_frames_good(self):
        video = FakeVideo(100, default=make_frame(32, 24))
        consumer = CountingConsumer(video)

        report = sample_video(video, consumer, target=25, skip=5, max_bad_attempts=5)

        assert report.attempted == 25
        assert report.filled == 25
        assert report.frame_attempts == 25
        assert consumer.positions == [4 * i for i in range(25)]

    def test_insufficient_frames_rejected_before_any_read(self):
        video = FakeVideo(10, default=make_frame(32, 24))

        with pytest.raises(InsufficientFramesError) as excinfo:
            sample_video(video, lambda frame: True, target=25)

        assert video.reads == []
        assert excinfo.value.frame_count == 10
        assert excinfo.value.target == 25

    def test_exactly_target_frames_is_enough(self):
        video = FakeVideo(25, default=make_frame(32, 24))
        report = sample_video(video, lambda frame: True, target=25)
        assert report.filled == 25

    def test_bad_frames_shift_probe_within_slot(self):
        video = FakeVideo(250, default=make_frame(32, 24))
        # Slot 0 starts at frame 0; frames 0 and 5 are bad, 10 is good
        consumer = CountingConsumer(video, accept=lambda p: p not in (0, 5))

        report = sample_video(video, consumer, target=25, skip=5, max_bad_attempts=5)

        assert consumer.positions[:4] == [0, 5, 10, 10]
        assert report.filled == 25

    def test_never_accepting_is_bounded(self):
        video = FakeVideo(1000, default=make_frame(32, 24))
        consumer = CountingConsumer(video, accept=lambda p: False)

        report = sample_video(video, consumer, target=25, skip=5, max_bad_attempts=5)

        assert report.filled == 0
        assert report.attempted == 25
        assert report.frame_attempts == 25 * (5 + 1)

    @pytest.mark.parametrize("target,max_bad", [(1, 0), (3, 2), (10, 4), (25, 5)])
    def test_attempt_bound_holds(self, target, max_bad):
        rng = np.random.default_rng(target * 7 + max_bad)
        verdicts = rng.random(10_000) < 0.3
        video = FakeVideo(500, default=make_frame(32, 24))
        consumer = CountingConsumer(video, accept=lambda p: bool(verdicts[p]))

        report = sample_video(video, consumer, target=target, skip=3, max_bad_attempts=max_bad)

        assert report.frame_attempts <= target * (max_bad + 1)
        assert report.filled <= target

    def test_slots_attempted_in_temporal_order(self):
        video = FakeVideo(300, default=make_frame(32, 24))
        consumer = CountingConsumer(video, accept=lambda p: p % 2 == 1)

        sample_video(video, consumer, target=10, skip=3, max_bad_attempts=3)

        assert consumer.positions == sorted(consumer.positions)

    def test_empty_decode_retried_without_bad_attempt(self):
        frame = make_frame(32, 24)

        class FlakyVideo(FakeVideo):
            def read_at(self, position):
                self.reads.append(position)
                # First read of every position fails
                if self.reads.count(position) == 1:
                    return None
                return frame.copy()

        video = FlakyVideo(50)
        consumer = CountingConsumer(video)

        report = sample_video(video, consumer, target=5, skip=5, max_bad_attempts=2)

        assert report.filled == 5
        assert report.frame_attempts == 5
        assert report.empty_reads == 5
        assert consumer.positions == [0, 10, 20, 30, 40]

    def test_undecodable_position_eventually_counts_as_bad(self):
        video = FakeVideo(20, frames={p: make_frame(32, 24) for p in range(2, 20)})

        report = sample_video(
            video, lambda f: True, target=2, skip=2, max_bad_attempts=3, max_empty_reads=4
        )

        # Slot 0: frame 0 never decodes, 4 empty reads, then frame 2 is used
        assert video.reads[:5] == [0, 0, 0, 0, 2]
        assert report.filled == 2
        assert report.empty_reads == 4

    def test_position_past_end_does_not_hang(self):
        video = FakeVideo(25, frames={p: make_frame(32, 24) for p in range(25)})
        # Every frame is rejected, so probes run past the last frame
        report = sample_video(
            video, lambda f: False, target=25, skip=5, max_bad_attempts=5, max_empty_reads=2
        )
        assert report.filled == 0


def write_avi(path, frame_count, size=(64, 48)):
    """MJPG avi whose frame i is uniformly filled with 2 * i."""
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), 25.0, size)
    if not writer.isOpened():
        pytest.skip("OpenCV build cannot write MJPG avi files")
    for i in range(frame_count):
        writer.write(np.full((size[1], size[0], 3), 2 * i, dtype=np.uint8))
    writer.release()
    return path


class TestOpenCVVideo:
    def test_frame_count_and_seek(self, temp_dir):
        path = write_avi(temp_dir / "clip.avi", 30)

        with open_video(path) as video:
            assert video.frame_count == 30
            frame = video.read_at(20)
            assert frame.shape == (48, 64, 3)
            assert abs(float(frame.mean()) - 40.0) < 3.0
            frame = video.read_at(5)
            assert abs(float(frame.mean()) - 10.0) < 3.0

    def test_read_past_end_is_empty(self, temp_dir):
        path = write_avi(temp_dir / "clip.avi", 10)

        with open_video(path) as video:
            assert video.read_at(500) is None

    def test_context_manager_opens_and_releases(self, temp_dir):
        path = write_avi(temp_dir / "clip.avi", 5)
        video = OpenCVVideo(path)

        with video:
            assert video.capture is not None
            assert video.frame_count == 5
        assert video.capture is None

    def test_read_on_closed_video(self, temp_dir):
        path = write_avi(temp_dir / "clip.avi", 5)
        video = open_video(path)
        video.close()

        with pytest.raises(DecodeError):
            video.read_at(0)

    def test_not_a_video(self, temp_dir):
        path = temp_dir / "clip.mp4"
        path.write_text("this is not a video")

        with pytest.raises(DecodeError):
            open_video(path)

    def test_sample_real_file(self, temp_dir):
        path = write_avi(temp_dir / "clip.avi", 100)
        frames = []

        def process(frame):
            frames.append(frame)
            return True

        with open_video(path) as video:
            report = sample_video(video, process, target=25, skip=5, max_bad_attempts=5)

        assert report.filled == 25
        assert report.empty_reads == 0
        # Slot k starts at frame 4 * k
        means = [float(frame.mean()) for frame in frames]
        assert means == pytest.approx([8.0 * k for k in range(25)], abs=3.0)
