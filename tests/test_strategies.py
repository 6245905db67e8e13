import logging
import threading
from unittest.mock import MagicMock

import numpy as np
import pytest

from ar_pipeline.errors import FrameCodecError
from ar_pipeline.strategies.frame_codec import JpegFrameCodec, PngFrameCodec
from ar_pipeline.strategies.multicast import RefCountedMulticast
from ar_pipeline.strategies.notifier import LoggingNotifier, NullNotifier, QueuedNotifier


def test_multicast_enables_once_and_disables_after_last_release():
    enable, disable = MagicMock(), MagicMock()
    mc = RefCountedMulticast(on_enable=enable, on_disable=disable)

    for _ in range(3):
        mc.acquire()
    assert mc.count == 3
    enable.assert_called_once()

    mc.release()
    mc.release()
    disable.assert_not_called()
    mc.release()
    disable.assert_called_once()
    assert not mc.held


def test_multicast_extra_release_is_ignored():
    disable = MagicMock()
    mc = RefCountedMulticast(on_disable=disable)
    mc.release()
    assert mc.count == 0
    mc.acquire()
    mc.release()
    mc.release()
    assert mc.count == 0
    disable.assert_called_once()


def test_multicast_scope_releases_on_exception():
    mc = RefCountedMulticast()
    with pytest.raises(RuntimeError):
        with mc.scoped():
            assert mc.held
            raise RuntimeError("boom")
    assert mc.count == 0


def test_multicast_failed_enable_rolls_back():
    mc = RefCountedMulticast(on_enable=MagicMock(side_effect=OSError("denied")))
    with pytest.raises(OSError):
        mc.acquire()
    assert mc.count == 0


def test_logging_notifier_levels(caplog):
    log = logging.getLogger("test.notifier")
    notifier = LoggingNotifier(log)
    with caplog.at_level(logging.INFO, logger="test.notifier"):
        notifier.notify("Camera calibrated")
        notifier.notify("Vision engine failed to load", urgent=True)
    levels = [r.levelno for r in caplog.records]
    assert levels == [logging.INFO, logging.WARNING]


def test_queued_notifier_drains_in_order_and_counts_drops():
    notifier = QueuedNotifier(maxsize=2)
    notifier.notify("a")
    notifier.notify("b", urgent=True)
    notifier.notify("c")
    assert notifier.dropped == 1

    seen = []
    assert notifier.drain(lambda msg, urgent: seen.append((msg, urgent))) == 2
    assert seen == [("a", False), ("b", True)]
    assert notifier.pending() == 0


def test_null_notifier_accepts_anything():
    NullNotifier().notify("ignored", urgent=True)


def _gradient():
    img = np.zeros((24, 32, 3), dtype=np.uint8)
    img[:, :, 0] = np.arange(32, dtype=np.uint8)[None, :] * 8
    img[:, :, 2] = 200
    return img


def test_png_codec_is_lossless():
    codec = PngFrameCodec()
    img = _gradient()
    data = codec.encode(img)
    assert data.startswith(b"\x89PNG")
    assert np.array_equal(codec.decode(data), img)


def test_jpeg_codec_keeps_shape():
    codec = JpegFrameCodec(quality=90)
    img = _gradient()
    data = codec.encode(img)
    assert data[:2] == b"\xff\xd8"
    decoded = codec.decode(data)
    assert decoded.shape == img.shape
    assert codec.extension == "jpg"


@pytest.mark.parametrize("codec", [JpegFrameCodec(), PngFrameCodec()])
def test_codec_rejects_bad_input(codec):
    with pytest.raises(FrameCodecError):
        codec.decode(b"")
    with pytest.raises(FrameCodecError):
        codec.decode(b"not an image")


def test_jpeg_quality_range():
    with pytest.raises(ValueError):
        JpegFrameCodec(quality=101)


def test_queued_notifier_counts_drops_across_threads():
    notifier = QueuedNotifier(maxsize=1)

    def produce():
        for _ in range(500):
            notifier.notify("spam")

    workers = [threading.Thread(target=produce) for _ in range(4)]
    for t in workers:
        t.start()
    for t in workers:
        t.join()

    assert notifier.pending() == 1
    assert notifier.dropped == 4 * 500 - 1
