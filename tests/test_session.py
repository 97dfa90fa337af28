from __future__ import annotations

import asyncio
import io
import threading
import unittest

from PIL import Image

from leafcam.camera import CameraDeviceManager, StubMediaDevices
from leafcam.errors import CaptureNotReady, NetworkError, SessionBusy
from leafcam.models import EncodedImage, SessionState
from leafcam.session import MODE_UPLOAD, CaptureSession
from leafcloud.ai.mock import MockClassifier
from leafcloud.ai.types import Prediction, UNDEFINED_LABEL


class _GatedClassifier:
    """Blocks inside classify() until the test lets it finish."""

    def __init__(self, scores: dict[str, float], fail: bool = False) -> None:
        self.scores = scores
        self.fail = fail
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def classify(self, image: EncodedImage) -> dict[str, Prediction]:
        self.calls += 1
        self.started.set()
        self.release.wait(timeout=5.0)
        if self.fail:
            raise NetworkError("service unavailable")
        return {k: Prediction(label=k, confidence=v) for k, v in self.scores.items()}


class _GatedDevices(StubMediaDevices):
    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def open_stream(self, constraints):
        self.started.set()
        self.release.wait(timeout=5.0)
        return super().open_stream(constraints)


def _png_bytes() -> bytes:
    out = io.BytesIO()
    Image.new("RGB", (16, 16), (20, 120, 40)).save(out, format="PNG")
    return out.getvalue()


def _session(classifier=None, devices=None) -> tuple[CaptureSession, StubMediaDevices]:
    devices = devices or StubMediaDevices(placeholder_size=(32, 24))
    session = CaptureSession(CameraDeviceManager(devices), classifier or MockClassifier())
    return session, devices


class CaptureSessionTests(unittest.TestCase):
    def test_camera_capture_produces_result(self) -> None:
        session, _ = _session()

        async def scenario():
            await session.start_camera()
            self.assertIs(session.state, SessionState.CAMERA_READY)
            return await session.capture()

        result = asyncio.run(scenario())

        self.assertIsNotNone(result)
        self.assertEqual(result.label, "blighted")
        self.assertAlmostEqual(result.confidence, 0.81)
        self.assertIs(session.state, SessionState.RESULT_READY)
        self.assertIs(session.result, result)
        self.assertEqual(session.preview.mime_type, "image/jpeg")
        self.assertTrue(session.snapshot().has_frame)
        session.close()

    def test_low_confidence_reports_undefined(self) -> None:
        session, _ = _session(MockClassifier(scores={"healthy": 0.55, "blighted": 0.3}))

        async def scenario():
            await session.start_camera()
            return await session.capture()

        result = asyncio.run(scenario())

        self.assertTrue(result.is_undefined)
        self.assertEqual(result.label, UNDEFINED_LABEL)
        self.assertAlmostEqual(result.confidence, 0.55)
        session.close()

    def test_camera_failure_moves_to_error(self) -> None:
        session, devices = _session(devices=StubMediaDevices(fail_times=2))

        state = asyncio.run(session.start_camera())

        self.assertFalse(state.ready)
        self.assertIsNotNone(state.last_error)
        self.assertIs(session.state, SessionState.ERROR)
        self.assertEqual(session.last_error, state.last_error)
        self.assertEqual(len(devices.requests), 2)

    def test_capture_before_ready_leaves_state_unchanged(self) -> None:
        session, _ = _session()

        with self.assertRaises(CaptureNotReady):
            asyncio.run(session.capture())

        self.assertIs(session.state, SessionState.IDLE)
        self.assertIsNone(session.preview)
        self.assertFalse(session.snapshot().has_frame)
        self.assertIsNotNone(session.last_error)

    def test_network_failure_keeps_preview(self) -> None:
        session, _ = _session(MockClassifier(fail=True))

        async def scenario():
            await session.start_camera()
            return await session.capture()

        result = asyncio.run(scenario())

        self.assertIsNone(result)
        self.assertIs(session.state, SessionState.ERROR)
        self.assertEqual(session.snapshot().error_kind, "NetworkError")
        self.assertIsNotNone(session.preview)
        self.assertIsNone(session.result)
        session.clear()
        self.assertIs(session.state, SessionState.CAMERA_READY)
        session.close()

    def test_clear_during_classification_discards_result(self) -> None:
        classifier = _GatedClassifier({"blighted": 0.9})
        session, _ = _session(classifier)

        async def scenario():
            await session.start_camera()
            task = asyncio.create_task(session.capture())
            await asyncio.to_thread(classifier.started.wait, 5.0)
            self.assertIs(session.state, SessionState.CLASSIFYING)
            session.clear()
            classifier.release.set()
            return await task

        result = asyncio.run(scenario())

        self.assertIsNone(result)
        self.assertIs(session.state, SessionState.CAMERA_READY)
        self.assertIsNone(session.result)
        self.assertIsNone(session.preview)
        session.close()

    def test_stop_during_failed_classification_stays_idle(self) -> None:
        classifier = _GatedClassifier({}, fail=True)
        session, _ = _session(classifier)

        async def scenario():
            await session.start_camera()
            task = asyncio.create_task(session.capture())
            await asyncio.to_thread(classifier.started.wait, 5.0)
            session.stop_camera()
            classifier.release.set()
            return await task

        self.assertIsNone(asyncio.run(scenario()))
        self.assertIs(session.state, SessionState.IDLE)
        self.assertIsNone(session.last_error)

    def test_second_capture_while_classifying_is_busy(self) -> None:
        classifier = _GatedClassifier({"healthy": 0.7})
        session, _ = _session(classifier)

        async def scenario():
            await session.start_camera()
            task = asyncio.create_task(session.capture())
            await asyncio.to_thread(classifier.started.wait, 5.0)
            with self.assertRaises(SessionBusy):
                await session.capture()
            with self.assertRaises(SessionBusy):
                await session.select_file(_png_bytes(), filename="leaf.png")
            self.assertTrue(session.snapshot().busy)
            classifier.release.set()
            return await task

        result = asyncio.run(scenario())

        self.assertEqual(result.label, "healthy")
        self.assertEqual(classifier.calls, 1)
        session.close()

    def test_repeated_capture_cycles(self) -> None:
        session, _ = _session()

        async def scenario():
            await session.start_camera()
            first = await session.capture()
            second = await session.capture()
            return first, second

        first, second = asyncio.run(scenario())

        self.assertGreater(second.request_id, first.request_id)
        self.assertIs(session.result, second)
        session.close()

    def test_upload_path_without_camera(self) -> None:
        classifier = MockClassifier()
        session, _ = _session(classifier)

        result = asyncio.run(session.select_file(_png_bytes(), filename="leaf.png"))

        self.assertEqual(result.label, "blighted")
        self.assertEqual(session.snapshot().mode, MODE_UPLOAD)
        self.assertEqual(classifier.requests[0].mime_type, "image/png")
        self.assertIsNotNone(session.export_current_frame())
        session.clear()
        self.assertIs(session.state, SessionState.IDLE)
        self.assertIsNone(session.export_current_frame())

    def test_non_image_upload_still_sent(self) -> None:
        classifier = MockClassifier()
        session, _ = _session(classifier)

        asyncio.run(session.select_file(b"plain text", filename="notes.txt"))

        self.assertEqual(len(classifier.requests), 1)
        self.assertIs(session.state, SessionState.RESULT_READY)
        self.assertIsNone(session.export_current_frame())

    def test_empty_selection_is_ignored(self) -> None:
        session, _ = _session()
        self.assertIsNone(asyncio.run(session.select_file(b"")))
        self.assertIs(session.state, SessionState.IDLE)

    def test_stop_during_acquisition_releases_late_stream(self) -> None:
        devices = _GatedDevices()
        session, _ = _session(devices=devices)

        async def scenario():
            task = asyncio.create_task(session.start_camera())
            await asyncio.to_thread(devices.started.wait, 5.0)
            self.assertIs(session.state, SessionState.ACQUIRING_CAMERA)
            session.stop_camera()
            devices.release.set()
            await task

        asyncio.run(scenario())

        self.assertIs(session.state, SessionState.IDLE)
        self.assertFalse(session.camera_state.ready)
        self.assertTrue(devices.streams[0].stopped)

    def test_stop_camera_is_always_safe(self) -> None:
        session, devices = _session()
        session.stop_camera()

        async def scenario():
            await session.start_camera()
            await session.capture()

        asyncio.run(scenario())
        session.stop_camera()
        session.stop_camera()

        self.assertIs(session.state, SessionState.IDLE)
        self.assertTrue(devices.streams[0].stopped)
        self.assertIsNone(session.result)
        self.assertFalse(session.snapshot().has_frame)

    def test_close_releases_camera_outside_event_loop(self) -> None:
        session, devices = _session()
        asyncio.run(session.start_camera())

        self.assertIsNone(session.close())

        self.assertTrue(devices.streams[0].stopped)
        self.assertFalse(session.camera_state.ready)
        self.assertIs(session.state, SessionState.IDLE)

    def test_export_requires_content(self) -> None:
        session, _ = _session()
        self.assertIsNone(session.export_current_frame())

        async def scenario():
            await session.start_camera()
            await session.capture()

        asyncio.run(scenario())
        exported = session.export_current_frame()
        self.assertEqual(exported.mime_type, "image/jpeg")
        self.assertGreater(exported.size, 0)
        session.close()


if __name__ == "__main__":
    unittest.main()
