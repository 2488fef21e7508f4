from __future__ import annotations

import unittest

import numpy as np
from PIL import Image

from core.backend import (
    BackendError,
    CooldownActiveError,
    GenerationRequest,
    GenerationResult,
    QuotaCooldown,
    QuotaExceededError,
    build_generation_request,
    classify_backend_failure,
    decode_result_image,
    submit,
)
from core.io import encode_image


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _FakeBackend:
    def __init__(self, result=None, error=None) -> None:
        self.result = result
        self.error = error
        self.calls = 0

    def generate(self, request: GenerationRequest) -> GenerationResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def _request() -> GenerationRequest:
    return build_generation_request(Image.new("RGBA", (4, 4)), "make it pop")


class ClassifyTests(unittest.TestCase):
    def test_quota_messages(self) -> None:
        for msg in ("quota exceeded for project", "429 RESOURCE_EXHAUSTED"):
            err = classify_backend_failure(RuntimeError(msg))
            self.assertIsInstance(err, QuotaExceededError)
            self.assertFalse(err.user_message.startswith("QUOTA_EXCEEDED"))
            self.assertIn("60 seconds", err.user_message)

    def test_known_messages_pass_through(self) -> None:
        err = classify_backend_failure(RuntimeError("Request was blocked due to SAFETY."))
        self.assertNotIsInstance(err, QuotaExceededError)
        self.assertEqual(err.user_message, "Request was blocked due to SAFETY.")

    def test_unknown_messages_are_wrapped(self) -> None:
        err = classify_backend_failure(RuntimeError("boom"))
        self.assertEqual(err.user_message, "Backend error: boom")

    def test_backend_errors_are_returned_as_is(self) -> None:
        original = BackendError("already sorted")
        self.assertIs(classify_backend_failure(original), original)


class CooldownTests(unittest.TestCase):
    def test_window(self) -> None:
        clock = _FakeClock()
        cd = QuotaCooldown(60, clock=clock)
        self.assertFalse(cd.active())
        cd.start()
        self.assertEqual(cd.remaining(), 60)
        clock.now = 59.5
        self.assertEqual(cd.remaining(), 1)
        clock.now = 60.0
        self.assertFalse(cd.active())
        self.assertEqual(cd.remaining(), 0)


class SubmitTests(unittest.TestCase):
    def test_quota_failure_starts_cooldown(self) -> None:
        clock = _FakeClock()
        cd = QuotaCooldown(60, clock=clock)
        backend = _FakeBackend(error=RuntimeError("quota"))

        with self.assertRaises(QuotaExceededError):
            submit(backend, _request(), cooldown=cd)
        self.assertTrue(cd.active())

        with self.assertRaises(CooldownActiveError) as ctx:
            submit(backend, _request(), cooldown=cd)
        self.assertEqual(ctx.exception.remaining_seconds, 60)
        self.assertEqual(backend.calls, 1)

        clock.now = 61
        backend.error = None
        backend.result = GenerationResult(mime_type="image/png", image=encode_image(Image.new("RGBA", (2, 2))))
        self.assertIsNotNone(submit(backend, _request(), cooldown=cd).image)

    def test_generic_failure_does_not_start_cooldown(self) -> None:
        cd = QuotaCooldown(60, clock=_FakeClock())
        with self.assertRaises(BackendError) as ctx:
            submit(_FakeBackend(error=RuntimeError("timeout")), _request(), cooldown=cd)
        self.assertEqual(ctx.exception.user_message, "Backend error: timeout")
        self.assertFalse(cd.active())

    def test_empty_result_is_an_error(self) -> None:
        with self.assertRaises(BackendError):
            submit(_FakeBackend(result=GenerationResult(mime_type="image/png")), _request())

    def test_video_result(self) -> None:
        res = submit(_FakeBackend(result=GenerationResult(mime_type="video/mp4", video=b"\x00\x01")), _request())
        self.assertTrue(res.is_video)

    def test_remove_background_post_processing(self) -> None:
        arr = np.zeros((4, 4, 4), dtype=np.uint8)
        arr[...] = (10, 10, 10, 255)
        arr[1:3, 1:3] = (200, 50, 50, 255)
        raw = GenerationResult(mime_type="image/png", image=encode_image(Image.fromarray(arr)))
        res = submit(_FakeBackend(result=raw), _request(), remove_background=True, tolerance=30)
        img = decode_result_image(res)
        self.assertEqual(img.getpixel((0, 0))[3], 0)
        self.assertEqual(img.getpixel((1, 1))[3], 255)

    def test_remove_background_failure_falls_back(self) -> None:
        raw = GenerationResult(mime_type="image/png", image=b"garbage")
        res = submit(_FakeBackend(result=raw), _request(), remove_background=True)
        self.assertIs(res, raw)


class RequestTests(unittest.TestCase):
    def test_mask_must_match_image(self) -> None:
        img = Image.new("RGBA", (4, 4))
        with self.assertRaises(ValueError):
            build_generation_request(img, "x", mask=Image.new("RGBA", (3, 4)))
        req = build_generation_request(img, "x", mask=Image.new("RGBA", (4, 4)), system_instruction="sys")
        self.assertTrue(req.image_png.startswith(b"\x89PNG"))
        self.assertTrue(req.mask_png.startswith(b"\x89PNG"))
        self.assertEqual(req.system_instruction, "sys")
        self.assertEqual(req.mime_type, "image/png")


if __name__ == "__main__":
    unittest.main()
