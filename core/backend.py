"""
Boundary to the generative image/video service.

The service itself lives outside this package. What is defined here is the
hand-off (encoded image, optional two-tone mask of the same size, free-text
instructions), the shape of what comes back, and how failures are sorted into
quota-exceeded versus generic so the caller can start a cooldown.
The desktop app does not call a service itself; integrations supply a
``GenerativeBackend`` and go through ``submit``.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from PIL import Image

from core.io import ImageLoadError, encode_image, load_image_rgba, mime_type_for
from core.mask_color_key import DEFAULT_TOLERANCE, make_background_transparent

logger = logging.getLogger(__name__)

QUOTA_PREFIX = "QUOTA_EXCEEDED: "
QUOTA_MARKERS = ("quota", "RESOURCE_EXHAUSTED")
# Messages that are already user-facing and pass through unwrapped
PASSTHROUGH_PREFIXES = (
    "Request was blocked",
    "The model did not return",
    "Model returned text",
)
QUOTA_MESSAGE = (
    "You have exceeded your API quota. To prevent further errors, "
    "processing is disabled for {seconds} seconds."
)


class BackendError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def user_message(self) -> str:
        msg = self.message
        if msg.startswith(QUOTA_PREFIX):
            msg = msg[len(QUOTA_PREFIX):]
        return msg


class QuotaExceededError(BackendError):
    pass


class CooldownActiveError(BackendError):
    def __init__(self, remaining_seconds: int):
        super().__init__(f"Please wait {remaining_seconds} seconds before trying again.")
        self.remaining_seconds = remaining_seconds


def classify_backend_failure(exc: BaseException, cooldown_seconds: int = 60) -> BackendError:
    if isinstance(exc, BackendError):
        return exc
    msg = str(exc) or exc.__class__.__name__
    if msg.startswith(QUOTA_PREFIX) or any(m in msg for m in QUOTA_MARKERS):
        return QuotaExceededError(QUOTA_PREFIX + QUOTA_MESSAGE.format(seconds=cooldown_seconds))
    if msg.startswith(PASSTHROUGH_PREFIXES):
        return BackendError(msg)
    return BackendError(f"Backend error: {msg}")


@dataclass
class GenerationRequest:
    image_png: bytes
    instructions: str
    mask_png: Optional[bytes] = None
    system_instruction: Optional[str] = None
    mime_type: str = "image/png"


@dataclass
class GenerationResult:
    mime_type: str
    image: Optional[bytes] = None
    video: Optional[bytes] = None

    @property
    def is_video(self) -> bool:
        return self.video is not None


class GenerativeBackend(Protocol):
    def generate(self, request: GenerationRequest) -> GenerationResult:
        ...


def build_generation_request(
    image: Image.Image,
    instructions: str,
    mask: Optional[Image.Image] = None,
    system_instruction: Optional[str] = None,
) -> GenerationRequest:
    if mask is not None and mask.size != image.size:
        raise ValueError(f"mask size {mask.size} does not match image size {image.size}")
    return GenerationRequest(
        image_png=encode_image(image, "png"),
        instructions=instructions,
        mask_png=None if mask is None else encode_image(mask, "png"),
        system_instruction=system_instruction,
        mime_type=mime_type_for("png"),
    )


class QuotaCooldown:
    """Blocks new requests for a fixed window after a quota failure."""

    def __init__(self, seconds: int = 60, clock: Callable[[], float] = time.monotonic):
        self.seconds = int(seconds)
        self._clock = clock
        self._until: Optional[float] = None

    def start(self) -> None:
        self._until = self._clock() + self.seconds

    def remaining(self) -> int:
        if self._until is None:
            return 0
        left = self._until - self._clock()
        if left <= 0:
            self._until = None
            return 0
        return int(math.ceil(left))

    def active(self) -> bool:
        return self.remaining() > 0


def _remove_background(result: GenerationResult, tolerance: float) -> GenerationResult:
    try:
        img = load_image_rgba(result.image)
        out = make_background_transparent(img, tolerance)
        return GenerationResult(mime_type=mime_type_for("png"), image=encode_image(out, "png"))
    except (ImageLoadError, ValueError, OSError) as e:
        # Fall back to the unprocessed image
        logger.error("Client-side transparency processing failed: %s", e)
        return result


def submit(
    backend: GenerativeBackend,
    request: GenerationRequest,
    cooldown: Optional[QuotaCooldown] = None,
    remove_background: bool = False,
    tolerance: float = DEFAULT_TOLERANCE,
) -> GenerationResult:
    """
    One backend call, no retries. Quota failures start ``cooldown``.
    With ``remove_background`` an image result is chroma-keyed before it is returned.
    """
    if cooldown is not None and cooldown.active():
        raise CooldownActiveError(cooldown.remaining())

    try:
        result = backend.generate(request)
    except Exception as exc:
        err = classify_backend_failure(exc, cooldown.seconds if cooldown is not None else 60)
        if isinstance(err, QuotaExceededError) and cooldown is not None:
            cooldown.start()
        logger.error("backend request failed: %s", err.message)
        if err is exc:
            raise
        raise err from exc

    if result is None or (result.image is None and result.video is None):
        raise BackendError("The model did not return an image. Please try a different prompt.")

    if remove_background and result.image is not None:
        result = _remove_background(result, tolerance)
    return result


def decode_result_image(result: GenerationResult) -> Image.Image:
    if result.image is None:
        raise ValueError("result carries no image")
    return load_image_rgba(result.image)
