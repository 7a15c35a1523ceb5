"""Ingredient recognition from photos using the Gemini vision API.

Turns uploaded images into lists of ``IngredientObservation`` (name +
confidence). Each image is analyzed by its own Gemini call; calls for one
request run in parallel and any failure fails the whole analysis.

Core Functions:
- fetch_image_bytes(): Get image bytes from URL, data URL or bytes (async)
- validate_image_format(): JPEG/PNG/WEBP only
- validate_image_size(): MAX_IMAGE_SIZE_MB limit
- compress_image(): Downscale and re-encode large photos with Pillow
- parse_vision_response(): Lenient JSON array parsing + schema validation
- extract_ingredients_from_image(): Single Gemini call (async)
- extract_ingredients_with_retries(): Exponential backoff for transient failures (async)
- analyze_images(): Full pipeline for a batch of images (async)
"""

import asyncio
import base64
import json
import re
from io import BytesIO
from typing import Optional, Sequence

import aiohttp
import filetype
import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from PIL import Image
from pydantic import TypeAdapter, ValidationError

from supomeshi.models.models import IngredientObservation
from supomeshi.prompts.prompts import VISION_PROMPT
from supomeshi.utils.config import config
from supomeshi.utils.errors import InvalidRequestError, UpstreamCallError, UpstreamParseError
from supomeshi.utils.logger import logger

SUPPORTED_EXTENSIONS = ("jpg", "jpeg", "png", "webp")
TRANSIENT_STATUS_CODES = (408, 429)
TRANSIENT_NETWORK_ERRORS = (
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    aiohttp.ClientConnectionError,
    httpx.TransportError,
)

_observations_adapter = TypeAdapter(list[IngredientObservation])


# ============================================================================
# Error Handling Helpers
# ============================================================================


def _log_error(operation_name: str, exception: Exception, log_level: str = "warning") -> None:
    """Log error with appropriate level."""
    msg = f"{operation_name}: {exception}"
    if log_level == "debug":
        logger.debug(msg)
    elif log_level == "error":
        logger.error(msg)
    else:
        logger.warning(msg)


def safe_execute_sync(
    func,
    operation_name: str,
    log_level: str = "warning",
    default_return=None,
):
    """Run an optional step, logging and returning ``default_return`` on failure.

    Used where a failure should degrade gracefully (compression, decoding),
    never for the Gemini call itself.
    """
    try:
        return func()
    except Exception as e:
        _log_error(operation_name, e, log_level)
        return default_return


def _is_transient(error: BaseException) -> bool:
    """Network errors, timeouts, rate limits (429) and 5xx responses are worth retrying."""
    if isinstance(error, genai_errors.ServerError):
        return True
    if isinstance(error, genai_errors.APIError):
        return error.code in TRANSIENT_STATUS_CODES
    return isinstance(error, TRANSIENT_NETWORK_ERRORS)


# ============================================================================
# Image loading and validation
# ============================================================================


async def fetch_image_bytes(image_source: str | bytes) -> Optional[bytes]:
    """Fetch image bytes from URL or return directly if bytes.

    Handles:
    - Direct bytes: Returned as-is
    - Data URLs (data:image/jpeg;base64,...): Decoded from base64
    - HTTP/HTTPS URLs: Fetched asynchronously (10s timeout)

    Returns:
        Image bytes, or None on any failure (logged as warning).
    """
    if isinstance(image_source, bytes):
        return image_source

    if image_source.startswith("data:"):

        def _decode_data_url():
            _, encoded = image_source.split(",", 1)
            return base64.b64decode(encoded)

        return safe_execute_sync(_decode_data_url, "Decode data URL", default_return=None)

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(image_source, timeout=aiohttp.ClientTimeout(total=10)) as response:
                response.raise_for_status()
                return await response.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        _log_error(f"Fetch image from URL: {image_source}", e)
        return None


async def get_image_bytes(image_source: str | bytes) -> Optional[bytes]:
    """Resolve any supported image source (bytes, URL, data URL, plain base64) to bytes."""
    if isinstance(image_source, bytes):
        return image_source

    if image_source.startswith(("http://", "https://", "data:")):
        return await fetch_image_bytes(image_source)

    return safe_execute_sync(
        lambda: base64.b64decode(image_source, validate=True),
        "Decode base64 image string",
        default_return=None,
    )


def validate_image_format(image_bytes: bytes) -> bool:
    """Validate image format from magic bytes (JPEG, PNG or WEBP)."""
    kind = filetype.guess(image_bytes)
    if kind is None or kind.extension not in SUPPORTED_EXTENSIONS:
        logger.warning(f"Invalid image format: {kind}. Only JPEG, PNG and WEBP supported.")
        return False
    return True


def validate_image_size(image_bytes: bytes) -> bool:
    """Validate image size against MAX_IMAGE_SIZE_MB."""
    size_mb = len(image_bytes) / (1024 * 1024)
    if size_mb > config.MAX_IMAGE_SIZE_MB:
        logger.warning(f"Image size {size_mb:.2f}MB exceeds limit of {config.MAX_IMAGE_SIZE_MB}MB")
        return False
    return True


def compress_image(image_bytes: bytes, max_width: int = 1024) -> bytes:
    """Compress image for API transmission using Pillow.

    Images smaller than COMPRESS_IMG_THRESHOLD_KB are returned untouched.
    Larger ones are converted to RGB, downscaled to ``max_width`` and
    re-encoded as JPEG (quality 85). Falls back to the original bytes on error.
    """
    size_kb = len(image_bytes) / 1024
    if size_kb < config.COMPRESS_IMG_THRESHOLD_KB:
        logger.debug(
            f"Image size {size_kb:.1f}KB below compression threshold "
            f"({config.COMPRESS_IMG_THRESHOLD_KB}KB), skipping compression"
        )
        return image_bytes

    def _compress():
        img = Image.open(BytesIO(image_bytes))

        if img.mode in ("RGBA", "LA", "P"):
            img = img.convert("RGBA")
            rgb_img = Image.new("RGB", img.size, (255, 255, 255))
            rgb_img.paste(img, mask=img.split()[-1])
            img = rgb_img
        elif img.mode != "RGB":
            img = img.convert("RGB")

        if img.width > max_width:
            ratio = max_width / img.width
            img = img.resize((max_width, int(img.height * ratio)), Image.Resampling.LANCZOS)

        output = BytesIO()
        img.save(output, format="JPEG", quality=85, optimize=True, progressive=True)
        compressed_bytes = output.getvalue()

        logger.debug(f"Image compressed: {size_kb:.1f}KB → {len(compressed_bytes) / 1024:.1f}KB")
        return compressed_bytes

    return safe_execute_sync(_compress, "Image compression", default_return=image_bytes)


# ============================================================================
# Gemini call and response parsing
# ============================================================================


def parse_vision_response(response_text: Optional[str]) -> list[IngredientObservation]:
    """Parse a Gemini vision response into validated observations.

    Accepts a bare JSON array, an array wrapped in ```json fences, or an array
    surrounded by explanatory text.

    Raises:
        UpstreamParseError: No JSON array found, or items fail validation.
    """
    if not response_text:
        raise UpstreamParseError()

    cleaned = re.sub(r"```(?:json)?", "", response_text).strip()

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        match = re.search(r"\[.*\]", cleaned, re.DOTALL)
        if not match:
            logger.warning(f"Failed to parse JSON from Gemini vision response: {cleaned[:200]}")
            raise UpstreamParseError()
        try:
            parsed = json.loads(match.group())
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse JSON array from Gemini vision response: {e}")
            raise UpstreamParseError() from e

    if not isinstance(parsed, list):
        logger.warning(f"Gemini vision response is not an array: {type(parsed).__name__}")
        raise UpstreamParseError()

    try:
        return _observations_adapter.validate_python(parsed)
    except ValidationError as e:
        logger.warning(f"Gemini vision response failed validation: {e.error_count()} error(s)")
        raise UpstreamParseError() from e


async def extract_ingredients_from_image(image_bytes: bytes) -> list[IngredientObservation]:
    """Call Gemini vision API once for one image (no retries).

    Raises:
        UpstreamCallError: The API call itself failed.
        UpstreamParseError: The response could not be parsed.
    """
    kind = filetype.guess(image_bytes)
    mime_type = kind.mime if kind is not None else "image/jpeg"

    try:
        client = genai.Client(api_key=config.GEMINI_API_KEY)
        response = await asyncio.to_thread(
            client.models.generate_content,
            model=config.IMAGE_DETECTION_MODEL,
            contents=[
                VISION_PROMPT,
                types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
            ],
        )
    except Exception as e:
        _log_error("Gemini vision API call", e)
        raise UpstreamCallError() from e

    return parse_vision_response(response.text)


async def extract_ingredients_with_retries(
    image_bytes: bytes, max_retries: Optional[int] = None
) -> list[IngredientObservation]:
    """Call Gemini vision API with exponential backoff on transient failures.

    Only UpstreamCallError caused by a transient condition is retried
    (timeouts, connection errors, 429/5xx). Parse failures and permanent
    errors (invalid API key, bad request) fail immediately.

    Args:
        image_bytes: Raw image bytes to process.
        max_retries: Total attempts. Defaults to config.MAX_RETRIES.

    Raises:
        UpstreamCallError: Permanent failure or retries exhausted.
        UpstreamParseError: Response could not be parsed.
    """
    attempts = max_retries or config.MAX_RETRIES
    delay_seconds = config.DELAY_BETWEEN_RETRIES

    for attempt in range(1, attempts + 1):
        try:
            return await extract_ingredients_from_image(image_bytes)
        except UpstreamCallError as e:
            cause = e.__cause__ or e
            if attempt >= attempts or not _is_transient(cause):
                logger.warning(f"Ingredient extraction failed after {attempt} attempt(s): {cause}")
                raise
            logger.debug(
                f"Transient error detected, retrying (attempt {attempt + 1}/{attempts}) "
                f"after {delay_seconds}s: {cause}"
            )
            await asyncio.sleep(delay_seconds)
            delay_seconds *= 2

    raise UpstreamCallError()


async def prepare_image(image_source: str | bytes, idx: int = 0) -> bytes:
    """Load, validate and optionally compress one image.

    Raises:
        InvalidRequestError: Image unreadable, unsupported format, or too large.
    """
    image_bytes = await get_image_bytes(image_source)
    if not image_bytes:
        logger.warning(f"Image {idx + 1}: Failed to get image bytes")
        raise InvalidRequestError(f"{idx + 1}枚目の画像を読み込めませんでした。")

    if not validate_image_format(image_bytes):
        raise InvalidRequestError(f"{idx + 1}枚目の画像形式には対応していません（JPEG/PNG/WEBPのみ）。")

    if not validate_image_size(image_bytes):
        raise InvalidRequestError(f"{idx + 1}枚目の画像が大きすぎます（最大{config.MAX_IMAGE_SIZE_MB}MB）。")

    if config.COMPRESS_IMG:
        image_bytes = compress_image(image_bytes)

    return image_bytes


async def analyze_images(images: Sequence[str | bytes]) -> list[list[IngredientObservation]]:
    """Detect ingredients in every image, one observation list per image.

    All images are validated before any Gemini call is made, then analyzed
    in parallel.

    Args:
        images: URLs, data URLs, plain base64 strings or raw bytes.

    Returns:
        Observation lists in the same order as ``images``.

    Raises:
        InvalidRequestError: Too many images, or an image fails validation.
        UpstreamCallError / UpstreamParseError: Any Gemini call failed.
    """
    if len(images) > config.MAX_IMAGES:
        raise InvalidRequestError(f"画像は最大{config.MAX_IMAGES}枚までです。")

    logger.debug(f"Found {len(images)} image(s), validating before analysis...")
    prepared = [await prepare_image(image, idx) for idx, image in enumerate(images)]

    async def _extract(image_bytes: bytes, idx: int) -> list[IngredientObservation]:
        observations = await extract_ingredients_with_retries(image_bytes)
        logger.info(f"Image {idx + 1}: Detected {len(observations)} ingredient candidate(s)")
        return observations

    return list(await asyncio.gather(*(_extract(image_bytes, idx) for idx, image_bytes in enumerate(prepared))))
