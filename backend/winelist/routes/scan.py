"""
/scan endpoints for Wine List Scanner.

Live scanning: start/pause/stop the session and submit camera frames
(debounced). Photo mode: submit one image, or fragments already
recognized on the device, and get fully resolved results back.
"""

import io
import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

from ..config import Config
from ..dependencies import get_tracker
from ..models.response import (
    FragmentsRequest,
    FrameResponse,
    RecognizedWineResponse,
    ScanResultResponse,
    ScanStateResponse,
)
from ..services.recognizer import RecognitionError
from ..services.scan_session import ScanSessionTracker

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/scan")

register_heif_opener()


def convert_heic_to_jpeg(image_bytes: bytes, content_type: str) -> bytes:
    """
    Convert HEIC/HEIF images to JPEG. Pass through other formats unchanged.

    Args:
        image_bytes: Raw image bytes
        content_type: MIME type of the image

    Returns:
        JPEG bytes if HEIC/HEIF, otherwise original bytes
    """
    if content_type not in ("image/heic", "image/heif"):
        return image_bytes

    img = Image.open(io.BytesIO(image_bytes))

    # Convert to RGB (HEIC may have alpha channel)
    if img.mode in ("RGBA", "P"):
        img = img.convert("RGB")

    output = io.BytesIO()
    img.save(output, format="JPEG", quality=90)
    return output.getvalue()


async def read_image(image: UploadFile) -> bytes:
    """Validate type and size of an uploaded image and return JPEG/PNG bytes."""
    if image.content_type not in Config.ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail="Invalid image type. Only JPEG, PNG and HEIC are supported."
        )

    try:
        image_bytes = await image.read()
    except IOError as e:
        logger.error(f"Failed to read uploaded image: {e}")
        raise HTTPException(status_code=400, detail="Failed to read image file")

    if len(image_bytes) > Config.MAX_IMAGE_SIZE_BYTES:
        raise HTTPException(
            status_code=400,
            detail=f"Image too large. Maximum size is {Config.MAX_IMAGE_SIZE_MB}MB."
        )

    try:
        return convert_heic_to_jpeg(image_bytes, image.content_type)
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Invalid image format: {e}")
        raise HTTPException(status_code=400, detail="Invalid image format")


def _state(tracker: ScanSessionTracker) -> ScanStateResponse:
    return ScanStateResponse(state=tracker.state, session_id=tracker.session.id)


@router.post("/start", response_model=ScanStateResponse)
async def start_scan(tracker: ScanSessionTracker = Depends(get_tracker)) -> ScanStateResponse:
    tracker.start()
    return _state(tracker)


@router.post("/pause", response_model=ScanStateResponse)
async def pause_scan(tracker: ScanSessionTracker = Depends(get_tracker)) -> ScanStateResponse:
    tracker.pause()
    return _state(tracker)


@router.post("/stop", response_model=ScanStateResponse)
async def stop_scan(tracker: ScanSessionTracker = Depends(get_tracker)) -> ScanStateResponse:
    tracker.stop()
    return _state(tracker)


@router.post("/frame", response_model=FrameResponse)
async def submit_frame(
    image: UploadFile = File(...),
    tracker: ScanSessionTracker = Depends(get_tracker),
) -> FrameResponse:
    """
    Submit a camera frame. Results arrive asynchronously in /scan/overlay
    and /session.
    """
    image_bytes = await read_image(image)
    accepted = tracker.submit_frame(image_bytes)
    return FrameResponse(accepted=accepted, state=tracker.state)


@router.post("/photo", response_model=ScanResultResponse)
async def scan_photo(
    image: UploadFile = File(...),
    tracker: ScanSessionTracker = Depends(get_tracker),
) -> ScanResultResponse:
    """
    Scan a single photo of a wine list through every match tier.

    Args:
        image: The wine list photo (JPEG, PNG or HEIC)

    Returns:
        ScanResultResponse with one entry per recognized wine-list line
    """
    image_bytes = await read_image(image)
    try:
        wines = await tracker.scan_photo(image_bytes)
    except RecognitionError as e:
        logger.warning(f"Recognition failed: {e}")
        raise HTTPException(status_code=400, detail="Could not read text from image")
    except Exception as e:
        logger.error(f"Unexpected error scanning photo: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    threshold = tracker.acceptance_threshold
    return ScanResultResponse(
        wines=[RecognizedWineResponse.from_domain(w, threshold) for w in wines]
    )


@router.post("/fragments", response_model=ScanResultResponse)
async def scan_fragments(
    request: FragmentsRequest,
    tracker: ScanSessionTracker = Depends(get_tracker),
) -> ScanResultResponse:
    """Resolve text fragments recognized on the device."""
    fragments = [f.to_domain() for f in request.fragments]
    wines = await tracker.scan_fragments(fragments)
    threshold = tracker.acceptance_threshold
    return ScanResultResponse(
        wines=[RecognizedWineResponse.from_domain(w, threshold) for w in wines]
    )


@router.get("/overlay", response_model=ScanResultResponse)
async def get_overlay(tracker: ScanSessionTracker = Depends(get_tracker)) -> ScanResultResponse:
    """Wines currently in view."""
    threshold = tracker.acceptance_threshold
    return ScanResultResponse(
        wines=[RecognizedWineResponse.from_domain(w, threshold) for w in tracker.overlay]
    )
