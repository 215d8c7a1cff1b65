"""
StockMeta - Media Loading
Turns an asset on disk into the data-URL preview sent to the vision model:
raster images via Pillow, video middle frames via OpenCV, and the raster
previews embedded in EPS/SVG files.
"""

import base64
import io
import logging
import os
import re
import struct

import cv2
import numpy as np
from PIL import Image

from stockmeta.policy import IMAGE_EXTENSIONS, VECTOR_EXTENSIONS, VIDEO_EXTENSIONS, infer_asset_type

logger = logging.getLogger(__name__)

__all__ = ['load_image_data', 'encode_data_url', 'has_transparency', 'infer_asset_type']

MAX_SIDE = 2048
JPEG_QUALITY = 85
MAX_SCAN_BYTES = 50 * 1024 * 1024

_EPS_DOS_MAGIC = b'\xc5\xd0\xd3\xc6'
_PNG_MAGIC = b'\x89PNG\r\n\x1a\n'
_SVG_DATA_URI = re.compile(
    r'(?:href|xlink:href)\s*=\s*["\']data:image/(?:png|jpeg|jpg|webp);base64,([A-Za-z0-9+/=\s]+)["\']',
    re.DOTALL,
)


# ─── Encoding ─────────────────────────────────────────────────────────────────

def has_transparency(image):
    """True when the image has an alpha channel with any non-opaque pixel."""
    if image.mode == 'P' and 'transparency' in image.info:
        image = image.convert('RGBA')
    if image.mode not in ('RGBA', 'LA'):
        return False
    alpha = np.asarray(image.getchannel('A'))
    return bool((alpha < 255).any())


def encode_data_url(image, max_side=MAX_SIDE):
    """
    Encode a PIL image as a base64 data URL.

    Images with transparency are sent as PNG so the model can see the
    alpha; everything else is sent as JPEG.
    """
    image = image.copy()
    image.thumbnail((max_side, max_side), Image.LANCZOS)
    buffer = io.BytesIO()
    if has_transparency(image):
        image.convert('RGBA').save(buffer, format='PNG')
        mime = 'image/png'
    else:
        image.convert('RGB').save(buffer, format='JPEG', quality=JPEG_QUALITY)
        mime = 'image/jpeg'
    payload = base64.b64encode(buffer.getvalue()).decode('utf-8')
    return f"data:{mime};base64,{payload}"


def _try_load_image_data(data):
    """Try to load raw image data bytes as a PIL Image."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        return img
    except Exception as e:
        logger.debug("Embedded data is not a readable image: %s", e)
        return None


# ─── Vectors ──────────────────────────────────────────────────────────────────

def _scan_for_raster(content):
    """Find an embedded JPEG or PNG stream inside arbitrary bytes."""
    jpeg_start = content.find(b'\xff\xd8\xff')
    if jpeg_start >= 0:
        jpeg_end = content.rfind(b'\xff\xd9')
        if jpeg_end > jpeg_start and jpeg_end + 2 - jpeg_start > 500:
            img = _try_load_image_data(content[jpeg_start:jpeg_end + 2])
            if img:
                return img

    png_start = content.find(_PNG_MAGIC)
    if png_start >= 0:
        png_end = content.find(b'IEND', png_start)
        # IEND chunk is 4 bytes type + 4 bytes CRC
        if png_end > png_start and png_end + 8 - png_start > 500:
            img = _try_load_image_data(content[png_start:png_end + 8])
            if img:
                return img
    return None


def _extract_eps_preview(file_path):
    """
    Extract the preview embedded in an EPS file.

    Tries the DOS binary header (TIFF, then WMF), then scans for JPEG/PNG data.
    """
    file_size = os.path.getsize(file_path)
    with open(file_path, 'rb') as f:
        header = f.read(30)

        if len(header) >= 28 and header[:4] == _EPS_DOS_MAGIC:
            for offset_at, length_at in ((20, 24), (12, 16)):
                offset = struct.unpack_from('<I', header, offset_at)[0]
                length = struct.unpack_from('<I', header, length_at)[0]
                if offset > 0 and length > 0 and offset + length <= file_size:
                    f.seek(offset)
                    img = _try_load_image_data(f.read(length))
                    if img:
                        return img

        f.seek(0)
        content = f.read(min(file_size, MAX_SCAN_BYTES))
    return _scan_for_raster(content)


def _render_eps(file_path):
    """Render EPS with Pillow (requires Ghostscript on PATH)."""
    try:
        img = Image.open(file_path)
        img.load()
        return img
    except Exception as e:
        logger.debug("Pillow could not render %s: %s", file_path, e)
        return None


def _extract_svg_embedded_image(file_path):
    """
    Extract embedded raster images from an SVG file.

    Many SVGs (especially from Illustrator exports) embed base64-encoded
    raster images in <image> tags with data: URIs; the largest one wins.
    """
    with open(file_path, 'r', encoding='utf-8', errors='ignore') as f:
        svg_content = f.read()

    matches = _SVG_DATA_URI.findall(svg_content)
    if matches:
        clean_data = re.sub(r'\s+', '', max(matches, key=len))
        try:
            img_bytes = base64.b64decode(clean_data)
        except ValueError:
            img_bytes = b''
        if len(img_bytes) > 100:
            img = _try_load_image_data(img_bytes)
            if img:
                return img

    with open(file_path, 'rb') as f:
        return _scan_for_raster(f.read(MAX_SCAN_BYTES))


def _load_vector(file_path, ext):
    if ext == 'svg':
        return _extract_svg_embedded_image(file_path)
    if ext == 'eps':
        return _extract_eps_preview(file_path) or _render_eps(file_path)
    # .ai files are PDF-based and usually carry a JPEG/PNG thumbnail
    with open(file_path, 'rb') as f:
        return _scan_for_raster(f.read(MAX_SCAN_BYTES))


# ─── Video ────────────────────────────────────────────────────────────────────

def get_video_frame(video_path):
    """
    Grab the middle frame of a video.

    Returns:
        PIL.Image

    Raises:
        ValueError: if the video cannot be opened or read.
    """
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise ValueError(f"Cannot open video file: {video_path}")

    total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
    cap.set(cv2.CAP_PROP_POS_FRAMES, max(total_frames // 2, 0))
    ret, frame = cap.read()
    cap.release()

    if not ret:
        raise ValueError(f"Cannot read frame from video: {video_path}")

    frame_rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
    return Image.fromarray(frame_rgb)


# ─── Entry Point ──────────────────────────────────────────────────────────────

def load_image_data(file_path):
    """
    Build the data-URL preview for an asset.

    Args:
        file_path: Image, video or vector file on disk.

    Returns:
        str data URL, or None when no preview can be produced.
    """
    ext = os.path.splitext(file_path)[1].lower().lstrip('.')
    try:
        if ext in IMAGE_EXTENSIONS:
            with Image.open(file_path) as img:
                img.load()
                return encode_data_url(img)
        if ext in VIDEO_EXTENSIONS:
            return encode_data_url(get_video_frame(file_path))
        if ext in VECTOR_EXTENSIONS:
            img = _load_vector(file_path, ext)
            return encode_data_url(img) if img else None
    except (OSError, ValueError) as e:
        logger.warning("No preview for %s: %s", os.path.basename(file_path), e)
        return None

    logger.warning("Unsupported file type for preview: %s", os.path.basename(file_path))
    return None
