"""
Image resolver.

Uploaded images are recompressed when large, stored as data URIs and indexed
under every path an author is likely to type for them, so references such as
![logo](./images/logo.png) or ![[logo.png|200]] can be embedded inline.
"""

import asyncio
import base64
import io
import logging
import mimetypes
import re
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from enhancemd.core import config
from enhancemd.core.errors import (
    Diagnostic, DiagnosticKind, EncodeFailed, UploadRejected, record,
)

logger = logging.getLogger(__name__)

FOLDER_PREFIXES = ('images', 'assets', 'img', 'pics', 'media')

STANDARD_IMAGE_RE = re.compile(r'!\[([^\]]*)\]\(([^)]+)\)')
EMBED_IMAGE_RE = re.compile(r'!\[\[([^\]|]+)(?:\|([^\]]+))?\]\]')
SCHEME_RE = re.compile(r'^[A-Za-z][A-Za-z0-9+.\-]*:')
SIZE_RE = re.compile(r'^\s*(\d+)\s*(?:x\s*(\d+))?\s*$')

PIL_FORMATS = {
    'image/jpeg': 'JPEG',
    'image/png': 'PNG',
    'image/webp': 'WEBP',
    'image/gif': 'GIF',
    'image/bmp': 'BMP',
}
MIME_BY_FORMAT = {fmt: mime for mime, fmt in PIL_FORMATS.items()}

DEFAULT_QUALITY = 70
JPEG_QUALITY = 65
SECOND_PASS_STEP = 20
SECOND_PASS_MIN_QUALITY = 40


@dataclass
class ImageAsset:
    """An uploaded file as received from the user."""
    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def mime_type(self) -> str:
        return self.content_type or mimetypes.guess_type(self.filename)[0] or 'application/octet-stream'

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class EmbeddedImage:
    name: str
    data_uri: str
    mime_type: str
    original_size: int
    stored_size: int


@dataclass
class ImageMatchStatus:
    matched: List[str] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.matched) + len(self.unmatched)

    def to_dict(self) -> Dict:
        return {
            'matched': len(self.matched),
            'unmatched': len(self.unmatched),
            'total': self.total,
            'matched_paths': list(self.matched),
            'unmatched_paths': list(self.unmatched),
        }


@dataclass
class BatchReport:
    added: List[str] = field(default_factory=list)
    rejected: List[Tuple[str, str]] = field(default_factory=list)
    original_bytes: int = 0
    stored_bytes: int = 0

    @property
    def saved_bytes(self) -> int:
        return self.original_bytes - self.stored_bytes

    @property
    def saved_percent(self) -> int:
        if not self.original_bytes:
            return 0
        return int(self.saved_bytes / self.original_bytes * 100 + 0.5)

    @property
    def message(self) -> str:
        if not self.added:
            return "No images loaded"
        noun = 'image' if len(self.added) == 1 else 'images'
        message = f"Loaded {len(self.added)} {noun}"
        if self.saved_bytes > 0:
            message += f" (saved {self.saved_bytes // 1024}KB, {self.saved_percent}% reduction)"
        return message

    def to_dict(self) -> Dict:
        return {
            'added': list(self.added),
            'rejected': [{'filename': name, 'reason': reason} for name, reason in self.rejected],
            'original_bytes': self.original_bytes,
            'stored_bytes': self.stored_bytes,
            'saved_bytes': self.saved_bytes,
            'saved_percent': self.saved_percent,
            'message': self.message,
        }


class ImageIndex:
    """Maps every path variant of an uploaded image to its embedded form."""

    def __init__(self):
        self._entries: 'OrderedDict[str, EmbeddedImage]' = OrderedDict()
        self._names: List[str] = []

    def add(self, image: EmbeddedImage) -> List[str]:
        variants = path_variants(image.name)
        for variant in variants:
            self._entries[variant] = image
        if image.name not in self._names:
            self._names.append(image.name)
        logger.debug(f"Images: Indexed '{image.name}' under {len(variants)} path variants")
        return variants

    def get(self, path: str) -> Optional[EmbeddedImage]:
        return self._entries.get(path)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def names(self) -> List[str]:
        return list(self._names)

    def reset(self) -> None:
        self._entries.clear()
        self._names.clear()
        logger.info("Images: Index reset")


def path_variants(filename: str) -> List[str]:
    """
    Plausible textual references to an uploaded file, in a fixed order.
    """
    variants = [filename, f"./{filename}"]
    for folder in FOLDER_PREFIXES:
        variants.append(f"{folder}/{filename}")
        variants.append(f"./{folder}/{filename}")

    stem, dot, ext = filename.rpartition('.')
    if dot and stem and '/' not in ext:
        variants.append(f"{stem}.{ext.lower()}")
        variants.append(f"{stem}.{ext.upper()}")

    return list(OrderedDict.fromkeys(variants))


def to_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def has_transparency(image: Image.Image) -> bool:
    if image.mode in ('RGBA', 'LA'):
        return image.getchannel('A').getextrema()[0] < 255
    if image.mode == 'P' and 'transparency' in image.info:
        return True
    return False


def fit_within(width: int, height: int, max_width: int = config.MAX_IMAGE_WIDTH,
               max_height: int = config.MAX_IMAGE_HEIGHT) -> Tuple[int, int]:
    """Scale down to the bounding box, width first, keeping the aspect ratio."""
    w, h = float(width), float(height)
    if w > max_width:
        h = h * max_width / w
        w = max_width
    if h > max_height:
        w = w * max_height / h
        h = max_height
    return max(1, int(round(w))), max(1, int(round(h)))


def _encode(image: Image.Image, fmt: str, quality: int) -> bytes:
    buffer = io.BytesIO()
    if fmt == 'JPEG':
        image.convert('RGB').save(buffer, format='JPEG', quality=quality, optimize=True)
    elif fmt == 'WEBP':
        image.save(buffer, format='WEBP', quality=quality)
    elif fmt == 'PNG':
        image.save(buffer, format='PNG', optimize=True)
    else:
        image.save(buffer, format=fmt)
    return buffer.getvalue()


def compress(asset: ImageAsset) -> Tuple[bytes, str]:
    """
    Downscale and re-encode an image. Returns (bytes, mime_type).
    Raises UploadRejected when the image cannot be decoded and EncodeFailed
    when it cannot be written back.
    """
    try:
        image = Image.open(io.BytesIO(asset.data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise UploadRejected(asset.filename, f"Could not load image {asset.filename}: {e}")

    fmt = PIL_FORMATS.get(asset.mime_type, image.format or 'PNG')
    if fmt not in MIME_BY_FORMAT:
        fmt = 'PNG'

    size = fit_within(*image.size)
    try:
        if size != image.size:
            image = image.resize(size, Image.Resampling.LANCZOS)

        if fmt == 'PNG' and not has_transparency(image):
            fmt = 'JPEG'
        quality = JPEG_QUALITY if fmt == 'JPEG' else DEFAULT_QUALITY

        data = _encode(image, fmt, quality)
        if len(data) > config.SECOND_PASS_THRESHOLD and quality > SECOND_PASS_MIN_QUALITY:
            logger.debug(f"Images: {asset.filename} still {len(data)} bytes, re-encoding at quality {quality - SECOND_PASS_STEP}")
            data = _encode(image, fmt, quality - SECOND_PASS_STEP)
    except (OSError, ValueError) as e:
        raise EncodeFailed(asset.filename, f"Could not compress image {asset.filename}: {e}")

    return data, MIME_BY_FORMAT[fmt]


def ingest(asset: ImageAsset) -> EmbeddedImage:
    """
    Turn an uploaded asset into an embedded image.
    Raises UploadRejected (or EncodeFailed) for this asset only.
    """
    if asset.size > config.MAX_UPLOAD_SIZE:
        max_mb = config.MAX_UPLOAD_SIZE // (1024 * 1024)
        raise UploadRejected(asset.filename, f"File {asset.filename} is too large. Max size is {max_mb}MB.")
    if not asset.mime_type.startswith('image/'):
        raise UploadRejected(asset.filename, f"File {asset.filename} is not an image.")

    data, mime_type = asset.data, asset.mime_type
    if asset.size > config.COMPRESS_THRESHOLD:
        data, mime_type = compress(asset)
        logger.info(f"Images: Compressed {asset.filename} from {asset.size // 1024}KB to {len(data) // 1024}KB")

    return EmbeddedImage(
        name=asset.filename,
        data_uri=to_data_uri(data, mime_type),
        mime_type=mime_type,
        original_size=asset.size,
        stored_size=len(data),
    )


async def ingest_batch(assets: List[ImageAsset], index: ImageIndex,
                       min_duration: float = config.MIN_BATCH_SECONDS,
                       diagnostics: Optional[List[Diagnostic]] = None) -> BatchReport:
    """
    Ingest uploaded assets one after another, in input order.

    A rejected asset is reported and skipped; the rest of the batch continues.
    The whole batch takes at least min_duration seconds so progress feedback
    stays visible.
    """
    report = BatchReport()
    started = time.monotonic()

    if len(assets) > config.MAX_BATCH_FILES:
        reason = f"Please select {config.MAX_BATCH_FILES} or fewer images at a time"
        record(diagnostics, DiagnosticKind.UPLOAD_REJECTED, reason)
        report.rejected.extend((asset.filename, reason) for asset in assets)
        return report

    for asset in assets:
        try:
            embedded = await asyncio.to_thread(ingest, asset)
        except UploadRejected as e:
            kind = DiagnosticKind.ENCODE_FAILED if isinstance(e, EncodeFailed) else DiagnosticKind.UPLOAD_REJECTED
            record(diagnostics, kind, e.reason, e.filename)
            report.rejected.append((e.filename, e.reason))
            continue
        index.add(embedded)
        report.added.append(embedded.name)
        report.original_bytes += embedded.original_size
        report.stored_bytes += embedded.stored_size

    remaining = min_duration - (time.monotonic() - started)
    if remaining > 0:
        await asyncio.sleep(remaining)

    logger.info(f"Images: {report.message}; {len(report.rejected)} rejected")
    return report


def is_local(path: str) -> bool:
    return not SCHEME_RE.match(path.strip())


def _size_suffix(size: Optional[str]) -> str:
    if not size:
        return ''
    match = SIZE_RE.match(size)
    if not match:
        return ''
    if match.group(2):
        return f'{{ width="{match.group(1)}" height="{match.group(2)}" }}'
    return f'{{ width="{match.group(1)}" }}'


def resolve_references(text: str, index: ImageIndex) -> Tuple[str, ImageMatchStatus]:
    """
    Embed every local image reference that has an uploaded match.
    Returns the new text and the matched/unmatched reference status.
    """
    status = ImageMatchStatus()
    seen = set()

    def track(path: str, found: bool) -> None:
        if path in seen:
            return
        seen.add(path)
        (status.matched if found else status.unmatched).append(path)

    def replace_standard(match: 're.Match') -> str:
        alt, path = match.group(1), match.group(2)
        if not is_local(path):
            return match.group(0)
        image = index.get(path)
        track(path, image is not None)
        if image is None:
            return match.group(0)
        return f"![{alt}]({image.data_uri})"

    def replace_embed(match: 're.Match') -> str:
        path, size = match.group(1), match.group(2)
        if not is_local(path):
            return match.group(0)
        image = index.get(path)
        track(path, image is not None)
        if image is None:
            return match.group(0)
        return f"![{path}]({image.data_uri}){_size_suffix(size)}"

    text = STANDARD_IMAGE_RE.sub(replace_standard, text)
    text = EMBED_IMAGE_RE.sub(replace_embed, text)

    if status.total:
        logger.debug(f"Images: {len(status.matched)} matched, {len(status.unmatched)} unmatched references")
    return text, status
