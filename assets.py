"""
Binary asset provider for the logo and signature images.

Fetching is the one asynchronous step before layout: each asset is awaited
once, and a failure only means that image is left off the page.
"""
from __future__ import annotations

import asyncio
import io
import mimetypes
from pathlib import Path
from typing import Optional

import requests
from loguru import logger
from PIL import Image, UnidentifiedImageError

from invoice_data import ImageAsset


class AssetUnavailable(Exception):
    """Asset bytes could not be fetched or decoded."""


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _read_source(source: str, timeout: float) -> tuple[bytes, str]:
    if _is_url(source):
        resp = requests.get(source, timeout=timeout)
        resp.raise_for_status()
        mime = (resp.headers.get("Content-Type") or "").split(";")[0].strip()
        return resp.content, mime
    path = Path(source)
    mime = mimetypes.guess_type(path.name)[0] or ""
    return path.read_bytes(), mime


def decode_asset(data: bytes, mime_type: str = "") -> ImageAsset:
    """Check that ``data`` is an image Pillow can decode; raise AssetUnavailable otherwise."""
    if not data:
        raise AssetUnavailable("empty image data")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            fmt = (img.format or "").lower()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as exc:
        raise AssetUnavailable(f"cannot decode image: {exc}") from exc
    return ImageAsset(data=data, mime_type=mime_type or (f"image/{fmt}" if fmt else "application/octet-stream"))


async def fetch_asset(source: str, timeout: float = 10.0) -> ImageAsset:
    if not source:
        raise AssetUnavailable("no asset source configured")
    try:
        data, mime = await asyncio.to_thread(_read_source, source, timeout)
    except (OSError, requests.RequestException) as exc:
        raise AssetUnavailable(f"cannot fetch {source}: {exc}") from exc
    return decode_asset(data, mime)


async def _best_effort(name: str, source: str | None, timeout: float) -> Optional[ImageAsset]:
    if not source:
        return None
    try:
        return await fetch_asset(source, timeout)
    except AssetUnavailable as exc:
        logger.warning("Omitting {} image: {}", name, exc)
        return None


async def load_invoice_assets(
    logo_source: str | None,
    signature_source: str | None,
    timeout: float = 10.0,
) -> tuple[Optional[ImageAsset], Optional[ImageAsset]]:
    """Returns (logo, signature); either is None when unavailable."""
    logo, signature = await asyncio.gather(
        _best_effort("logo", logo_source, timeout),
        _best_effort("signature", signature_source, timeout),
    )
    return logo, signature
