"""Download menu files referenced by URL.

Only public http(s) URLs pointing at a PDF or an image are fetched. The
download is bounded by an absolute timeout and a byte ceiling; crossing
either ends the fetch with `UpstreamFetchError`. Nothing is retried.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import mimetypes
from urllib.parse import unquote, urlparse

import httpx

from services.extraction.exceptions import UpstreamFetchError, ValidationError
from services.images.normalize import ALLOWED_MIME_TYPES, MenuFile


logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048
ALLOWED_EXTENSIONS = (".pdf", ".jpg", ".jpeg", ".png", ".gif", ".webp")
BLOCKED_HOSTNAMES = frozenset(
    {
        "localhost",
        "0.0.0.0",
        "metadata.google.internal",
        "169.254.169.254",
    }
)


def sanitize_url_for_display(url: str) -> str:
    """Drop query string and fragment, which may carry access tokens."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.hostname:
        return "[invalid URL]"
    return f"{parsed.scheme}://{parsed.hostname}{parsed.path}"


def filename_from_url(url: str) -> str:
    name = unquote(urlparse(url).path.rsplit("/", 1)[-1])
    return name or "menu"


def _is_private_host(hostname: str) -> bool:
    try:
        address = ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
    )


def validate_source_url(url: str) -> str:
    """Return the trimmed URL if it is safe to fetch.

    Raises:
        ValidationError: If the URL is malformed, not public, or not a menu file
    """
    trimmed = (url or "").strip()
    if not trimmed:
        raise ValidationError("URL is required.")
    if len(trimmed) > MAX_URL_LENGTH:
        raise ValidationError(
            f"URL is too long (max {MAX_URL_LENGTH} characters)."
        )

    parsed = urlparse(trimmed)
    if parsed.scheme not in ("http", "https"):
        raise ValidationError("Only HTTP and HTTPS URLs are allowed.")
    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise ValidationError("URL must have a valid hostname.")
    if hostname in BLOCKED_HOSTNAMES or _is_private_host(hostname):
        raise ValidationError("Access to local or private resources is not allowed.")

    if not parsed.path.lower().endswith(ALLOWED_EXTENSIONS):
        raise ValidationError(
            "URL must point to a PDF or image file (.pdf, .jpg, .png, etc.)."
        )
    return trimmed


def _content_type(response: httpx.Response, url: str) -> str:
    declared = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if declared in ALLOWED_MIME_TYPES:
        return declared
    # Storage buckets often serve application/octet-stream; trust the extension
    guessed, _ = mimetypes.guess_type(urlparse(url).path)
    return guessed or declared


class SourceFetchService:
    """Fetch remote menu files with a hard time and size budget."""

    def __init__(
        self,
        timeout: float = 30.0,
        max_bytes: int = 10 * 1024 * 1024,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_bytes = max_bytes
        self._transport = transport

    async def fetch(self, url: str) -> MenuFile:
        """Download `url` into memory.

        Raises:
            ValidationError: If the URL is not allowed
            UpstreamFetchError: On network failure, bad status, timeout, or size
        """
        safe_url = validate_source_url(url)
        display = sanitize_url_for_display(safe_url)
        try:
            async with asyncio.timeout(self.timeout):
                return await self._download(safe_url)
        except TimeoutError as e:
            logger.warning("Timed out fetching %s after %ss", display, self.timeout)
            raise UpstreamFetchError(
                "The menu file took too long to download."
            ) from e
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Fetching %s returned %s", display, e.response.status_code
            )
            raise UpstreamFetchError(
                f"The menu link returned an error ({e.response.status_code})."
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Network error fetching %s: %s", display, e)
            raise UpstreamFetchError() from e

    async def fetch_all(self, urls: list[str]) -> list[MenuFile]:
        # Sequential keeps the total byte budget per request predictable
        return [await self.fetch(url) for url in urls]

    async def _download(self, url: str) -> MenuFile:
        headers = {
            "User-Agent": "Mozilla/5.0 (compatible; OrdaMenuBot/1.0)",
            "Accept": "application/pdf,image/*;q=0.9,*/*;q=0.5",
        }
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            async with client.stream("GET", url, headers=headers) as response:
                response.raise_for_status()

                declared_length = response.headers.get("content-length")
                if declared_length and declared_length.isdigit():
                    if int(declared_length) > self.max_bytes:
                        raise UpstreamFetchError(self._too_large_message())

                chunks: list[bytes] = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > self.max_bytes:
                        raise UpstreamFetchError(self._too_large_message())
                    chunks.append(chunk)

                return MenuFile(
                    filename=filename_from_url(url),
                    content_type=_content_type(response, url),
                    data=b"".join(chunks),
                )

    def _too_large_message(self) -> str:
        limit_mb = self.max_bytes // (1024 * 1024)
        return f"The menu file is larger than {limit_mb}MB."
