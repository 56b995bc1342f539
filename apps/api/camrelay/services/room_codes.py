"""Room-code allocation and the client-side request helper."""
from __future__ import annotations

import logging
import secrets

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 10


class RoomCodeUnavailableError(RuntimeError):
    """Raised when the signaling server cannot hand out a room code."""


def allocate(alphabet: str | None = None, length: int | None = None) -> str:
    """Draw a random uppercase room code.

    Codes are not checked for uniqueness; 26**6 codes make collisions negligible.
    """

    alphabet = alphabet or settings.room_code_alphabet
    length = length or settings.room_code_length
    return "".join(secrets.choice(alphabet) for _ in range(length))


async def request_room_code(
    base_url: str,
    *,
    timeout: float | None = None,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Ask a signaling server for a fresh room code."""

    url = f"{base_url.rstrip('/')}/create-room"
    timeout = timeout if timeout is not None else settings.room_code_timeout_seconds

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as owned:
                response = await owned.get(url, headers={"Cache-Control": "no-store"})
        else:
            response = await client.get(url, headers={"Cache-Control": "no-store"}, timeout=timeout)
    except httpx.TimeoutException as exc:
        raise RoomCodeUnavailableError(f"Signal server did not respond within {timeout:g}s") from exc
    except httpx.HTTPError as exc:
        raise RoomCodeUnavailableError(f"Could not reach signal server: {exc}") from exc

    if response.status_code != 200:
        raise RoomCodeUnavailableError(f"Signal server returned {response.status_code}")

    code = response.text.strip().upper()
    if not code or len(code) > MAX_CODE_LENGTH:
        raise RoomCodeUnavailableError("Invalid room response")

    logger.debug("allocated room %s from %s", code, base_url)
    return code
