"""
File upload to the content-push endpoint.

The returned reference is what the generate request embeds in its
``input[3]`` file list.
"""

import logging
from pathlib import Path
from typing import Any

from curl_cffi import CurlMime
from curl_cffi.requests.exceptions import RequestException, Timeout

from .core.exceptions import api_error, timeout_error
from .protocol.constants import UPLOAD_HEADERS, Endpoint

logger = logging.getLogger("gemini_web.upload")


async def upload_file(session: Any, file: str | Path, timeout: float | None = None) -> str:
    """
    Upload a local file and return its server-side reference.

    Args:
        session: curl_cffi ``AsyncSession`` (proxy and impersonation apply)
        file: Path of the file to upload
        timeout: Request timeout in seconds

    Raises:
        FileNotFoundError: If ``file`` does not exist
        GeminiWebError: ``API`` on a rejected upload, ``TIMEOUT`` on timeout
    """
    path = Path(file)
    data = path.read_bytes()

    mime = CurlMime()
    mime.addpart(name="file", filename=path.name, data=data)
    try:
        response = await session.post(
            Endpoint.UPLOAD,
            headers=UPLOAD_HEADERS,
            multipart=mime,
            timeout=timeout,
        )
    except Timeout as e:
        raise timeout_error("Upload", cause=e) from e
    except RequestException as e:
        raise api_error(f"Failed to upload {path.name}: {e}", cause=e) from e
    finally:
        mime.close()

    if not 200 <= response.status_code < 300:
        raise api_error(
            f"Failed to upload {path.name}",
            status_code=response.status_code,
            response_body=response.text,
        )

    logger.debug("Uploaded %s (%d bytes)", path.name, len(data))
    return response.text


async def upload_files(
    session: Any, files: list[str | Path], timeout: float | None = None
) -> list[list[Any]]:
    """Upload ``files`` in order; returns ``[[[ref], filename], ...]``."""
    refs = []
    for file in files:
        ref = await upload_file(session, file, timeout=timeout)
        refs.append([[ref], Path(file).name])
    return refs


__all__ = ["upload_file", "upload_files"]
