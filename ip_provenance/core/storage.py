import json
import mimetypes
import structlog
import time
from typing import Any, Dict, Optional, Union

import requests
from requests.adapters import HTTPAdapter

from ip_provenance import config
from ip_provenance.core.errors import StorageUploadError
from ip_provenance.core.hashing import canonical_json
from ip_provenance.core.utils import format_file_size, sanitize_filename
from ip_provenance.models.asset import Locator

logger = structlog.get_logger()

__all__ = ["StorageClient", "Locator"]


class StorageClient:
    """Content-addressed storage gateway backed by the Pinata pinning service."""

    def __init__(self, jwt: Optional[str] = None, api_url: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.jwt = jwt if jwt is not None else config.PINATA_JWT
        self.api_url = (api_url or config.PINATA_API_URL).rstrip("/")
        self.session = session or self._initialize_session()

        if not self.jwt:
            logger.warning("PINATA_JWT not set - uploads will be rejected by the pinning service")

        logger.info("Storage client initialized", api_url=self.api_url)

    def _initialize_session(self) -> requests.Session:
        """Initialize HTTP session. Retries stay off; the caller decides whether to re-invoke."""
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.jwt}"}

    def upload_json(self, document: Any, name: str = "metadata.json") -> Locator:
        """
        Pin a JSON document.

        The document is pinned as its canonical serialization, so
        hash_json(document) is the digest of the pinned bytes.
        """
        payload = canonical_json(document).encode("utf-8")
        return self._pin_file(payload, name, "application/json")

    def upload_file(self, content: Union[bytes, str], name: str) -> Locator:
        """
        Pin raw bytes or text under a file name.

        Args:
            content: File content; text is encoded as UTF-8
            name: File name recorded with the pin

        Returns:
            Locator of the pinned content
        """
        if isinstance(content, str):
            data = content.encode("utf-8")
            content_type = "text/plain"
        else:
            data = content
            content_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
        return self._pin_file(data, name, content_type)

    def _pin_file(self, data: bytes, name: str, content_type: str) -> Locator:
        filename = sanitize_filename(name)
        endpoint = f"{self.api_url}/pinFileToIPFS"

        logger.info("Starting pin upload",
                    filename=filename,
                    file_size_human=format_file_size(len(data)),
                    content_type=content_type)

        start_time = time.time()
        try:
            response = self.session.post(
                endpoint,
                files={"file": (filename, data, content_type)},
                data={
                    "pinataOptions": json.dumps({"cidVersion": 0}),
                    "pinataMetadata": json.dumps({"name": filename}),
                },
                headers=self._headers(),
                timeout=config.HTTP_TIMEOUT,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Pinning service unreachable", filename=filename, error=str(e))
            raise StorageUploadError(f"Pinning service unreachable: {e}")

        upload_time = time.time() - start_time

        if not 200 <= response.status_code < 300:
            logger.error("Pinning service rejected upload",
                         filename=filename, status_code=response.status_code)
            raise StorageUploadError(
                f"Failed to upload {filename} to IPFS: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            cid = response.json().get("IpfsHash")
        except ValueError:
            cid = None

        if not cid:
            raise StorageUploadError(
                "Pin upload succeeded but no IpfsHash returned",
                status_code=response.status_code,
            )

        locator = Locator(cid=cid)

        logger.info("Pin upload completed successfully",
                    filename=filename,
                    cid=cid,
                    upload_time_seconds=round(upload_time, 2))
        return locator

    def health_check(self) -> Dict[str, Any]:
        """Check that the pinning service accepts our credentials."""
        health = {"available": False, "error": None}
        base = self.api_url.rsplit("/pinning", 1)[0]
        try:
            response = self.session.get(f"{base}/data/testAuthentication",
                                        headers=self._headers(), timeout=5)
            if response.status_code == 200:
                health["available"] = True
            else:
                health["error"] = f"HTTP {response.status_code}"
        except requests.exceptions.RequestException as e:
            health["error"] = str(e)
        return health
