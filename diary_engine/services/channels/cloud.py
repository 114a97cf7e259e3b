"""
Cloud storage channel for backup archives.

One provider, one fixed slot: the archive is stored under a single remote
filename and each upload overwrites the previous backup. The provider is
addressed as a plain HTTP file endpoint (PUT to write, GET to read), which
WebDAV-style personal cloud drives accept.
"""

import logging
from typing import Optional

import httpx

from .base import ChannelError, ChannelUnavailableError, RemoteBackupNotFoundError

logger = logging.getLogger(__name__)


class CloudStorageChannel:
    """
    Client for the cloud backup slot.
    
    Handles:
    - Availability checks (reachable and authenticated)
    - Uploading archive bytes
    - Downloading archive bytes
    """
    
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize cloud channel.
        
        Args:
            base_url: Folder URL the backup file lives in
            token: Optional bearer token
            timeout: Per-request timeout (seconds); uploads of large archives
                must fit inside it
            transport: Custom httpx transport (tests)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport
        )
        
        logger.info(f"Cloud backup channel initialized: {self.base_url}")
    
    def is_available(self) -> bool:
        """
        Check that the cloud folder is reachable with our credentials.
        
        Returns:
            True if the server answers without an auth or server error
        """
        try:
            response = self.client.request("OPTIONS", "/")
        except httpx.HTTPError as e:
            logger.warning(f"Cloud availability check failed: {e}")
            return False
        
        if response.status_code in (401, 403):
            logger.warning("Cloud backup channel rejected our credentials")
            return False
        if response.status_code >= 500:
            logger.warning(f"Cloud backup channel unhealthy: HTTP {response.status_code}")
            return False
        return True
    
    def ensure_available(self) -> None:
        """
        Raises:
            ChannelUnavailableError: If the channel cannot be used right now
        """
        if not self.is_available():
            raise ChannelUnavailableError(
                f"Cloud storage is not available at {self.base_url}. "
                f"Check the network connection and that you are signed in."
            )
    
    def upload(self, filename: str, data: bytes) -> None:
        """
        Write archive bytes to the fixed slot, replacing any previous backup.
        
        Raises:
            ChannelUnavailableError: Connection, timeout or auth failure
            ChannelError: The server refused the upload
        """
        logger.info(f"Uploading {filename} to cloud ({len(data) / (1024*1024):.2f} MB)")
        response = self._send("PUT", filename, content=data)
        if response.status_code not in (200, 201, 204):
            raise ChannelError(f"Cloud upload failed: HTTP {response.status_code}")
        logger.info(f"Upload complete: {filename}")
    
    def download(self, filename: str) -> bytes:
        """
        Read archive bytes from the fixed slot.
        
        Raises:
            RemoteBackupNotFoundError: No backup has been uploaded
            ChannelUnavailableError: Connection, timeout or auth failure
            ChannelError: Any other server error
        """
        logger.info(f"Downloading {filename} from cloud")
        response = self._send("GET", filename)
        if response.status_code == 404:
            raise RemoteBackupNotFoundError(f"No backup named {filename} in cloud storage")
        if response.status_code != 200:
            raise ChannelError(f"Cloud download failed: HTTP {response.status_code}")
        if not response.content:
            raise RemoteBackupNotFoundError(f"Cloud backup {filename} is empty")
        logger.info(f"Download complete: {filename} ({len(response.content)} bytes)")
        return response.content
    
    def close(self) -> None:
        self.client.close()
    
    def _send(self, method: str, filename: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, f"/{filename}", **kwargs)
        except httpx.TimeoutException as e:
            raise ChannelUnavailableError(f"Cloud request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise ChannelUnavailableError(f"Cloud storage unreachable: {e}") from e
        
        if response.status_code in (401, 403):
            raise ChannelUnavailableError(f"Cloud storage rejected credentials (HTTP {response.status_code})")
        return response
