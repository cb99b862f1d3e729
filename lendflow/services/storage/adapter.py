from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Dict
import hashlib
import hmac
import time
from urllib.parse import urlencode


def _sign_local_url(secret_key: str, object_key: str, expires: int) -> str:
    """Create HMAC-SHA256 signature for a local storage URL."""
    message = f"{object_key}:{expires}"
    return hmac.new(
        secret_key.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_local_url_signature(
    secret_key: str, object_key: str, expires: int, signature: str
) -> bool:
    """Verify HMAC signature and expiry for a local storage URL.

    Returns False if the signature is invalid or the URL has expired.
    """
    if int(time.time()) > expires:
        return False
    expected = _sign_local_url(secret_key, object_key, expires)
    return hmac.compare_digest(expected, signature)


def _expires_at(epoch_seconds: int) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).isoformat()


class StorageAdapter(ABC):
    provider: str = "local"

    @abstractmethod
    def generate_upload_authorization(self, object_key: str) -> Dict[str, Any]:
        """
        Returns:
            {
                "upload_url": "...",
                "method": "PUT" or "POST",
                "headers": {...},
                "signed_params": {...},  # form fields the client must send with the upload
                "expires_at": "<iso8601>",
            }
        """

    @abstractmethod
    def resolve_url(self, object_key: str) -> str:
        """Return the access URL recorded on the document once the upload is finalized."""


class LocalFileSystemAdapter(StorageAdapter):
    """Development adapter: signed PUT URLs served by this API, bytes written under ``base_path``."""

    def __init__(
        self,
        base_path: str,
        base_url: str,
        *,
        signing_key: str = "",
        expiry_seconds: int = 900,
    ):
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self.signing_key = signing_key
        self.expiry_seconds = expiry_seconds
        self.provider = "local"

    def _resolve_safe_path(self, object_key: str) -> Path:
        if "\\" in object_key:
            raise ValueError("Invalid object key")
        key_path = PurePosixPath(object_key)
        if key_path.is_absolute() or ".." in key_path.parts:
            raise ValueError("Invalid object key")
        base = self.base_path.resolve()
        resolved = (base / Path(object_key)).resolve()
        if resolved != base and base not in resolved.parents:
            raise ValueError("Invalid object key")
        return resolved

    def resolve_path(self, object_key: str) -> Path:
        return self._resolve_safe_path(object_key)

    def generate_upload_authorization(self, object_key: str) -> Dict[str, Any]:
        self._resolve_safe_path(object_key)
        expires = int(time.time()) + self.expiry_seconds
        signature = _sign_local_url(self.signing_key, object_key, expires)
        params = {"key": object_key, "expires": expires, "signature": signature}
        return {
            "upload_url": f"{self.base_url}/api/v1/kyc/local-content?{urlencode(params)}",
            "method": "PUT",
            "headers": {},
            "signed_params": params,
            "expires_at": _expires_at(expires),
        }

    def resolve_url(self, object_key: str) -> str:
        return f"{self.base_url}/api/v1/kyc/local-content?{urlencode({'key': object_key})}"

    def write_file(self, object_key: str, content: bytes) -> None:
        path = self._resolve_safe_path(object_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


class CloudinaryStorageAdapter(StorageAdapter):
    """Signed direct-to-Cloudinary uploads; the API never receives the document bytes."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        *,
        folder: str | None = None,
        expiry_seconds: int = 900,
    ):
        # Lazy import to avoid requiring the SDK unless the provider is selected
        import cloudinary.utils

        self._utils = cloudinary.utils
        self.provider = "cloudinary"
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self.expiry_seconds = expiry_seconds

    def generate_upload_authorization(self, object_key: str) -> Dict[str, Any]:
        timestamp = int(time.time())
        to_sign: Dict[str, Any] = {"timestamp": timestamp, "public_id": object_key}
        if self.folder:
            to_sign["folder"] = self.folder
        signature = self._utils.api_sign_request(to_sign, self.api_secret)
        return {
            "upload_url": f"https://api.cloudinary.com/v1_1/{self.cloud_name}/auto/upload",
            "method": "POST",
            "headers": {},
            "signed_params": {**to_sign, "signature": signature, "api_key": self.api_key},
            # Cloudinary rejects signatures older than one hour regardless of our setting.
            "expires_at": _expires_at(timestamp + min(self.expiry_seconds, 3600)),
        }

    def resolve_url(self, object_key: str) -> str:
        public_id = f"{self.folder}/{object_key}" if self.folder else object_key
        return f"https://res.cloudinary.com/{self.cloud_name}/image/upload/{public_id}"
