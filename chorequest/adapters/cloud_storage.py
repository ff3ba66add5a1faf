"""Cloud Storage Adapter

PhotoStorage ABC の Google Cloud Storage 実装。
完了報告の写真証拠を保存し、取得可能な URL を返す。
"""

from __future__ import annotations

import logging

import requests
from google.api_core import exceptions as gapi_exceptions
from google.auth import exceptions as google_auth_exceptions
from google.cloud import storage

from chorequest.domain.errors import StorageError
from chorequest.domain.ports import PhotoStorage

logger = logging.getLogger(__name__)

# API エラーに加え、接続断・認証情報の更新失敗もアップロード失敗として扱う
_UPLOAD_ERRORS = (
    gapi_exceptions.GoogleAPIError,
    google_auth_exceptions.GoogleAuthError,
    requests.exceptions.RequestException,
)


class GCSPhotoStorage(PhotoStorage):
    """
    Google Cloud Storage を使った PhotoStorage 実装。

    全ファイルは単一バケット内の path で管理する。
    パス規約: proofs/{house_id}/{task_id}/{uuid}{ext}
    """

    def __init__(self, bucket_name: str, client: storage.Client | None = None) -> None:
        """
        Args:
            bucket_name: GCS バケット名
            client: 初期化済みの GCS クライアント（省略時は ADC で自動初期化）
        """
        self._client = client or storage.Client()
        self._bucket = self._client.bucket(bucket_name)
        self._bucket_name = bucket_name

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        """
        写真を GCS にアップロードして公開 URL を返す。

        Raises:
            StorageError: GCS への書き込みに失敗した場合
        """
        blob = self._bucket.blob(path)
        try:
            blob.upload_from_string(content, content_type=content_type)
        except _UPLOAD_ERRORS as e:
            logger.error(
                "Upload failed: bucket=%s, path=%s, error=%s", self._bucket_name, path, e
            )
            raise StorageError(f"写真のアップロードに失敗しました: {e}") from e
        logger.info(
            "Uploaded: bucket=%s, path=%s, size=%d bytes",
            self._bucket_name,
            path,
            len(content),
        )
        return blob.public_url

    def public_url(self, path: str) -> str:
        return self._bucket.blob(path).public_url


class LocalPhotoStorage(PhotoStorage):
    """LOCAL_MODE 用: 写真をメモリに保持し、擬似 URL を返す"""

    def __init__(self, base_url: str = "http://localhost:8000/local-storage") -> None:
        self._base_url = base_url.rstrip("/")
        self.objects: dict[str, bytes] = {}

    def upload(self, path: str, content: bytes, content_type: str) -> str:
        self.objects[path] = content
        logger.info("LOCAL_MODE: stored photo path=%s, size=%d bytes", path, len(content))
        return self.public_url(path)

    def public_url(self, path: str) -> str:
        return f"{self._base_url}/{path}"
