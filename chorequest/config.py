"""設定管理 - 環境変数の型安全な読み込み"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from chorequest.domain.models import DEFAULT_MAX_PROOF_BYTES

_DEFAULT_CORS_ORIGINS = ("http://localhost:3000",)


def _flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def is_local_mode() -> bool:
    """LOCAL_MODE の判定（"false" / "0" / 空文字は本番扱い）"""
    return _flag("LOCAL_MODE")


def log_level_from_env() -> str:
    return os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def cors_origins_from_env() -> tuple[str, ...]:
    """CORS_ORIGINS（カンマ区切り）。未指定ならローカルのフロントエンドのみ"""
    origins = tuple(
        o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()
    )
    return origins or _DEFAULT_CORS_ORIGINS


@dataclass(frozen=True)
class WorkerAuthConfig:
    """
    /worker/* の呼び出し元検証の設定。

    リクエストごとに読み直すため AppConfig とは分けている
    （AppConfig は GCS_BUCKET_NAME 等の本番必須値を要求する）。
    """

    local_mode: bool
    service_account_email: str = ""
    audience: str = ""  # 空なら audience を検証しない

    @classmethod
    def from_env(cls) -> "WorkerAuthConfig":
        load_dotenv()
        return cls(
            local_mode=is_local_mode(),
            service_account_email=os.getenv("WORKER_SERVICE_ACCOUNT_EMAIL", "").strip(),
            audience=os.getenv("WORKER_AUDIENCE", "").strip(),
        )


@dataclass(frozen=True)
class AppConfig:
    """アプリケーション設定"""

    local_mode: bool
    project_id: str
    gcs_bucket_name: str
    frontend_base_url: str = ""
    vapid_private_key: str = ""
    vapid_public_key: str = ""
    vapid_claims_email: str = ""
    max_proof_bytes: int = DEFAULT_MAX_PROOF_BYTES
    cors_origins: tuple[str, ...] = _DEFAULT_CORS_ORIGINS
    log_level: str = "INFO"
    worker_service_account_email: str = ""

    @property
    def web_push_enabled(self) -> bool:
        return bool(self.vapid_private_key)

    @property
    def worker_auth(self) -> WorkerAuthConfig:
        return WorkerAuthConfig(
            local_mode=self.local_mode,
            service_account_email=self.worker_service_account_email,
        )

    @classmethod
    def from_env(cls) -> "AppConfig":
        """環境変数から設定を読み込む"""
        load_dotenv()

        local_mode = is_local_mode()

        project_id = os.getenv("PROJECT_ID", "")
        gcs_bucket_name = os.getenv("GCS_BUCKET_NAME", "")
        if not local_mode and not gcs_bucket_name:
            raise ValueError("GCS_BUCKET_NAME is not set in environment")

        max_proof_raw = os.getenv("MAX_PROOF_BYTES", "")
        try:
            max_proof_bytes = int(max_proof_raw) if max_proof_raw else DEFAULT_MAX_PROOF_BYTES
        except ValueError as e:
            raise ValueError(f"MAX_PROOF_BYTES must be an integer: {max_proof_raw!r}") from e
        if max_proof_bytes <= 0:
            raise ValueError("MAX_PROOF_BYTES must be positive")

        return cls(
            local_mode=local_mode,
            project_id=project_id,
            gcs_bucket_name=gcs_bucket_name,
            frontend_base_url=os.getenv("FRONTEND_BASE_URL", ""),
            vapid_private_key=os.getenv("VAPID_PRIVATE_KEY", ""),
            vapid_public_key=os.getenv("VAPID_PUBLIC_KEY", ""),
            vapid_claims_email=os.getenv("VAPID_CLAIMS_EMAIL", ""),
            max_proof_bytes=max_proof_bytes,
            cors_origins=cors_origins_from_env(),
            log_level=log_level_from_env(),
            worker_service_account_email=os.getenv("WORKER_SERVICE_ACCOUNT_EMAIL", "").strip(),
        )
