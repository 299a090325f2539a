"""ストレージ設定クラス

環境変数からの設定読み込みを一元管理。
STORAGE_TYPEでバックエンド（s3 / oss）を選択する。
"""

from dataclasses import dataclass
from typing import List, Optional
import os

from dotenv import load_dotenv


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_list(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    items = [item.strip() for item in value.split(',') if item.strip()]
    return items or None


@dataclass
class S3Config:
    """S3固有設定（AWS S3 / MinIO等のS3互換ストレージ）"""
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    bucket: Optional[str] = None
    endpoint: Optional[str] = None
    region: Optional[str] = None
    force_path_style: bool = False     # MinIO利用時はTrue
    signature_version: Optional[str] = None
    shards: Optional[List[str]] = None  # シャード毎のキー末尾文字グループ

    @classmethod
    def from_env(cls) -> 'S3Config':
        """環境変数から設定を読み込み"""
        return cls(
            access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
            secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
            bucket=os.getenv('S3_BUCKET_NAME'),
            endpoint=os.getenv('S3_ENDPOINT_URL'),
            region=os.getenv('AWS_DEFAULT_REGION'),
            force_path_style=_as_bool(os.getenv('S3_FORCE_PATH_STYLE')),
            signature_version=os.getenv('S3_SIGNATURE_VERSION'),
            shards=_as_list(os.getenv('S3_SHARDS'))
        )


@dataclass
class OSSConfig:
    """Aliyun OSS固有設定"""
    access_key_id: Optional[str] = None
    access_key_secret: Optional[str] = None
    bucket: Optional[str] = None
    endpoint: Optional[str] = None
    shards: Optional[List[str]] = None

    @classmethod
    def from_env(cls) -> 'OSSConfig':
        """環境変数から設定を読み込み"""
        return cls(
            access_key_id=os.getenv('OSS_ACCESS_KEY_ID'),
            access_key_secret=os.getenv('OSS_ACCESS_KEY_SECRET'),
            bucket=os.getenv('OSS_BUCKET_NAME'),
            endpoint=os.getenv('OSS_ENDPOINT'),
            shards=_as_list(os.getenv('OSS_SHARDS'))
        )


@dataclass
class StorageConfig:
    """統合ストレージ設定"""
    type: str = "s3"
    prefix: str = ""
    s3: Optional[S3Config] = None
    oss: Optional[OSSConfig] = None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'StorageConfig':
        """
        環境変数から設定を読み込み

        Args:
            env_file: 先に読み込む.envファイルのパス（既存の環境変数は上書きしない）
        """
        if env_file:
            load_dotenv(env_file)

        return cls(
            type=os.getenv('STORAGE_TYPE', 's3').lower(),
            prefix=os.getenv('STORAGE_PREFIX', ''),
            s3=S3Config.from_env(),
            oss=OSSConfig.from_env()
        )

    def get_backend_config(self):
        """現在の種別に対応するバックエンド設定を取得"""
        if self.type in ('s3', 'aws'):
            return self.s3
        elif self.type == 'oss':
            return self.oss
        return None
