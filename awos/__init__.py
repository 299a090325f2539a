"""awos - 統合オブジェクトストレージクライアント

AWS S3（およびS3互換ストレージ）とAliyun OSSを同一の非同期APIで扱うための
ストレージ抽象化レイヤー。バックエンドは構築時に一度だけ選択する。
"""

from .config import StorageConfig, S3Config, OSSConfig
from .registry import BackendRegistry
from .exceptions import (
    StorageError,
    ValidationError,
    StorageConfigError,
    BackendNotRegisteredError,
    RoutingError
)
from .models import (
    PutObjectHeaders,
    PutObjectOptions,
    CopyObjectOptions,
    ListObjectOptions,
    ListObjectV2Options,
    HeadOptions,
    SignatureUrlOptions,
    GetObjectResponse,
    GetBufferedObjectResponse,
    ObjectSummary,
    ListObjectOutput,
    ListObjectV2Output
)
from .routing import KeyNamespace, ShardRouter
from .backends import StorageBackend, S3StorageBackend, OSSStorageBackend
from .service import StorageService, build

__all__ = [
    'StorageConfig',
    'S3Config',
    'OSSConfig',
    'BackendRegistry',
    'StorageError',
    'ValidationError',
    'StorageConfigError',
    'BackendNotRegisteredError',
    'RoutingError',
    'PutObjectHeaders',
    'PutObjectOptions',
    'CopyObjectOptions',
    'ListObjectOptions',
    'ListObjectV2Options',
    'HeadOptions',
    'SignatureUrlOptions',
    'GetObjectResponse',
    'GetBufferedObjectResponse',
    'ObjectSummary',
    'ListObjectOutput',
    'ListObjectV2Output',
    'KeyNamespace',
    'ShardRouter',
    'StorageBackend',
    'S3StorageBackend',
    'OSSStorageBackend',
    'StorageService',
    'build'
]

__version__ = '1.0.0'
