"""ストレージバックエンド

インポート時に各バックエンドがBackendRegistryへ登録される。
"""

from .base import StorageBackend
from .s3 import S3StorageBackend
from .oss import OSSStorageBackend

__all__ = [
    'StorageBackend',
    'S3StorageBackend',
    'OSSStorageBackend'
]
