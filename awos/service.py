"""統合ストレージサービス

ストレージバックエンドを抽象化し、統一的な非同期APIを提供。
論理キーはここでプレフィックス付きの物理キーに変換され、
選択されたバックエンドへ委譲される。
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from .config import StorageConfig
from .registry import BackendRegistry
from .exceptions import StorageConfigError, ValidationError
from .routing import KeyNamespace
from .models import (
    MAX_DELETE_KEYS,
    CopyObjectOptions,
    GetBufferedObjectResponse,
    GetObjectResponse,
    HeadOptions,
    ListObjectOptions,
    ListObjectOutput,
    ListObjectV2Options,
    ListObjectV2Output,
    PutObjectOptions,
    SignatureUrlOptions,
)
from .backends import StorageBackend

logger = logging.getLogger(__name__)


class StorageService:
    """
    統合ストレージサービス

    StorageConfig.typeでバックエンドを切り替え:
    - 's3' / 'aws': S3およびS3互換ストレージ
    - 'oss': Aliyun OSS

    使用例:
        storage = build(StorageConfig.from_env())
        await storage.put('a.txt', 'hello', PutObjectOptions(meta={'length': 5}))
        result = await storage.get('a.txt', ['length'])
    """

    def __init__(self, backend: StorageBackend, prefix: Optional[str] = None, mode: str = ''):
        self._backend = backend
        self._namespace = KeyNamespace(prefix)
        self.mode = mode
        logger.info(f"StorageService initialized: mode={self.mode}, prefix={self._namespace.prefix!r}")

    @property
    def backend(self) -> StorageBackend:
        """バックエンドインスタンスを取得"""
        return self._backend

    @property
    def prefix(self) -> str:
        return self._namespace.prefix

    def actual_key(self, key: str) -> str:
        """論理キーを物理キーに変換"""
        return self._namespace.actual_key(key)

    def _list_options(self, options):
        if options is None or not options.prefix:
            return options
        return replace(options, prefix=self._namespace.actual_prefix(options.prefix))

    # --- 読み取り系メソッド ---

    async def get(self, key: str, meta_keys: Sequence[str] = ()) -> Optional[GetObjectResponse]:
        """オブジェクトをテキストとして取得（存在しない場合None）"""
        return await self._backend.get(self.actual_key(key), meta_keys)

    async def get_as_buffer(
        self, key: str, meta_keys: Sequence[str] = ()
    ) -> Optional[GetBufferedObjectResponse]:
        """オブジェクトをバイト列として取得（存在しない場合None）"""
        return await self._backend.get_as_buffer(self.actual_key(key), meta_keys)

    async def head(self, key: str, options: Optional[HeadOptions] = None) -> Optional[Dict[str, str]]:
        """
        メタデータを取得（存在しない場合None）

        標準ヘッダーは 'content-type', 'content-length', 'accept-ranges',
        'etag', 'last-modified'。last-modifiedはエポックミリ秒で返す。
        """
        return await self._backend.head(self.actual_key(key), options)

    async def list_object(self, key: str, options: Optional[ListObjectOptions] = None) -> List[str]:
        return await self._backend.list_object(self.actual_key(key), self._list_options(options))

    async def list_object_v2(self, key: str, options: Optional[ListObjectV2Options] = None) -> List[str]:
        return await self._backend.list_object_v2(self.actual_key(key), self._list_options(options))

    async def list_details(self, key: str, options: Optional[ListObjectOptions] = None) -> ListObjectOutput:
        return await self._backend.list_details(self.actual_key(key), self._list_options(options))

    async def list_details_v2(
        self, key: str, options: Optional[ListObjectV2Options] = None
    ) -> ListObjectV2Output:
        return await self._backend.list_details_v2(self.actual_key(key), self._list_options(options))

    async def signature_url(self, key: str, options: Optional[SignatureUrlOptions] = None) -> str:
        """事前署名URLを生成"""
        return await self._backend.signature_url(self.actual_key(key), options)

    # --- 書き込み系メソッド ---

    async def put(self, key: str, data, options: Optional[PutObjectOptions] = None) -> None:
        await self._backend.put(self.actual_key(key), data, options)

    async def copy(self, key: str, source: str, options: Optional[CopyObjectOptions] = None) -> None:
        """sourceからkeyへコピー"""
        await self._backend.copy(self.actual_key(key), self.actual_key(source), options)

    async def delete(self, key: str) -> None:
        await self._backend.delete(self.actual_key(key))

    async def delete_multi(self, keys: Sequence[str]) -> List[str]:
        """
        一括削除

        Returns:
            List[str]: 削除に失敗したキー（論理キー）

        Raises:
            ValidationError: キーが1000件を超える場合（バックエンド呼び出し前）
        """
        if len(keys) > MAX_DELETE_KEYS:
            raise ValidationError(f"Cannot delete more than {MAX_DELETE_KEYS} keys")
        actual_keys = {self.actual_key(k): k for k in keys}
        failed = await self._backend.delete_multi(list(actual_keys))
        return [actual_keys.get(k, k) for k in failed]


def build(config: Optional[StorageConfig] = None) -> StorageService:
    """
    設定からStorageServiceを構築

    Args:
        config: 統合ストレージ設定。Noneの場合は環境変数から読み込み

    Raises:
        BackendNotRegisteredError: 未知のtypeが指定された場合
        StorageConfigError: 選択したtypeの設定が無い場合
    """
    config = config or StorageConfig.from_env()
    backend_class = BackendRegistry.get(config.type)

    backend_config = config.get_backend_config()
    if backend_config is None:
        raise StorageConfigError(f"{config.type} options are required when type is {config.type!r}")

    return StorageService(backend_class(backend_config), prefix=config.prefix, mode=config.type)
