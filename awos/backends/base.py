"""ストレージバックエンド抽象基底クラス

すべてのストレージバックエンドが実装すべきインターフェースを定義。
キーはすべて物理キー（名前空間プレフィックス付与済み）で受け取る。
バケットの選択（シャーディング）はバックエンド側の責務。
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from fastapi.concurrency import run_in_threadpool

from ..models import (
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
from ..exceptions import ValidationError
from ..routing import ShardRouter

logger = logging.getLogger(__name__)

T = TypeVar('T')

SIGNATURE_METHODS = ('GET', 'PUT')


class StorageBackend(ABC):
    """ストレージバックエンドの抽象基底クラス"""

    def __init__(self, bucket: str, shards: Optional[Sequence[str]] = None):
        self.router = ShardRouter(bucket, shards)

    async def _call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """ブロッキングなSDK呼び出しをスレッドプールで実行"""
        return await run_in_threadpool(func, *args, **kwargs)

    @staticmethod
    def _signature_method(options: Optional[SignatureUrlOptions]) -> str:
        method = (options.method if options else 'GET') or 'GET'
        method = method.upper()
        if method not in SIGNATURE_METHODS:
            raise ValidationError(f"Unsupported signature method: {method}")
        return method

    # --- 読み取り系メソッド（Read Operations） ---

    async def get(self, key: str, meta_keys: Sequence[str] = ()) -> Optional[GetObjectResponse]:
        """
        オブジェクトをテキストとして取得する

        Args:
            key: 物理キー
            meta_keys: 結果のmetaに含めるメタデータキー

        Returns:
            Optional[GetObjectResponse]: 存在しない場合はNone
        """
        result = await self.get_as_buffer(key, meta_keys)
        if result is None:
            return None
        return result.decode()

    @abstractmethod
    async def get_as_buffer(
        self, key: str, meta_keys: Sequence[str] = ()
    ) -> Optional[GetBufferedObjectResponse]:
        """
        オブジェクトをバイト列として取得する

        Returns:
            Optional[GetBufferedObjectResponse]: 存在しない場合はNone
        """
        pass

    @abstractmethod
    async def head(self, key: str, options: Optional[HeadOptions] = None) -> Optional[Dict[str, str]]:
        """
        メタデータを取得する

        options.with_standard_headersがTrueの場合、標準ヘッダー
        （last-modifiedはエポックミリ秒）を同じ辞書にマージする。

        Returns:
            Optional[Dict[str, str]]: 存在しない場合はNone
        """
        pass

    async def list_object(self, key: str, options: Optional[ListObjectOptions] = None) -> List[str]:
        """キー一覧を取得する（v1）"""
        output = await self.list_details(key, options)
        return [o.key for o in output.objects]

    async def list_object_v2(self, key: str, options: Optional[ListObjectV2Options] = None) -> List[str]:
        """キー一覧を取得する（v2）"""
        output = await self.list_details_v2(key, options)
        return [o.key for o in output.objects]

    @abstractmethod
    async def list_details(self, key: str, options: Optional[ListObjectOptions] = None) -> ListObjectOutput:
        """
        一覧の詳細を取得する（markerページング）

        Args:
            key: バケット選択に使う物理キー
            options: prefix / marker / delimiter / max_keys
        """
        pass

    @abstractmethod
    async def list_details_v2(
        self, key: str, options: Optional[ListObjectV2Options] = None
    ) -> ListObjectV2Output:
        """一覧の詳細を取得する（continuation-tokenページング）"""
        pass

    @abstractmethod
    async def signature_url(self, key: str, options: Optional[SignatureUrlOptions] = None) -> str:
        """GET / PUT用の事前署名URLを生成する"""
        pass

    # --- 書き込み系メソッド（Write Operations） ---

    @abstractmethod
    async def put(self, key: str, data, options: Optional[PutObjectOptions] = None) -> None:
        """
        オブジェクトを保存する（リトライ付き）

        Args:
            key: 物理キー
            data: str または bytes
            options: メタデータ / Content-Type / ヘッダー
        """
        pass

    @abstractmethod
    async def copy(self, key: str, source: str, options: Optional[CopyObjectOptions] = None) -> None:
        """
        sourceからkeyへサーバーサイドコピーする（リトライ付き）

        metaが空でなければメタデータを置き換え、空ならコピー元を引き継ぐ。
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """オブジェクトを削除する（存在しなくても成功）"""
        pass

    async def delete_multi(self, keys: Sequence[str]) -> List[str]:
        """
        複数オブジェクトを一括削除する

        キーが複数シャードにまたがる場合はバケット毎にリクエストを分ける。

        Returns:
            List[str]: 削除に失敗したキー（空なら全件成功）
        """
        if not keys:
            return []
        failed: List[str] = []
        for bucket, bucket_keys in self.router.group_by_bucket(keys).items():
            failed.extend(await self._delete_batch(bucket, bucket_keys))
        return failed

    @abstractmethod
    async def _delete_batch(self, bucket: str, keys: List[str]) -> List[str]:
        """単一バケットに対する一括削除。失敗したキーを返す"""
        pass
