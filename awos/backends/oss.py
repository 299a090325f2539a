"""Aliyun OSSストレージバックエンド

oss2のBucketはバケット単位のハンドルのため、シャード毎に1つずつ保持する。
ユーザーメタデータは x-oss-meta- プレフィックス付きのHTTPヘッダーとして扱う。
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

import oss2
from oss2.exceptions import OssError
from oss2.utils import http_to_unixtime

from ..registry import BackendRegistry
from ..config import OSSConfig
from ..exceptions import StorageConfigError
from ..models import (
    DEFAULT_CONTENT_TYPE,
    STANDARD_HEADERS,
    CopyObjectOptions,
    GetBufferedObjectResponse,
    HeadOptions,
    ListObjectOptions,
    ListObjectOutput,
    ListObjectV2Options,
    ListObjectV2Output,
    ObjectSummary,
    PutObjectOptions,
    SignatureUrlOptions,
    to_epoch_millis,
)
from ..retry import retry_async
from .base import StorageBackend

logger = logging.getLogger(__name__)

OSS_META_PREFIX = 'x-oss-meta-'
METADATA_DIRECTIVE_HEADER = 'x-oss-metadata-directive'

DEFAULT_SIGNATURE_EXPIRES = 1800  # 秒

# RequestError（通信エラー）もOssErrorのサブクラス
RETRYABLE_ERRORS = (OssError,)

NOT_FOUND_STATUSES = (404, 304)


def _is_not_found(error: OssError) -> bool:
    return getattr(error, 'status', None) in NOT_FOUND_STATUSES


def _lower_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    return {str(k).lower(): v for k, v in (headers or {}).items()}


def _standard_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """小文字化済みのレスポンスヘッダーから標準ヘッダーを抽出"""
    result = {}
    for name in STANDARD_HEADERS:
        value = headers.get(name)
        if value is None:
            continue
        if name == 'last-modified':
            result[name] = to_epoch_millis(http_to_unixtime(value))
        else:
            result[name] = str(value)
    return result


def _object_summary(info: Any) -> ObjectSummary:
    last_modified = None
    if info.last_modified is not None:
        last_modified = datetime.fromtimestamp(info.last_modified, tz=timezone.utc)
    return ObjectSummary(
        key=info.key,
        etag=info.etag,
        last_modified=last_modified,
        size=info.size
    )


def _write_headers(options: PutObjectOptions, meta: Dict[str, str]) -> Dict[str, str]:
    headers = {'Content-Type': options.content_type or DEFAULT_CONTENT_TYPE}
    for k, v in meta.items():
        headers[OSS_META_PREFIX + k] = v
    if options.headers is not None:
        headers.update(options.headers.to_http_headers())
    return headers


@BackendRegistry.register("oss")
class OSSStorageBackend(StorageBackend):
    """OSSストレージバックエンド"""

    def __init__(self, config: OSSConfig = None):
        """
        OSSバックエンドを初期化

        Args:
            config: OSS設定。Noneの場合は環境変数から読み込み

        Raises:
            StorageConfigError: 必須設定が不足している場合
        """
        if config is None:
            config = OSSConfig.from_env()

        for name in ('access_key_id', 'access_key_secret', 'bucket', 'endpoint'):
            if not getattr(config, name):
                raise StorageConfigError(f"oss.{name} required")

        super().__init__(config.bucket, config.shards)
        auth = oss2.Auth(config.access_key_id, config.access_key_secret)
        self.clients: Dict[str, oss2.Bucket] = {
            name: oss2.Bucket(auth, config.endpoint, name)
            for name in self.router.buckets
        }
        logger.info(f"OSSStorageBackend initialized: buckets={self.router.buckets}")

    def _client(self, key: str) -> oss2.Bucket:
        return self.clients[self.router.bucket_for(key)]

    async def get_as_buffer(
        self, key: str, meta_keys: Sequence[str] = ()
    ) -> Optional[GetBufferedObjectResponse]:
        client = self._client(key)
        try:
            result = await self._call(client.get_object, key)
            content = await self._call(result.read)
        except OssError as e:
            if _is_not_found(e):
                logger.debug(f"OSS object not found: {client.bucket_name}/{key}")
                return None
            raise

        headers = _lower_headers(result.headers)
        meta = {}
        for k in meta_keys:
            value = headers.get(OSS_META_PREFIX + k.lower())
            if value:
                meta[k] = value

        return GetBufferedObjectResponse(
            content=content,
            meta=meta,
            headers=_standard_headers(headers)
        )

    async def put(self, key: str, data, options: Optional[PutObjectOptions] = None) -> None:
        client = self._client(key)
        options = options or PutObjectOptions()
        body = data.encode('utf-8') if isinstance(data, str) else data
        headers = _write_headers(options, options.string_meta())

        await retry_async(
            lambda: self._call(client.put_object, key, body, headers=headers),
            retry_on=RETRYABLE_ERRORS,
            description=f"OSS put {client.bucket_name}/{key}"
        )
        logger.debug(f"OSS upload success: {client.bucket_name}/{key}")

    async def copy(self, key: str, source: str, options: Optional[CopyObjectOptions] = None) -> None:
        client = self._client(key)
        source_bucket = self.router.bucket_for(source)
        options = options or CopyObjectOptions()
        meta = options.string_meta()

        if meta:
            headers = _write_headers(options, meta)
            headers[METADATA_DIRECTIVE_HEADER] = 'REPLACE'
        else:
            headers = {METADATA_DIRECTIVE_HEADER: 'COPY'}

        await retry_async(
            lambda: self._call(client.copy_object, source_bucket, source, key, headers=headers),
            retry_on=RETRYABLE_ERRORS,
            description=f"OSS copy {source_bucket}/{source} -> {client.bucket_name}/{key}"
        )

    async def delete(self, key: str) -> None:
        client = self._client(key)
        await self._call(client.delete_object, key)

    async def _delete_batch(self, bucket: str, keys: List[str]) -> List[str]:
        client = self.clients[bucket]
        result = await self._call(client.batch_delete_objects, keys)
        # 存在しないキーもdeleted_keysに含まれる
        deleted = set(result.deleted_keys or [])
        failed = [k for k in keys if k not in deleted]
        if failed:
            logger.warning(f"OSS batch_delete_objects partially failed: bucket={bucket}, failed={len(failed)}")
        return failed

    async def head(self, key: str, options: Optional[HeadOptions] = None) -> Optional[Dict[str, str]]:
        client = self._client(key)
        try:
            result = await self._call(client.head_object, key)
        except OssError as e:
            if _is_not_found(e):
                logger.debug(f"OSS object not found: {client.bucket_name}/{key}")
                return None
            raise

        headers = _lower_headers(result.headers)
        meta = {
            name[len(OSS_META_PREFIX):]: value
            for name, value in headers.items()
            if name.startswith(OSS_META_PREFIX)
        }
        if options and options.with_standard_headers:
            meta.update(_standard_headers(headers))
        return meta

    async def list_details(self, key: str, options: Optional[ListObjectOptions] = None) -> ListObjectOutput:
        client = self._client(key)
        options = options or ListObjectOptions()
        params: Dict[str, Any] = {}
        if options.prefix:
            params['prefix'] = options.prefix
        if options.marker:
            params['marker'] = options.marker
        if options.delimiter:
            params['delimiter'] = options.delimiter
        if options.max_keys is not None:
            params['max_keys'] = options.max_keys

        result = await self._call(client.list_objects, **params)

        return ListObjectOutput(
            is_truncated=bool(result.is_truncated),
            objects=[_object_summary(o) for o in result.object_list or []],
            prefixes=list(result.prefix_list or []),
            next_marker=result.next_marker or None
        )

    async def list_details_v2(
        self, key: str, options: Optional[ListObjectV2Options] = None
    ) -> ListObjectV2Output:
        client = self._client(key)
        options = options or ListObjectV2Options()
        params: Dict[str, Any] = {}
        if options.prefix:
            params['prefix'] = options.prefix
        if options.delimiter:
            params['delimiter'] = options.delimiter
        if options.max_keys is not None:
            params['max_keys'] = options.max_keys
        if options.continuation_token:
            params['continuation_token'] = options.continuation_token

        result = await self._call(client.list_objects_v2, **params)

        return ListObjectV2Output(
            is_truncated=bool(result.is_truncated),
            objects=[_object_summary(o) for o in result.object_list or []],
            prefix=list(result.prefix_list or []),
            next_continuation_token=result.next_continuation_token or None
        )

    async def signature_url(self, key: str, options: Optional[SignatureUrlOptions] = None) -> str:
        client = self._client(key)
        method = self._signature_method(options)
        expires = DEFAULT_SIGNATURE_EXPIRES
        if options and options.expires is not None:
            expires = int(options.expires)
        return await self._call(client.sign_url, method, key, expires)
