"""S3ストレージバックエンド

AWS S3およびS3互換ストレージ（MinIO等）に対応。
boto3のクライアントは1つで全シャードバケットを扱う。
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..registry import BackendRegistry
from ..config import S3Config
from ..exceptions import StorageConfigError
from ..models import (
    DEFAULT_CONTENT_TYPE,
    CopyObjectOptions,
    GetBufferedObjectResponse,
    HeadOptions,
    ListObjectOptions,
    ListObjectOutput,
    ListObjectV2Options,
    ListObjectV2Output,
    ObjectSummary,
    PutObjectHeaders,
    PutObjectOptions,
    SignatureUrlOptions,
    to_epoch_millis,
)
from ..retry import retry_async
from .base import StorageBackend

logger = logging.getLogger(__name__)

# path-style（MinIO）利用時のデフォルトリージョン
DEFAULT_PATH_STYLE_REGION = 'cn-north-1'

RETRYABLE_ERRORS = (ClientError, BotoCoreError)

NOT_FOUND_CODES = ('NoSuchKey', 'NotFound', '404')


def _is_not_found(error: ClientError) -> bool:
    """S3の404（GetObjectはNoSuchKey、HeadObjectはボディなしの404）"""
    response = error.response or {}
    status = response.get('ResponseMetadata', {}).get('HTTPStatusCode')
    code = response.get('Error', {}).get('Code')
    return status == 404 or code in NOT_FOUND_CODES


def _header_params(headers: Optional[PutObjectHeaders]) -> Dict[str, str]:
    params = {}
    if headers is None:
        return params
    if headers.cache_control:
        params['CacheControl'] = headers.cache_control
    if headers.content_disposition:
        params['ContentDisposition'] = headers.content_disposition
    if headers.content_encoding:
        params['ContentEncoding'] = headers.content_encoding
    return params


def _standard_headers(response: Dict[str, Any]) -> Dict[str, str]:
    values = {
        'content-type': response.get('ContentType'),
        'content-length': response.get('ContentLength'),
        'accept-ranges': response.get('AcceptRanges'),
        'etag': response.get('ETag'),
        'last-modified': response.get('LastModified'),
    }
    headers = {}
    for name, value in values.items():
        if value is None:
            continue
        headers[name] = to_epoch_millis(value) if name == 'last-modified' else str(value)
    return headers


def _object_summary(item: Dict[str, Any]) -> ObjectSummary:
    return ObjectSummary(
        key=item['Key'],
        etag=item.get('ETag'),
        last_modified=item.get('LastModified'),
        size=item.get('Size')
    )


@BackendRegistry.register("aws")
@BackendRegistry.register("s3")
class S3StorageBackend(StorageBackend):
    """S3ストレージバックエンド"""

    def __init__(self, config: S3Config = None):
        """
        S3バックエンドを初期化

        Args:
            config: S3設定。Noneの場合は環境変数から読み込み

        Raises:
            StorageConfigError: 必須設定が不足している場合
        """
        if config is None:
            config = S3Config.from_env()

        for name in ('access_key_id', 'secret_access_key', 'bucket'):
            if not getattr(config, name):
                raise StorageConfigError(f"s3.{name} required")

        super().__init__(config.bucket, config.shards)
        self.client = self._build_client(config)
        logger.info(
            f"S3StorageBackend initialized: buckets={self.router.buckets}, "
            f"path_style={config.force_path_style}"
        )

    @staticmethod
    def _build_client(config: S3Config) -> Any:
        """boto3のS3クライアントを生成"""
        client_kwargs = {
            'aws_access_key_id': config.access_key_id,
            'aws_secret_access_key': config.secret_access_key,
        }
        config_kwargs: Dict[str, Any] = {}

        if config.force_path_style:
            # MinIO
            if not config.endpoint:
                raise StorageConfigError("s3.endpoint is required when force_path_style is enabled")
            client_kwargs['region_name'] = config.region or DEFAULT_PATH_STYLE_REGION
            config_kwargs['s3'] = {'addressing_style': 'path'}
        else:
            if not config.region:
                raise StorageConfigError("s3.region is required when force_path_style is disabled")
            client_kwargs['region_name'] = config.region

        if config.endpoint:
            client_kwargs['endpoint_url'] = config.endpoint
        if config.signature_version:
            config_kwargs['signature_version'] = config.signature_version
        if config_kwargs:
            client_kwargs['config'] = Config(**config_kwargs)

        return boto3.client('s3', **client_kwargs)

    async def get_as_buffer(
        self, key: str, meta_keys: Sequence[str] = ()
    ) -> Optional[GetBufferedObjectResponse]:
        bucket = self.router.bucket_for(key)
        try:
            response = await self._call(self.client.get_object, Bucket=bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                logger.debug(f"S3 object not found: {bucket}/{key}")
                return None
            raise

        content = await self._call(response['Body'].read)
        metadata = response.get('Metadata') or {}
        meta = {}
        for k in meta_keys:
            value = metadata.get(k.lower())
            if value:
                meta[k] = value

        return GetBufferedObjectResponse(
            content=content,
            meta=meta,
            headers=_standard_headers(response)
        )

    async def put(self, key: str, data, options: Optional[PutObjectOptions] = None) -> None:
        bucket = self.router.bucket_for(key)
        options = options or PutObjectOptions()
        body = data.encode('utf-8') if isinstance(data, str) else data

        params = {
            'Bucket': bucket,
            'Key': key,
            'Body': body,
            'Metadata': options.string_meta(),
            'ContentType': options.content_type or DEFAULT_CONTENT_TYPE,
        }
        params.update(_header_params(options.headers))

        await retry_async(
            lambda: self._call(self.client.put_object, **params),
            retry_on=RETRYABLE_ERRORS,
            description=f"S3 put {bucket}/{key}"
        )
        logger.debug(f"S3 upload success: {bucket}/{key}")

    async def copy(self, key: str, source: str, options: Optional[CopyObjectOptions] = None) -> None:
        bucket = self.router.bucket_for(key)
        source_bucket = self.router.bucket_for(source)
        options = options or CopyObjectOptions()
        meta = options.string_meta()

        params: Dict[str, Any] = {
            'Bucket': bucket,
            'Key': key,
            'CopySource': {'Bucket': source_bucket, 'Key': source},
        }
        if meta:
            params['MetadataDirective'] = 'REPLACE'
            params['Metadata'] = meta
            params['ContentType'] = options.content_type or DEFAULT_CONTENT_TYPE
            params.update(_header_params(options.headers))
        else:
            params['MetadataDirective'] = 'COPY'

        await retry_async(
            lambda: self._call(self.client.copy_object, **params),
            retry_on=RETRYABLE_ERRORS,
            description=f"S3 copy {source_bucket}/{source} -> {bucket}/{key}"
        )

    async def delete(self, key: str) -> None:
        bucket = self.router.bucket_for(key)
        await self._call(self.client.delete_object, Bucket=bucket, Key=key)

    async def _delete_batch(self, bucket: str, keys: List[str]) -> List[str]:
        response = await self._call(
            self.client.delete_objects,
            Bucket=bucket,
            Delete={
                'Objects': [{'Key': k} for k in keys],
                'Quiet': True,
            }
        )
        errors = response.get('Errors') or []
        if errors:
            logger.warning(f"S3 delete_objects partially failed: bucket={bucket}, errors={len(errors)}")
        return [e['Key'] for e in errors if e.get('Key') is not None]

    async def head(self, key: str, options: Optional[HeadOptions] = None) -> Optional[Dict[str, str]]:
        bucket = self.router.bucket_for(key)
        try:
            response = await self._call(self.client.head_object, Bucket=bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                logger.debug(f"S3 object not found: {bucket}/{key}")
                return None
            raise

        meta = dict(response.get('Metadata') or {})
        if options and options.with_standard_headers:
            meta.update(_standard_headers(response))
        return meta

    async def list_details(self, key: str, options: Optional[ListObjectOptions] = None) -> ListObjectOutput:
        bucket = self.router.bucket_for(key)
        options = options or ListObjectOptions()
        params: Dict[str, Any] = {'Bucket': bucket}
        if options.prefix:
            params['Prefix'] = options.prefix
        if options.marker:
            params['Marker'] = options.marker
        if options.delimiter:
            params['Delimiter'] = options.delimiter
        if options.max_keys is not None:
            params['MaxKeys'] = options.max_keys

        response = await self._call(self.client.list_objects, **params)

        objects = [_object_summary(o) for o in response.get('Contents') or []]
        prefixes = [p['Prefix'] for p in response.get('CommonPrefixes') or [] if p.get('Prefix')]
        is_truncated = bool(response.get('IsTruncated'))
        next_marker = response.get('NextMarker')
        # NextMarkerはdelimiter指定時しか返らないため、最後のエントリから補う
        if is_truncated and not next_marker:
            entries = [o.key for o in objects] + prefixes
            next_marker = max(entries) if entries else None

        return ListObjectOutput(
            is_truncated=is_truncated,
            objects=objects,
            prefixes=prefixes,
            next_marker=next_marker
        )

    async def list_details_v2(
        self, key: str, options: Optional[ListObjectV2Options] = None
    ) -> ListObjectV2Output:
        bucket = self.router.bucket_for(key)
        options = options or ListObjectV2Options()
        params: Dict[str, Any] = {'Bucket': bucket}
        if options.prefix:
            params['Prefix'] = options.prefix
        if options.delimiter:
            params['Delimiter'] = options.delimiter
        if options.max_keys is not None:
            params['MaxKeys'] = options.max_keys
        if options.continuation_token:
            params['ContinuationToken'] = options.continuation_token

        response = await self._call(self.client.list_objects_v2, **params)

        return ListObjectV2Output(
            is_truncated=bool(response.get('IsTruncated')),
            objects=[_object_summary(o) for o in response.get('Contents') or []],
            prefix=[p['Prefix'] for p in response.get('CommonPrefixes') or [] if p.get('Prefix')],
            next_continuation_token=response.get('NextContinuationToken')
        )

    async def signature_url(self, key: str, options: Optional[SignatureUrlOptions] = None) -> str:
        bucket = self.router.bucket_for(key)
        method = self._signature_method(options)
        operation = 'put_object' if method == 'PUT' else 'get_object'

        kwargs: Dict[str, Any] = {'Params': {'Bucket': bucket, 'Key': key}}
        if options and options.expires is not None:
            kwargs['ExpiresIn'] = int(options.expires)

        return await self._call(self.client.generate_presigned_url, operation, **kwargs)
