"""S3StorageBackendのテスト（boto3クライアントはモック）"""

from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from awos import (
    CopyObjectOptions,
    HeadOptions,
    ListObjectOptions,
    ListObjectV2Options,
    PutObjectHeaders,
    PutObjectOptions,
    RoutingError,
    S3StorageBackend,
    SignatureUrlOptions,
    StorageConfigError,
)

from tests.mock_storage import LAST_MODIFIED_MILLIS, MockS3Client, make_s3_config


def _server_error(operation: str) -> ClientError:
    return ClientError(
        {
            'Error': {'Code': 'InternalError', 'Message': 'We encountered an internal error'},
            'ResponseMetadata': {'HTTPStatusCode': 500}
        },
        operation
    )


class TestClientConfiguration:
    """クライアント生成のテスト"""

    def test_path_style(self):
        with patch('awos.backends.s3.boto3.client', return_value=MockS3Client()) as client:
            S3StorageBackend(make_s3_config())

        args, kwargs = client.call_args
        assert args == ('s3',)
        assert kwargs['endpoint_url'] == 'http://localhost:9000'
        assert kwargs['region_name'] == 'cn-north-1'
        assert kwargs['config'].s3 == {'addressing_style': 'path'}

    def test_path_style_requires_endpoint(self, mock_s3):
        with pytest.raises(StorageConfigError, match='endpoint'):
            S3StorageBackend(make_s3_config(endpoint=None))

    def test_virtual_host_requires_region(self, mock_s3):
        with pytest.raises(StorageConfigError, match='region'):
            S3StorageBackend(make_s3_config(force_path_style=False, endpoint=None))

    def test_virtual_host(self):
        config = make_s3_config(force_path_style=False, endpoint=None, region='ap-northeast-1')
        with patch('awos.backends.s3.boto3.client', return_value=MockS3Client()) as client:
            S3StorageBackend(config)

        kwargs = client.call_args.kwargs
        assert kwargs['region_name'] == 'ap-northeast-1'
        assert 'endpoint_url' not in kwargs
        assert 'config' not in kwargs

    def test_signature_version(self):
        config = make_s3_config(signature_version='s3v4')
        with patch('awos.backends.s3.boto3.client', return_value=MockS3Client()) as client:
            S3StorageBackend(config)

        assert client.call_args.kwargs['config'].signature_version == 's3v4'

    @pytest.mark.parametrize('field', ['access_key_id', 'secret_access_key', 'bucket'])
    def test_required_fields(self, mock_s3, field):
        with pytest.raises(StorageConfigError, match=field):
            S3StorageBackend(make_s3_config(**{field: None}))


class TestS3Requests:
    """SDKに渡すパラメータのテスト"""

    @pytest.mark.asyncio
    async def test_put_params(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())

        await backend.put('a.txt', 'hello', PutObjectOptions(
            meta={'length': 5},
            content_type='text/markdown',
            headers=PutObjectHeaders(cache_control='no-cache', content_disposition='inline')
        ))

        params = mock_s3.calls_of('put_object')[0]
        assert params['Bucket'] == 'test-bucket'
        assert params['Key'] == 'a.txt'
        assert params['Body'] == b'hello'
        assert params['Metadata'] == {'length': '5'}
        assert params['ContentType'] == 'text/markdown'
        assert params['CacheControl'] == 'no-cache'
        assert params['ContentDisposition'] == 'inline'
        assert 'ContentEncoding' not in params

    @pytest.mark.asyncio
    async def test_copy_replace_directive(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())
        await backend.put('src', 'x')

        await backend.copy('dst', 'src', CopyObjectOptions(meta={'owner': 'bob'}))

        params = mock_s3.calls_of('copy_object')[0]
        assert params['CopySource'] == {'Bucket': 'test-bucket', 'Key': 'src'}
        assert params['MetadataDirective'] == 'REPLACE'
        assert params['Metadata'] == {'owner': 'bob'}
        assert params['ContentType'] == 'text/plain'

    @pytest.mark.asyncio
    async def test_copy_copy_directive(self, mock_s3):
        """metaが空ならCOPYでメタデータ・Content-Typeは送らない"""
        backend = S3StorageBackend(make_s3_config())
        await backend.put('src', 'x')

        await backend.copy('dst', 'src')

        params = mock_s3.calls_of('copy_object')[0]
        assert params['MetadataDirective'] == 'COPY'
        assert 'Metadata' not in params
        assert 'ContentType' not in params

    @pytest.mark.asyncio
    async def test_delete_multi_quiet(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())

        await backend.delete_multi(['a', 'b'])

        params = mock_s3.calls_of('delete_objects')[0]
        assert params['Delete'] == {'Objects': [{'Key': 'a'}, {'Key': 'b'}], 'Quiet': True}

    @pytest.mark.asyncio
    async def test_delete_multi_reports_errors(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())
        with patch.object(mock_s3, 'delete_objects', return_value={
            'Errors': [{'Key': 'b', 'Code': 'AccessDenied', 'Message': 'Access Denied'}]
        }):
            failed = await backend.delete_multi(['a', 'b'])

        assert failed == ['b']

    @pytest.mark.asyncio
    async def test_list_omits_unset_options(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())

        await backend.list_details('key', ListObjectOptions(prefix='p/'))

        assert mock_s3.calls_of('list_objects')[0] == {'Bucket': 'test-bucket', 'Prefix': 'p/'}

    @pytest.mark.asyncio
    async def test_zero_max_keys_is_sent(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())

        await backend.list_details('key', ListObjectOptions(max_keys=0))
        await backend.list_details_v2('key', ListObjectV2Options(max_keys=0))

        assert mock_s3.calls_of('list_objects')[0]['MaxKeys'] == 0
        assert mock_s3.calls_of('list_objects_v2')[0]['MaxKeys'] == 0

    @pytest.mark.asyncio
    async def test_signature_url_zero_expiry_is_sent(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())

        await backend.signature_url('a.txt', SignatureUrlOptions(expires=0))

        assert mock_s3.calls_of('generate_presigned_url')[0]['ExpiresIn'] == 0

    @pytest.mark.asyncio
    async def test_signature_url_put(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())

        url = await backend.signature_url('a.txt', SignatureUrlOptions(method='put', expires=60))

        params = mock_s3.calls_of('generate_presigned_url')[0]
        assert params['ClientMethod'] == 'put_object'
        assert params['Params'] == {'Bucket': 'test-bucket', 'Key': 'a.txt'}
        assert params['ExpiresIn'] == 60
        assert 'X-Amz-Expires=60' in url

    @pytest.mark.asyncio
    async def test_signature_url_default_expiry(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())

        await backend.signature_url('a.txt')

        params = mock_s3.calls_of('generate_presigned_url')[0]
        assert params['ClientMethod'] == 'get_object'
        assert params['ExpiresIn'] == 3600


class TestS3Responses:
    """レスポンス正規化のテスト"""

    @pytest.mark.asyncio
    async def test_head_standard_headers(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())
        await backend.put('a.txt', 'hello', PutObjectOptions(meta={'length': 5}))

        meta = await backend.head('a.txt', HeadOptions(with_standard_headers=True))

        assert meta['length'] == '5'
        assert meta['content-type'] == 'text/plain'
        assert meta['content-length'] == '5'
        assert meta['last-modified'] == LAST_MODIFIED_MILLIS

    @pytest.mark.asyncio
    async def test_head_not_found_status_only(self, mock_s3):
        """HEADの404はコード'404'でもNone"""
        backend = S3StorageBackend(make_s3_config())

        assert await backend.head('missing') is None

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())
        with patch.object(mock_s3, 'get_object', side_effect=_server_error('GetObject')):
            with pytest.raises(ClientError):
                await backend.get('a.txt')

    @pytest.mark.asyncio
    async def test_v1_marker_derived_without_delimiter(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())
        for name in ('a', 'b', 'c'):
            await backend.put(name, 'x')

        output = await backend.list_details('a', ListObjectOptions(max_keys=2))

        assert output.is_truncated is True
        assert output.next_marker == 'b'

    @pytest.mark.asyncio
    async def test_v1_no_marker_when_complete(self, mock_s3):
        backend = S3StorageBackend(make_s3_config())
        await backend.put('a', 'x')

        output = await backend.list_details('a')

        assert output.is_truncated is False
        assert output.next_marker is None


class TestS3Retry:
    """put/copyのリトライ"""

    @pytest.mark.asyncio
    async def test_put_retries_transient_errors(self, mock_s3, no_sleep):
        backend = S3StorageBackend(make_s3_config())
        original = mock_s3.put_object
        outcomes = [_server_error('PutObject'), EndpointConnectionError(endpoint_url='http://localhost:9000')]

        def flaky_put(**params):
            if outcomes:
                raise outcomes.pop(0)
            return original(**params)

        with patch.object(mock_s3, 'put_object', side_effect=flaky_put):
            await backend.put('a.txt', 'hello')

        assert mock_s3.objects[('test-bucket', 'a.txt')]['Body'] == b'hello'
        assert [c.args[0] for c in no_sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_put_gives_up_after_three_attempts(self, mock_s3, no_sleep):
        backend = S3StorageBackend(make_s3_config())
        with patch.object(mock_s3, 'put_object', side_effect=_server_error('PutObject')) as put:
            with pytest.raises(ClientError):
                await backend.put('a.txt', 'hello')

        assert put.call_count == 3

    @pytest.mark.asyncio
    async def test_copy_missing_source_is_retried_then_raised(self, mock_s3, no_sleep):
        backend = S3StorageBackend(make_s3_config())

        with pytest.raises(ClientError):
            await backend.copy('dst', 'missing')

        assert len(mock_s3.calls_of('copy_object')) == 3

    @pytest.mark.asyncio
    async def test_get_is_not_retried(self, mock_s3, no_sleep):
        backend = S3StorageBackend(make_s3_config())
        with patch.object(mock_s3, 'get_object', side_effect=_server_error('GetObject')) as get:
            with pytest.raises(ClientError):
                await backend.get('a.txt')

        assert get.call_count == 1
        no_sleep.assert_not_awaited()


class TestS3Shards:
    """シャーディングのテスト"""

    SHARDS = ['0123', '4567', '89ab', 'cdef']

    @pytest.mark.asyncio
    async def test_put_routes_by_last_character(self, mock_s3):
        backend = S3StorageBackend(make_s3_config(shards=self.SHARDS))

        await backend.put('obj-0', 'x')
        await backend.put('obj-F', 'x')

        buckets = [p['Bucket'] for p in mock_s3.calls_of('put_object')]
        assert buckets == ['test-bucket-0123', 'test-bucket-cdef']

    @pytest.mark.asyncio
    async def test_unmatched_key(self, mock_s3):
        backend = S3StorageBackend(make_s3_config(shards=self.SHARDS))

        with pytest.raises(RoutingError):
            await backend.put('obj-z', 'x')

        assert mock_s3.calls_of('put_object') == []

    @pytest.mark.asyncio
    async def test_copy_across_shards(self, mock_s3):
        backend = S3StorageBackend(make_s3_config(shards=self.SHARDS))
        await backend.put('src-1', 'x')

        await backend.copy('dst-9', 'src-1')

        params = mock_s3.calls_of('copy_object')[0]
        assert params['Bucket'] == 'test-bucket-89ab'
        assert params['CopySource'] == {'Bucket': 'test-bucket-0123', 'Key': 'src-1'}

    @pytest.mark.asyncio
    async def test_delete_multi_split_per_bucket(self, mock_s3):
        backend = S3StorageBackend(make_s3_config(shards=self.SHARDS))

        failed = await backend.delete_multi(['a1', 'a5', 'b2'])

        assert failed == []
        calls = mock_s3.calls_of('delete_objects')
        assert [c['Bucket'] for c in calls] == ['test-bucket-0123', 'test-bucket-4567']
        assert calls[0]['Delete']['Objects'] == [{'Key': 'a1'}, {'Key': 'b2'}]
