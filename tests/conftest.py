"""共通フィクスチャ"""

from unittest.mock import AsyncMock, patch

import pytest

from awos import StorageConfig, build

from tests.mock_storage import MockOSSService, MockS3Client, make_oss_config, make_s3_config


@pytest.fixture
def mock_s3():
    """boto3.clientをインメモリモックに差し替え"""
    client = MockS3Client()
    with patch('awos.backends.s3.boto3.client', return_value=client):
        yield client


@pytest.fixture
def mock_oss():
    """oss2.Bucketをインメモリモックに差し替え"""
    service = MockOSSService()
    with patch('awos.backends.oss.oss2.Bucket', side_effect=service.bucket):
        yield service


@pytest.fixture
def no_sleep():
    """リトライ待機をスキップ"""
    with patch('awos.retry.asyncio.sleep', new_callable=AsyncMock) as sleep:
        yield sleep


@pytest.fixture(params=['s3', 'oss'])
def storage(request, mock_s3, mock_oss):
    """両バックエンドで同じテストを実行するためのStorageService"""
    if request.param == 's3':
        config = StorageConfig(type='s3', prefix='test-awos', s3=make_s3_config())
    else:
        config = StorageConfig(type='oss', prefix='test-awos', oss=make_oss_config())
    return build(config)
