"""データモデル定義

全バックエンドで共通のオプション・結果データクラスを定義。
バックエンド固有のリクエスト/レスポンス形式は各アダプタ内に閉じ込め、
ここで定義した型だけがアダプタ境界を越える。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

DEFAULT_CONTENT_TYPE = "text/plain"

# head(with_standard_headers=True) で metadata にマージされる標準ヘッダー
STANDARD_HEADERS = (
    'content-type',
    'content-length',
    'accept-ranges',
    'etag',
    'last-modified',
)

# 両バックエンドとも一括削除は1000件まで
MAX_DELETE_KEYS = 1000


@dataclass(frozen=True)
class PutObjectHeaders:
    """put/copy時に指定可能なHTTPヘッダー（両バックエンド共通の3種のみ）"""
    cache_control: Optional[str] = None
    content_disposition: Optional[str] = None
    content_encoding: Optional[str] = None

    def to_http_headers(self) -> Dict[str, str]:
        """HTTPヘッダー名の辞書に変換（未指定の項目は含めない）"""
        headers = {}
        if self.cache_control:
            headers['Cache-Control'] = self.cache_control
        if self.content_disposition:
            headers['Content-Disposition'] = self.content_disposition
        if self.content_encoding:
            headers['Content-Encoding'] = self.content_encoding
        return headers


@dataclass(frozen=True)
class PutObjectOptions:
    """put/copyオプション"""
    meta: Mapping[str, Any] = field(default_factory=dict)
    content_type: str = DEFAULT_CONTENT_TYPE
    headers: Optional[PutObjectHeaders] = None

    def string_meta(self) -> Dict[str, str]:
        """メタデータの値を文字列に変換（真偽値は 'true' / 'false'）"""
        return {k: _meta_value(v) for k, v in (self.meta or {}).items()}


def _meta_value(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


# copyはputと同じ形
CopyObjectOptions = PutObjectOptions


@dataclass(frozen=True)
class ListObjectOptions:
    """一覧取得オプション（v1: markerページング）"""
    prefix: Optional[str] = None
    marker: Optional[str] = None
    delimiter: Optional[str] = None
    max_keys: Optional[int] = None


@dataclass(frozen=True)
class ListObjectV2Options:
    """一覧取得オプション（v2: continuation-tokenページング）"""
    prefix: Optional[str] = None
    delimiter: Optional[str] = None
    max_keys: Optional[int] = None
    continuation_token: Optional[str] = None


@dataclass(frozen=True)
class HeadOptions:
    """headオプション"""
    with_standard_headers: bool = False


@dataclass(frozen=True)
class SignatureUrlOptions:
    """事前署名URLオプション"""
    method: str = "GET"            # 'GET' or 'PUT'
    expires: Optional[int] = None  # 有効期限（秒）、Noneはバックエンド既定値


@dataclass
class GetObjectResponse:
    """get結果（テキスト）"""
    content: str
    meta: Dict[str, str]
    headers: Dict[str, str]


@dataclass
class GetBufferedObjectResponse:
    """get_as_buffer結果（バイト列）"""
    content: bytes
    meta: Dict[str, str]
    headers: Dict[str, str]

    def decode(self, encoding: str = 'utf-8', errors: str = 'replace') -> GetObjectResponse:
        """テキスト版の結果に変換（不正なバイト列はU+FFFDに置換）"""
        return GetObjectResponse(
            content=self.content.decode(encoding, errors),
            meta=self.meta,
            headers=self.headers
        )


@dataclass
class ObjectSummary:
    """一覧に含まれるオブジェクト情報"""
    key: str
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None  # UTC
    size: Optional[int] = None


@dataclass
class ListObjectOutput:
    """一覧結果（v1）"""
    is_truncated: bool
    objects: List[ObjectSummary] = field(default_factory=list)
    prefixes: List[str] = field(default_factory=list)
    next_marker: Optional[str] = None


@dataclass
class ListObjectV2Output:
    """一覧結果（v2）。prefix はdelimiterでまとめられた共通プレフィックス"""
    is_truncated: bool
    objects: List[ObjectSummary] = field(default_factory=list)
    prefix: List[str] = field(default_factory=list)
    next_continuation_token: Optional[str] = None


def to_epoch_millis(value: Any) -> str:
    """最終更新日時をエポックミリ秒の文字列に正規化

    datetime（boto3）とエポック秒の整数（oss2）の両方を受け付ける。
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return str(int(value.timestamp() * 1000))
    return str(int(value) * 1000)
