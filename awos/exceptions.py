"""カスタム例外

ストレージ関連のエラーを表す例外クラス。
NotFoundは例外ではなくNone返却で表現するため、ここには定義しない。
バックエンドSDKの例外（ClientError, OssError等）は変換せずにそのまま伝播する。
"""


class StorageError(Exception):
    """ストレージ操作の基底例外"""
    pass


class ValidationError(StorageError):
    """呼び出し側の入力不正（リトライ不可）"""
    pass


class StorageConfigError(ValidationError):
    """設定エラー（必須項目の欠落など）"""
    pass


class BackendNotRegisteredError(StorageConfigError):
    """バックエンドが未登録"""
    pass


class RoutingError(StorageError):
    """キーがどのシャードにも一致しない（設定不備、リトライ不可）"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"key not exist in shards bucket: {key!r}")
