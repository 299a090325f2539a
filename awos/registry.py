"""バックエンドレジストリ

ストレージバックエンドの動的登録・取得を管理。
"""

from typing import Dict, Type, TYPE_CHECKING

from .exceptions import BackendNotRegisteredError

if TYPE_CHECKING:
    from .backends.base import StorageBackend


class BackendRegistry:
    """ストレージバックエンドのレジストリ"""

    _backends: Dict[str, Type['StorageBackend']] = {}

    @classmethod
    def register(cls, mode: str):
        """
        バックエンドクラスを登録するデコレータ

        使用例:
            @BackendRegistry.register("oss")
            class OSSStorageBackend(StorageBackend):
                ...
        """
        def decorator(backend_class: Type['StorageBackend']):
            cls._backends[mode.lower()] = backend_class
            return backend_class
        return decorator

    @classmethod
    def get(cls, mode: str) -> Type['StorageBackend']:
        """
        モード名からバックエンドクラスを取得

        Args:
            mode: ストレージ種別名（'s3', 'aws', 'oss'等）

        Returns:
            バックエンドクラス

        Raises:
            BackendNotRegisteredError: 未登録のモードが指定された場合
        """
        mode_lower = (mode or '').lower()
        if mode_lower not in cls._backends:
            available = ", ".join(sorted(cls._backends.keys()))
            raise BackendNotRegisteredError(
                f"Unknown storage type: {mode}. Available: {available}"
            )
        return cls._backends[mode_lower]

    @classmethod
    def list_modes(cls) -> list:
        """登録済みモード一覧を取得"""
        return list(cls._backends.keys())

    @classmethod
    def is_registered(cls, mode: str) -> bool:
        """モードが登録済みか確認"""
        return (mode or '').lower() in cls._backends

    @classmethod
    def clear(cls):
        """テスト用: レジストリをクリア"""
        cls._backends.clear()
