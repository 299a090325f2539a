"""キー名前空間とシャードルーティング

- KeyNamespace: 論理キー → 物理キー（プレフィックス付与）
- ShardRouter: 物理キー → バケット名（キー末尾文字でシャードを選択）

どちらも構築後は不変で、並行呼び出しから読み取り専用で共有される。
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

from .exceptions import RoutingError

logger = logging.getLogger(__name__)


def normalize_key_prefix(prefix: Optional[str]) -> str:
    """先頭の'/'を1文字だけ取り除く"""
    if not prefix:
        return ''
    if prefix.startswith('/'):
        return prefix[1:]
    return prefix


class KeyNamespace:
    """
    論理キーを物理キーに変換する

    使用例:
        >>> KeyNamespace('sub_dir').actual_key('my_object')
        'sub_dir/my_object'
        >>> KeyNamespace('').actual_key('my_object')
        'my_object'
    """

    def __init__(self, prefix: Optional[str] = None):
        self._prefix = normalize_key_prefix(prefix)

    @property
    def prefix(self) -> str:
        return self._prefix

    def actual_key(self, logic_key: str) -> str:
        if self._prefix:
            return f"{self._prefix}/{logic_key}"
        return logic_key

    def actual_prefix(self, prefix: Optional[str]) -> Optional[str]:
        """一覧系のprefixフィルタを変換（未指定はそのまま）"""
        if not prefix:
            return prefix
        return self.actual_key(prefix)


class ShardRouter:
    """
    物理キーからバケット名を決定する

    shards未指定の場合は常に単一バケットを返す。
    shards = ['0123', '4567', ...] の場合、i番目のグループは
    "{bucket}-{group}" バケットに対応し、キー末尾文字（小文字化）が
    含まれるグループのバケットが選ばれる。
    """

    def __init__(self, bucket: str, shards: Optional[Sequence[str]] = None):
        self._bucket = bucket
        self._shards: List[str] = [s.lower() for s in shards] if shards else []
        self._buckets: List[str] = (
            [f"{bucket}-{s}" for s in self._shards] if self._shards else [bucket]
        )

    @property
    def buckets(self) -> List[str]:
        """全バケット名（シャード順）"""
        return list(self._buckets)

    @property
    def sharded(self) -> bool:
        return bool(self._shards)

    def shard_for(self, key: str) -> int:
        """
        キーが属するシャードのインデックスを返す

        Raises:
            RoutingError: どのシャードにも一致しない場合
        """
        if not self._shards:
            return 0
        suffix = key[-1:].lower()
        index = -1
        if suffix:
            for i, letters in enumerate(self._shards):
                if suffix in letters:
                    index = i
                    break
        if index == -1:
            raise RoutingError(key)
        return index

    def bucket_for(self, key: str) -> str:
        return self._buckets[self.shard_for(key)]

    def group_by_bucket(self, keys: Sequence[str]) -> Dict[str, List[str]]:
        """キーをバケット毎にまとめる（入力順を保持）"""
        groups: Dict[str, List[str]] = OrderedDict()
        for key in keys:
            groups.setdefault(self.bucket_for(key), []).append(key)
        if len(groups) > 1:
            logger.debug(f"Batch spans {len(groups)} shard buckets: {list(groups)}")
        return groups
