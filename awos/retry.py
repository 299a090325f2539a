"""書き込み系操作のリトライ

put/copyはトランスポートが一時的に失敗しうるため、
最大3回まで指数バックオフ（1回の待機は最大2秒）で再試行する。
各試行は完全に新しいリクエストとして実行される。
"""

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')

MAX_ATTEMPTS = 3
MIN_DELAY = 1.0   # 秒
MAX_DELAY = 2.0   # 秒
BACKOFF_FACTOR = 2.0


async def retry_async(
    func: Callable[[], Awaitable[T]],
    retry_on: Tuple[Type[BaseException], ...],
    description: str = '',
    attempts: int = MAX_ATTEMPTS,
    min_delay: float = MIN_DELAY,
    max_delay: float = MAX_DELAY,
) -> T:
    """
    コルーチン関数をリトライ付きで実行する

    Args:
        func: 引数なしで呼び出すコルーチン関数（試行毎に新規に呼ぶ）
        retry_on: 再試行対象の例外クラス
        description: ログ用の操作説明
        attempts: 最大試行回数
        min_delay: 初回の待機秒数
        max_delay: 待機秒数の上限

    Returns:
        funcの戻り値

    Raises:
        最後の試行で発生した例外をそのまま送出
    """
    attempt = 1
    delay = min(min_delay, max_delay)
    while True:
        try:
            return await func()
        except retry_on as e:
            if attempt >= attempts:
                logger.error(f"{description} failed after {attempt} attempts: {e}")
                raise
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}), "
                f"retrying in {delay:.1f}s: {e}"
            )
            await asyncio.sleep(delay)
            delay = min(delay * BACKOFF_FACTOR, max_delay)
            attempt += 1
