"""带重试的 HTTP 请求工具"""
import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx
from loguru import logger

DEFAULT_RETRIES = 3
DEFAULT_TIMEOUT = 10.0
BASE_DELAY_MS = 1000
MAX_DELAY_MS = 5000


def retry_delay(attempt: int) -> float:
    """第 attempt 次失败后的等待秒数（指数退避，上限 5 秒）"""
    return min(BASE_DELAY_MS * (2 ** attempt), MAX_DELAY_MS) / 1000


async def fetch_with_retry(
    method: str,
    url: str,
    retries: int = DEFAULT_RETRIES,
    timeout: float = DEFAULT_TIMEOUT,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> httpx.Response:
    """
    发送 HTTP 请求，失败时按指数退避重试

    Args:
        method: 请求方法
        url: 请求地址
        retries: 最大重试次数（不含首次请求）
        timeout: 单次请求超时时间（秒）
        client: 复用的 httpx 客户端，不传则临时创建
        sleep: 等待函数，便于测试时替换

    Returns:
        状态码为 2xx 的响应

    Raises:
        httpx.HTTPError: 所有尝试都失败时抛出最后一次的错误
    """
    last_error: Optional[Exception] = None
    for attempt in range(retries + 1):
        try:
            if client is not None:
                resp = await client.request(method, url, timeout=timeout, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=timeout) as temp_client:
                    resp = await temp_client.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.HTTPError as e:
            last_error = e
            if attempt >= retries:
                break
            delay = retry_delay(attempt)
            logger.warning(
                f"请求失败 {method} {url}: {e}，{delay:.1f}s 后进行第 {attempt + 1} 次重试"
            )
            await sleep(delay)

    logger.error(f"请求最终失败 {method} {url}: {last_error}")
    raise last_error
