"""
invoke 桥客户端

通过 HTTP 把命令转发给目录后端：POST {base_url}/invoke/{command}，
请求体为命令参数的 JSON，成功时响应体为命令结果的 JSON。

- 非 2xx 响应视为命令失败（BackendCommandError，不重试）
- 连接失败、超时或响应中断视为通信失败（BackendTransportError，指数退避重试）
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .backend import CatalogBackend, CatalogEntry, CatalogResult
from .config import BackendConfig
from .exceptions import BackendCommandError, BackendTransportError
from .logging_config import get_logger


class InvokeBridgeClient(CatalogBackend):
    """基于 aiohttp 的异步后端客户端"""

    def __init__(self, config: BackendConfig):
        self.config = config
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = get_logger('InvokeBridgeClient')
        self._base_url = config.base_url
        self._session_lock = asyncio.Lock()
        self.request_count = 0
        self.error_count = 0

    async def __aenter__(self):
        await self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self.session is None or self.session.closed:
                timeout = aiohttp.ClientTimeout(total=self.config.timeout)
                self.session = aiohttp.ClientSession(timeout=timeout)
            return self.session

    async def close(self):
        """关闭HTTP会话"""
        async with self._session_lock:
            if self.session and not self.session.closed:
                await self.session.close()
            self.session = None

    async def invoke(self, command: str, subject: Optional[str] = None, **args) -> Any:
        """调用后端命令，通信失败时按配置重试

        subject 是本次命令针对的标识符，只用于错误信息。
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries),
            wait=wait_exponential(multiplier=self.config.retry_delay, min=self.config.retry_delay, max=10),
            retry=retry_if_exception_type(BackendTransportError),
            before_sleep=before_sleep_log(self.logger, logging.INFO),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._invoke_once(command, subject, args)

    async def _invoke_once(self, command: str, subject: Optional[str], args: Dict[str, Any]) -> Any:
        url = f"{self._base_url}/invoke/{command}"
        session = await self._get_session()
        self.request_count += 1

        try:
            async with session.post(url, json=args) as resp:
                if resp.status in (502, 503, 504):
                    # 网关错误按通信失败处理
                    self.error_count += 1
                    raise BackendTransportError(
                        f"后端暂时不可用 (HTTP {resp.status})",
                        command=command, url=url, status_code=resp.status,
                    )
                if resp.status >= 400:
                    self.error_count += 1
                    message = await self._read_error_message(resp)
                    raise BackendCommandError(
                        message, command=command, identifier=subject, status_code=resp.status,
                    )
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    self.error_count += 1
                    raise BackendCommandError(
                        f"后端返回了无法解析的响应: {str(e)}", command=command, identifier=subject,
                        status_code=resp.status,
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # 连接失败、超时、响应体被截断等都按通信失败处理
            self.error_count += 1
            raise BackendTransportError(
                f"与后端通信失败: {type(e).__name__}: {str(e)}", command=command, url=url,
            ) from e

    @staticmethod
    async def _read_error_message(resp: aiohttp.ClientResponse) -> str:
        text = await resp.text()
        try:
            payload = await resp.json(content_type=None)
        except ValueError:
            return text or f"HTTP {resp.status}"
        if isinstance(payload, dict):
            return str(payload.get('error') or payload.get('message') or text)
        if isinstance(payload, str):
            return payload
        return text

    @staticmethod
    def _parse(parser, payload: Any, command: str, subject: str):
        try:
            return parser(payload)
        except (TypeError, ValueError) as e:
            raise BackendCommandError(
                f"后端返回的数据格式不正确: {e}", command=command, identifier=subject,
            ) from e

    async def check_exists(self, identifier: str) -> bool:
        result = await self.invoke("isbn_exists", identifier, isbn=identifier)
        return bool(result)

    async def fetch_and_catalog(self, identifier: str) -> CatalogResult:
        payload = await self.invoke("fetch_isbn", identifier, isbn=identifier)
        if not payload:
            raise BackendCommandError(
                f"No results found for ISBN: {identifier}", command="fetch_isbn", identifier=identifier,
            )
        return self._parse(CatalogResult.from_payload, payload, "fetch_isbn", identifier)

    async def find_by_code(self, code: str) -> Optional[CatalogEntry]:
        payload = await self.invoke("find_comic_by_ean", code, ean=code)
        if not payload:
            return None
        return self._parse(CatalogEntry.from_dict, payload, "find_comic_by_ean", code)

    async def clone_entry(self, volume_id: str) -> str:
        return str(await self.invoke("clone_book", volume_id, volumeId=volume_id))

    async def add_entry(self, title: str, identifier: Optional[str] = None,
                        authors: Optional[List[str]] = None, publisher: Optional[str] = None,
                        year: Optional[str] = None, number: Optional[int] = None) -> str:
        result = await self.invoke(
            "add_book", identifier,
            title=title, identifier=identifier, authors=authors or [],
            publisher=publisher, year=year, number=number,
        )
        return str(result)

    async def set_entry_number(self, volume_id: str, number: int) -> None:
        await self.invoke("set_book_number", volume_id, volumeId=volume_id, number=number)

    async def ping(self) -> bool:
        """连接测试：调用一个只读命令"""
        await self.invoke("get_all_groups")
        return True


__all__ = ["InvokeBridgeClient"]
