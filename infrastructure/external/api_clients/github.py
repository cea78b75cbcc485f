"""
GitHub 仓库内容 API 客户端

写入采用两步乐观并发协议：
- ``probe(path)`` 读取当前文件 SHA（不存在时为 None）
- ``commit(path, content, message, expected_sha)`` 以该 SHA 创建或更新文件
"""
import base64
from typing import Any, Optional
from urllib.parse import quote

import httpx

from .base import BaseAPIClient, NotFoundError


class GithubContentsClient(BaseAPIClient):
    """GitHub contents API 客户端（单个仓库、单个分支）"""

    def __init__(
        self,
        owner: str,
        repo: str,
        branch: str,
        token: str,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url=api_url,
            timeout=timeout,
            max_retries=0,
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            auth_token=token,
            transport=transport,
        )
        self.owner = owner
        self.repo = repo
        self.branch = branch

    def _contents_endpoint(self, path: str) -> str:
        return f"repos/{self.owner}/{self.repo}/contents/{quote(path, safe='/')}"

    async def get_contents(self, path: str) -> Any:
        """读取路径内容：文件返回对象，目录返回列表；不存在时抛出 NotFoundError"""
        response = await self.get(self._contents_endpoint(path), params={"ref": self.branch})
        return response.json()

    async def find_contents(self, path: str) -> Optional[Any]:
        """与 get_contents 相同，但不存在时返回 None"""
        try:
            return await self.get_contents(path)
        except NotFoundError:
            return None

    async def probe(self, path: str) -> Optional[str]:
        """返回文件当前 SHA；不存在或路径是目录时返回 None"""
        data = await self.find_contents(path)
        if isinstance(data, dict):
            return data.get("sha")
        return None

    async def commit(
        self,
        path: str,
        content: bytes,
        message: str,
        expected_sha: Optional[str] = None,
    ) -> dict:
        """创建或更新文件；``expected_sha`` 为 None 时表示新建"""
        body = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        if expected_sha:
            body["sha"] = expected_sha
        response = await self.put(self._contents_endpoint(path), json_data=body)
        return response.json()

    async def remove(self, path: str, sha: str, message: str) -> None:
        """删除文件（需要当前 SHA）"""
        await self.delete(
            self._contents_endpoint(path),
            json_data={"message": message, "sha": sha, "branch": self.branch},
        )

    async def get_blob(self, sha: str) -> bytes:
        """通过 git blob API 读取文件（用于超过 1MB 的文件）"""
        response = await self.get(f"repos/{self.owner}/{self.repo}/git/blobs/{sha}")
        data = response.json()
        return base64.b64decode(data.get("content") or "")
