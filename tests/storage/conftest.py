"""In-memory fakes for the GitHub contents API and the R2 (S3) client."""
import base64
import hashlib
import io
import json
from datetime import datetime, timezone
from urllib.parse import unquote

import httpx
import pytest
from botocore.exceptions import ClientError


class FakeGithubRepo:
    """Minimal contents API backed by a dict of path -> bytes."""

    def __init__(self, owner="octo", repo="photos"):
        self.prefix = f"/repos/{owner}/{repo}"
        self.files: dict[str, bytes] = {}
        self.requests: list[tuple[str, str]] = []
        self.fail_put: set[str] = set()
        self.fail_delete: set[str] = set()
        self.inline_limit = 1024 * 1024

    @staticmethod
    def sha(content: bytes) -> str:
        return hashlib.sha1(content).hexdigest()

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def _entry(self, path, with_content=False):
        content = self.files[path]
        entry = {
            "type": "file",
            "path": path,
            "name": path.rsplit("/", 1)[-1],
            "sha": self.sha(content),
            "size": len(content),
        }
        if with_content:
            inline = len(content) <= self.inline_limit
            entry["content"] = base64.encodebytes(content).decode() if inline else ""
        return entry

    def _listing(self, path):
        base = f"{path}/" if path else ""
        seen, items = set(), []
        for key in sorted(self.files):
            if not key.startswith(base):
                continue
            head, sep, _ = key[len(base):].partition("/")
            if sep:
                if head not in seen:
                    seen.add(head)
                    items.append({"type": "dir", "path": f"{base}{head}", "name": head})
            else:
                items.append(self._entry(key))
        return items

    def _conflicting_ancestor(self, path):
        parts = path.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            ancestor = "/".join(parts[:i])
            if ancestor in self.files:
                return ancestor
        return None

    def handle(self, request: httpx.Request) -> httpx.Response:
        url_path = unquote(request.url.path)
        self.requests.append((request.method, url_path))

        if url_path.startswith(f"{self.prefix}/git/blobs/"):
            sha = url_path.rsplit("/", 1)[-1]
            for content in self.files.values():
                if self.sha(content) == sha:
                    return httpx.Response(200, json={"sha": sha, "content": base64.b64encode(content).decode()})
            return httpx.Response(404, json={"message": "Not Found"})

        path = url_path[len(f"{self.prefix}/contents"):].strip("/")

        if request.method == "GET":
            if path in self.files:
                return httpx.Response(200, json=self._entry(path, with_content=True))
            listing = self._listing(path)
            if listing:
                return httpx.Response(200, json=listing)
            return httpx.Response(404, json={"message": "Not Found"})

        body = json.loads(request.content or b"{}")

        if request.method == "PUT":
            if path in self.fail_put:
                return httpx.Response(500, json={"message": "Server Error"})
            ancestor = self._conflicting_ancestor(path)
            if ancestor:
                return httpx.Response(
                    422,
                    json={"message": f"Invalid request. {ancestor} exists where a subdirectory is expected."},
                )
            current = self.files.get(path)
            if current is not None and body.get("sha") != self.sha(current):
                return httpx.Response(409, json={"message": f"{path} does not match"})
            self.files[path] = base64.b64decode(body["content"])
            status = 200 if current is not None else 201
            return httpx.Response(status, json={"content": self._entry(path)})

        if request.method == "DELETE":
            if path in self.fail_delete:
                return httpx.Response(500, json={"message": "Server Error"})
            current = self.files.get(path)
            if current is None:
                return httpx.Response(404, json={"message": "Not Found"})
            if body.get("sha") != self.sha(current):
                return httpx.Response(409, json={"message": "sha mismatch"})
            del self.files[path]
            return httpx.Response(200, json={"commit": {}})

        return httpx.Response(405)


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeS3Client:
    """Synchronous boto3-like S3 client holding objects in memory."""

    def __init__(self):
        self.objects: dict[str, dict] = {}
        self.calls: list[tuple[str, dict]] = []
        self.fail_put: set[str] = set()
        self.fail_delete: set[str] = set()

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.calls.append(("put_object", {"Key": Key}))
        if Key in self.fail_put:
            raise _client_error("InternalError", "PutObject")
        self.objects[Key] = {
            "Body": bytes(Body),
            "ContentType": ContentType,
            "LastModified": datetime.now(timezone.utc),
        }
        return {"ETag": '"etag"'}

    def get_object(self, Bucket, Key):
        self.calls.append(("get_object", {"Key": Key}))
        if Key not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[Key]["Body"])}

    def delete_object(self, Bucket, Key):
        self.calls.append(("delete_object", {"Key": Key}))
        if Key in self.fail_delete:
            raise _client_error("InternalError", "DeleteObject")
        self.objects.pop(Key, None)
        return {}

    def copy_object(self, Bucket, CopySource, Key):
        self.calls.append(("copy_object", {"Source": CopySource["Key"], "Key": Key}))
        source = self.objects.get(CopySource["Key"])
        if source is None:
            raise _client_error("NoSuchKey", "CopyObject")
        self.objects[Key] = dict(source, LastModified=datetime.now(timezone.utc))
        return {}

    def list_objects_v2(self, Bucket, MaxKeys=1000, Prefix="", ContinuationToken=None):
        self.calls.append(("list_objects_v2", {"Prefix": Prefix, "MaxKeys": MaxKeys,
                                               "ContinuationToken": ContinuationToken}))
        keys = sorted(k for k in self.objects if k.startswith(Prefix))
        start = int(ContinuationToken) if ContinuationToken else 0
        page = keys[start:start + MaxKeys]
        response = {
            "Contents": [
                {"Key": k, "Size": len(self.objects[k]["Body"]), "LastModified": self.objects[k]["LastModified"]}
                for k in page
            ],
            "IsTruncated": start + MaxKeys < len(keys),
        }
        if response["IsTruncated"]:
            response["NextContinuationToken"] = str(start + MaxKeys)
        return response


@pytest.fixture
def github_repo():
    return FakeGithubRepo()


@pytest.fixture
def github_config():
    from infrastructure.external.storage.config import GithubStorageConfig

    return GithubStorageConfig(token="ghp_test", repo="octo/photos")


@pytest.fixture
def github_provider(github_repo, github_config):
    from infrastructure.external.storage.providers.github import GithubProvider

    return GithubProvider(github_config, transport=github_repo.transport())


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def r2_config():
    from infrastructure.external.storage.config import R2StorageConfig

    return R2StorageConfig(
        access_key_id="AKIA",
        secret_access_key="secret",
        bucket="photos",
        endpoint="https://acct.r2.cloudflarestorage.com",
        public_url="https://cdn.example.com/",
        path="gallery",
    )


@pytest.fixture
def r2_provider(r2_config, s3_client):
    from infrastructure.external.storage.providers.r2 import R2Provider

    return R2Provider(r2_config, client=s3_client)


@pytest.fixture
def local_provider(tmp_path):
    from infrastructure.external.storage.config import LocalStorageConfig
    from infrastructure.external.storage.providers.local import LocalProvider

    return LocalProvider(LocalStorageConfig(base_path=str(tmp_path), base_url="/uploads"))
