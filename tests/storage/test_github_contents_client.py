import json

import httpx
import pytest

from infrastructure.external.api_clients.base import (
    AuthenticationError,
    BaseAPIClient,
    RateLimitError,
    ServerError,
    UnprocessableError,
)
from infrastructure.external.api_clients.github import GithubContentsClient


def make_client(handler):
    return GithubContentsClient(
        owner="octo",
        repo="photos",
        branch="gh-pages",
        token="ghp_test",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_probe_and_commit_round_trip(github_repo):
    client = GithubContentsClient("octo", "photos", "main", "ghp_test", transport=github_repo.transport())

    assert await client.probe("uploads/a.jpg") is None
    await client.commit("uploads/a.jpg", b"v1", "Upload: a.jpg")
    sha = await client.probe("uploads/a.jpg")
    assert sha == github_repo.sha(b"v1")

    await client.commit("uploads/a.jpg", b"v2", "Upload: a.jpg", expected_sha=sha)
    assert github_repo.files["uploads/a.jpg"] == b"v2"
    await client.close()


@pytest.mark.asyncio
async def test_probe_of_directory_is_none(github_repo):
    github_repo.files["uploads/2025/a.jpg"] = b"x"
    client = GithubContentsClient("octo", "photos", "main", "ghp_test", transport=github_repo.transport())
    assert await client.probe("uploads/2025") is None
    await client.close()


@pytest.mark.asyncio
async def test_requests_carry_branch_and_auth():
    seen = []

    def handler(request):
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(201, json={"content": {}})

    client = make_client(handler)
    await client.probe("a b.jpg")
    await client.commit("a b.jpg", b"x", "msg")
    await client.close()

    get_request, put_request = seen
    assert get_request.url.params["ref"] == "gh-pages"
    assert get_request.url.raw_path.startswith(b"/repos/octo/photos/contents/a%20b.jpg")
    assert get_request.headers["Authorization"] == "Bearer ghp_test"
    assert get_request.headers["Accept"] == "application/vnd.github+json"
    body = json.loads(put_request.content)
    assert body["branch"] == "gh-pages"
    assert "sha" not in body


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error_class",
    [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (422, UnprocessableError),
        (429, RateLimitError),
        (502, ServerError),
    ],
)
async def test_status_mapping(status, error_class):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status, json={"message": f"status {status}"})

    client = make_client(handler)
    with pytest.raises(error_class) as exc_info:
        await client.get_contents("a.jpg")
    await client.close()

    assert exc_info.value.message == f"status {status}"
    assert len(calls) == 1


def _flaky_handler(statuses, calls):
    def handler(request):
        calls.append(request)
        status = statuses.pop(0) if statuses else 200
        return httpx.Response(status, json={"message": f"status {status}"})

    return handler


@pytest.mark.asyncio
async def test_base_client_retries_transient_status():
    calls = []
    client = BaseAPIClient(
        "https://api.example.com",
        max_retries=2,
        retry_delay=0,
        transport=httpx.MockTransport(_flaky_handler([503], calls)),
    )

    response = await client.get("ping")
    await client.close()

    assert response.status_code == 200
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_base_client_gives_up_after_max_retries():
    calls = []
    client = BaseAPIClient(
        "https://api.example.com",
        max_retries=1,
        retry_delay=0,
        transport=httpx.MockTransport(_flaky_handler([503, 503, 503], calls)),
    )

    with pytest.raises(ServerError):
        await client.get("ping")
    await client.close()

    assert len(calls) == 2


@pytest.mark.asyncio
async def test_contents_client_never_retries():
    calls = []
    client = make_client(_flaky_handler([503], calls))

    with pytest.raises(ServerError):
        await client.get_contents("a.jpg")
    await client.close()

    assert len(calls) == 1
