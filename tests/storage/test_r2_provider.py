import pytest

from infrastructure.external.storage import (
    ConfigurationError,
    ListOptions,
    NotFoundError,
    R2StorageConfig,
    StorageError,
    UploadFileInput,
)
from infrastructure.external.storage.providers.r2 import R2Provider
from shared.codes.storage_codes import StorageErrorCode


@pytest.mark.parametrize(
    "missing, code",
    [
        ("access_key_id", StorageErrorCode.R2_ACCESS_KEY_MISSING),
        ("secret_access_key", StorageErrorCode.R2_SECRET_KEY_MISSING),
        ("bucket", StorageErrorCode.R2_BUCKET_MISSING),
        ("endpoint", StorageErrorCode.R2_ENDPOINT_MISSING),
        ("public_url", StorageErrorCode.R2_PUBLIC_URL_MISSING),
    ],
)
def test_validate_config_names_missing_field(r2_config, s3_client, missing, code):
    config = r2_config.model_copy(update={missing: None})
    provider = R2Provider(config, client=s3_client)
    with pytest.raises(ConfigurationError) as exc_info:
        provider.validate_config()
    assert exc_info.value.code == code.value
    assert exc_info.value.field == missing
    assert s3_client.calls == []


def test_get_url(r2_provider):
    assert r2_provider.get_url("gallery/a.jpg") == "https://cdn.example.com/gallery/a.jpg"


def test_client_is_built_lazily(r2_config):
    provider = R2Provider(r2_config)
    assert provider._client is None
    client = provider.client
    assert provider.client is client
    assert client.meta.region_name == "auto"


@pytest.mark.asyncio
async def test_upload_with_thumbnail(r2_provider, s3_client):
    result = await r2_provider.upload(
        UploadFileInput(content=b"original", filename="a.jpg", path="2025", content_type="image/jpeg"),
        UploadFileInput(content=b"thumb", filename="thumb-a.jpg", path="2025", content_type="image/jpeg"),
    )

    assert result.key == "gallery/2025/a.jpg"
    assert result.url == "https://cdn.example.com/gallery/2025/a.jpg"
    assert result.thumbnail_key == "gallery/2025/thumb-a.jpg"
    assert s3_client.objects["gallery/2025/a.jpg"]["Body"] == b"original"
    assert s3_client.objects["gallery/2025/a.jpg"]["ContentType"] == "image/jpeg"


@pytest.mark.asyncio
async def test_upload_failure_is_wrapped(r2_provider, s3_client):
    s3_client.fail_put.add("gallery/a.jpg")
    with pytest.raises(StorageError) as exc_info:
        await r2_provider.upload(UploadFileInput(content=b"x", filename="a.jpg"))
    assert exc_info.value.code == StorageErrorCode.R2_UPLOAD_FAILED.value


@pytest.mark.asyncio
async def test_download(r2_provider):
    await r2_provider.upload(UploadFileInput(content=b"payload", filename="a.jpg"))
    assert await r2_provider.download("gallery/a.jpg") == b"payload"


@pytest.mark.asyncio
async def test_download_missing(r2_provider):
    with pytest.raises(NotFoundError):
        await r2_provider.download("gallery/none.jpg")


@pytest.mark.asyncio
async def test_delete_reports_errors_per_key(r2_provider, s3_client):
    await r2_provider.upload(UploadFileInput(content=b"x", filename="a.jpg"))
    s3_client.fail_delete.add("gallery/thumb-a.jpg")

    result = await r2_provider.delete("gallery/a.jpg", "gallery/thumb-a.jpg")

    assert result.deleted == ["gallery/a.jpg"]
    assert list(result.errors) == ["gallery/thumb-a.jpg"]
    assert not result.ok


@pytest.mark.asyncio
async def test_move_copies_then_deletes(r2_provider, s3_client):
    await r2_provider.upload(
        UploadFileInput(content=b"o", filename="a.jpg"),
        UploadFileInput(content=b"t", filename="thumb-a.jpg"),
    )

    result = await r2_provider.move("gallery/a.jpg", "archive", "gallery/thumb-a.jpg")

    assert result.new_key == "archive/a.jpg"
    assert result.new_thumbnail_key == "archive/thumb-a.jpg"
    assert result.new_url == "https://cdn.example.com/archive/a.jpg"
    assert result.leftover_keys == []
    assert set(s3_client.objects) == {"archive/a.jpg", "archive/thumb-a.jpg"}
    operations = [name for name, _ in s3_client.calls if name in ("copy_object", "delete_object")]
    assert operations == ["copy_object", "delete_object", "copy_object", "delete_object"]


@pytest.mark.asyncio
async def test_move_reports_leftover(r2_provider, s3_client):
    await r2_provider.upload(UploadFileInput(content=b"o", filename="a.jpg"))
    s3_client.fail_delete.add("gallery/a.jpg")

    result = await r2_provider.move("gallery/a.jpg", "archive")

    assert result.leftover_keys == ["gallery/a.jpg"]
    assert "archive/a.jpg" in s3_client.objects


@pytest.mark.asyncio
async def test_move_missing_source(r2_provider):
    with pytest.raises(NotFoundError):
        await r2_provider.move("gallery/none.jpg", "archive")


@pytest.mark.asyncio
async def test_list_uses_base_path_and_continuation_token(r2_provider, s3_client):
    for name in ("a.jpg", "b.jpg", "c.jpg"):
        await r2_provider.upload(UploadFileInput(content=b"x", filename=name))
    await r2_provider.upload(UploadFileInput(content=b"x", filename="z.jpg", path="other", use_full_path=True))

    first = await r2_provider.list(ListOptions(limit=2))
    assert [f.key for f in first.files] == ["gallery/a.jpg", "gallery/b.jpg"]
    assert first.has_more is True
    assert first.cursor is not None

    second = await r2_provider.list(ListOptions(limit=2, cursor=first.cursor))
    assert [f.key for f in second.files] == ["gallery/c.jpg"]
    assert second.has_more is False
    assert second.cursor is None

    list_calls = [params for name, params in s3_client.calls if name == "list_objects_v2"]
    assert list_calls[0]["Prefix"] == "gallery"
    assert list_calls[-1]["ContinuationToken"] == first.cursor


@pytest.mark.asyncio
async def test_list_full_scan(r2_provider):
    await r2_provider.upload(UploadFileInput(content=b"x", filename="a.jpg"))
    await r2_provider.upload(UploadFileInput(content=b"x", filename="z.jpg", path="other", use_full_path=True))

    result = await r2_provider.list(ListOptions(full_scan=True))

    assert [f.key for f in result.files] == ["gallery/a.jpg", "other/z.jpg"]


def test_unconfigured_public_url_default():
    config = R2StorageConfig(access_key_id="a", secret_access_key="b", bucket="c", endpoint="https://e")
    with pytest.raises(ConfigurationError):
        R2Provider(config).validate_config()
