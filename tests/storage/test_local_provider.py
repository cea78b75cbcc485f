import pytest

from infrastructure.external.storage import (
    ConfigurationError,
    ListOptions,
    LocalStorageConfig,
    NotFoundError,
    UploadFileInput,
    ValidationError,
)
from infrastructure.external.storage.providers.local import LocalProvider
from shared.codes.storage_codes import StorageErrorCode


def test_validate_config_requires_base_path():
    provider = LocalProvider(LocalStorageConfig())
    with pytest.raises(ConfigurationError) as exc_info:
        provider.validate_config()
    assert exc_info.value.code == StorageErrorCode.LOCAL_BASE_PATH_MISSING.value
    assert exc_info.value.field == "base_path"


def test_get_url(local_provider):
    assert local_provider.get_url("2025/a.jpg") == "/uploads/2025/a.jpg"
    assert local_provider.get_url("/2025//a.jpg") == "/uploads/2025/a.jpg"


@pytest.mark.asyncio
async def test_upload_with_thumbnail(local_provider, tmp_path):
    result = await local_provider.upload(
        UploadFileInput(content=b"original", filename="a.jpg", path="2025"),
        UploadFileInput(content=b"thumb", filename="thumb-a.jpg", path="2025"),
    )

    assert result.key == "2025/a.jpg"
    assert result.url == "/uploads/2025/a.jpg"
    assert result.thumbnail_key == "2025/thumb-a.jpg"
    assert result.thumbnail_url == "/uploads/2025/thumb-a.jpg"
    assert (tmp_path / "2025" / "a.jpg").read_bytes() == b"original"
    assert (tmp_path / "2025" / "thumb-a.jpg").read_bytes() == b"thumb"


@pytest.mark.asyncio
async def test_upload_overwrites_existing_key(local_provider):
    await local_provider.upload(UploadFileInput(content=b"v1", filename="a.jpg"))
    await local_provider.upload(UploadFileInput(content=b"v2", filename="a.jpg"))
    assert await local_provider.download("a.jpg") == b"v2"


@pytest.mark.asyncio
async def test_upload_rejects_traversal(local_provider):
    with pytest.raises(ValidationError):
        await local_provider.upload(
            UploadFileInput(content=b"x", filename="a.jpg", path="../../etc")
        )


@pytest.mark.asyncio
async def test_download_missing(local_provider):
    with pytest.raises(NotFoundError):
        await local_provider.download("nope.jpg")


@pytest.mark.asyncio
async def test_delete_is_best_effort(local_provider):
    await local_provider.upload(UploadFileInput(content=b"x", filename="a.jpg"))

    result = await local_provider.delete("a.jpg", "thumb-a.jpg")

    assert result.deleted == ["a.jpg"]
    assert result.missing == ["thumb-a.jpg"]
    assert result.ok


@pytest.mark.asyncio
async def test_delete_twice_reports_missing(local_provider):
    await local_provider.upload(UploadFileInput(content=b"x", filename="a.jpg"))
    await local_provider.delete("a.jpg")
    result = await local_provider.delete("a.jpg")
    assert result.deleted == []
    assert result.missing == ["a.jpg"]


@pytest.mark.asyncio
async def test_move_with_thumbnail(local_provider, tmp_path):
    await local_provider.upload(
        UploadFileInput(content=b"original", filename="a.jpg", path="inbox"),
        UploadFileInput(content=b"thumb", filename="thumb-a.jpg", path="inbox"),
    )

    result = await local_provider.move("inbox/a.jpg", "archive/2025", "inbox/thumb-a.jpg")

    assert result.new_key == "archive/2025/a.jpg"
    assert result.new_url == "/uploads/archive/2025/a.jpg"
    assert result.new_thumbnail_key == "archive/2025/thumb-a.jpg"
    assert result.leftover_keys == []
    assert (tmp_path / "archive" / "2025" / "a.jpg").read_bytes() == b"original"
    assert not (tmp_path / "inbox" / "a.jpg").exists()
    assert not (tmp_path / "inbox" / "thumb-a.jpg").exists()


@pytest.mark.asyncio
async def test_move_missing_source(local_provider):
    with pytest.raises(NotFoundError):
        await local_provider.move("missing.jpg", "archive")


@pytest.mark.asyncio
async def test_list_paginates_in_key_order(local_provider):
    for name in ("c.jpg", "a.jpg", "b.jpg"):
        await local_provider.upload(UploadFileInput(content=b"x", filename=name, path="p"))
    await local_provider.upload(UploadFileInput(content=b"x", filename="z.jpg", path="other"))

    first = await local_provider.list(ListOptions(prefix="p", limit=2))
    assert [f.key for f in first.files] == ["p/a.jpg", "p/b.jpg"]
    assert first.has_more is True

    second = await local_provider.list(ListOptions(prefix="p", limit=2, cursor=first.cursor))
    assert [f.key for f in second.files] == ["p/c.jpg"]
    assert second.has_more is False
    assert second.cursor is None
    assert second.files[0].url == "/uploads/p/c.jpg"
    assert second.files[0].size == 1


@pytest.mark.asyncio
async def test_list_full_scan_ignores_prefix(local_provider):
    await local_provider.upload(UploadFileInput(content=b"x", filename="a.jpg", path="p"))
    await local_provider.upload(UploadFileInput(content=b"x", filename="b.jpg", path="q"))

    result = await local_provider.list(ListOptions(prefix="p", full_scan=True))

    assert [f.key for f in result.files] == ["p/a.jpg", "q/b.jpg"]


@pytest.mark.asyncio
async def test_list_empty_root(tmp_path):
    provider = LocalProvider(LocalStorageConfig(base_path=str(tmp_path / "missing")))
    result = await provider.list()
    assert result.files == []
    assert result.has_more is False


@pytest.mark.asyncio
async def test_move_to_current_directory_is_noop(local_provider, tmp_path):
    await local_provider.upload(UploadFileInput(content=b"photo", filename="a.jpg", path="2025"))

    result = await local_provider.move("2025/a.jpg", "2025")

    assert result.new_key == "2025/a.jpg"
    assert result.leftover_keys == []
    assert (tmp_path / "2025" / "a.jpg").read_bytes() == b"photo"


@pytest.mark.asyncio
@pytest.mark.parametrize("prefix", ["uploads", "uploads/"])
async def test_list_prefix_matches_directory_only(local_provider, prefix):
    await local_provider.upload(UploadFileInput(content=b"x", filename="a.jpg", path="uploads"))
    await local_provider.upload(UploadFileInput(content=b"x", filename="b.jpg", path="uploads2"))

    result = await local_provider.list(ListOptions(prefix=prefix))

    assert [f.key for f in result.files] == ["uploads/a.jpg"]


@pytest.mark.asyncio
async def test_list_prefix_can_name_a_single_file(local_provider):
    await local_provider.upload(UploadFileInput(content=b"x", filename="a.jpg", path="p"))
    await local_provider.upload(UploadFileInput(content=b"x", filename="a.jpg.bak", path="p"))

    result = await local_provider.list(ListOptions(prefix="p/a.jpg"))

    assert [f.key for f in result.files] == ["p/a.jpg"]
