import pytest
from botocore.exceptions import ClientError

from core.exceptions import InvalidParamsError, ResourceNotFoundError, StorageError
from models.resource import LogicalKey
from services.resources import ResourceService
from services.storage import LocalStorage

CSV = "header1,header2\nvalue1,value2\nvalue3,value4"


@pytest.fixture
def local_service(local_storage):
    return ResourceService(local_storage)


@pytest.fixture
def s3_service(s3_storage):
    return ResourceService(s3_storage)


async def test_resolve_quip_locator(local_service, local_storage):
    await local_storage.save_content(LogicalKey("thread1", "Sheet One"), CSV)

    content = await local_service.resolve_locator_to_content("quip://thread1?sheet=Sheet%20One")

    assert content.text == CSV
    assert content.mime_type == "text/csv"
    assert content.url is None
    assert content.to_dict() == {
        "uri": "quip://thread1?sheet=Sheet%20One",
        "mimeType": "text/csv",
        "text": CSV,
    }


async def test_resolve_file_locator(tmp_path, content_cache, metadata_cache):
    storage = LocalStorage(tmp_path, True, content_cache, metadata_cache)
    service = ResourceService(storage)
    key = LogicalKey("thread1", "Sheet1")
    await storage.save_content(key, CSV)
    content_cache.clear()

    content = await service.resolve_locator_to_content(storage.get_resource_locator(key))

    assert content.text == CSV


async def test_resolve_s3_locator(s3_service, s3_storage):
    await s3_storage.save_content(LogicalKey("thread1"), CSV)

    content = await s3_service.resolve_locator_to_content("s3://test-bucket/test-prefix/thread1.csv")

    assert content.text == CSV
    assert content.url is None


async def test_resolve_presigned_marker_attaches_signed_url(s3_service, s3_storage, s3_client):
    s3_storage.use_presigned_urls = True
    key = LogicalKey("thread1", "Sheet1")
    await s3_storage.save_content(key, CSV)
    locator = s3_storage.get_resource_locator(key)

    content = await s3_service.resolve_locator_to_content(locator)

    assert locator.startswith("s3+https://")
    assert content.uri == locator
    assert content.text == CSV
    assert content.url.startswith("https://test-bucket.s3.amazonaws.com/test-prefix/thread1-Sheet1.csv?")
    assert content.to_dict()["url"] == content.url


async def test_presign_failure_propagates(s3_service, s3_storage, s3_client):
    await s3_storage.save_content(LogicalKey("thread1"), CSV)
    s3_client.presign_error = ClientError(
        {"Error": {"Code": "InvalidAccessKeyId", "Message": "bad key"}}, "GetObject"
    )

    with pytest.raises(StorageError):
        await s3_service.resolve_locator_to_content("s3+https://test-bucket/test-prefix/thread1.csv")


async def test_presigned_marker_on_local_backend_reads_content(local_service, local_storage):
    await local_storage.save_content(LogicalKey("thread1"), CSV)

    content = await local_service.resolve_locator_to_content("s3+https://bucket/thread1.csv")

    assert content.text == CSV
    assert content.url is None


async def test_unsupported_scheme_is_not_found(local_service):
    with pytest.raises(ResourceNotFoundError) as exc_info:
        await local_service.resolve_locator_to_content("ftp://host/thread1.csv")

    assert exc_info.value.message == "Resource not found: ftp://host/thread1.csv"
    assert exc_info.value.code == -32002


async def test_missing_content_is_not_found(local_service):
    with pytest.raises(ResourceNotFoundError):
        await local_service.resolve_locator_to_content("quip://nothing-here")


async def test_discover_local_resources(local_service, local_storage):
    await local_storage.save_content(LogicalKey("thread1", "Sheet1"), CSV)
    await local_storage.save_content(LogicalKey("thread2"), "a\nb")

    resources = await local_service.discover_resources()

    assert [r.uri for r in resources] == ["quip://thread1?sheet=Sheet1", "quip://thread2"]
    assert resources[0].name == "Quip Thread(Spreadsheet): thread1 (Sheet: Sheet1)"
    assert resources[0].description == "CSV data from Quip spreadsheet. 3 rows, 43 bytes."
    assert resources[1].name == "Quip Thread(Spreadsheet): thread2"
    assert resources[0].to_dict()["mimeType"] == "text/csv"


async def test_discover_file_resources_names_the_path(tmp_path, content_cache, metadata_cache):
    storage = LocalStorage(tmp_path, True, content_cache, metadata_cache)
    await storage.save_content(LogicalKey("thread1"), CSV)

    resources = await ResourceService(storage).discover_resources()

    assert resources[0].uri == f"file://{tmp_path}/thread1.csv"
    assert resources[0].name.endswith(f"You can access the file at: {tmp_path}/thread1.csv")


async def test_discover_on_s3_is_empty(s3_service, s3_storage):
    await s3_storage.save_content(LogicalKey("thread1"), CSV)

    assert await s3_service.discover_resources() == []


def test_resource_templates(local_service):
    templates = [t.to_dict() for t in local_service.resource_templates()]

    assert templates[0]["uriTemplate"] == "quip://{thread_id}?sheet={sheet_name}"
    assert templates[0]["mimeType"] == "text/csv"
    assert templates[1]["uriTemplate"] == "s3://{bucket}/{prefix}{thread_id}-{sheet_name}.csv"


async def test_read_spreadsheet_returns_bounded_preview(local_storage):
    service = ResourceService(local_storage, preview_max_bytes=7)

    preview = await service.read_spreadsheet("thread1", "a,b\n1,2\n3,4")

    assert preview.csv_content == "a,b\n1,2"
    assert preview.metadata.is_truncated is True
    assert preview.metadata.total_rows == 3
    assert preview.metadata.total_size == 11
    assert await local_storage.get_content(LogicalKey("thread1")) == "a,b\n1,2\n3,4"


async def test_read_spreadsheet_small_content_is_whole(local_service):
    preview = await local_service.read_spreadsheet("thread1", CSV, "Sheet1")

    assert preview.csv_content == CSV
    assert preview.metadata.is_truncated is False
    assert preview.metadata.resource_uri == "quip://thread1?sheet=Sheet1"
    assert set(preview.to_dict()) == {"csv_content", "metadata"}


async def test_read_spreadsheet_persists_truncation_flag(local_storage, metadata_cache):
    service = ResourceService(local_storage, preview_max_bytes=7)
    await service.read_spreadsheet("thread1", "a,b\n1,2\n3,4")
    metadata_cache.clear()

    metadata = await service.get_metadata("thread1")

    assert metadata.is_truncated is True


async def test_read_spreadsheet_on_s3(s3_storage, s3_client):
    service = ResourceService(s3_storage, preview_max_bytes=20)

    preview = await service.read_spreadsheet("thread1", CSV)

    assert preview.csv_content == "header1,header2"
    assert preview.metadata.is_truncated is True
    assert s3_client.text("test-bucket", "test-prefix/thread1.csv") == CSV


async def test_read_spreadsheet_requires_thread_id(local_service):
    with pytest.raises(InvalidParamsError, match="threadId is required"):
        await local_service.read_spreadsheet("", CSV)


async def test_traversing_thread_id_is_rejected(local_storage, local_service, tmp_path):
    with pytest.raises(InvalidParamsError):
        await local_service.read_spreadsheet("../escaped", "a,b\n1,2")

    assert not (tmp_path / "escaped.csv").exists()


@pytest.mark.parametrize("locator", [
    "quip://..%2Fescaped",
    "file:///data/..%2Fescaped.csv",
    "s3://bucket/prefix/..%5Cescaped.csv",
])
async def test_traversing_locator_is_not_found(tmp_path, local_service, locator):
    (tmp_path / "escaped.csv").write_text("a,b\n1,2", encoding="utf-8")

    with pytest.raises(ResourceNotFoundError):
        await local_service.resolve_locator_to_content(locator)
