import json

import httpx
import pytest

from shared.clients.vectorstore.exceptions import (
    ConfigurationError,
    NotFoundError,
    RateLimitError,
    ValidationError,
    VectorStoreError,
)
from shared.clients.vectorstore.openai.VectorStoreClientOpenai import VectorStoreClientOpenai
from shared.models.vectorstore import BatchStatusType, FileStatusType, FileUpload

BASE_URL = "https://api.test/v1"


class FakeOpenAI:
    """Routes requests to canned responses and records what was sent."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], httpx.Response] = {}

    def add(self, method: str, path: str, status_code: int = 200, payload: dict | None = None, headers: dict | None = None) -> None:
        self.routes[(method, f"/v1{path}")] = httpx.Response(status_code, json=payload or {}, headers=headers)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"error": {"message": "not found"}})
        return response

    def sent(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == f"/v1{path}"]


@pytest.fixture
def fake_api() -> FakeOpenAI:
    return FakeOpenAI()


@pytest.fixture
def openai_env() -> dict[str, str]:
    return {
        "VECTORSTORE_OPENAI_API_KEY": "sk-test",
        "VECTORSTORE_OPENAI_BASE_URL": BASE_URL,
        "VECTORSTORE_OPENAI_STORE_ID": "vs_1",
    }


@pytest.fixture
def mock_transport(monkeypatch, fake_api):
    real_client = httpx.AsyncClient

    def _client(**kwargs):
        return real_client(transport=httpx.MockTransport(fake_api), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", _client)


@pytest.fixture
async def openai_client(make_config, openai_env, fake_api, mock_transport):
    fake_api.add("GET", "/vector_stores/vs_1", payload={"id": "vs_1", "object": "vector_store"})
    client = VectorStoreClientOpenai(helper_config=make_config(**openai_env))
    await client.boot()
    yield client
    await client.close()


class TestConfiguration:
    def test_missing_api_key(self, make_config):
        with pytest.raises(ConfigurationError, match="VECTORSTORE_OPENAI_API_KEY"):
            VectorStoreClientOpenai(helper_config=make_config())

    def test_auth_headers(self, make_config, openai_env):
        client = VectorStoreClientOpenai(helper_config=make_config(**openai_env))
        assert client._get_auth_header() == {"Authorization": "Bearer sk-test", "OpenAI-Beta": "assistants=v2"}

    def test_store_id_required_before_boot(self, make_config):
        client = VectorStoreClientOpenai(helper_config=make_config(VECTORSTORE_OPENAI_API_KEY="sk-test"))
        with pytest.raises(VectorStoreError):
            client.get_vector_store_id()


class TestBoot:
    async def test_creates_store_when_none_configured(self, make_config, fake_api, mock_transport):
        fake_api.add("POST", "/vector_stores", payload={"id": "vs_new", "object": "vector_store"})
        client = VectorStoreClientOpenai(
            helper_config=make_config(VECTORSTORE_OPENAI_API_KEY="sk-test", VECTORSTORE_OPENAI_BASE_URL=BASE_URL)
        )
        await client.boot()
        try:
            assert client.get_vector_store_id() == "vs_new"
            body = json.loads(fake_api.sent("POST", "/vector_stores")[0].content)
            assert body == {"name": "RAG Chat Vector Store"}
        finally:
            await client.close()

    async def test_unknown_configured_store(self, make_config, openai_env, fake_api, mock_transport):
        client = VectorStoreClientOpenai(helper_config=make_config(**openai_env))
        with pytest.raises(NotFoundError):
            await client.boot()
        await client.close()

    async def test_requests_carry_auth_headers(self, openai_client, fake_api):
        request = fake_api.sent("GET", "/vector_stores/vs_1")[0]
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert request.headers["OpenAI-Beta"] == "assistants=v2"


class TestFiles:
    async def test_upload_file_attaches_to_store(self, openai_client, fake_api):
        fake_api.add("POST", "/files", payload={"id": "file-abc", "filename": "notes.md", "bytes": 12})
        fake_api.add(
            "POST",
            "/vector_stores/vs_1/files",
            payload={"id": "file-abc", "status": "in_progress", "created_at": 1700000000},
        )

        status = await openai_client.do_upload_file("notes.md", "# Notes\nText")

        assert status.id == "file-abc"
        assert status.filename == "notes.md"
        assert status.status == FileStatusType.PROCESSING
        assert json.loads(fake_api.sent("POST", "/vector_stores/vs_1/files")[0].content) == {"file_id": "file-abc"}

    async def test_unprocessable_file_is_rejected_locally(self, openai_client, fake_api):
        status = await openai_client.do_upload_file("photo.png", b"\x89PNG")

        assert status.status == FileStatusType.FAILED
        assert status.error.startswith("File type")
        assert fake_api.sent("POST", "/files") == []
        assert (await openai_client.do_get_file(status.id)).status == FileStatusType.FAILED

    async def test_blank_filename(self, openai_client):
        with pytest.raises(ValidationError):
            await openai_client.do_upload_file("", "text")

    @pytest.mark.parametrize(
        "remote,expected,error",
        [
            ({"status": "in_progress"}, FileStatusType.PROCESSING, None),
            ({"status": "completed"}, FileStatusType.COMPLETED, None),
            ({"status": "failed", "last_error": {"code": "server_error", "message": "Parsing failed"}}, FileStatusType.FAILED, "Parsing failed"),
            ({"status": "cancelled"}, FileStatusType.FAILED, "Processing cancelled"),
        ],
    )
    async def test_remote_status_mapping(self, openai_client, fake_api, remote, expected, error):
        fake_api.add("GET", "/vector_stores/vs_1/files/file-1", payload={"id": "file-1", "created_at": 1700000000, **remote})

        status = await openai_client.do_get_file("file-1")
        assert status.status == expected
        assert status.error == error

    async def test_completion_time_is_stable_across_reads(self, openai_client, fake_api):
        fake_api.add("GET", "/vector_stores/vs_1/files/file-1", payload={"id": "file-1", "status": "completed"})

        first = await openai_client.do_get_file("file-1")
        second = await openai_client.do_get_file("file-1")
        assert first.completed_at is None
        assert second.completed_at is None

    async def test_unknown_file(self, openai_client):
        with pytest.raises(NotFoundError):
            await openai_client.do_get_file("file-missing")

    async def test_list_and_delete(self, openai_client, fake_api):
        fake_api.add(
            "GET",
            "/vector_stores/vs_1/files",
            payload={"data": [{"id": "file-1", "status": "completed"}, {"id": "file-2", "status": "in_progress"}]},
        )
        fake_api.add("DELETE", "/vector_stores/vs_1/files/file-1", payload={"id": "file-1", "deleted": True})

        files = await openai_client.do_list_files(limit=5)
        assert [f.id for f in files] == ["file-1", "file-2"]
        assert fake_api.sent("GET", "/vector_stores/vs_1/files")[0].url.params["limit"] == "5"

        await openai_client.do_delete_file("file-1")
        assert len(fake_api.sent("DELETE", "/vector_stores/vs_1/files/file-1")) == 1


class TestBatches:
    async def test_upload_files_uses_one_batch(self, openai_client, fake_api):
        fake_api.add("POST", "/files", payload={"id": "file-x"})
        fake_api.add(
            "POST",
            "/vector_stores/vs_1/file_batches",
            payload={
                "id": "vsfb_1",
                "status": "in_progress",
                "created_at": 1700000000,
                "file_counts": {"in_progress": 1, "completed": 0, "failed": 0, "cancelled": 0, "total": 1},
            },
        )

        response = await openai_client.do_upload_files([FileUpload(filename="a.txt", content="alpha")])

        assert response.batch_id == "vsfb_1"
        assert response.vector_store_id == "vs_1"
        assert [f.status for f in response.files] == [FileStatusType.PROCESSING]
        assert json.loads(fake_api.sent("POST", "/vector_stores/vs_1/file_batches")[0].content) == {"file_ids": ["file-x"]}

    async def test_rejected_files_stay_out_of_the_batch(self, openai_client, fake_api):
        fake_api.add("POST", "/files", payload={"id": "file-x"})
        fake_api.add(
            "POST",
            "/vector_stores/vs_1/file_batches",
            payload={"id": "vsfb_1", "status": "in_progress", "created_at": 1700000000},
        )

        response = await openai_client.do_upload_files(
            [FileUpload(filename="a.txt", content="alpha"), FileUpload(filename="empty.txt", content="")]
        )

        assert json.loads(fake_api.sent("POST", "/vector_stores/vs_1/file_batches")[0].content) == {"file_ids": ["file-x"]}
        assert len(fake_api.sent("POST", "/files")) == 1
        assert [f.filename for f in response.files] == ["a.txt", "empty.txt"]
        assert [f.status for f in response.files] == [FileStatusType.PROCESSING, FileStatusType.FAILED]
        assert response.files[1].error == "File is empty"
        assert (await openai_client.do_get_file(response.files[1].id)).status == FileStatusType.FAILED

    async def test_no_batch_when_every_file_is_rejected(self, openai_client, fake_api):
        response = await openai_client.do_upload_files([FileUpload(filename="empty.txt", content="  ")])

        assert response.batch_id is None
        assert [f.status for f in response.files] == [FileStatusType.FAILED]
        assert fake_api.sent("POST", "/vector_stores/vs_1/file_batches") == []

    async def test_batch_counts_fold_cancelled_into_failed(self, openai_client, fake_api):
        fake_api.add(
            "GET",
            "/vector_stores/vs_1/file_batches/vsfb_1",
            payload={
                "id": "vsfb_1",
                "status": "cancelled",
                "file_counts": {"in_progress": 0, "completed": 1, "failed": 1, "cancelled": 2, "total": 4},
            },
        )

        status = await openai_client.do_get_batch_status("vsfb_1")
        assert status.status == BatchStatusType.CANCELLED
        assert (status.completed_count, status.in_progress_count, status.failed_count) == (1, 0, 3)

    async def test_cancel_already_cancelled_batch_is_a_no_op(self, openai_client, fake_api):
        fake_api.add("GET", "/vector_stores/vs_1/file_batches/vsfb_1", payload={"id": "vsfb_1", "status": "cancelled"})

        batch = await openai_client.do_cancel_batch("vsfb_1")
        assert batch.status == BatchStatusType.CANCELLED
        assert fake_api.sent("POST", "/vector_stores/vs_1/file_batches/vsfb_1/cancel") == []

    async def test_cancel_while_cancelling_is_a_no_op(self, openai_client, fake_api):
        fake_api.add("GET", "/vector_stores/vs_1/file_batches/vsfb_1", payload={"id": "vsfb_1", "status": "cancelling"})

        batch = await openai_client.do_cancel_batch("vsfb_1")
        assert batch.status == BatchStatusType.CANCELLED
        assert fake_api.sent("POST", "/vector_stores/vs_1/file_batches/vsfb_1/cancel") == []

    async def test_cancel_batch(self, openai_client, fake_api):
        fake_api.add("GET", "/vector_stores/vs_1/file_batches/vsfb_1", payload={"id": "vsfb_1", "status": "in_progress"})
        fake_api.add(
            "POST", "/vector_stores/vs_1/file_batches/vsfb_1/cancel", payload={"id": "vsfb_1", "status": "cancelling"}
        )

        batch = await openai_client.do_cancel_batch("vsfb_1")
        assert batch.id == "vsfb_1"
        assert len(fake_api.sent("POST", "/vector_stores/vs_1/file_batches/vsfb_1/cancel")) == 1


class TestSearch:
    async def test_search_results(self, openai_client, fake_api):
        fake_api.add(
            "POST",
            "/vector_stores/vs_1/search",
            payload={
                "data": [
                    {"file_id": "file-2", "filename": "b.md", "score": 0.41, "content": [{"type": "text", "text": "Second."}]},
                    {"file_id": "file-1", "filename": "a.md", "score": 0.93, "content": [{"type": "text", "text": "x" * 300}]},
                ]
            },
        )

        results = await openai_client.do_search("report", limit=5, threshold=0.2)

        assert [r.file_id for r in results] == ["file-1", "file-2"]
        assert results[0].snippet.endswith("...")
        body = json.loads(fake_api.sent("POST", "/vector_stores/vs_1/search")[0].content)
        assert body == {"query": "report", "max_num_results": 5, "ranking_options": {"score_threshold": 0.2}}

    async def test_rate_limit(self, openai_client, fake_api):
        fake_api.add("POST", "/vector_stores/vs_1/search", status_code=429, headers={"Retry-After": "7"})

        with pytest.raises(RateLimitError) as exc_info:
            await openai_client.do_search("report")
        assert exc_info.value.retry_after == 7.0

    async def test_server_error(self, openai_client, fake_api):
        fake_api.add("POST", "/vector_stores/vs_1/search", status_code=500)
        with pytest.raises(VectorStoreError):
            await openai_client.do_search("report")

    async def test_blank_query_is_not_sent(self, openai_client, fake_api):
        with pytest.raises(ValidationError):
            await openai_client.do_search(" ")
        assert fake_api.sent("POST", "/vector_stores/vs_1/search") == []
