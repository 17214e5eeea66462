import asyncio
import json
from types import SimpleNamespace
from urllib.parse import unquote

import httpx
import pytest

from collector import deps
from collector.errors import ConfigurationMissing, ExternalStoreFailure
from collector.google_client import DriveObjectStore, GoogleClient, SheetsPromptSource


@pytest.fixture
def google_cfg(cfg):
	return cfg.model_copy(update={
		"google_client_id": "cid",
		"google_client_secret": "secret",
		"google_refresh_token": "refresh",
		"google_sheets_id": "sheet123",
		"google_sheets_tab": "Scripts",
		"google_drive_folder_id": "folder9",
	})


class FakeGoogle:
	"""Routes token, Sheets and Drive calls to canned responses."""

	def __init__(self, values=None, sheets_status=200):
		self.values = values if values is not None else [["one"], [], ["three"]]
		self.sheets_status = sheets_status
		self.requests = []
		self.token_calls = 0

	def __call__(self, request: httpx.Request) -> httpx.Response:
		self.requests.append(request)
		if request.url.host == "oauth2.googleapis.com":
			self.token_calls += 1
			return httpx.Response(200, json={"access_token": f"tok-{self.token_calls}", "expires_in": 3600})
		if request.url.host == "sheets.googleapis.com":
			if self.sheets_status != 200:
				return httpx.Response(self.sheets_status, text="quota exceeded")
			return httpx.Response(200, json={"range": "Scripts!A1:A3", "values": self.values})
		if request.url.host == "www.googleapis.com":
			return httpx.Response(200, json={
				"id": "drive-file-1",
				"name": "clip.webm",
				"webViewLink": "https://drive.google.com/file/d/drive-file-1/view",
				"size": "4",
			})
		return httpx.Response(404)


def _client(cfg, fake):
	return GoogleClient(cfg, http=httpx.AsyncClient(transport=httpx.MockTransport(fake)))


def test_access_token_is_cached(google_cfg):
	fake = FakeGoogle()
	google = _client(google_cfg, fake)

	async def scenario():
		first = await google.access_token()
		second = await google.access_token()
		await google.aclose()
		return first, second

	assert asyncio.run(scenario()) == ("tok-1", "tok-1")
	assert fake.token_calls == 1
	form = dict(x.split("=") for x in fake.requests[0].content.decode().split("&"))
	assert form["grant_type"] == "refresh_token"
	assert form["refresh_token"] == "refresh"


def test_missing_credentials(cfg):
	google = _client(cfg, FakeGoogle())
	with pytest.raises(ConfigurationMissing):
		asyncio.run(google.access_token())


def test_sheets_range(google_cfg):
	fake = FakeGoogle()
	source = SheetsPromptSource(_client(google_cfg, fake))
	cells = asyncio.run(source.fetch_range(1, 3))
	assert cells == ["one", "", "three"]
	request = fake.requests[-1]
	assert request.headers["Authorization"] == "Bearer tok-1"
	assert unquote(request.url.raw_path.decode()).endswith("/sheet123/values/'Scripts'!A1:A3")


def test_sheets_single_row(google_cfg):
	source = SheetsPromptSource(_client(google_cfg, FakeGoogle(values=[["  hello "]])))
	assert asyncio.run(source.fetch_row(7)) == "  hello "
	empty = SheetsPromptSource(_client(google_cfg, FakeGoogle(values=[])))
	assert asyncio.run(empty.fetch_row(7)) is None


def test_sheets_error_is_wrapped(google_cfg):
	source = SheetsPromptSource(_client(google_cfg, FakeGoogle(sheets_status=429)))
	with pytest.raises(ExternalStoreFailure) as exc:
		asyncio.run(source.fetch_range(1, 3))
	assert exc.value.status_code == 502
	assert exc.value.to_dict()["collaborator"] == "sheets"
	assert exc.value.to_dict()["upstream_status"] == 429


def test_sheets_not_configured(cfg):
	partial = cfg.model_copy(update={
		"google_client_id": "cid",
		"google_client_secret": "secret",
		"google_refresh_token": "refresh",
	})
	source = SheetsPromptSource(_client(partial, FakeGoogle()))
	with pytest.raises(ConfigurationMissing):
		asyncio.run(source.fetch_range(1, 3))


def test_drive_multipart_upload(google_cfg):
	fake = FakeGoogle()
	store = DriveObjectStore(_client(google_cfg, fake))
	stored = asyncio.run(store.upload("clip.webm", b"\x1aE\xdf\xa3", "audio/webm"))
	assert stored.file_id == "drive-file-1"
	assert stored.size == 4
	assert stored.web_view_link.endswith("/view")

	request = fake.requests[-1]
	assert request.url.params["uploadType"] == "multipart"
	content_type = request.headers["Content-Type"]
	assert content_type.startswith("multipart/related; boundary=")
	boundary = content_type.split("boundary=")[1]
	body = request.content
	assert body.endswith(f"\r\n--{boundary}--\r\n".encode())
	head, media = body.split(b"Content-Type: audio/webm\r\n\r\n")
	metadata = json.loads(head.split(b"\r\n\r\n")[1].split(b"\r\n")[0])
	assert metadata == {"name": "clip.webm", "parents": ["folder9"]}
	assert media.startswith(b"\x1aE\xdf\xa3")


def test_drive_not_configured(google_cfg):
	store = DriveObjectStore(_client(google_cfg.model_copy(update={"google_drive_folder_id": None}), FakeGoogle()))
	with pytest.raises(ConfigurationMissing):
		asyncio.run(store.upload("clip.webm", b"abc", "audio/webm"))


def test_one_client_per_app(google_cfg):
	request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace()))
	first = asyncio.run(deps.get_google(request, google_cfg))
	second = asyncio.run(deps.get_google(request, google_cfg))
	assert second is first
	assert request.app.state.google is first
	asyncio.run(first.aclose())


def test_token_reused_across_requests(google_cfg):
	fake = FakeGoogle()
	google = _client(google_cfg, fake)
	request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(google=google)))

	async def scenario():
		for _ in range(3):
			source = deps.get_prompt_source(await deps.get_google(request, google_cfg))
			await source.fetch_range(1, 3)
		await google.aclose()

	asyncio.run(scenario())
	assert fake.token_calls == 1
