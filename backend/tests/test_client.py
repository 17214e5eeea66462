import asyncio

import httpx
import pytest

from collector.client import CollectorClient
from collector.errors import SessionInvalidated


def _collector(app, **kwargs):
	http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
	return CollectorClient("http://test", http=http, **kwargs)


def test_record_and_upload(app, drive):
	async def scenario():
		client = _collector(app, session_id="tab-1")
		login = await client.login("Alice")
		nxt = await client.next_script()
		done = await client.record_completion(nxt["script"]["external_index"])
		upload = await client.upload(
			b"OggS", row_index=1, script_text="The quick brown fox.", username="alice", mime_type="audio/ogg"
		)
		await client.aclose()
		return client, login, nxt, done, upload

	client, login, nxt, done, upload = asyncio.run(scenario())
	assert login["is_new_user"]
	assert nxt["script"]["external_index"] == 3
	assert done["scripts_completed_in_level"] == 1
	assert upload["progress"]["scripts_completed_in_level"] == 2
	assert client.version == 2
	assert drive.uploads[0]["mime_type"] == "audio/ogg"


def test_takeover_invalidates_older_client(app):
	async def scenario():
		old = _collector(app, session_id="laptop")
		new = _collector(app, session_id="phone")
		await old.login("alice")
		await new.login("alice")
		with pytest.raises(SessionInvalidated) as exc:
			await old.record_completion(3)
		await old.aclose()
		await new.aclose()
		return old, exc.value

	old, err = asyncio.run(scenario())
	assert not old.session_valid
	assert err.current_session_id == "phone"


def test_watch_session_notices_takeover(app):
	fired = []

	async def scenario():
		old = _collector(app, session_id="laptop", check_interval=0.01)
		await old.login("alice")
		monitor = old.watch_session(on_invalidated=lambda: fired.append(True))
		assert old.watch_session() is monitor
		new = _collector(app, session_id="phone")
		await new.login("alice")
		for _ in range(300):
			if not monitor.running:
				break
			await asyncio.sleep(0.01)
		await old.aclose()
		await new.aclose()
		return old, monitor

	old, monitor = asyncio.run(scenario())
	assert fired == [True]
	assert monitor.invalidated
	assert not old.session_valid


def test_calls_before_login():
	client = CollectorClient("http://test", http=httpx.AsyncClient(base_url="http://test"))
	with pytest.raises(RuntimeError):
		asyncio.run(client.next_script())
