import asyncio

import pytest

from collector.session_monitor import SessionMonitor


def test_stops_after_invalidation():
	answers = [True, True, False, True]
	fired = []

	async def check():
		return answers.pop(0)

	async def scenario():
		monitor = SessionMonitor(check, 0.01, on_invalidated=lambda: fired.append("dead"))
		monitor.start()
		for _ in range(200):
			if not monitor.running:
				break
			await asyncio.sleep(0.01)
		return monitor

	monitor = asyncio.run(scenario())
	assert fired == ["dead"]
	assert monitor.invalidated
	assert monitor.checks == 3
	assert answers == [True]
	with pytest.raises(RuntimeError):
		monitor.start()


def test_explicit_stop():
	calls = []

	async def check():
		calls.append(1)
		return True

	async def scenario():
		monitor = SessionMonitor(check, 0.01)
		monitor.start()
		monitor.start()  # no second loop
		await asyncio.sleep(0.05)
		await monitor.stop()
		seen = len(calls)
		await asyncio.sleep(0.05)
		await monitor.stop()
		return monitor, seen

	monitor, seen = asyncio.run(scenario())
	assert not monitor.running
	assert not monitor.invalidated
	assert seen >= 1
	assert len(calls) == seen


def test_check_errors_keep_polling():
	answers = [RuntimeError("network down"), False]

	async def check():
		answer = answers.pop(0)
		if isinstance(answer, Exception):
			raise answer
		return answer

	async def on_invalidated():
		await asyncio.sleep(0)

	async def scenario():
		monitor = SessionMonitor(check, 0.01, on_invalidated=on_invalidated)
		monitor.start()
		for _ in range(200):
			if not monitor.running:
				break
			await asyncio.sleep(0.01)
		return monitor

	monitor = asyncio.run(scenario())
	assert monitor.invalidated
	assert monitor.checks == 2


def test_interval_must_be_positive():
	async def check():
		return True

	with pytest.raises(ValueError):
		SessionMonitor(check, 0)
