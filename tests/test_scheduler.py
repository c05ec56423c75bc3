import asyncio

import pytest

from brainkey.scheduler import AdvanceScheduler


@pytest.mark.asyncio
async def test_callback_fires_after_delay():
	scheduler = AdvanceScheduler()
	fired = []
	scheduler.schedule("s1", 10, lambda: fired.append("s1"))
	assert scheduler.pending("s1")
	await asyncio.sleep(0.05)
	assert fired == ["s1"]
	assert not scheduler.pending("s1")


@pytest.mark.asyncio
async def test_cancel_prevents_callback():
	scheduler = AdvanceScheduler()
	fired = []
	scheduler.schedule("s1", 20, lambda: fired.append("s1"))
	assert scheduler.cancel("s1") is True
	await asyncio.sleep(0.05)
	assert fired == []
	assert scheduler.cancel("s1") is False


@pytest.mark.asyncio
async def test_rescheduling_replaces_pending_callback():
	scheduler = AdvanceScheduler()
	fired = []
	scheduler.schedule("s1", 20, lambda: fired.append("first"))
	scheduler.schedule("s1", 20, lambda: fired.append("second"))
	await asyncio.sleep(0.06)
	assert fired == ["second"]


@pytest.mark.asyncio
async def test_keys_are_independent_and_aclose_cancels_all():
	scheduler = AdvanceScheduler()
	fired = []
	scheduler.schedule("a", 10, lambda: fired.append("a"))
	scheduler.schedule("b", 500, lambda: fired.append("b"))
	await asyncio.sleep(0.05)
	await scheduler.aclose()
	await asyncio.sleep(0.01)
	assert fired == ["a"]
	assert not scheduler.pending("b")


@pytest.mark.asyncio
async def test_failing_callback_is_logged_not_raised(caplog):
	scheduler = AdvanceScheduler()

	def boom():
		raise RuntimeError("boom")

	scheduler.schedule("s1", 0, boom)
	await asyncio.sleep(0.02)
	assert "scheduled advance for s1 failed" in caplog.text
