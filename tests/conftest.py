from __future__ import annotations

import asyncio

import pytest
from aiohttp import ClientSession, web

from tests.utils import ReceivedRequest, Receiver, RecordingLogSink, RecordingSleep


@pytest.fixture
def log_sink() -> RecordingLogSink:
    return RecordingLogSink()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
async def http_session():
    async with ClientSession() as session:
        yield session


@pytest.fixture
async def receiver():
    state = Receiver()

    async def handler(request: web.Request) -> web.StreamResponse:
        raw = await request.read()
        state.received.append(
            ReceivedRequest(path=request.path, headers=request.headers.copy(), raw=raw)
        )
        if state.delay:
            await asyncio.sleep(state.delay)
        status, body = state.script.pop(0) if state.script else (200, "ok")
        if 300 <= status < 400:
            return web.Response(status=status, headers={"Location": "/elsewhere"})
        return web.Response(status=status, text=body)

    app = web.Application()
    app.router.add_post("/hook", handler)
    app.router.add_post("/elsewhere", handler)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = site._server.sockets[0].getsockname()[1]  # type: ignore[union-attr]
    state.base_url = f"http://127.0.0.1:{port}"
    try:
        yield state
    finally:
        await runner.cleanup()
