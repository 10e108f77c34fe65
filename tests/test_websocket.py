import asyncio
import unittest
from unittest.mock import AsyncMock

import orjson

from crashline.config import AppConfig
from crashline.core.models import RoundEvent
from crashline.core.websocket import ConnectionManager
from crashline.main import create_app

from tests.fakes import FakeClock


def fake_socket(fail: bool = False) -> AsyncMock:
    websocket = AsyncMock()
    websocket.query_params = {}
    if fail:
        websocket.send_bytes.side_effect = RuntimeError("connection reset")
    return websocket


class TestBroadcast(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.manager = ConnectionManager()

    async def test_failed_send_drops_client(self):
        good, bad = fake_socket(), fake_socket(fail=True)
        await self.manager.connect(good, "User1")
        await self.manager.connect(bad, "User2")

        await self.manager.broadcast({"type": "multiplier_update", "multiplier": 1.02})

        good.send_bytes.assert_awaited_with(
            orjson.dumps({"type": "multiplier_update", "multiplier": 1.02})
        )
        self.assertEqual(self.manager.all_connections, {good})
        self.assertEqual(self.manager.players, {"User1": good})

    async def test_round_event_is_broadcast_on_bound_loop(self):
        websocket = fake_socket()
        await self.manager.connect(websocket)
        self.manager.bind_loop(asyncio.get_running_loop())

        event = RoundEvent(seq=7, type="game_crash", round_id=3, data={"crash_point": 2.0})
        future = self.manager.on_round_event(event)
        await asyncio.wrap_future(future)

        websocket.send_bytes.assert_awaited_once_with(orjson.dumps(event.to_message()))

    async def test_round_event_without_loop_is_ignored(self):
        event = RoundEvent(seq=1, type="betting_start", round_id=1, data={})
        self.assertIsNone(self.manager.on_round_event(event))


class TestEndpointCleanup(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.app = create_app(AppConfig(), clock=FakeClock())
        self.manager = self.app.state.ws_manager
        self.endpoint = next(route.endpoint for route in self.app.routes if route.path == "/ws")

    async def test_receive_error_removes_socket(self):
        websocket = fake_socket()
        websocket.query_params = {"player_id": "User1"}
        websocket.receive_text.side_effect = RuntimeError("malformed frame")

        with self.assertLogs("crashline.main", level="ERROR"):
            await self.endpoint(websocket)

        self.assertNotIn(websocket, self.manager.all_connections)
        self.assertNotIn("User1", self.manager.players)


if __name__ == "__main__":
    unittest.main()
