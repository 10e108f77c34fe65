import unittest

from fastapi.testclient import TestClient

from crashline.config import AppConfig, GameConfig, settings
from crashline.core.clock import COUNTDOWN, RAMP
from crashline.main import create_app
from crashline.routers.api import limiter

from tests.fakes import FakeClock, fixed_selector


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        limiter.reset()
        settings.rate_limit.enabled = False
        self.clock = FakeClock()
        config = AppConfig(game=GameConfig(player_seeds={"User1": 1000, "User2": 1000}))
        self.app = create_app(config, clock=self.clock)
        self.engine = self.app.state.engine
        self.engine.selector = fixed_selector("2.00")
        self.client = TestClient(self.app)

    def tearDown(self):
        settings.rate_limit.enabled = True
        limiter.reset()


class TestRoundApi(ApiTestCase):

    def test_index(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "Server is running!")

    def test_bet_and_cashout(self):
        self.engine.start_betting_phase()
        response = self.client.post("/api/bet", json={"player_id": "User1", "amount": 100})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["new_balance"], 900.0)

        self.clock.fire(COUNTDOWN, 5)
        self.clock.fire(RAMP, 25)
        response = self.client.post("/api/cashout", json={"player_id": "User1"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["winnings"], 150.0)
        self.assertEqual(body["new_balance"], 1050.0)
        self.assertEqual(body["multiplier"], 1.5)

        balances = self.client.get("/api/balances").json()
        self.assertEqual(balances["house_balance"], 99950.0)
        self.assertEqual(balances["balances"]["User1"], 1050.0)

    def test_betting_closed(self):
        response = self.client.post("/api/bet", json={"player_id": "User1", "amount": 10})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"detail": "Betting is closed!", "code": "betting_closed"})

    def test_insufficient_funds(self):
        self.engine.start_betting_phase()
        response = self.client.post("/api/bet", json={"player_id": "User2", "amount": 5000})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "insufficient_funds")

    def test_cashout_rejections(self):
        self.engine.start_betting_phase()
        response = self.client.post("/api/cashout", json={"player_id": "User1"})
        self.assertEqual(response.json()["code"], "round_not_running")

        self.clock.fire(COUNTDOWN, 5)
        response = self.client.post("/api/cashout", json={"player_id": "User1"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "no_active_bet")

    def test_oversized_amount_is_rejected(self):
        self.engine.start_betting_phase()
        response = self.client.post("/api/bet", json={"player_id": "User1", "amount": 1e30})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_amount")
        self.assertEqual(self.client.get("/api/balance/User1").json()["balance"], 1000.0)

    def test_validation_error(self):
        response = self.client.post("/api/bet", json={"player_id": "User1"})
        self.assertEqual(response.status_code, 422)

    def test_state_hides_crash_point_while_running(self):
        self.engine.start_betting_phase()
        self.clock.fire(COUNTDOWN, 5)
        state = self.client.get("/api/state").json()
        self.assertEqual(state["phase"], "running")
        self.assertIsNone(state["crash_point"])

        self.clock.fire(RAMP, 100)
        state = self.client.get("/api/state").json()
        self.assertEqual(state["phase"], "crashed")
        self.assertEqual(state["crash_point"], 2.0)
        self.assertEqual(state["recent_crashes"], [2.0])

    def test_current_bets(self):
        self.engine.start_betting_phase()
        self.client.post("/api/bet", json={"player_id": "User2", "amount": 12.5})
        bets = self.client.get("/api/bets").json()["bets"]
        self.assertEqual(len(bets), 1)
        self.assertEqual(bets[0]["player_id"], "User2")
        self.assertEqual(bets[0]["stake"], 12.5)
        self.assertEqual(bets[0]["status"], "active")
        self.assertIsNone(bets[0]["winnings"])

    def test_single_balance(self):
        response = self.client.get("/api/balance/User2")
        self.assertEqual(response.json(), {"player_id": "User2", "balance": 1000.0})


class TestRateLimit(ApiTestCase):

    def test_bet_endpoint_is_rate_limited(self):
        settings.rate_limit.enabled = True
        original = settings.rate_limit.game_requests
        settings.rate_limit.game_requests = "3/minute"
        try:
            self.engine.start_betting_phase()
            codes = [
                self.client.post("/api/bet", json={"player_id": "User1", "amount": 1}).status_code
                for _ in range(4)
            ]
        finally:
            settings.rate_limit.game_requests = original
        self.assertEqual(codes[:3], [200, 400, 400])
        self.assertEqual(codes[3], 429)


class TestWebSocket(ApiTestCase):

    def test_state_on_connect_and_ping(self):
        with self.client.websocket_connect("/ws?player_id=User1") as websocket:
            state = websocket.receive_json(mode="binary")
            self.assertEqual(state["type"], "state")
            self.assertEqual(state["phase"], "idle")

            websocket.send_text('{"type": "ping"}')
            self.assertEqual(websocket.receive_json(mode="binary"), {"type": "pong"})

    def test_engine_events_reach_clients(self):
        with TestClient(self.app) as client:
            with client.websocket_connect("/ws") as websocket:
                self.assertEqual(websocket.receive_json(mode="binary")["type"], "state")

                self.engine.start_betting_phase()
                message = websocket.receive_json(mode="binary")
                self.assertEqual(message["type"], "betting_start")
                self.assertEqual(message["seq"], 1)
                self.assertEqual(message["round_id"], 1)
                self.assertEqual(message["countdown"], 5)

                self.clock.fire(COUNTDOWN)
                message = websocket.receive_json(mode="binary")
                self.assertEqual(message["type"], "betting_countdown")
                self.assertEqual(message["seq"], 2)
                self.assertEqual(message["countdown"], 4)


if __name__ == "__main__":
    unittest.main()
