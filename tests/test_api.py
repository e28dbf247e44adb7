import asyncio
import unittest

from fastapi.testclient import TestClient

from app.main import app
from llm_services import QueryAssistant
from llm_services.providers.provider import LLMProvider
from mcp_broker import MCPBroker, QueryCache, SchemaSnapshotService, default_registry


class CannedProvider(LLMProvider):

    async def generate(self, prompt, messages=None, **kwargs):
        if prompt.startswith("Validate this SQL"):
            return '{"isValid": true, "errors": [], "suggestions": ["Add a LIMIT"]}'
        return '{"explanation": "All users", "sql": "SELECT * FROM users", "confidence": 88}'


CONNECT_BODY = {
    "id": 1,
    "name": "Operational DB",
    "type": "sqlserver",
    "connection_string": "server=localhost;user=sa;password=s3cret",
}


class TestBrokerAPI(unittest.TestCase):
    """Test cases for the REST and websocket endpoints"""

    def setUp(self):
        """Serve a broker with instant mock connectors and a canned LLM"""
        self.broker = MCPBroker(
            query_cache=QueryCache(),
            schema_service=SchemaSnapshotService(),
            assistant=QueryAssistant(provider=CannedProvider()),
            connectors=default_registry(latency=0),
        )
        app.state.broker = self.broker
        self.client = TestClient(app)

    def tearDown(self):
        asyncio.run(self.broker.shutdown())

    def connect(self):
        response = self.client.post("/api/v1/databases/connect", json=CONNECT_BODY)
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.json(), {"status": "ok"})

    def test_connect_and_list(self):
        body = self.connect()

        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["connection_id"], "sqlserver-1")
        self.assertIsNone(body["error"])

        listed = self.client.get("/api/v1/databases").json()
        self.assertEqual(len(listed["data"]), 1)
        self.assertEqual(listed["data"][0]["database_id"], 1)
        self.assertNotIn("s3cret", listed["data"][0]["metadata"]["connection_string"])

    def test_unsupported_type_is_failed_envelope(self):
        response = self.client.post("/api/v1/databases/connect", json={**CONNECT_BODY, "type": "oracle"})

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["success"])

    def test_query_is_cached(self):
        self.connect()

        first = self.client.post("/api/v1/databases/1/query", json={"query": "SELECT * FROM users"}).json()
        second = self.client.post("/api/v1/databases/1/query", json={"query": "select * from users"}).json()

        self.assertTrue(first["success"])
        self.assertEqual(first["data"]["row_count"], 2)
        self.assertEqual(second["data"]["rows"], first["data"]["rows"])

        stats = self.client.get("/api/v1/stats").json()["data"]
        self.assertEqual(stats["cache"]["hits"], 1)
        self.assertEqual(stats["connections"], 1)

    def test_query_unknown_database(self):
        body = self.client.post("/api/v1/databases/9/query", json={"query": "SELECT 1"}).json()

        self.assertFalse(body["success"])
        self.assertIn("not connected", body["error"])

    def test_query_requires_body(self):
        response = self.client.post("/api/v1/databases/1/query", json={})
        self.assertEqual(response.status_code, 422)

    def test_schema_endpoints(self):
        self.connect()

        schema = self.client.get("/api/v1/databases/1/schema").json()
        self.assertEqual([t["name"] for t in schema["data"]["tables"]], ["users", "orders"])

        refreshed = self.client.post("/api/v1/databases/1/schema/refresh").json()
        self.assertTrue(refreshed["success"])
        self.assertEqual(refreshed["data"]["changes"], [])

        history = self.client.get("/api/v1/databases/1/schema/history", params={"limit": 5}).json()
        self.assertEqual(len(history["data"]), 2)
        newest, oldest = history["data"][0]["id"], history["data"][1]["id"]

        diff = self.client.get("/api/v1/schema/diff", params={"snapshot_a": oldest, "snapshot_b": newest}).json()
        self.assertEqual(diff["data"], [])

        changes = self.client.get("/api/v1/databases/1/schema/changes").json()
        self.assertEqual(changes["data"], [])

    def test_schema_diff_unknown_snapshot(self):
        body = self.client.get("/api/v1/schema/diff", params={"snapshot_a": "a", "snapshot_b": "b"}).json()

        self.assertFalse(body["success"])
        self.assertIn("not found", body["error"])

    def test_disconnect(self):
        self.connect()

        body = self.client.delete("/api/v1/databases/1").json()

        self.assertTrue(body["success"])
        self.assertEqual(self.client.get("/api/v1/databases").json()["data"], [])

    def test_cache_invalidate(self):
        self.connect()
        self.client.post("/api/v1/databases/1/query", json={"query": "SELECT * FROM users"})
        self.client.post("/api/v1/databases/1/query", json={"query": "SELECT * FROM orders"})

        by_database = self.client.post("/api/v1/cache/invalidate", json={"pattern": "orders"}).json()
        everything = self.client.post("/api/v1/cache/invalidate").json()

        self.assertEqual(by_database["data"], {"removed": 1})
        self.assertEqual(everything["data"], {"removed": 1})

    def test_chat_endpoints(self):
        self.connect()

        answer = self.client.post("/api/v1/chat/query", json={"query": "Show all users", "database_ids": [1]}).json()
        self.assertTrue(answer["success"])
        self.assertEqual(answer["data"]["sql"], "SELECT * FROM users")
        self.assertEqual(answer["data"]["confidence"], 88)

        pipeline = self.client.post(
            "/api/v1/chat/etl",
            json={"source": "sqlserver", "target": "snowflake", "requirements": "Copy users nightly"},
        ).json()
        self.assertTrue(pipeline["success"])

        verdict = self.client.post("/api/v1/chat/validate", json={"sql": "SELECT * FROM users"}).json()
        self.assertTrue(verdict["data"]["is_valid"])

    def test_status_websocket_greets_and_answers_ping(self):
        self.connect()

        with self.client.websocket_connect("/api/v1/ws/status") as websocket:
            greeting = websocket.receive_json()
            websocket.send_text("ping")
            status = websocket.receive_json()

        self.assertEqual(greeting["type"], "connection")
        self.assertEqual(status["type"], "database_status_update")
        self.assertEqual(status["data"]["connections"][0]["id"], "sqlserver-1")


class TestLifespan(unittest.TestCase):

    def test_lifespan_creates_and_releases_broker(self):
        with TestClient(app) as client:
            broker = client.app.state.broker
            self.assertTrue(broker.query_cache.is_running)
            self.assertEqual(client.get("/health").status_code, 200)

        self.assertFalse(broker.query_cache.is_running)


if __name__ == "__main__":
    unittest.main()
