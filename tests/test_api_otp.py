import unittest
from unittest.mock import Mock

from fastapi.testclient import TestClient

from otpgateway.core.errors import StoreUnavailableError
from otpgateway.main import create_app
from tests.base import (
    AUTH,
    DUMMY_OTP,
    DUMMY_OTP_ID,
    DUMMY_PROVIDER,
    DUMMY_TO,
    NAMESPACE,
    ROOT_URL,
    DummyProvider,
    GatewayTestCase,
    make_settings,
)


class OtpApiTests(GatewayTestCase):
    def test_providers(self):
        response = self.client.get("/api/providers", auth=AUTH)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "success", "data": [DUMMY_PROVIDER]})

    def test_auth_required(self):
        response = self.client.get("/api/providers")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["status"], "error")

        response = self.client.get("/api/providers", auth=(NAMESPACE, "wrong"))
        self.assertEqual(response.status_code, 401)

        response = self.client.put(f"/api/otp/{DUMMY_OTP_ID}", data={"provider": DUMMY_PROVIDER})
        self.assertEqual(response.status_code, 401)

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"], "OK")

    def test_set_otp_bad_input(self):
        response = self.issue(provider="unknown")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Unknown provider.")

        response = self.issue(to="invalid")
        self.assertEqual(response.status_code, 400)
        self.assertIn("invalid dummy to address", response.json()["message"])

        self.assertEqual(self.issue(ttl="abc").status_code, 400)
        self.assertEqual(self.issue(max_attempts="-1").status_code, 400)
        self.assertEqual(self.issue(extra="{bad").status_code, 400)
        self.assertEqual(self.issue(id="abc").status_code, 400)
        self.assertEqual(self.provider.sent, [])

    def test_set_otp(self):
        response = self.issue(extra='{"plan": "pro"}', ttl="120")
        self.assertEqual(response.status_code, 200)

        data = response.json()["data"]
        self.assertEqual(data["id"], DUMMY_OTP_ID)
        self.assertEqual(data["namespace"], NAMESPACE)
        self.assertEqual(data["otp"], DUMMY_OTP)
        self.assertEqual(data["to"], DUMMY_TO)
        self.assertEqual(data["attempts"], 1)
        self.assertEqual(data["ttl"], 120)
        self.assertEqual(data["extra"], {"plan": "pro"})
        self.assertFalse(data["closed"])
        self.assertEqual(data["url"], f"{ROOT_URL}/otp/{NAMESPACE}/{DUMMY_OTP_ID}")
        self.assertEqual(len(self.provider.sent), 1)

    def test_set_otp_generates_id(self):
        response = self.client.put("/api/otp", data={"provider": DUMMY_PROVIDER, "to": DUMMY_TO}, auth=AUTH)
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(len(data["id"]), 32)
        self.assertEqual(len(data["otp"]), 6)

    def test_check_otp(self):
        self.assertEqual(self.issue().status_code, 200)

        response = self.verify("")
        self.assertEqual(response.status_code, 400)

        response = self.verify("000000")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Incorrect OTP")
        self.assertEqual(response.json()["data"]["attempts"], 2)

        response = self.verify(DUMMY_OTP, skip_delete="true")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["data"]["closed"])

        # Still there, so it can be checked again and deleted this time.
        response = self.verify(DUMMY_OTP, skip_delete="false")
        self.assertEqual(response.status_code, 200)

        response = self.verify(DUMMY_OTP)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "the OTP does not exist")

    def test_attempts_lock(self):
        self.assertEqual(self.issue(max_attempts="5").status_code, 200)

        statuses = [self.verify("000000").status_code for _ in range(6)]
        self.assertEqual(statuses, [400, 400, 400, 429, 429, 429])

        response = self.verify(DUMMY_OTP)
        self.assertEqual(response.status_code, 429)
        body = response.json()
        self.assertIn("Too many attempts", body["message"])
        self.assertEqual(body["data"]["max_attempts"], 5)
        self.assertGreater(body["data"]["ttl_seconds"], 0)

        response = self.issue(otp="654321")
        self.assertEqual(response.status_code, 429)

    def test_status(self):
        self.issue()
        response = self.client.post(f"/api/otp/{DUMMY_OTP_ID}/status", auth=AUTH)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "OTP not verified.")

        self.assertEqual(self.verify(DUMMY_OTP, skip_delete="1").status_code, 200)

        response = self.client.post(f"/api/otp/{DUMMY_OTP_ID}/status", auth=AUTH)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["data"]["closed"])

        response = self.client.delete(f"/api/otp/{DUMMY_OTP_ID}/status", auth=AUTH)
        self.assertEqual(response.status_code, 200)

        response = self.client.post(f"/api/otp/{DUMMY_OTP_ID}/status", auth=AUTH)
        self.assertEqual(response.status_code, 400)

    def test_namespaces_are_isolated(self):
        app = create_app(
            make_settings(AUTH_CREDENTIALS=f"{NAMESPACE}:mysecret,other:othersecret"),
            store=self.store,
            providers={DUMMY_PROVIDER: self.provider},
        )
        with TestClient(app) as client:
            client.put(
                f"/api/otp/{DUMMY_OTP_ID}",
                data={"provider": DUMMY_PROVIDER, "to": DUMMY_TO, "otp": DUMMY_OTP},
                auth=AUTH,
            )
            response = client.post(f"/api/otp/{DUMMY_OTP_ID}", data={"otp": DUMMY_OTP}, auth=("other", "othersecret"))
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["message"], "the OTP does not exist")

    def test_delivery_failure(self):
        self.provider.fail = True
        response = self.issue()
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["message"], "Error sending OTP.")


class StoreDownTests(unittest.TestCase):
    def setUp(self):
        store = Mock()
        store.ping.side_effect = StoreUnavailableError()
        store.check.side_effect = StoreUnavailableError()
        app = create_app(make_settings(), store=store, providers={DUMMY_PROVIDER: DummyProvider()})
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()

    def test_health_reports_store(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["status"], "error")

    def test_verify_reports_store(self):
        response = self.client.post(f"/api/otp/{DUMMY_OTP_ID}", data={"otp": DUMMY_OTP}, auth=AUTH)
        self.assertEqual(response.status_code, 503)


class CreateAppTests(unittest.TestCase):
    def test_requires_credentials(self):
        with self.assertRaises(RuntimeError):
            create_app(make_settings(AUTH_CREDENTIALS=""), store=Mock(), providers={DUMMY_PROVIDER: DummyProvider()})

    def test_requires_providers(self):
        with self.assertRaises(RuntimeError):
            create_app(make_settings(), store=Mock(), providers={})

    def test_builds_from_settings(self):
        app = create_app(make_settings(PROVIDERS="console"))
        with TestClient(app) as client:
            response = client.get("/api/providers", auth=AUTH)
            self.assertEqual(response.json()["data"], ["console"])
