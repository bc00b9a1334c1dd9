import os
import unittest

from fastapi.testclient import TestClient

# Ensure settings can be initialized in test environments
os.environ.setdefault("AUTH_CREDENTIALS", "myapp:mysecret")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("PROVIDERS", "console")

from otpgateway.core.config import Settings
from otpgateway.core.errors import InvalidAddressError
from otpgateway.main import create_app
from otpgateway.services.messages import MessageTemplates
from otpgateway.services.otp_store import InMemoryOTPStore

NAMESPACE = "myapp"
SECRET = "mysecret"
AUTH = (NAMESPACE, SECRET)
ROOT_URL = "http://localhost:9000"

DUMMY_PROVIDER = "dummyprovider"
DUMMY_TO = "dummy@to.com"
DUMMY_OTP_ID = "myotp123"
DUMMY_OTP = "123456"


class DummyProvider:
    """Records every push instead of delivering it."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def id(self):
        return DUMMY_PROVIDER

    def channel_name(self):
        return "dummychannel"

    def channel_desc(self):
        return "dummy channel description"

    def address_name(self):
        return "dummy address"

    def address_desc(self):
        return "dummy address description"

    def validate_address(self, to):
        if to != DUMMY_TO:
            raise InvalidAddressError("invalid dummy to address")

    def push(self, otp, subject, body):
        if self.fail:
            raise RuntimeError("dummy push failed")
        self.sent.append((otp.to, otp.otp, subject, body))

    def max_address_len(self):
        return 50

    def max_otp_len(self):
        return 6

    def max_body_len(self):
        return 0


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = float(now)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += float(seconds)


def make_settings(**overrides):
    values = {
        "AUTH_CREDENTIALS": f"{NAMESPACE}:{SECRET}",
        "STORE_BACKEND": "memory",
        "PROVIDERS": "console",
        "ROOT_URL": ROOT_URL,
    }
    values.update(overrides)
    return Settings(**values)


class GatewayTestCase(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemoryOTPStore(clock=self.clock)
        self.provider = DummyProvider()
        self.app = create_app(
            make_settings(),
            store=self.store,
            providers={DUMMY_PROVIDER: self.provider},
            templates={DUMMY_PROVIDER: MessageTemplates(subject="{channel} code", body="{otp} {otp_url}")},
        )
        self.client = TestClient(self.app)

    def tearDown(self):
        self.client.close()

    def issue(self, id=DUMMY_OTP_ID, **form):
        data = {"provider": DUMMY_PROVIDER, "to": DUMMY_TO, "otp": DUMMY_OTP}
        data.update(form)
        return self.client.put(f"/api/otp/{id}", data=data, auth=AUTH)

    def verify(self, otp, id=DUMMY_OTP_ID, **form):
        data = {"otp": otp}
        data.update(form)
        return self.client.post(f"/api/otp/{id}", data=data, auth=AUTH)
