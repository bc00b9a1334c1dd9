import unittest

from otpgateway.web.pages import message_page
from tests.base import AUTH, DUMMY_OTP, DUMMY_OTP_ID, DUMMY_TO, NAMESPACE, GatewayTestCase

VIEW = f"/otp/{NAMESPACE}/{DUMMY_OTP_ID}"


class WebViewTests(GatewayTestCase):
    def test_unaddressed_otp_redirects_to_address_form(self):
        self.issue(to="")
        response = self.client.get(VIEW, follow_redirects=False)
        self.assertEqual(response.status_code, 302)
        self.assertTrue(response.headers["location"].endswith(f"{VIEW}/address"))

        response = self.client.get(f"{VIEW}/address")
        self.assertEqual(response.status_code, 200)
        self.assertIn("dummy address description", response.text)

    def test_address_form(self):
        self.issue(to="")

        response = self.client.post(f"{VIEW}/address", data={"to": "nobody@example.com"}, follow_redirects=False)
        self.assertEqual(response.status_code, 200)
        self.assertIn("invalid dummy to address", response.text)
        self.assertEqual(self.provider.sent, [])

        response = self.client.post(f"{VIEW}/address", data={"to": DUMMY_TO}, follow_redirects=False)
        self.assertEqual(response.status_code, 302)
        self.assertTrue(response.headers["location"].endswith(VIEW))
        self.assertEqual(len(self.provider.sent), 1)

        # Once addressed, the form only redirects back.
        response = self.client.post(f"{VIEW}/address", data={"to": DUMMY_TO}, follow_redirects=False)
        self.assertEqual(response.status_code, 302)
        self.assertEqual(len(self.provider.sent), 1)

    def test_otp_form_and_check(self):
        self.issue()

        response = self.client.get(VIEW)
        self.assertEqual(response.status_code, 200)
        self.assertIn("Verify dummychannel", response.text)
        self.assertIn("dummy channel description", response.text)

        response = self.client.post(VIEW, data={"action": "check", "otp": "000000"})
        self.assertEqual(response.status_code, 200)
        self.assertIn("Incorrect OTP", response.text)

        response = self.client.get(f"{VIEW}/status")
        self.assertEqual(response.json(), {"status": "success", "data": {"closed": False}})

        response = self.client.post(VIEW, data={"action": "check", "otp": DUMMY_OTP})
        self.assertEqual(response.status_code, 200)
        self.assertIn("dummychannel verified", response.text)

        response = self.client.get(f"{VIEW}/status")
        self.assertEqual(response.json()["data"], {"closed": True})

        # The view leaves the record for the API client to collect.
        response = self.client.post(f"/api/otp/{DUMMY_OTP_ID}/status", auth=AUTH)
        self.assertEqual(response.status_code, 200)

    def test_check_link_from_message(self):
        self.issue()
        response = self.client.get(VIEW, params={"action": "check", "otp": DUMMY_OTP})
        self.assertEqual(response.status_code, 200)
        self.assertIn("verified", response.text)

    def test_resend(self):
        self.issue()
        response = self.client.post(VIEW, data={"action": "resend"})
        self.assertEqual(response.status_code, 200)
        self.assertIn("OTP resent", response.text)
        self.assertEqual(len(self.provider.sent), 2)

    def test_locked(self):
        self.issue(max_attempts="2")
        response = self.client.post(VIEW, data={"action": "check", "otp": "000000"})
        self.assertEqual(response.status_code, 429)
        self.assertIn("Too many attempts", response.text)

        response = self.client.get(VIEW)
        self.assertEqual(response.status_code, 429)

    def test_expired_session(self):
        response = self.client.get(VIEW)
        self.assertEqual(response.status_code, 400)
        self.assertIn("Session expired", response.text)

        response = self.client.get(f"{VIEW}/address")
        self.assertEqual(response.status_code, 400)

        response = self.client.get(f"{VIEW}/status")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Session expired.")

    def test_expiry_ends_session(self):
        self.issue(ttl="60")
        self.clock.advance(61)
        response = self.client.post(VIEW, data={"action": "check", "otp": DUMMY_OTP})
        self.assertEqual(response.status_code, 400)


class VerifiedPageTests(unittest.TestCase):
    def test_popup_script_gets_raw_values(self):
        page = message_page("verified", "done", closed_namespace="a&b", closed_id="it's</script>")
        self.assertIn('namespace: "a&b"', page)
        self.assertIn('id: "it\'s\\u003c/script>"', page)
        self.assertNotIn("&amp;", page)
        self.assertEqual(page.count("</script>"), 1)

    def test_no_script_without_record(self):
        self.assertNotIn("<script>", message_page("Session expired", "Please retry & start over."))
        self.assertIn("Please retry &amp; start over.", message_page("Session expired", "Please retry & start over."))
