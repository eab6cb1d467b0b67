import unittest
from types import SimpleNamespace


class GitHubSignatureTests(unittest.TestCase):
    def test_valid_signature_passes(self):
        from syncbridge.security import sign_github_payload, verify_github_signature

        body = b'{"action":"opened"}'
        verify_github_signature(body, "s3cret", sign_github_payload(body, "s3cret"))

    def test_tampered_body_is_rejected(self):
        from syncbridge.errors import VerificationError
        from syncbridge.security import sign_github_payload, verify_github_signature

        signature = sign_github_payload(b'{"action":"opened"}', "s3cret")
        with self.assertRaises(VerificationError) as ctx:
            verify_github_signature(b'{"action":"closed"}', "s3cret", signature)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_wrong_secret_is_rejected(self):
        from syncbridge.errors import VerificationError
        from syncbridge.security import sign_github_payload, verify_github_signature

        body = b"{}"
        with self.assertRaises(VerificationError):
            verify_github_signature(body, "s3cret", sign_github_payload(body, "other"))

    def test_missing_or_malformed_header_is_rejected(self):
        from syncbridge.errors import VerificationError
        from syncbridge.security import verify_github_signature

        for header in (None, "", "sha1=abcdef", "abcdef", "sha256=\u00e9" + "0" * 63):
            with self.subTest(header=header):
                with self.assertRaises(VerificationError):
                    verify_github_signature(b"{}", "s3cret", header)

    def test_missing_secret_is_rejected(self):
        from syncbridge.errors import VerificationError
        from syncbridge.security import sign_github_payload, verify_github_signature

        with self.assertRaises(VerificationError):
            verify_github_signature(b"{}", None, sign_github_payload(b"{}", "x"))


class LinearOriginTests(unittest.TestCase):
    def test_allowlisted_ip_passes(self):
        from syncbridge.security import verify_linear_origin

        verify_linear_origin("35.231.147.226", {"35.231.147.226"})

    def test_unknown_or_missing_ip_is_rejected(self):
        from syncbridge.errors import VerificationError
        from syncbridge.security import verify_linear_origin

        for ip in ("10.0.0.1", None):
            with self.subTest(ip=ip):
                with self.assertRaises(VerificationError):
                    verify_linear_origin(ip, {"35.231.147.226"})

    def test_client_ip_only_trusts_forwarded_for_when_configured(self):
        from syncbridge.security import client_ip

        request = SimpleNamespace(
            headers={"x-forwarded-for": "35.231.147.226, 10.0.0.2"},
            client=SimpleNamespace(host="10.0.0.2"),
        )
        self.assertEqual(client_ip(request, trust_forwarded_for=False), "10.0.0.2")
        self.assertEqual(client_ip(request, trust_forwarded_for=True), "35.231.147.226")

    def test_allowlist_setting_is_parsed(self):
        from syncbridge.config import Settings

        config = Settings(linear_webhook_ips=" 1.1.1.1, 2.2.2.2 ,")
        self.assertEqual(config.linear_ip_allowlist, {"1.1.1.1", "2.2.2.2"})
