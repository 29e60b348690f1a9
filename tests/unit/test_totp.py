"""Unit tests for TOTP helpers."""

from datetime import datetime, timedelta, timezone

from radius_console.core import totp


class TestTotp:
    """Test code generation and verification."""

    def test_secret_is_base32(self):
        secret = totp.generate_secret()
        assert len(secret) == 32
        assert set(secret) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZ234567")

    def test_current_code_verifies(self):
        secret = totp.generate_secret()
        code = totp.generate_code(secret)
        assert len(code) == 6
        assert totp.verify_code(secret, code) is True

    def test_previous_step_accepted_within_window(self):
        secret = totp.generate_secret()
        code = totp.generate_code(secret, datetime.now(timezone.utc) - timedelta(seconds=30))
        assert totp.verify_code(secret, code, window=1) is True

    def test_old_code_rejected(self):
        secret = totp.generate_secret()
        code = totp.generate_code(secret, datetime.now(timezone.utc) - timedelta(minutes=10))
        assert totp.verify_code(secret, code, window=1) is False

    def test_malformed_input_rejected(self):
        secret = totp.generate_secret()
        assert totp.verify_code(secret, "12ab56") is False
        assert totp.verify_code(secret, "1234567") is False
        assert totp.verify_code(secret, None) is False
        assert totp.verify_code(None, "123456") is False

    def test_matching_step(self):
        secret = totp.generate_secret()
        now = datetime(2026, 3, 1, 12, 0, 10, tzinfo=timezone.utc)
        step = int(now.timestamp()) // totp.TIME_STEP

        assert totp.matching_step(secret, totp.generate_code(secret, now), for_time=now) == step
        earlier = totp.generate_code(secret, now - timedelta(seconds=30))
        assert totp.matching_step(secret, earlier, window=1, for_time=now) == step - 1
        assert totp.matching_step(secret, earlier, window=0, for_time=now) is None
        assert totp.matching_step(secret, "abcdef", for_time=now) is None

    def test_provisioning_uri(self):
        uri = totp.provisioning_uri("jdoe", "JBSWY3DPEHPK3PXP", "RadiusConsole")
        assert uri.startswith("otpauth://totp/")
        assert "secret=JBSWY3DPEHPK3PXP" in uri
        assert "issuer=RadiusConsole" in uri

    def test_qr_code_data_url(self):
        data_url = totp.qr_code_data_url("otpauth://totp/RadiusConsole:jdoe?secret=JBSWY3DPEHPK3PXP")
        assert data_url.startswith("data:image/png;base64,")
        assert len(data_url) > 100
