"""
Tests for access/refresh token signing and verification.
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from services.tokens import AccessClaims, TokenCodec, VerificationError


CLAIMS = AccessClaims(id="user-1", email="ann@example.com", name="Ann", is_pro=False)


class FrozenClock:
    """Settable clock for expiry tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_codec(clock=None) -> TokenCodec:
    kwargs = {
        "access_secret": "access-secret-for-tests",
        "refresh_secret": "refresh-secret-for-tests",
        "algorithm": "HS256",
        "access_ttl": timedelta(minutes=30),
        "refresh_ttl": timedelta(days=7),
    }
    if clock is not None:
        kwargs["clock"] = clock
    return TokenCodec(**kwargs)


class TestAccessTokens:
    def test_roundtrip_returns_identity(self):
        codec = make_codec()
        result = codec.verify_access(codec.sign_access(CLAIMS))

        assert result.ok
        assert result.claims == CLAIMS

    def test_payload_uses_camel_case_pro_flag(self):
        codec = make_codec()
        payload = jwt.get_unverified_claims(codec.sign_access(CLAIMS))

        assert payload["isPro"] is False
        assert payload["type"] == "access"
        assert "password" not in payload
        assert "password_hash" not in payload

    def test_expiry_boundary(self):
        clock = FrozenClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
        codec = make_codec(clock)
        token = codec.sign_access(CLAIMS)

        clock.advance(minutes=29, seconds=59)
        assert codec.verify_access(token).ok

        # now == exp is already expired
        clock.advance(seconds=1)
        result = codec.verify_access(token)
        assert not result.ok
        assert result.error == VerificationError.EXPIRED

    def test_expiry_keeps_sub_second_issue_time(self):
        clock = FrozenClock(datetime(2026, 1, 1, 0, 0, 0, 900000, tzinfo=timezone.utc))
        codec = make_codec(clock)
        token = codec.sign_access(CLAIMS)

        clock.advance(minutes=29, seconds=59, milliseconds=500)
        assert codec.verify_access(token).ok

        clock.advance(milliseconds=500)
        assert codec.verify_access(token).error == VerificationError.EXPIRED

    def test_tampered_signature(self):
        codec = make_codec()
        token = codec.sign_access(CLAIMS)
        head, body, signature = token.split(".")
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]

        result = codec.verify_access(f"{head}.{body}.{flipped}")
        assert result.error == VerificationError.BAD_SIGNATURE

    def test_other_secret_is_rejected(self):
        token = make_codec().sign_access(CLAIMS)
        other = TokenCodec(
            access_secret="another-access-secret",
            refresh_secret="another-refresh-secret",
            algorithm="HS256",
        )
        assert other.verify_access(token).error == VerificationError.BAD_SIGNATURE

    def test_garbage_is_malformed(self):
        codec = make_codec()
        assert codec.verify_access("not-a-token").error == VerificationError.MALFORMED
        assert codec.verify_access("").error == VerificationError.MALFORMED
        assert codec.verify_access(None).error == VerificationError.MALFORMED

    def test_missing_identity_claims(self):
        codec = make_codec()
        token = jwt.encode(
            {"type": "access", "exp": 4102444800},
            "access-secret-for-tests",
            algorithm="HS256",
        )
        assert codec.verify_access(token).error == VerificationError.MISSING_CLAIMS


class TestRefreshTokens:
    def test_roundtrip_returns_user_id(self):
        codec = make_codec()
        result = codec.verify_refresh(codec.sign_refresh("user-1"))

        assert result.ok
        assert result.claims.user_id == "user-1"

    def test_same_second_tokens_differ(self):
        clock = FrozenClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
        codec = make_codec(clock)

        assert codec.sign_refresh("user-1") != codec.sign_refresh("user-1")

    def test_refresh_token_not_accepted_as_access(self):
        codec = make_codec()
        refresh = codec.sign_refresh("user-1")

        # Signed with the refresh secret, so the access check fails on the signature
        assert not codec.verify_access(refresh).ok

    def test_wrong_type_with_shared_secret(self):
        codec = TokenCodec(
            access_secret="same-secret",
            refresh_secret="same-secret",
            algorithm="HS256",
        )
        refresh = codec.sign_refresh("user-1")
        assert codec.verify_access(refresh).error == VerificationError.WRONG_TYPE

    def test_refresh_expires_after_seven_days(self):
        clock = FrozenClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
        codec = make_codec(clock)
        token = codec.sign_refresh("user-1")

        assert codec.refresh_expires_at() == datetime(2026, 1, 8, tzinfo=timezone.utc)
        clock.advance(days=7)
        assert codec.verify_refresh(token).error == VerificationError.EXPIRED
