"""Tests for session token issuance and verification."""

import jwt
import pytest

from polar_gateway.errors import InternalError, Unauthorized
from polar_gateway.models import Session
from polar_gateway.tokens import SessionTokenIssuer, SessionVerifier
from tests.conftest import TEST_TOKEN_SECRET


@pytest.fixture
def verifier(session_store):
    return SessionVerifier(TEST_TOKEN_SECRET, session_store)


@pytest.fixture
async def session(session_store):
    return await session_store.create("T1", 99)


class TestSessionTokenIssuer:
    """Test token minting."""

    def test_subject_is_session_id(self, issuer):
        """Test the token subject carries the session id and nothing expires."""
        token = issuer.issue(Session(id=7, polar_user_id=99, polar_token="T1"))

        claims = jwt.decode(token, TEST_TOKEN_SECRET, algorithms=["HS256"])
        assert claims == {"sub": "7"}

    def test_token_does_not_contain_polar_token(self, issuer):
        """Test the Polar credential never leaks into the client token."""
        token = issuer.issue(Session(id=7, polar_user_id=99, polar_token="secret-polar-token"))

        claims = jwt.decode(token, options={"verify_signature": False})
        assert "secret-polar-token" not in str(claims)


class TestSessionVerifier:
    """Test resolving Authorization headers to sessions."""

    async def test_round_trip(self, verifier, issuer, session):
        """Test a freshly issued token resolves to the same session."""
        resolved = await verifier.resolve(f"Bearer {issuer.issue(session)}")

        assert resolved == session

    @pytest.mark.parametrize(
        "header_template",
        ["bearer {token}", "BEARER {token}", "  Bearer   {token}  ", "Bearer\t{token}"],
    )
    async def test_scheme_is_case_insensitive_and_trimmed(
        self, verifier, issuer, session, header_template
    ):
        """Test scheme matching ignores case and surrounding whitespace."""
        header = header_template.format(token=issuer.issue(session))

        resolved = await verifier.resolve(header)

        assert resolved.id == session.id

    @pytest.mark.parametrize("header", [None, "", "   ", "Bearer", "Bearer   ", "garbage"])
    async def test_missing_or_malformed_header(self, verifier, header):
        """Test headers without a usable token are unauthorized."""
        with pytest.raises(Unauthorized):
            await verifier.resolve(header)

    async def test_basic_scheme_rejected(self, verifier, issuer, session):
        """Test another scheme carrying a valid token is rejected."""
        with pytest.raises(Unauthorized):
            await verifier.resolve(f"Basic {issuer.issue(session)}")

    async def test_garbage_token(self, verifier):
        """Test a token that is not a JWT is unauthorized."""
        with pytest.raises(Unauthorized):
            await verifier.resolve("Bearer garbage")

    async def test_wrong_secret(self, verifier, session):
        """Test a token signed with another secret is unauthorized."""
        forged = SessionTokenIssuer("another-secret-that-is-also-long-enough").issue(session)

        with pytest.raises(Unauthorized):
            await verifier.resolve(f"Bearer {forged}")

    async def test_tampered_signature(self, verifier, issuer, session):
        """Test a token whose signature was altered is unauthorized."""
        token = issuer.issue(session)
        tampered = token[:-2] + ("AA" if not token.endswith("AA") else "BB")

        with pytest.raises(Unauthorized):
            await verifier.resolve(f"Bearer {tampered}")

    async def test_unsigned_token(self, verifier, session):
        """Test an alg=none token is unauthorized."""
        token = jwt.encode({"sub": str(session.id)}, None, algorithm="none")

        with pytest.raises(Unauthorized):
            await verifier.resolve(f"Bearer {token}")

    async def test_missing_subject(self, verifier):
        """Test a validly signed token without a subject is unauthorized."""
        token = jwt.encode({"foo": "bar"}, TEST_TOKEN_SECRET, algorithm="HS256")

        with pytest.raises(Unauthorized):
            await verifier.resolve(f"Bearer {token}")

    @pytest.mark.parametrize("subject", ["abc", "-1", "1.5", "", "9" * 5000])
    async def test_unparsable_subject(self, verifier, subject):
        """Test a subject that isn't an unsigned integer is unauthorized."""
        token = jwt.encode({"sub": subject}, TEST_TOKEN_SECRET, algorithm="HS256")

        with pytest.raises(Unauthorized):
            await verifier.resolve(f"Bearer {token}")

    async def test_unknown_session(self, verifier, issuer):
        """Test a well-formed token for a session that doesn't exist is unauthorized."""
        token = issuer.issue(Session(id=12345, polar_user_id=1, polar_token="x"))

        with pytest.raises(Unauthorized):
            await verifier.resolve(f"Bearer {token}")

    async def test_all_token_failures_share_one_message(self, verifier):
        """Test failures are indistinguishable to the caller."""
        messages = set()
        for header in [None, "Bearer garbage", "Bearer a.b.c"]:
            with pytest.raises(Unauthorized) as exc_info:
                await verifier.resolve(header)
            messages.add((exc_info.value.message, exc_info.value.status_code))

        assert messages == {("Unauthorized", 401)}

    async def test_store_failure_is_internal(self, issuer):
        """Test a broken store is not reported as a token problem."""

        class BrokenStore:
            async def find_by_id(self, session_id):
                raise RuntimeError("database is gone")

        verifier = SessionVerifier(TEST_TOKEN_SECRET, BrokenStore())
        token = issuer.issue(Session(id=1, polar_user_id=1, polar_token="x"))

        with pytest.raises(InternalError):
            await verifier.resolve(f"Bearer {token}")
