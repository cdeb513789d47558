import httpx
import pytest

from lms_media.errors import InvalidCredential, VerifierUnavailable
from lms_media.identity import SupabaseIdentityVerifier

SUPABASE_URL = "https://project.supabase.co/"


def make_verifier(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return SupabaseIdentityVerifier(SUPABASE_URL, "service-role-key", client=client)


def test_valid_token_returns_identity():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["apikey"] = request.headers["apikey"]
        return httpx.Response(200, json={"id": "8f0c-user", "email": "learner@example.com"})

    identity = make_verifier(handler).verify("jwt-token")

    assert identity.subject_id == "8f0c-user"
    assert identity.email == "learner@example.com"
    assert seen == {
        "url": "https://project.supabase.co/auth/v1/user",
        "auth": "Bearer jwt-token",
        "apikey": "service-role-key",
    }


@pytest.mark.parametrize("status_code", [400, 401, 403])
def test_rejected_token(status_code):
    verifier = make_verifier(lambda request: httpx.Response(status_code, json={"msg": "bad jwt"}))
    with pytest.raises(InvalidCredential):
        verifier.verify("expired-token")


def test_response_without_subject_is_rejected():
    verifier = make_verifier(lambda request: httpx.Response(200, json={"aud": "authenticated"}))
    with pytest.raises(InvalidCredential):
        verifier.verify("jwt-token")


def test_server_error_is_unavailable():
    verifier = make_verifier(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(VerifierUnavailable):
        verifier.verify("jwt-token")


def test_transport_error_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(VerifierUnavailable):
        make_verifier(handler).verify("jwt-token")


def test_unconfigured_verifier_is_unavailable():
    verifier = SupabaseIdentityVerifier("", "")
    with pytest.raises(VerifierUnavailable):
        verifier.verify("jwt-token")
