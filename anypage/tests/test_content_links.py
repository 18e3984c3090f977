from datetime import UTC, datetime, timedelta

import pytest

from anypage.services.content_links import ContentLinkSigner
from anypage.utils.errors import ContentLinkError

SECRET = "content-link-secret-used-only-in-tests-0123456789"
REF = "alice/1700000000000_Atlas.pdf"


def test_issued_token_grants_its_reference_to_the_owner():
    signer = ContentLinkSigner(SECRET, ttl_seconds=60)

    assert signer.verify(signer.issue(REF), REF) == "alice"


def test_token_for_one_reference_does_not_open_another():
    signer = ContentLinkSigner(SECRET)
    token = signer.issue(REF)

    with pytest.raises(ContentLinkError):
        signer.verify(token, "alice/1700000000001_Other.pdf")


def test_expired_token_is_rejected():
    signer = ContentLinkSigner(SECRET, ttl_seconds=60)
    token = signer.issue(REF, now=datetime.now(UTC) - timedelta(minutes=5))

    with pytest.raises(ContentLinkError):
        signer.verify(token, REF)


def test_token_signed_with_another_key_is_rejected():
    token = ContentLinkSigner("another-secret-key-of-reasonable-length-xyz").issue(REF)

    with pytest.raises(ContentLinkError) as excinfo:
        ContentLinkSigner(SECRET).verify(token, REF)
    assert excinfo.value.message == "Invalid or expired content link"


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_malformed_tokens_are_rejected(token):
    with pytest.raises(ContentLinkError):
        ContentLinkSigner(SECRET).verify(token, REF)
