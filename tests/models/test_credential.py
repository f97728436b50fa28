"""Tests for the Credential, Challenge and Link value objects."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from solid_auth.models import Challenge, Credential, Link
from tests.factories import make_credential


class TestCredential:
    """Tests for Credential."""

    def test_is_expired_uses_strict_comparison(self) -> None:
        """A credential expiring exactly now is already stale."""
        now = datetime.now(timezone.utc)
        credential = Credential(scheme="Bearer", issuer="https://as.example", token="t", expiration=now)

        assert credential.is_expired(now)
        assert not credential.is_expired(now - timedelta(microseconds=1))

    def test_fresh_and_expired_credentials(self) -> None:
        assert not make_credential(expires_in=60).is_expired()
        assert make_credential(expires_in=-1).is_expired()

    def test_naive_expiration_is_treated_as_utc(self) -> None:
        naive = datetime(2030, 1, 1, 12, 0, 0)
        credential = Credential(scheme="Bearer", issuer="i", token="t", expiration=naive)

        assert credential.expiration.tzinfo is not None
        assert credential.expiration == naive.replace(tzinfo=timezone.utc)

    def test_authorization_header(self) -> None:
        assert make_credential(scheme="DPoP", token="abc").authorization_header() == "DPoP abc"

    def test_is_dpop_is_case_insensitive(self) -> None:
        assert make_credential(scheme="dpop").is_dpop
        assert not make_credential(scheme="Bearer").is_dpop

    def test_is_immutable(self) -> None:
        credential = make_credential()

        with pytest.raises(ValidationError):
            credential.token = "other"  # type: ignore[misc]

    def test_token_is_hidden_from_repr(self) -> None:
        assert "secret-token" not in repr(make_credential(token="secret-token"))

    def test_seconds_remaining(self) -> None:
        remaining = make_credential(expires_in=120).seconds_remaining()

        assert 110 < remaining <= 120


class TestChallenge:
    """Tests for Challenge equality and rendering."""

    def test_equality_ignores_scheme_case_only(self) -> None:
        assert Challenge(scheme="uma", parameters={"a": "1"}) == Challenge(
            scheme="UMA", parameters={"a": "1"}
        )
        assert Challenge(scheme="UMA", parameters={"a": "1"}) != Challenge(
            scheme="UMA", parameters={"a": "2"}
        )

    def test_hash_is_consistent_with_equality(self) -> None:
        assert len({Challenge(scheme="Bearer"), Challenge(scheme="bearer")}) == 1

    def test_str_without_parameters(self) -> None:
        assert str(Challenge(scheme="Bearer")) == "Bearer"

    def test_get_parameter(self) -> None:
        challenge = Challenge(scheme="UMA", parameters={"ticket": "t"})

        assert challenge.get_parameter("ticket") == "t"
        assert challenge.get_parameter("as_uri") is None

    def test_rejects_empty_scheme(self) -> None:
        with pytest.raises(ValidationError):
            Challenge(scheme="")


class TestLink:
    """Tests for Link."""

    def test_equality_compares_uri_and_parameters(self) -> None:
        assert Link(uri="/a", parameters={"rel": "x"}) == Link(uri="/a", parameters={"rel": "x"})
        assert Link(uri="/a", parameters={"rel": "x"}) != Link(uri="/a", parameters={"rel": "y"})

    def test_rel_property(self) -> None:
        assert Link(uri="/a", parameters={"rel": "acl"}).rel == "acl"
        assert Link(uri="/a").rel is None
