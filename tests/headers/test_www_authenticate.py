"""Tests for WWW-Authenticate challenge parsing."""

import pytest

from solid_auth.headers import parse_www_authenticate
from solid_auth.models.challenge import Challenge


def test_parses_multiple_challenges_with_params() -> None:
    """Challenges and their params are returned in server order."""
    header = 'UMA as_uri="https://example.test", ticket=value, Bearer, DPoP algs="ES256 RS256"'

    challenges = parse_www_authenticate(header)

    assert challenges == [
        Challenge(scheme="UMA", parameters={"as_uri": "https://example.test", "ticket": "value"}),
        Challenge(scheme="Bearer"),
        Challenge(scheme="DPoP", parameters={"algs": "ES256 RS256"}),
    ]


def test_repeated_headers_are_concatenated() -> None:
    """Multiple header values parse exactly like one comma-joined value."""
    values = ['UMA as_uri="https://as.example", ticket=abc', "Bearer", 'DPoP algs="ES256"']

    assert parse_www_authenticate(values) == parse_www_authenticate(", ".join(values))
    assert [c.scheme for c in parse_www_authenticate(values)] == ["UMA", "Bearer", "DPoP"]


def test_opaque_credentials_are_ignored() -> None:
    """token68 blobs after the scheme are skipped while params are kept."""
    challenges = parse_www_authenticate('Basic abcdef== realm=basic key="a value"')

    assert challenges == [Challenge(scheme="Basic", parameters={"realm": "basic", "key": "a value"})]


def test_token68_starting_with_slash_is_ignored() -> None:
    challenges = parse_www_authenticate("Negotiate /x+y== realm=r")

    assert challenges == [Challenge(scheme="Negotiate", parameters={"realm": "r"})]


def test_malformed_challenge_is_dropped_but_others_survive() -> None:
    """A word starting with '=' invalidates only its own challenge."""
    challenges = parse_www_authenticate("Basic realm==basic, UMA =not =valid")

    assert challenges == [Challenge(scheme="Basic")]


def test_leading_param_without_scheme_yields_nothing() -> None:
    assert parse_www_authenticate('In=Valid realm="basic"') == []


def test_params_after_dropped_challenge_are_not_attached_to_earlier_one() -> None:
    challenges = parse_www_authenticate('Bearer realm=a, UMA "bad", ticket=t')

    assert challenges == [Challenge(scheme="Bearer", parameters={"realm": "a"})]


def test_quoted_values_are_unescaped() -> None:
    challenges = parse_www_authenticate(r'Bearer realm="say \"hi\", ok", error="x\\y"')

    assert challenges[0].parameters == {"realm": 'say "hi", ok', "error": "x\\y"}


def test_repeated_param_keeps_first_position_and_last_value() -> None:
    challenges = parse_www_authenticate("Bearer a=1, b=2, a=3")

    assert list(challenges[0].parameters.items()) == [("a", "3"), ("b", "2")]


def test_scheme_comparison_is_case_insensitive() -> None:
    challenges = parse_www_authenticate("bearer, uma ticket=t")

    assert challenges[0] == Challenge(scheme="Bearer")
    assert challenges[1] == Challenge(scheme="UMA", parameters={"ticket": "t"})
    assert challenges[1] != Challenge(scheme="UMA", parameters={"Ticket": "t"})


def test_tolerates_empty_list_elements() -> None:
    assert parse_www_authenticate(" , Bearer ,, DPoP ,") == [
        Challenge(scheme="Bearer"),
        Challenge(scheme="DPoP"),
    ]


@pytest.mark.parametrize("value", [None, "", "   ", [], ",,,"])
def test_empty_input_yields_empty_list(value: object) -> None:
    assert parse_www_authenticate(value) == []  # type: ignore[arg-type]


def test_unterminated_quote_drops_challenge() -> None:
    assert parse_www_authenticate('Bearer realm="oops') == []


def test_never_raises_on_garbage() -> None:
    for garbage in ['"', "=", "<>", "\x00\x01", 'a="', "@@@ x=y", "Bearer ==="]:
        result = parse_www_authenticate(garbage)
        assert isinstance(result, list)


def test_challenge_renders_as_header_text() -> None:
    challenge = parse_www_authenticate('UMA as_uri="https://as.example", ticket=t')[0]

    assert str(challenge) == 'UMA as_uri="https://as.example", ticket="t"'
