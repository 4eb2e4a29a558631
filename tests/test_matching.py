from __future__ import annotations

import pytest

from clobber.errors import PatternError
from clobber.moderation.matching import EntityKind, glob_to_regex, matches, matches_entity, parse_entity
from clobber.moderation.models import Identity


def ident(user_id: str) -> Identity:
    return Identity.parse(user_id)


class TestParseEntity:
    def test_user_pattern(self):
        pattern = parse_entity("@spam*:example.org")
        assert pattern.kind is EntityKind.USER

    def test_server_pattern(self):
        pattern = parse_entity("*.evil.tld")
        assert pattern.kind is EntityKind.SERVER

    @pytest.mark.parametrize(
        "entity",
        ["", "@nobody", "@:example.org", "@spam:", "spam:example.org", "evil.tld:8448", "bad entity"],
    )
    def test_invalid_entities(self, entity):
        with pytest.raises(PatternError):
            parse_entity(entity)


class TestMatching:
    def test_server_glob_matches_subdomain_users(self):
        assert matches_entity(ident("@foobar:baz.badserver.tld"), "*.badserver.tld")
        assert matches_entity(ident("@spam:a.b.evil.tld"), "*.evil.tld")

    def test_wildcard_subdomain_pattern_covers_bare_domain(self):
        assert matches_entity(ident("@spam:evil.tld"), "*.evil.tld")
        assert not matches_entity(ident("@spam:notevil.tld"), "*.evil.tld")
        assert not matches_entity(ident("@spam:evil.tld.example"), "*.evil.tld")

    def test_server_glob_ignores_port(self):
        assert matches_entity(ident("@spam:evil.tld:8448"), "evil.tld")

    def test_user_glob_matches_whole_id(self):
        assert matches_entity(ident("@spammer42:example.org"), "@spam*:example.org")
        assert not matches_entity(ident("@ham:example.org"), "@spam*:example.org")
        assert not matches_entity(ident("@spammer:example.org.evil"), "@spam*:example.org")

    def test_server_pattern_does_not_look_at_localpart(self):
        assert not matches_entity(ident("@evil.tld:good.org"), "evil.tld")

    def test_case_sensitive(self):
        assert not matches_entity(ident("@spam:EVIL.tld"), "evil.tld")

    def test_question_mark_is_single_character(self):
        assert matches_entity(ident("@bot1:example.org"), "@bot?:example.org")
        assert not matches_entity(ident("@bot12:example.org"), "@bot?:example.org")

    def test_star_matches_everything(self):
        assert matches(ident("@anyone:anywhere.org"), parse_entity("*"))

    def test_regex_metacharacters_are_literal(self):
        assert glob_to_regex("a.b").fullmatch("a.b")
        assert not glob_to_regex("a.b").fullmatch("axb")


class TestIdentity:
    def test_parse(self):
        identity = Identity.parse("@alice:example.org:8448")
        assert identity.server_name == "example.org:8448"
        assert identity.host == "example.org"

    def test_ipv6_host(self):
        assert Identity.parse("@alice:[::1]:8448").host == "[::1]"

    @pytest.mark.parametrize("user_id", ["alice:example.org", "@alice", "@:example.org"])
    def test_invalid(self, user_id):
        with pytest.raises(ValueError):
            Identity.parse(user_id)
