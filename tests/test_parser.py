"""Tests for the Rust front end and expression normalization."""

import pytest

from anchor_sentinel.errors import ParseError
from anchor_sentinel.parser import (
    free_identifiers,
    normalize_expression,
    parse_source,
    parse_type,
    split_constraints,
    split_top_level,
    string_literal_value,
    strip_references,
)

from conftest import UNPARSEABLE_SOURCE, VAULT_SOURCE


class TestNormalizeExpression:
    def test_whitespace_is_irrelevant(self):
        assert normalize_expression("amount  +\n    fee") == normalize_expression("amount+fee")

    def test_comments_are_dropped(self):
        assert normalize_expression("a /* old */ + b // trailing") == "a+b"

    def test_string_literals_are_kept(self):
        assert normalize_expression('seeds = [ b"my  pool" ]') == 'seeds=[b"my  pool"]'

    def test_trailing_commas_removed(self):
        assert normalize_expression("[a, b,\n]") == "[a,b]"


class TestSplitting:
    def test_split_top_level_respects_nesting(self):
        parts = split_top_level('mut, seeds = [b"a", x.key().as_ref()], bump')
        assert parts == ["mut", 'seeds = [b"a", x.key().as_ref()]', "bump"]

    def test_split_ignores_commas_in_strings(self):
        assert split_top_level('"a,b", c') == ['"a,b"', "c"]

    def test_split_constraints_drops_empty_trailing_item(self):
        assert split_constraints("mut,\n bump,\n") == ["mut", "bump"]

    def test_angle_brackets(self):
        assert split_top_level("'info, Account<'info, T>", angle=True) == ["'info", "Account<'info, T>"]


class TestTypes:
    def test_account_type(self):
        info = parse_type("Account<'info, Vault>")
        assert info.name == "Account"
        assert info.inner == "Vault"

    def test_box_and_option_unwrap(self):
        info = parse_type("Option<Box<Account<'info, Vault>>>")
        assert info.name == "Account"
        assert info.optional
        assert info.boxed

    def test_plain_path(self):
        info = parse_type("anchor_lang::prelude::Signer<'info>")
        assert info.name == "Signer"
        assert info.arguments == ()


def test_free_identifiers_skip_fields_and_paths():
    assert free_identifiers("vault.amount + Foo::bar(x) + msg!(y)") == ["vault", "x", "y"]


def test_string_literal_value():
    assert string_literal_value('b"pool"') == "pool"
    assert string_literal_value("pool") is None


def test_strip_references():
    assert strip_references("&mut *ctx.accounts.vault") == "ctx.accounts.vault"


class TestParseSource:
    def test_parses_anchor_program(self):
        syntax = parse_source(VAULT_SOURCE, "lib.rs")
        assert not syntax.has_error
        structs = [n for n in syntax.root.named_children if n.type == "struct_item"]
        names = [syntax.field_text(n, "name") for n in structs]
        assert names == ["Withdraw", "Vault"]

    def test_attributes_of_struct(self):
        syntax = parse_source(VAULT_SOURCE, "lib.rs")
        withdraw = next(
            n for n in syntax.root.named_children
            if n.type == "struct_item" and syntax.field_text(n, "name") == "Withdraw"
        )
        attributes = syntax.attributes_of(withdraw)
        assert [a.name for a in attributes] == ["derive"]
        assert attributes[0].arguments == "Accounts"

    def test_unparseable_source_raises(self):
        with pytest.raises(ParseError) as excinfo:
            parse_source(UNPARSEABLE_SOURCE, "broken.rs")
        assert excinfo.value.path == "broken.rs"

    def test_invalid_utf8_raises(self):
        with pytest.raises(ParseError, match="UTF-8"):
            parse_source(b"fn main() { \xff }", "bad.rs")
