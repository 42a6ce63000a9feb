import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "packages" / "core_engine" / "src"))

from entmig_core.naming import (
    default_join_table_name,
    export_name,
    fk_constraint_name,
    foreign_key_column,
    normalize_identifier,
    pluralize,
    table_name,
)


class TestNormalizeIdentifier:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("UserID", "user_id"),
            ("createdAt", "created_at"),
            ("HTTPServer", "http_server"),
            ("first name", "first_name"),
            ("order-items", "order_items"),
            ("__weird__", "weird"),
            ("already_snake", "already_snake"),
        ],
    )
    def test_converts_to_snake_case(self, raw, expected):
        assert normalize_identifier(raw) == expected

    def test_empty_and_separator_only_inputs_mean_no_override(self):
        assert normalize_identifier("") == ""
        assert normalize_identifier(" - _ ") == ""

    def test_is_idempotent(self):
        once = normalize_identifier("Some-Mixed Name")
        assert normalize_identifier(once) == once


class TestPluralize:
    @pytest.mark.parametrize(
        "word, plural",
        [
            ("User", "users"),
            ("Category", "categories"),
            ("Box", "boxes"),
            ("Address", "addresses"),
            ("Person", "people"),
            ("Key", "keys"),
            ("BlogPost", "blog_posts"),
        ],
    )
    def test_pluralizes_entity_names(self, word, plural):
        assert pluralize(word) == plural

    def test_table_name_matches_plural(self):
        assert table_name("Membership") == "memberships"


class TestDerivedNames:
    def test_join_table_name_is_order_independent(self):
        assert default_join_table_name("User", "Group") == "groups_users"
        assert default_join_table_name("Group", "User") == "groups_users"

    def test_foreign_key_column(self):
        assert foreign_key_column("BlogPost") == "blog_post_id"

    def test_constraint_name(self):
        assert fk_constraint_name("pets", "user_id") == "fk_pets_user_id"

    def test_export_name_uppercases_initialisms(self):
        assert export_name("user_id") == "UserID"
        assert export_name("api_url") == "APIURL"
        assert export_name("status") == "Status"
