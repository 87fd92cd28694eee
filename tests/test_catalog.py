from db_fixer.catalog import Catalog, like_to_regex, matches_any_like, quote_ident, quote_literal
from fakes import FakeConnection


def test_quote_ident_doubles_backticks():
    assert quote_ident("orders") == "`orders`"
    assert quote_ident("we`ird") == "`we``ird`"


def test_quote_literal():
    assert quote_literal("it's") == "'it''s'"


def test_like_patterns():
    assert like_to_regex("%session%").match("user_SESSIONS")
    assert like_to_regex("tmp_").match("tmp1")
    assert not like_to_regex("tmp_").match("tmp12")
    assert like_to_regex("a.b").match("a.b")
    assert not like_to_regex("a.b").match("axb")
    assert matches_any_like("cache_items", ["%tmp%", "%cache%"])
    assert not matches_any_like("orders", ["%tmp%", "%cache%"])


def test_first_unique_index_only():
    connection = FakeConnection(
        [
            (
                "INFORMATION_SCHEMA.STATISTICS",
                [
                    {"INDEX_NAME": "uniq_code", "COLUMN_NAME": "code", "SEQ_IN_INDEX": 1},
                    {"INDEX_NAME": "uniq_code", "COLUMN_NAME": "site", "SEQ_IN_INDEX": 2},
                    {"INDEX_NAME": "uniq_email", "COLUMN_NAME": "email", "SEQ_IN_INDEX": 1},
                ],
            )
        ]
    )
    assert Catalog(connection).first_unique_index_columns("events") == ["code", "site"]
    sql, params = connection.executed[0]
    assert "INDEX_NAME <> 'PRIMARY'" in sql
    assert params == {"t": "events"}


def test_columns_are_normalized():
    connection = FakeConnection(
        [
            (
                "INFORMATION_SCHEMA.COLUMNS",
                [
                    {
                        "TABLE_NAME": "users",
                        "COLUMN_NAME": "id",
                        "DATA_TYPE": "INT",
                        "COLUMN_TYPE": "int unsigned",
                        "IS_NULLABLE": "NO",
                        "COLUMN_DEFAULT": None,
                        "EXTRA": "auto_increment",
                        "COLUMN_KEY": "PRI",
                    }
                ],
            )
        ]
    )
    (column,) = Catalog(connection).columns("users")
    assert column.data_type == "int"
    assert column.nullable is False
    assert column.is_auto_increment


def test_date_candidates_bind_name_patterns():
    connection = FakeConnection()
    Catalog(connection).date_candidate_columns(["%Created%", "%_at"])
    sql, params = connection.executed[0]
    assert params == {"p0": "%created%", "p1": "%_at"}
    assert "LOWER(c.COLUMN_NAME) LIKE :p0 OR LOWER(c.COLUMN_NAME) LIKE :p1" in sql
    assert "c.DATA_TYPE IN ('date', 'datetime', 'timestamp')" in sql


def test_primary_keys_grouped_in_key_order():
    connection = FakeConnection(
        [
            (
                "CONSTRAINT_TYPE = 'PRIMARY KEY'",
                [
                    {"TABLE_NAME": "stock", "COLUMN_NAME": "sku"},
                    {"TABLE_NAME": "stock", "COLUMN_NAME": "site"},
                    {"TABLE_NAME": "users", "COLUMN_NAME": "id"},
                ],
            )
        ]
    )
    assert Catalog(connection).primary_keys() == {"stock": ["sku", "site"], "users": ["id"]}
