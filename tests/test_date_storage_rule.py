import pytest

from db_fixer.constraints import DateStorageConstraints, build_context
from db_fixer.reporting import RecordingReporter, Severity
from db_fixer.rules.date_storage import (
    OTHER,
    SHAPE_PATTERNS,
    ClassifyDateStorageRule,
    ShapeHistogram,
    column_expression,
    dominant_shape,
)
from fakes import FakeCatalog, FakeConnection, col, db_error


def histogram_row(total, null_or_empty=0, **counts):
    row = {"total": total, "null_or_empty": null_or_empty}
    row.update({shape: counts.get(shape, 0) for shape in SHAPE_PATTERNS})
    return [row]


def run_rule(columns, responses, dry=True, **options):
    catalog = FakeCatalog(date_columns=columns)
    connection = FakeConnection(responses)
    reporter = RecordingReporter()
    context = build_context(DateStorageConstraints(**options), dry=dry)
    findings = ClassifyDateStorageRule(catalog_factory=catalog).apply(connection, reporter, context)
    return findings, connection, reporter, catalog


@pytest.mark.parametrize(
    "counts, expected",
    [
        ({"unix_seconds": 5, "unix_millis": 5}, "unix_seconds"),
        ({"mysql_date": 3, "iso8601": 3}, "mysql_date"),
        ({"iso8601": 4, "ddmmyyyy": 7}, "ddmmyyyy"),
        ({shape: 0 for shape in SHAPE_PATTERNS}, OTHER),
        ({}, OTHER),
    ],
)
def test_dominant_shape(counts, expected):
    assert dominant_shape(counts) == expected


def test_numeric_columns_are_cast_for_regexp():
    assert column_expression("created_ts", "int") == "CAST(`created_ts` AS CHAR)"
    assert column_expression("created", "varchar") == "`created`"


def test_histogram_describe():
    h = ShapeHistogram(total=4, null_or_empty=1, counts={"iso8601": 3})
    assert h.describe() == "total=4; null_or_empty=1; unix10=0; unix13=0; mysql_dt=0; mysql_d=0; iso=3; ddmmyyyy=0"
    assert h.dominant == "iso8601"


def test_unix_seconds_column_gets_from_unixtime_recommendation():
    findings, connection, reporter, _ = run_rule(
        [col("orders", "created_ts", "int")],
        [
            ("SELECT DISTINCT", [{"v": 1700000000}, {"v": 1700000001}]),
            ("COUNT(*) AS total", histogram_row(10, unix_seconds=10)),
        ],
    )

    assert len(findings) == 1
    f = findings[0]
    assert (f.table, f.column) == ("orders", "created_ts")
    assert f.current.startswith("INT unix_seconds (total=10; null_or_empty=0; unix10=10;")
    assert f.proposed == (
        "convert to DATETIME using FROM_UNIXTIME(col) and change type to DATETIME; samples: 1700000000 | 1700000001"
    )

    scan_sql, scan_params = connection.executed[0]
    assert "SUM(CAST(`created_ts` AS CHAR) REGEXP :re_unix_seconds) AS unix_seconds" in scan_sql
    assert scan_params["re_unix_seconds"] == r"^[0-9]{10}$"
    assert connection.mutations == []
    assert "unix_s=1" in reporter.texts()[-1]


def test_one_aggregation_per_column():
    _, connection, _, _ = run_rule(
        [col("orders", "created_ts", "int"), col("users", "last_seen", "varchar")],
        [("COUNT(*) AS total", histogram_row(0))],
        preview_limit=0,
    )
    assert len([s for s in connection.statements if "COUNT(*) AS total" in s]) == 2
    assert not any("SELECT DISTINCT" in s for s in connection.statements)


def test_unrecognized_values_are_other():
    findings, connection, _, _ = run_rule(
        [col("notes", "updated_label", "varchar")],
        [("COUNT(*) AS total", histogram_row(3, null_or_empty=1))],
    )
    assert findings[0].current.startswith("VARCHAR other (")
    assert findings[0].proposed == "review column"
    assert not any("SELECT DISTINCT" in s for s in connection.statements)


def test_native_columns_only_checked_for_zero_dates():
    findings, connection, reporter, _ = run_rule(
        [col("orders", "shipped_at", "datetime"), col("users", "dob", "date")],
        [("FROM `orders`", [{"zeros": 2}]), ("FROM `users`", [{"zeros": 0}])],
    )

    assert [f.current for f in findings] == ["native DATETIME (zero-date rows=2)", "native DATE"]
    assert findings[0].proposed.startswith("DROP zero-date defaults")
    assert findings[1].proposed == "OK (native date/time storage)"
    assert all("AS zeros" in s for s in connection.statements)
    summary = reporter.texts()[-1]
    assert summary.startswith("Summary -> native=2, zero_date=1,")
    assert summary.endswith("other=0")


def test_fractional_second_zero_dates_are_counted():
    findings, connection, _, _ = run_rule(
        [col("events", "occurred_at", "datetime", "datetime(6)")],
        [("AS zeros", [{"zeros": 1}])],
    )
    assert findings[0].current == "native DATETIME (zero-date rows=1)"
    (sql,) = connection.statements
    # Prefix match so '0000-00-00 00:00:00.000000' is caught as well.
    assert "CAST(`occurred_at` AS CHAR) LIKE '0000-00-00" in sql
    assert " IN (" not in sql


def test_sample_failure_is_a_warning_not_an_error():
    findings, _, reporter, _ = run_rule(
        [col("events", "happened_on", "varchar")],
        [
            ("SELECT DISTINCT", db_error("regexp failed")),
            ("COUNT(*) AS total", histogram_row(2, mysql_date=2)),
        ],
    )
    assert findings[0].proposed == "change type to DATE"
    assert any("could not fetch samples" in t for t in reporter.texts(Severity.WARNING))


def test_name_patterns_passed_to_catalog():
    _, _, reporter, catalog = run_rule([], [], name_like=["%_on"])
    assert catalog.name_like_seen == ["%_on"]
    assert reporter.texts()[0] == "[classify_date_storage_across_schema] scanned 0 candidate columns"


def test_rule_is_non_destructive_discovery():
    assert ClassifyDateStorageRule.is_destructive() is False
    assert ClassifyDateStorageRule.category() == "Discovery"
