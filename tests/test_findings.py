import dataclasses

import pytest

from db_fixer.findings import ENGINE_COLUMN, Finding


def test_message_format():
    f = Finding("classify_date_storage_across_schema", "orders", "created_ts", "INT unix_seconds", "convert")
    assert f.message == "[classify date storage across schema] orders.created_ts: INT unix_seconds -> convert"
    assert str(f) == f.message


def test_table_level_sentinel_column():
    f = Finding("ensure_transactional_engines", "legacy", ENGINE_COLUMN, "MYISAM", "ALTER TABLE `legacy` ENGINE=InnoDB")
    assert f.message.startswith("[ensure transactional engines] legacy.(engine): MYISAM")


def test_findings_are_immutable_values():
    f = Finding("r", "t", "c", "a", "b")
    with pytest.raises(dataclasses.FrozenInstanceError):
        f.table = "other"
    assert f == Finding("r", "t", "c", "a", "b")
