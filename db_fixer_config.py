"""Example db-fixer configuration. Run with `db-fixer --dry` first."""
import os

from db_fixer.constraints import AutoIncrementPrimaryKeyConstraints, DateStorageConstraints


def configure(config):
    config.connection(
        driver="mysql",
        host=os.environ.get("DB_FIXER_HOST", "127.0.0.1"),
        port=int(os.environ.get("DB_FIXER_PORT", "3306")),
        dbname=os.environ.get("DB_FIXER_DATABASE", "app"),
        user=os.environ.get("DB_FIXER_USER", "root"),
        password=os.environ.get("DB_FIXER_PASSWORD", ""),
    )

    config.rules(
        [
            "ensure_transactional_engines",
            {
                "ensure_auto_increment_primary_key": AutoIncrementPrimaryKeyConstraints(
                    force_on_join_tables=False,
                    replace_single_non_int_primary=False,
                    skip_table_like=["default_ci_sessions", "%session%", "%cache%", "%temp%", "%tmp%"],
                    max_rows_to_apply=500_000,
                )
            },
            {"rule": "classify_date_storage_across_schema", "constraint": DateStorageConstraints(preview_limit=3)},
            "detect_orphaned_child_rows",
        ]
    )
