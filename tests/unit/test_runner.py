"""Tests for the dump orchestrator."""

from contextlib import contextmanager
from unittest.mock import MagicMock

import pytest

from dbdump.exceptions import DumpConnectionError
from dbdump.runner import DumpOrchestrator, RunFailure, RunSummary, TableFailure
from dbdump.sink import OutputSink
from dbdump.types import DumpStage, RunState
from tests.helpers import (
    FIXED_TIME,
    column_row,
    fk_row,
    index_row,
    make_client_factory,
    make_mock_client,
    make_options,
    make_sink,
    shop_client,
    table_row,
)


def run_dump(client, **option_overrides):
    """Run a dump against client; returns the summary and the output text."""
    sink, buffer = make_sink()
    orchestrator = DumpOrchestrator(
        make_client_factory(client),
        sink,
        make_options(**option_overrides),
        clock=lambda: FIXED_TIME,
    )
    summary = orchestrator.run()
    return summary, buffer.getvalue().decode("utf-8")


def places_client(**overrides):
    """shop schema plus a `places` table with a geometry column."""
    data = {
        "tables": [table_row("places"), table_row("users")],
        "columns": [
            column_row("places", "id", "int(11)", 1, nullable=False),
            column_row("places", "location", "geometry", 2),
            column_row("users", "id", "int(11)", 1, nullable=False),
            column_row("users", "name", "varchar(50)", 2),
        ],
        "table_rows": {
            "places": [(b"1", b"\x00\x00\x00\x00\x01\x01")],
            "users": [(b"1", b"alice")],
        },
    }
    data.update(overrides)
    return make_mock_client(**data)


class TestShopScenario:
    def test_users_dump(self):
        summary, output = run_dump(shop_client())

        assert summary.state is RunState.COMPLETE
        assert summary.ok
        assert summary.tables_processed == 1
        assert summary.rows_dumped == 3
        assert summary.tables_skipped == 0

        assert output.count("CREATE TABLE") == 1
        assert output.count("INSERT INTO") == 1
        assert "INSERT INTO `shop`.`users` (`id`,`name`,`bio`) VALUES\n(1,'alice'," in output
        assert "(2,'bob',NULL)," in output
        assert "(3,'O\\'Brien','{}');\n" in output

    def test_output_order(self):
        _, output = run_dump(shop_client())
        markers = [
            "-- dbdump",
            "SET NAMES utf8mb4;",
            "SET FOREIGN_KEY_CHECKS=0;",
            "CREATE SCHEMA IF NOT EXISTS `shop`",
            "USE `shop`;",
            "CREATE TABLE `shop`.`users`",
            "INSERT INTO",
            "SET FOREIGN_KEY_CHECKS=1;",
            "-- Dump completed",
        ]
        positions = [output.index(m) for m in markers]
        assert positions == sorted(positions)
        assert output.endswith("-- Dump completed\n")

    def test_every_statement_terminated(self):
        _, output = run_dump(shop_client())
        for line in output.splitlines():
            if line.startswith(("SET ", "USE ", "CREATE SCHEMA")):
                assert line.endswith(";")

    def test_single_row_inserts(self):
        summary, output = run_dump(shop_client(), single_row_inserts=True)
        assert output.count("INSERT INTO") == 3
        assert "INSERT INTO `shop`.`users` (`id`,`name`,`bio`) VALUES (2,'bob',NULL);" in output
        assert summary.rows_dumped == 3

    def test_batch_size(self):
        _, output = run_dump(shop_client(), batch_size=2)
        assert output.count("INSERT INTO") == 2

    def test_no_data_never_opens_cursor(self):
        client = shop_client()
        summary, output = run_dump(client, include_data=False)
        client.open_cursor.assert_not_called()
        assert "INSERT" not in output
        assert "CREATE TABLE" in output
        assert summary.state is RunState.COMPLETE
        assert summary.tables_processed == 1
        assert summary.rows_dumped == 0

    def test_no_create_schema(self):
        _, output = run_dump(shop_client(), create_schema=False)
        assert "CREATE SCHEMA" not in output
        assert "USE `shop`;" in output
        assert "CREATE TABLE `shop`.`users`" in output

    def test_rename_consistency(self):
        client = shop_client()
        summary, output = run_dump(client, renamed_schema="archive", dump_date=True)
        assert summary.ok
        assert "shop" not in output
        assert "CREATE SCHEMA IF NOT EXISTS `archive`" in output
        assert "INSERT INTO `archive`.`users`" in output
        assert client.open_cursor.call_args.args[0].endswith("FROM `shop`.`users`")

    def test_deterministic_output(self):
        _, first = run_dump(shop_client())
        _, second = run_dump(shop_client())
        assert first == second

    def test_dump_date(self):
        _, output = run_dump(shop_client(), dump_date=True)
        assert "-- Created at 2024-01-02 03:04:05" in output
        assert "-- Dump completed at 2024-01-02 03:04:05" in output


class TestUnknownTypes:
    def test_table_skipped_without_flag(self):
        client = places_client()
        summary, output = run_dump(client)

        assert summary.state is RunState.COMPLETE
        assert not summary.ok
        assert summary.tables_skipped == 1
        assert summary.skipped_tables[0].table == "places"
        assert "geometry" in summary.skipped_tables[0].reason

        assert "`location` geometry" in output
        assert "INSERT INTO `shop`.`places`" not in output
        assert "-- Data for `places` skipped:" in output
        assert "INSERT INTO `shop`.`users` (`id`,`name`) VALUES\n(1,'alice');" in output
        queried = [call.args[0] for call in client.open_cursor.call_args_list]
        assert queried == ["SELECT `id`, `name` FROM `shop`.`users`"]
        assert summary.tables_processed == 1

    def test_null_substitution_with_flag(self):
        summary, output = run_dump(places_client(), skip_unknown_datatypes=True)

        assert summary.ok
        assert summary.tables_processed == 2
        assert summary.null_substitutions == 1
        assert "`location` LONGTEXT NULL /* unsupported type: geometry */" in output
        assert "INSERT INTO `shop`.`places` (`id`,`location`) VALUES\n(1,NULL);" in output


class TestDataPhase:
    def test_generated_columns_not_selected(self):
        client = make_mock_client(
            tables=[table_row("t")],
            columns=[
                column_row("t", "a", "int", 1),
                column_row("t", "b", "int", 2, extra="STORED GENERATED", generation_expression="(`a` + 1)"),
            ],
            table_rows={"t": [(b"5",)]},
        )
        _, output = run_dump(client)
        assert client.open_cursor.call_args.args[0] == "SELECT `a` FROM `shop`.`t`"
        assert "INSERT INTO `shop`.`t` (`a`) VALUES\n(5);" in output

    def test_tables_in_foreign_key_order(self):
        client = make_mock_client(
            tables=[table_row("a_orders"), table_row("b_users")],
            columns=[
                column_row("a_orders", "id", "int", 1),
                column_row("a_orders", "user_id", "int", 2),
                column_row("b_users", "id", "int", 1),
            ],
            statistics=[index_row("b_users", "PRIMARY", "id", non_unique=0)],
            foreign_keys=[fk_row("a_orders", "fk_user", "user_id", "b_users", "id")],
            table_rows={"a_orders": [(b"1", b"1")], "b_users": [(b"1",)]},
        )
        _, output = run_dump(client)
        assert output.index("CREATE TABLE `shop`.`b_users`") < output.index(
            "CREATE TABLE `shop`.`a_orders`"
        )
        assert output.index("INSERT INTO `shop`.`b_users`") < output.index(
            "INSERT INTO `shop`.`a_orders`"
        )
        assert output.index("CREATE TABLE `shop`.`a_orders`") < output.index("INSERT INTO")

    def test_empty_table(self):
        client = shop_client(table_rows={})
        summary, output = run_dump(client)
        assert summary.ok
        assert summary.rows_dumped == 0
        assert "INSERT" not in output
        assert "-- Data for `users`" in output

    def test_views_routines_and_triggers_placement(self):
        client = shop_client(
            views={"v_users": "CREATE VIEW `shop`.`v_users` AS select `id` from `shop`.`users`"},
            routines=[{"ROUTINE_NAME": "p", "ROUTINE_TYPE": "PROCEDURE"}],
            triggers=[{"TRIGGER_NAME": "trg", "EVENT_OBJECT_TABLE": "users"}],
            show_create={
                "PROCEDURE p": {"CREATE PROCEDURE": "CREATE PROCEDURE `p`() SELECT 1"},
                "TRIGGER trg": {
                    "SQL ORIGINAL STATEMENT": "CREATE TRIGGER `trg` BEFORE INSERT ON `users` FOR EACH ROW SET NEW.id = NEW.id"
                },
            },
        )
        _, output = run_dump(client, include_routines=True)
        create_table = output.index("CREATE TABLE")
        view = output.index("CREATE VIEW `shop`.`v_users`")
        routine = output.index("CREATE PROCEDURE `p`() SELECT 1;;")
        insert = output.index("INSERT INTO")
        trigger = output.index("CREATE TRIGGER `trg`")
        epilogue = output.index("SET FOREIGN_KEY_CHECKS=1;")
        assert create_table < routine < view < insert < trigger < epilogue

    def test_function_precedes_view_that_calls_it(self):
        client = shop_client(
            views={"v_names": "CREATE VIEW `shop`.`v_names` AS select `shop`.`label`(`id`) AS l from `shop`.`users`"},
            routines=[{"ROUTINE_NAME": "label", "ROUTINE_TYPE": "FUNCTION"}],
            show_create={
                "FUNCTION label": {
                    "CREATE FUNCTION": "CREATE FUNCTION `label`(i INT) RETURNS varchar(20) RETURN CONCAT('u', i)"
                },
            },
        )
        summary, output = run_dump(client, include_routines=True)
        assert summary.ok
        assert output.index("CREATE FUNCTION `label`") < output.index("CREATE VIEW `shop`.`v_names`")


    def test_row_width_mismatch_is_fatal(self):
        client = shop_client(table_rows={"users": [(b"1", b"alice")]})
        summary, _ = run_dump(client)
        assert summary.state is RunState.FAILED
        assert summary.failure.stage is DumpStage.DATA
        assert summary.failure.error_type == "InvalidSchemaModelError"


class TestFailures:
    def test_schema_not_found_writes_nothing(self):
        summary, output = run_dump(make_mock_client(schema_exists=False))
        assert summary.state is RunState.FAILED
        assert summary.failure.stage is DumpStage.INTROSPECT
        assert summary.failure.error_type == "SchemaNotFoundError"
        assert output == ""

    def test_connection_failure(self):
        def factory():
            raise DumpConnectionError("Can't connect to MySQL server")

        sink, buffer = make_sink()
        summary = DumpOrchestrator(factory, sink, make_options()).run()
        assert summary.state is RunState.FAILED
        assert summary.failure.stage is DumpStage.CONNECT
        assert "Can't connect" in summary.failure.reason
        assert buffer.getvalue() == b""

    def test_invalid_model_writes_nothing(self):
        client = make_mock_client(tables=[table_row("empty")], columns=[])
        summary, output = run_dump(client)
        assert summary.failure.stage is DumpStage.DDL
        assert summary.failure.error_type == "InvalidSchemaModelError"
        assert output == ""

    def test_sink_write_error(self):
        stream = MagicMock()
        stream.write.side_effect = OSError("No space left on device")
        orchestrator = DumpOrchestrator(
            make_client_factory(shop_client()), OutputSink(stream), make_options()
        )
        summary = orchestrator.run()
        assert summary.state is RunState.FAILED
        assert summary.failure.error_type == "SinkWriteError"
        assert summary.failure.stage is DumpStage.DDL
        assert "Dump failed during ddl" in summary.describe()

    def test_interrupt_closes_cursor_and_flushes(self):
        client = shop_client()
        closed = []

        def rows():
            yield (b"1", b"alice", None)
            raise KeyboardInterrupt

        @contextmanager
        def open_cursor(sql):
            try:
                yield rows()
            finally:
                closed.append(sql)

        client.open_cursor.side_effect = open_cursor
        sink, buffer = make_sink()
        orchestrator = DumpOrchestrator(make_client_factory(client), sink, make_options())

        with pytest.raises(KeyboardInterrupt):
            orchestrator.run()

        assert closed == ["SELECT `id`, `name`, `bio` FROM `shop`.`users`"]
        assert orchestrator.state is RunState.FAILED
        assert orchestrator.summary.failure.reason == "interrupted"
        assert orchestrator.summary.failure.stage is DumpStage.DATA
        output = buffer.getvalue().decode()
        assert "INSERT" not in output
        assert output.endswith("\n")


class TestRunSummary:
    def test_defaults(self):
        summary = RunSummary()
        assert summary.state is RunState.IDLE
        assert not summary.ok

    def test_describe_complete(self):
        summary = RunSummary(
            state=RunState.COMPLETE,
            tables_processed=2,
            rows_dumped=10,
            skipped_tables=[TableFailure(table="places", reason="geometry")],
            null_substitutions=3,
        )
        assert summary.describe() == (
            "Dump complete: 2 tables, 10 rows, 1 tables skipped, 3 values written as NULL"
        )

    def test_describe_failure(self):
        summary = RunSummary(
            state=RunState.FAILED,
            failure=RunFailure(stage=DumpStage.CONNECT, reason="refused", error_type="DumpConnectionError"),
        )
        assert summary.describe() == "Dump failed during connect: DumpConnectionError: refused"
