"""Dump orchestration: introspect, emit DDL, stream table data."""

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from dbdump.client import DumpClient
from dbdump.config import DumpOptions
from dbdump.data.batcher import InsertBatcher
from dbdump.data.serializer import RowSerializer
from dbdump.exceptions import (
    DbdumpError,
    InvalidSchemaModelError,
    SinkWriteError,
    UnsupportedDataTypeError,
)
from dbdump.quoting import qualified_name, quote_identifier
from dbdump.schema.codegen import DdlGenerator
from dbdump.schema.introspect import introspect
from dbdump.schema.models import Schema, Table
from dbdump.sink import OutputSink
from dbdump.types import DumpStage, RunState, SemanticType, to_row_value

__all__ = ["ClientFactory", "DumpOrchestrator", "RunFailure", "RunSummary", "TableFailure"]

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], AbstractContextManager[DumpClient]]


@dataclass(frozen=True)
class TableFailure:
    table: str
    reason: str


@dataclass(frozen=True)
class RunFailure:
    stage: DumpStage
    reason: str
    error_type: str


@dataclass
class RunSummary:
    """Outcome of a dump run, reported to the caller."""

    state: RunState = RunState.IDLE
    tables_processed: int = 0
    rows_dumped: int = 0
    skipped_tables: list[TableFailure] = field(default_factory=list)
    null_substitutions: int = 0
    failure: Optional[RunFailure] = None

    @property
    def tables_skipped(self) -> int:
        return len(self.skipped_tables)

    @property
    def ok(self) -> bool:
        """True iff the run completed and no table was skipped."""
        return self.state is RunState.COMPLETE and not self.skipped_tables

    def describe(self) -> str:
        if self.failure is not None:
            return (
                f"Dump failed during {self.failure.stage.value}: "
                f"{self.failure.error_type}: {self.failure.reason}"
            )
        text = (
            f"Dump {self.state.value}: {self.tables_processed} tables, "
            f"{self.rows_dumped} rows, {self.tables_skipped} tables skipped"
        )
        if self.null_substitutions:
            text += f", {self.null_substitutions} values written as NULL"
        return text


class DumpOrchestrator:
    """Drive one dump run.

    Idle -> Connected -> SchemaIntrospected -> EmittingDDL -> EmittingData -> Complete,
    with Failed reachable from any state. All DDL is written before any data;
    tables are dumped one at a time, each cursor drained and each batch
    flushed before the next table starts. Triggers follow the data so they
    do not fire during the load.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        sink: OutputSink,
        options: DumpOptions,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._client_factory = client_factory
        self.sink = sink
        self.options = options
        self._clock = clock
        self._generator = DdlGenerator(options)
        self.state = RunState.IDLE
        self.summary = RunSummary()

    def _transition(self, state: RunState) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state
        self.summary.state = state

    def run(self) -> RunSummary:
        """Run the dump. Fatal errors end in a FAILED summary rather than an exception.

        KeyboardInterrupt is recorded as a failure and re-raised once the
        cursor and connection are closed and the output is flushed.
        """
        self.summary = RunSummary()
        stage = DumpStage.CONNECT
        try:
            with self._client_factory() as client:
                self._transition(RunState.CONNECTED)

                stage = DumpStage.INTROSPECT
                model = introspect(
                    client,
                    self.options.schema,
                    include_views=self.options.include_views,
                    include_routines=self.options.include_routines,
                    include_triggers=self.options.include_triggers,
                )
                self._transition(RunState.SCHEMA_INTROSPECTED)
                logger.info(
                    "Introspected %s: %d tables, %d views",
                    self.options.schema,
                    len(model.tables),
                    len(model.views),
                )

                stage = DumpStage.DDL
                self._emit_ddl(model)

                if self.options.include_data:
                    stage = DumpStage.DATA
                    self._transition(RunState.EMITTING_DATA)
                    self._emit_data(client, model)
                else:
                    self.summary.tables_processed = len(model.tables)

                stage = DumpStage.DDL
                self._emit_trailer(model)
                self.sink.flush()
            self._transition(RunState.COMPLETE)
            logger.info(self.summary.describe())
        except DbdumpError as e:
            self._fail(stage, str(e), type(e).__name__)
        except KeyboardInterrupt:
            self._fail(stage, "interrupted", "KeyboardInterrupt")
            raise
        return self.summary

    def _fail(self, stage: DumpStage, reason: str, error_type: str) -> None:
        self.summary.failure = RunFailure(stage=stage, reason=reason, error_type=error_type)
        self._transition(RunState.FAILED)
        logger.error(self.summary.describe())
        try:
            self.sink.flush()
        except SinkWriteError as e:
            logger.debug("Output could not be flushed after failure: %s", e)

    def _emit_ddl(self, model: Schema) -> None:
        """Write header, session prologue, schema and table DDL, routines and views.

        Routines precede views because a view may call a stored function.

        Everything is rendered before the first byte is written, so a model
        that fails validation leaves the output empty.
        """
        statements = self._generator.render_schema(model)
        views = self._generator.render_views(model)
        routines = self._generator.render_routines(model)

        self._transition(RunState.EMITTING_DDL)
        for line in self._generator.render_header(self._clock()):
            self.sink.write_line(line)
        self.sink.write_line()
        for stmt in self._generator.render_prologue():
            self.sink.write_statement(stmt)
        for stmt in statements:
            self.sink.write_line()
            self.sink.write_statement(stmt)
        for block in routines:
            self.sink.write_line()
            self.sink.write_line(block)
        for stmt in views:
            self.sink.write_line()
            self.sink.write_statement(stmt)

    def _emit_trailer(self, model: Schema) -> None:
        for block in self._generator.render_triggers(model):
            self.sink.write_line()
            self.sink.write_line(block)
        self.sink.write_line()
        for stmt in self._generator.render_epilogue():
            self.sink.write_statement(stmt)
        if self.options.dump_date:
            self.sink.write_comment(
                f"Dump completed at {self._clock().strftime('%Y-%m-%d %H:%M:%S')}"
            )
        else:
            self.sink.write_comment("Dump completed")

    def _emit_data(self, client: DumpClient, model: Schema) -> None:
        serializer = RowSerializer(self.options)
        for table in model.tables:
            try:
                rows = self._dump_table(client, table, serializer)
            except UnsupportedDataTypeError as e:
                logger.error("Skipping data for table %s: %s", table.name, e)
                self.sink.write_comment(f"Data for {quote_identifier(table.name)} skipped: {e}")
                self.summary.skipped_tables.append(TableFailure(table=table.name, reason=str(e)))
                continue
            self.summary.tables_processed += 1
            self.summary.rows_dumped += rows
        self.summary.null_substitutions = serializer.total_substitutions

    def _check_supported(self, table: Table) -> None:
        if self.options.skip_unknown_datatypes:
            return
        for col in table.insertable_columns:
            if col.semantic_type is SemanticType.UNKNOWN:
                raise UnsupportedDataTypeError(table.name, col.name, col.type.column_type)

    def _dump_table(self, client: DumpClient, table: Table, serializer: RowSerializer) -> int:
        """Stream one table into INSERT statements. Returns the number of rows written."""
        self._check_supported(table)

        columns = table.insertable_columns
        if not columns:
            logger.warning("Table %s has only generated columns; no data to dump", table.name)
            return 0

        semantics = [c.semantic_type for c in columns]
        batcher = InsertBatcher(
            qualified_name(self.options.target_schema, table.name),
            [c.name for c in columns],
            single_row_inserts=self.options.single_row_inserts,
            batch_size=self.options.batch_size,
            max_statement_bytes=self.options.max_statement_bytes,
        )
        select = (
            f"SELECT {', '.join(quote_identifier(c.name) for c in columns)} "
            f"FROM {qualified_name(self.options.schema, table.name)}"
        )

        logger.info("Dumping data for %s", table.name)
        self.sink.write_line()
        self.sink.write_comment(f"Data for {quote_identifier(table.name)}")
        with client.open_cursor(select) as rows:
            try:
                for raw in rows:
                    if len(raw) != len(columns):
                        raise InvalidSchemaModelError(
                            f"{table.name}: cursor returned {len(raw)} values, "
                            f"expected {len(columns)}"
                        )
                    values = [to_row_value(v, s) for v, s in zip(raw, semantics)]
                    fragments = serializer.serialize(values, columns, table.name)
                    for stmt in batcher.accumulate(fragments):
                        self.sink.write_statement(stmt)
            except UnsupportedDataTypeError:
                dropped = batcher.discard()
                logger.debug("Dropped %d pending rows of %s", dropped, table.name)
                raise

        for stmt in batcher.flush():
            self.sink.write_statement(stmt)
        logger.info("Dumped %d rows from %s", batcher.rows_emitted, table.name)
        return batcher.rows_emitted
