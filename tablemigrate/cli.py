"""Command line interface for the table migration toolkit."""

import argparse
import json
import logging
import sys
from typing import List, Optional, Sequence

from .exceptions import TableMigrateError
from .models.migration import MigrationConfig
from .models.schema import SchemaDefinition, TableIdentifier, parse_table_specs
from .orchestrator import MigrationOrchestrator, build_knowledge, build_oracle
from .services.ddl_executor import DDLExecutor
from .services.translator import TranslationOrchestrator

logger = logging.getLogger(__name__)


def load_config(args) -> MigrationConfig:
    """Load the configuration file and apply command line overrides."""
    config = MigrationConfig.from_json_file(args.config) if getattr(args, "config", None) else MigrationConfig()

    overrides = {
        "oracle_provider": getattr(args, "oracle", None),
        "oracle_model": getattr(args, "model", None),
        "knowledge_provider": getattr(args, "knowledge", None),
        "max_translation_attempts": getattr(args, "max_attempts", None),
        "chunk_size": getattr(args, "chunk_size", None),
        "writer_count": getattr(args, "writers", None),
        "parallel_workers": getattr(args, "workers", None),
        "on_existing_table": getattr(args, "on_existing", None),
        "missing_column_policy": getattr(args, "missing_columns", None),
        "output_dir": getattr(args, "output_dir", None),
    }
    if getattr(args, "no_reconcile", False):
        overrides["reconcile"] = False
    return config.with_overrides(**overrides)


def _tables(args, config: MigrationConfig) -> List[TableIdentifier]:
    identifiers = parse_table_specs(getattr(args, "table", None) or [])
    if not identifiers:
        identifiers = parse_table_specs(config.tables)
    if not identifiers:
        raise ValueError("No tables given; pass --table or list tables in the config")
    return identifiers


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Table Migration Tool - Migrate tables from SQL Server to Snowflake"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to migration config file")
    common.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # Run migration
    run_parser = subparsers.add_parser("run", parents=[common], help="Run a migration")
    run_parser.add_argument("--table", "-t", action="append", help="Table as source[:target] (repeatable)")
    run_parser.add_argument("--oracle", choices=["cortex", "openai", "anthropic", "rules"], help="Translation oracle")
    run_parser.add_argument("--model", help="Oracle model name")
    run_parser.add_argument("--knowledge", choices=["cortex", "http", "none"], help="Knowledge service")
    run_parser.add_argument("--max-attempts", type=int, help="Maximum translation attempts")
    run_parser.add_argument("--chunk-size", type=int, help="Rows per batch")
    run_parser.add_argument("--writers", type=int, help="Concurrent batch writers per table")
    run_parser.add_argument("--workers", type=int, help="Tables migrated in parallel")
    run_parser.add_argument("--on-existing", choices=["truncate", "append", "fail"], help="Policy for a pre-existing target table")
    run_parser.add_argument("--missing-columns", choices=["ignore", "warn", "fail"], help="Policy for one-sided columns")
    run_parser.add_argument("--no-reconcile", action="store_true", help="Skip reconciliation")
    run_parser.add_argument("--output-dir", help="Directory for reports")

    # Check table existence
    check_parser = subparsers.add_parser("check", parents=[common], help="Check whether target tables exist")
    check_parser.add_argument("--table", "-t", action="append", help="Table as source[:target] (repeatable)")

    # Translate schema
    translate_parser = subparsers.add_parser("translate", parents=[common], help="Translate a table's DDL")
    translate_parser.add_argument("--table", "-t", action="append", help="Table as source[:target]")
    translate_parser.add_argument("--ddl-file", help="Translate DDL from a file instead of the source database")
    translate_parser.add_argument("--target-table", default="", help="Target table name for --ddl-file")
    translate_parser.add_argument("--oracle", choices=["cortex", "openai", "anthropic", "rules"], help="Translation oracle")
    translate_parser.add_argument("--model", help="Oracle model name")
    translate_parser.add_argument("--knowledge", choices=["cortex", "http", "none"], help="Knowledge service")
    translate_parser.add_argument("--max-attempts", type=int, help="Maximum translation attempts")
    translate_parser.add_argument("--execute", action="store_true", help="Create the table, retrying on errors")

    # Reconcile
    reconcile_parser = subparsers.add_parser("reconcile", parents=[common], help="Reconcile source and target tables")
    reconcile_parser.add_argument("--table", "-t", action="append", help="Table as source[:target] (repeatable)")
    reconcile_parser.add_argument("--missing-columns", choices=["ignore", "warn", "fail"], help="Policy for one-sided columns")
    reconcile_parser.add_argument("--output", help="Write the report(s) to this JSON file")

    # API server
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port")
    serve_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        if args.command == "run":
            return run_migration(args)
        elif args.command == "check":
            return run_check(args)
        elif args.command == "translate":
            return run_translation(args)
        elif args.command == "reconcile":
            return run_reconciliation(args)
        elif args.command == "serve":
            return run_server(args)
        else:
            parser.print_help()
            return 2
    except (TableMigrateError, ValueError, OSError) as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1


def run_migration(args) -> int:
    """Run migrations from a config file."""
    config = load_config(args)
    identifiers = _tables(args, config)

    orchestrator = MigrationOrchestrator(config)
    runs = orchestrator.run_many(identifiers)

    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE")
    print("=" * 60)
    for run in runs:
        print(f"\n{run.table}")
        print(f"  Status: {run.status.value}")
        if run.committed_ddl:
            print(f"  Translation attempts: {len(run.translation_attempts)}")
        if run.data_move:
            print(f"  Rows: {run.data_move.rows_written}/{run.data_move.rows_read} written")
        if run.reconciliation:
            print(f"  Reconciliation: {orchestrator.report_builder.summarize(run.reconciliation)}")
        for error in run.errors:
            print(f"  Error [{error.get('stage')}]: {error.get('error')}")
        if run.duration_seconds:
            print(f"  Duration: {run.duration_seconds:.2f} seconds")
        if run.report_path:
            print(f"  Report: {run.report_path}")

    return 0 if all(run.succeeded for run in runs) else 1


def run_check(args) -> int:
    """Report whether each target table exists."""
    config = load_config(args)
    orchestrator = MigrationOrchestrator(config)

    for identifier in _tables(args, config):
        exists = orchestrator.checker.exists(identifier)
        print(f"{identifier.target_qualified_name}: {'exists' if exists else 'does not exist'}")
    return 0


def run_translation(args) -> int:
    """Translate DDL once, or run the full translate-execute loop with --execute."""
    config = load_config(args)

    if args.ddl_file:
        with open(args.ddl_file) as f:
            schema = SchemaDefinition(ddl=f.read())
        target_table = args.target_table
        target = None
        if args.execute or config.oracle_provider == "cortex":
            from .loaders.snowflake_loader import SnowflakeLoader
            target = SnowflakeLoader(config.target)
    else:
        orchestrator = MigrationOrchestrator(config)
        identifier = _tables(args, config)[0]
        schema = orchestrator.source.fetch_source_schema(identifier.source_qualified_name)
        target_table = identifier.target_qualified_name
        target = orchestrator.target

    oracle = build_oracle(config, target)

    if not args.execute:
        proposal = oracle.translate(schema.ddl, target_table=target_table)
        print(proposal.ddl)
        if proposal.explanation:
            print(f"\n-- {proposal.explanation}", file=sys.stderr)
        return 0

    translator = TranslationOrchestrator(
        oracle=oracle,
        executor=DDLExecutor(target, timeout=config.ddl_timeout),
        knowledge=build_knowledge(config, target),
        max_attempts=config.max_translation_attempts,
        oracle_timeout=config.oracle_timeout,
        knowledge_timeout=config.knowledge_timeout,
    )
    outcome = translator.run(schema, target_table=target_table)
    print(outcome.committed_ddl)
    print(f"\n-- committed after {outcome.attempt_count} attempt(s)", file=sys.stderr)
    return 0


def run_reconciliation(args) -> int:
    """Reconcile tables that were already migrated."""
    config = load_config(args)
    orchestrator = MigrationOrchestrator(config)

    reports = []
    for identifier in _tables(args, config):
        report = orchestrator.reconciler.reconcile(identifier)
        reports.append(report)
        print(orchestrator.report_builder.summarize(report))

    output = [r.to_dict() for r in reports]
    if args.output:
        with open(args.output, "w") as f:
            json.dump(output, f, indent=2, default=str)
        print(f"Report saved to {args.output}")
    else:
        print(json.dumps(output, indent=2, default=str))

    return 0 if all(r.matched for r in reports) else 1


def run_server(args) -> int:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    uvicorn.run("tablemigrate.api.main:app", host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
