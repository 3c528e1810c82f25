#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
crudkit command line

Commands:
  init                Create tables from schema.sql (and operation_log)
  sql                 Compile a query string against a table and print SQL + args
                      without executing anything

Examples:
  crudkit init --db ./crudkit.db
  crudkit sql authors "name_like=Al%&sort_field=id&sort_order=desc&page=2"
  crudkit sql books "author_id=3" --op update --set title=Draft
"""
from __future__ import annotations

import argparse
import json
import sys
from urllib.parse import parse_qs

from pydantic import ValidationError as ModelValidationError

from .db import init_db, load_config
from .errors import ValidationError
from .logs import ensure_log_schema, setup_logging
from .query import compiler
from .query.params import parse_field_projection, parse_filter
from .repository.tables import TABLES


def cmd_init(args) -> int:
    db = init_db(args.db)
    ensure_log_schema(db)
    print(f"initialized {db.path}")
    return 0


def _assignments(pairs: list[str]) -> dict:
    out = {}
    for p in pairs or []:
        if "=" not in p:
            raise ValidationError(f"--set expects key=value, got {p!r}")
        k, v = p.split("=", 1)
        out[k.strip()] = v
    return out


def cmd_sql(args) -> int:
    if args.table not in TABLES:
        print(f"unknown table: {args.table} (known: {', '.join(sorted(TABLES))})", file=sys.stderr)
        return 2
    model, update_model = TABLES[args.table]
    params = parse_qs(args.query or "", keep_blank_values=True)
    try:
        flt = parse_filter(params, model.allowed_filter_fields())
        if args.op == "select":
            projection = parse_field_projection(params)
            if projection is not None:
                sql, sql_args = compiler.compile_select_fields(model, projection, flt)
            else:
                sql, sql_args = compiler.compile_select(model, flt)
        elif args.op == "count":
            sql, sql_args = compiler.compile_count(model, flt)
        elif args.op == "delete":
            sql, sql_args = compiler.compile_delete(model, flt)
        else:
            payload = update_model.model_validate(_assignments(args.set))
            sql, sql_args = compiler.compile_update(model, payload, flt)
    except (ValidationError, ModelValidationError) as e:
        print(f"error: {type(e).__name__}: {e}", file=sys.stderr)
        return 2
    print(sql)
    print(json.dumps(sql_args, ensure_ascii=False, default=str))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="crudkit", description="Generic CRUD layer (SQLite)")
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers()

    p_init = sub.add_parser("init", help="create tables")
    p_init.add_argument("--db", required=False, help="database path (default from config.yaml)")
    p_init.set_defaults(func=cmd_init)

    p_sql = sub.add_parser("sql", help="print the SQL compiled from a query string")
    p_sql.add_argument("table", help="table name, e.g. authors")
    p_sql.add_argument("query", nargs="?", default="", help="URL query string")
    p_sql.add_argument("--op", choices=["select", "count", "update", "delete"], default="select")
    p_sql.add_argument("--set", action="append", help="column=value for --op update (repeatable)")
    p_sql.set_defaults(func=cmd_sql)

    args = parser.parse_args(argv)
    setup_logging(args.log_level or load_config().get("log_level"))
    if hasattr(args, "func"):
        return args.func(args)
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
