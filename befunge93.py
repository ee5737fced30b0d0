"""Befunge-93 entry point: runs one of the built-in sample programs."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional

import numpy as np

from extensions import ExtensionAPI, StepContext, load_runtime_services
from interpreter import Interpreter, TracebackFormatter
from program import BefungeError
from samples import SAMPLES, names


def _step_tracer(ext: ExtensionAPI) -> None:
    ext.metadata(name="trace")

    @ext.every_n_steps(1, name="trace")
    def _trace(interpreter: Interpreter, ctx: StepContext) -> None:
        print(
            f"[{ctx.step_index:06d}] {ctx.position} {ctx.instruction!r} -> {ctx.direction.value} "
            f"stack={interpreter.stack.snapshot()}",
            file=sys.stderr,
        )


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Befunge-93 reference interpreter")
    parser.add_argument("sample", nargs="?", default="random-sum", help="Name of the built-in program to run")
    parser.add_argument("--list", action="store_true", help="List the built-in programs and exit")
    parser.add_argument("--value", dest="values", action="append", type=int, help="Supplied value for & and ~ (repeatable)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the random direction instruction")
    parser.add_argument("--max-steps", type=int, default=None, help="Abort after this many instructions")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Record stack snapshots in tracebacks")
    parser.add_argument("--trace", action="store_true", help="Print every executed instruction to stderr")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    args = parser.parse_args(argv)

    if args.list:
        for name in names():
            print(f"{name}: {SAMPLES[name].description}")
        return 0

    sample = SAMPLES.get(args.sample)
    if sample is None:
        print(f"Unknown program '{args.sample}'; choose from: {', '.join(names())}", file=sys.stderr)
        return 1

    program = sample.build(None if args.values is None else tuple(args.values))
    services = load_runtime_services([_step_tracer] if args.trace else [])
    interpreter = Interpreter(
        program,
        verbose=args.verbose,
        rng=np.random.default_rng(args.seed),
        services=services,
        max_steps=args.max_steps,
    )
    try:
        interpreter.execute()
    except BefungeError as error:
        print(file=sys.stderr)
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
