from __future__ import annotations
from typing import Iterable, List, Sequence, Union

import pytest

from interpreter import Interpreter
from program import Program


class ScriptedRandom:
    """Random source that hands out a fixed sequence of draws."""

    def __init__(self, draws: Iterable[int]) -> None:
        self.draws: List[int] = list(draws)
        self.calls: List[tuple] = []

    def integers(self, low: int, high: int) -> int:
        self.calls.append((low, high))
        return self.draws.pop(0)


@pytest.fixture
def scripted_random():
    return ScriptedRandom


@pytest.fixture
def make_interpreter():
    def factory(rows: Union[str, Sequence[str]], values: Iterable[int] = (), **kwargs) -> Interpreter:
        if isinstance(rows, str):
            rows = [rows]
        kwargs.setdefault("output_sink", lambda text: None)
        return Interpreter(Program(values, rows), **kwargs)

    return factory


@pytest.fixture
def run_program(make_interpreter):
    """Run to Halt and return the program's own output, without the completion notice."""

    def run(rows: Union[str, Sequence[str]], values: Iterable[int] = (), **kwargs) -> str:
        interpreter = make_interpreter(rows, values, **kwargs)
        interpreter.execute()
        return "".join(record["text"] for record in interpreter.io_log if record["event"] == "OUTPUT")

    return run
