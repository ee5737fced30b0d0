from __future__ import annotations
import json
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

import numpy as np

from extensions import HookRegistry, RuntimeServices, StepContext, build_default_services
from program import BefungeError, Position, Program
from stack import Stack


COMPLETION_NOTICE = "\n----- Program Finished -----\n"
MAX_CODEPOINT = 0x10FFFF
SURROGATES = range(0xD800, 0xE000)


class Direction(Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


class Mode(Enum):
    NORMAL = "normal"
    STRING = "string"


# Order matters: index drawn by `?` maps onto this tuple.
RANDOM_DIRECTIONS = (Direction.RIGHT, Direction.LEFT, Direction.UP, Direction.DOWN)


@dataclass(frozen=True)
class Action:
    pass


@dataclass(frozen=True)
class ChangeDirection(Action):
    direction: Direction


@dataclass(frozen=True)
class ChangeMode(Action):
    mode: Mode


@dataclass(frozen=True)
class Trampoline(Action):
    pass


@dataclass(frozen=True)
class NoOp(Action):
    pass


@dataclass(frozen=True)
class Halt(Action):
    pass


TRAMPOLINE = Trampoline()
NOOP = NoOp()
HALT = Halt()


class BefungeRuntimeError(BefungeError):
    """Raised for runtime faults."""


class BefungeArithmeticError(BefungeRuntimeError, ArithmeticError):
    pass


class InternalError(BefungeRuntimeError):
    pass


class InvalidCodepointError(BefungeRuntimeError, ValueError):
    pass


class StepLimitError(BefungeRuntimeError):
    pass


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    position: Position
    direction: Direction
    mode: Mode
    instruction: str
    stack_snapshot: Optional[List[int]]


class StateLogger:
    def __init__(self, verbose: bool, history: int = 1000) -> None:
        self.verbose = verbose
        self.entries: Deque[StateEntry] = deque(maxlen=history)
        self.next_state_index = 0

    def record(
        self,
        *,
        position: Position,
        direction: Direction,
        mode: Mode,
        instruction: str,
        stack_snapshot: Optional[List[int]] = None,
    ) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            position=position,
            direction=direction,
            mode=mode,
            instruction=instruction,
            stack_snapshot=stack_snapshot,
        )
        self.entries.append(entry)
        self.next_state_index += 1
        return entry

    def last_entry(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None


InstructionHandler = Callable[[], Action]


class Interpreter:
    def __init__(
        self,
        program: Program,
        *,
        verbose: bool = False,
        rng: Optional[Any] = None,
        output_sink: Optional[Callable[[str], None]] = None,
        services: Optional[RuntimeServices] = None,
        max_steps: Optional[int] = None,
        history: int = 1000,
    ) -> None:
        self.program = program
        self.stack = Stack()
        self.position = Position(0, 0)
        self.direction = Direction.RIGHT
        self.mode = Mode.NORMAL
        self.verbose = verbose
        # Anything exposing numpy's Generator.integers(low, high) will do.
        self.rng = rng if rng is not None else np.random.default_rng()
        self.output_sink = output_sink or (lambda text: print(text, end=""))
        self.services = services or build_default_services()
        self.hook_registry: HookRegistry = self.services.hook_registry
        self.max_steps = max_steps
        self.logger = StateLogger(verbose=verbose, history=history)
        # Bounded like the step history; the output transcript below is the
        # program result and is kept whole.
        self.io_log: Deque[Dict[str, Any]] = deque(maxlen=history)
        self.steps = 0
        self.halted = False
        self._output: List[str] = []

        self.instructions: Dict[str, InstructionHandler] = {}
        self._build_instruction_table()

    @property
    def output(self) -> str:
        return "".join(self._output)

    def _build_instruction_table(self) -> None:
        for digit in "0123456789":
            self._register_push(digit, int(digit))
        self._register_binary("+", lambda b, a: b + a)
        self._register_binary("-", lambda b, a: b - a)
        self._register_binary("*", lambda b, a: b * a)
        self._register_binary("/", self._safe_div)
        self._register_binary("%", self._safe_mod)
        self._register_binary("`", lambda b, a: 1 if b > a else 0)
        self._register_direction(">", Direction.RIGHT)
        self._register_direction("<", Direction.LEFT)
        self._register_direction("^", Direction.UP)
        self._register_direction("v", Direction.DOWN)
        self._register_constant('"', ChangeMode(Mode.STRING))
        self._register_constant("#", TRAMPOLINE)
        self._register_constant("@", HALT)
        self.instructions["!"] = self._not
        self.instructions["?"] = self._random_direction
        self.instructions["_"] = self._horizontal_if
        self.instructions["|"] = self._vertical_if
        self.instructions[":"] = self._duplicate
        self.instructions["\\"] = self._swap
        self.instructions["$"] = self._discard
        self.instructions["."] = self._output_number
        self.instructions[","] = self._output_char
        self.instructions["p"] = self._put
        self.instructions["g"] = self._get
        self.instructions["&"] = self._read_value
        # `~` reads the same numeric queue as `&`; there is no character input channel.
        self.instructions["~"] = self._read_value

    def _register_push(self, char: str, value: int) -> None:
        def impl() -> Action:
            self.stack.push(value)
            return NOOP

        self.instructions[char] = impl

    def _register_binary(self, char: str, func: Callable[[int, int], int]) -> None:
        def impl() -> Action:
            a = self.stack.pop()
            b = self.stack.pop()
            self.stack.push(func(b, a))
            return NOOP

        self.instructions[char] = impl

    def _register_direction(self, char: str, direction: Direction) -> None:
        self._register_constant(char, ChangeDirection(direction))

    def _register_constant(self, char: str, action: Action) -> None:
        self.instructions[char] = lambda: action

    # Instruction implementations

    def _safe_div(self, b: int, a: int) -> int:
        if a == 0:
            raise BefungeArithmeticError("Division by zero", instruction="/")
        return b // a

    def _safe_mod(self, b: int, a: int) -> int:
        if a == 0:
            raise BefungeArithmeticError("Modulo by zero", instruction="%")
        return b % a

    def _not(self) -> Action:
        self.stack.push(1 if self.stack.pop() == 0 else 0)
        return NOOP

    def _random_direction(self) -> Action:
        choice = int(self.rng.integers(0, len(RANDOM_DIRECTIONS)))
        if not 0 <= choice < len(RANDOM_DIRECTIONS):
            raise InternalError(f"Random source produced {choice}, expected 0..3", instruction="?")
        return ChangeDirection(RANDOM_DIRECTIONS[choice])

    def _horizontal_if(self) -> Action:
        return ChangeDirection(Direction.RIGHT if self.stack.pop() == 0 else Direction.LEFT)

    def _vertical_if(self) -> Action:
        return ChangeDirection(Direction.DOWN if self.stack.pop() == 0 else Direction.UP)

    def _duplicate(self) -> Action:
        self.stack.duplicate_top()
        return NOOP

    def _swap(self) -> Action:
        self.stack.swap_top_two()
        return NOOP

    def _discard(self) -> Action:
        self.stack.pop()
        return NOOP

    def _output_number(self) -> Action:
        self._emit_output(f"{self.stack.pop()} ")
        return NOOP

    def _output_char(self) -> Action:
        self._emit_output(f"{self._to_char(self.stack.pop(), ',')} ")
        return NOOP

    def _put(self) -> Action:
        x = self.stack.pop()
        y = self.stack.pop()
        value = self.stack.pop()
        self.program.set_instruction(Position(y, x), self._to_char(value, "p"))
        return NOOP

    def _get(self) -> Action:
        x = self.stack.pop()
        y = self.stack.pop()
        self.stack.push(ord(self.program.get_instruction(Position(y, x))))
        return NOOP

    def _read_value(self) -> Action:
        value = self.program.next_value()
        self.io_log.append({"event": "INPUT", "value": value})
        self.stack.push(value)
        return NOOP

    def _to_char(self, codepoint: int, instruction: str) -> str:
        if codepoint > MAX_CODEPOINT or codepoint in SURROGATES:
            raise InvalidCodepointError(f"{codepoint} is not a valid codepoint", instruction=instruction)
        return chr(codepoint)

    # Execution

    def process_instruction(self, instruction: str) -> Action:
        if self.mode is Mode.STRING:
            if instruction == '"':
                return ChangeMode(Mode.NORMAL)
            self.stack.push(ord(instruction))
            return NOOP
        handler = self.instructions.get(instruction)
        if handler is None:
            return NOOP
        return handler()

    def step(self) -> Action:
        if self.halted:
            raise BefungeRuntimeError("Program has already halted", position=self.position)
        position = self.position
        instruction: Optional[str] = None
        try:
            if self.max_steps is not None and self.steps >= self.max_steps:
                raise StepLimitError(f"Step limit of {self.max_steps} reached")
            instruction = self.program.get_instruction(position)
            self.logger.record(
                position=position,
                direction=self.direction,
                mode=self.mode,
                instruction=instruction,
                stack_snapshot=self.stack.snapshot() if self.verbose else None,
            )
            action = self.process_instruction(instruction)
            self._apply(action)
        except BefungeError as error:
            if error.position is None:
                error.position = position
            if error.instruction is None:
                error.instruction = instruction
            error.step_index = self.steps
            raise
        step_index = self.steps
        self.steps += 1
        if self.hook_registry.has_step_rules():
            self._run_step_rules(
                StepContext(
                    step_index=step_index,
                    instruction=instruction,
                    position=position,
                    direction=self.direction,
                    mode=self.mode,
                    action=action,
                )
            )
        return action

    def _apply(self, action: Action) -> None:
        if isinstance(action, Halt):
            self.halted = True
            return
        if isinstance(action, ChangeDirection):
            self.direction = action.direction
        elif isinstance(action, ChangeMode):
            self.mode = action.mode
        elif isinstance(action, Trampoline):
            self._advance()
        self._advance()

    def _advance(self) -> None:
        row = self.position.row
        column = self.position.column
        direction = self.direction
        if direction is Direction.RIGHT:
            column = 0 if column == self.program.chars_in_line(row) - 1 else column + 1
        elif direction is Direction.LEFT:
            column = self.program.chars_in_line(row) - 1 if column == 0 else column - 1
        elif direction is Direction.UP:
            row = self.program.line_count() - 1 if row == 0 else row - 1
        else:
            row = 0 if row == self.program.line_count() - 1 else row + 1
        self.position = Position(row, column)

    def execute(self) -> None:
        self._emit_event("program_start", self)
        try:
            while not self.halted:
                self.step()
        except BefungeError as error:
            self._emit_event("on_error", self, error)
            raise
        except Exception as exc:
            # Surface Python-level faults as interpreter errors so callers
            # only have to handle one hierarchy.
            wrapped = InternalError(f"Internal interpreter error: {exc}", position=self.position)
            wrapped.step_index = self.steps
            self._emit_event("on_error", self, wrapped)
            raise wrapped from exc
        self._end_program()
        self._emit_event("program_end", self)

    def _end_program(self) -> None:
        self._write(COMPLETION_NOTICE)

    def _emit_output(self, text: str) -> None:
        self.io_log.append({"event": "OUTPUT", "text": text})
        self._write(text)
        self._emit_event("output", self, text)

    def _write(self, text: str) -> None:
        self._output.append(text)
        self.output_sink(text)

    def _emit_event(self, event: str, *args: Any, **kwargs: Any) -> None:
        try:
            self.hook_registry.emit(event, *args, **kwargs)
        except BefungeError:
            raise
        except Exception as exc:
            entry = self.logger.last_entry()
            position = entry.position if entry else self.position
            raise BefungeRuntimeError(f"Extension hook '{event}' failed: {exc}", position=position) from exc

    def _run_step_rules(self, ctx: StepContext) -> None:
        try:
            self.hook_registry.after_step(self, ctx)
        except BefungeError as error:
            if error.step_index is None:
                error.step_index = ctx.step_index
            raise
        except Exception as exc:
            error = BefungeRuntimeError(
                f"Extension step rule failed: {exc}",
                position=ctx.position,
                instruction=ctx.instruction,
            )
            error.step_index = ctx.step_index
            raise error from exc


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter, *, limit: int = 10) -> None:
        self.interpreter = interpreter
        self.limit = limit

    def recent_steps(self) -> List[StateEntry]:
        entries = list(self.interpreter.logger.entries)
        return entries[-self.limit:] if self.limit > 0 else []

    def format_text(self, error: BefungeError, verbose: bool) -> str:
        lines = ["Traceback (most recent step last):"]
        for entry in self.recent_steps():
            lines.append(
                f"  Step {entry.step_index} ({entry.state_id}) at {entry.position}, "
                f"{entry.instruction!r} moving {entry.direction.value} in {entry.mode.value} mode"
            )
            if verbose and entry.stack_snapshot is not None:
                lines.append(f"    Stack: {entry.stack_snapshot}")
        where = []
        if error.position is not None:
            where.append(f"at {error.position}")
        if error.instruction is not None:
            where.append(f"instruction {error.instruction!r}")
        if error.step_index is not None:
            where.append(f"step {error.step_index}")
        suffix = f" ({', '.join(where)})" if where else ""
        lines.append(f"{error.__class__.__name__}: {error.message}{suffix}")
        return "\n".join(lines)

    def to_json(self, error: BefungeError) -> str:
        steps_json: List[Dict[str, Any]] = []
        for entry in self.recent_steps():
            item: Dict[str, Any] = {
                "step_index": entry.step_index,
                "state_id": entry.state_id,
                "position": {"row": entry.position.row, "column": entry.position.column},
                "direction": entry.direction.value,
                "mode": entry.mode.value,
                "instruction": entry.instruction,
            }
            if entry.stack_snapshot is not None:
                item["stack"] = entry.stack_snapshot
            steps_json.append(item)
        position = None
        if error.position is not None:
            position = {"row": error.position.row, "column": error.position.column}
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "position": position,
                "instruction": error.instruction,
                "failing_step_index": error.step_index,
            },
            "steps": steps_json,
        }
        return json.dumps(data, indent=2)
