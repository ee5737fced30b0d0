import json

import pytest

from extensions import (
    BefungeExtensionError,
    ExtensionAPI,
    HookRegistry,
    StepContext,
    build_default_services,
    load_runtime_services,
)
from interpreter import COMPLETION_NOTICE, BefungeRuntimeError, TracebackFormatter
from program import EmptyInputError, Position


def test_events_fire_in_order(make_interpreter):
    events = []

    def register(ext: ExtensionAPI) -> None:
        ext.on_event("program_start", lambda interp: events.append("start"))
        ext.on_event("output", lambda interp, text: events.append(("output", text)))
        ext.on_event("program_end", lambda interp: events.append("end"))

    interpreter = make_interpreter("1.2.@", services=load_runtime_services([register]))
    interpreter.execute()
    assert events == ["start", ("output", "1 "), ("output", "2 "), "end"]


def test_on_error_sees_the_failure(make_interpreter):
    seen = []

    def register(ext: ExtensionAPI) -> None:
        @ext.on_event("on_error")
        def _record(interp, error):
            seen.append(error)

        ext.on_event("program_end", lambda interp: seen.append("end"))

    interpreter = make_interpreter("&@", services=load_runtime_services([register]))
    with pytest.raises(EmptyInputError) as info:
        interpreter.execute()
    assert seen == [info.value]


def test_handlers_run_by_priority():
    registry = HookRegistry()
    calls = []
    registry.on_event("tick", lambda: calls.append("low"), priority=0, ext_name="a")
    registry.on_event("tick", lambda: calls.append("high"), priority=10, ext_name="b")
    registry.emit("tick")
    assert calls == ["high", "low"]


def test_step_rules_run_every_n_steps(make_interpreter):
    contexts = []

    def register(ext: ExtensionAPI) -> None:
        @ext.every_n_steps(2)
        def _sample(interp, ctx: StepContext) -> None:
            contexts.append(ctx)

    interpreter = make_interpreter("12345@", services=load_runtime_services([register]))
    interpreter.execute()
    assert [ctx.step_index for ctx in contexts] == [0, 2, 4]
    assert [ctx.instruction for ctx in contexts] == ["1", "3", "5"]


def test_failing_hook_is_wrapped(make_interpreter):
    def register(ext: ExtensionAPI) -> None:
        def boom(interp, text):
            raise ValueError("sink exploded")

        ext.on_event("output", boom)

    interpreter = make_interpreter("1.@", services=load_runtime_services([register]))
    with pytest.raises(BefungeRuntimeError, match="sink exploded") as info:
        interpreter.execute()
    assert info.value.position == Position(0, 1)
    assert info.value.step_index == 1


def test_failing_step_rule_is_wrapped(make_interpreter):
    def register(ext: ExtensionAPI) -> None:
        ext.every_n_steps(1, lambda interp, ctx: 1 / 0)

    interpreter = make_interpreter("1@", services=load_runtime_services([register]))
    with pytest.raises(BefungeRuntimeError, match="step rule failed") as info:
        interpreter.execute()
    assert info.value.instruction == "1"
    assert info.value.step_index == 0
    assert info.value.position == Position(0, 0)


def test_step_rule_interval_must_be_positive():
    api = ExtensionAPI(services=build_default_services(), ext_name="t")
    with pytest.raises(BefungeExtensionError):
        api.every_n_steps(0, lambda interp, ctx: None)


def test_metadata_checks_api_version():
    services = build_default_services()
    api = ExtensionAPI(services=services, ext_name="t")
    api.metadata(name="t", version="1.2.0")
    assert services.metadata[0].version == "1.2.0"
    with pytest.raises(BefungeExtensionError):
        api.metadata(name="future", requires_api=99)


def test_registrars_must_be_callable():
    with pytest.raises(BefungeExtensionError):
        load_runtime_services(["not callable"])


def test_traceback_text(make_interpreter):
    interpreter = make_interpreter("12&@", verbose=True)
    with pytest.raises(EmptyInputError) as info:
        interpreter.execute()
    text = TracebackFormatter(interpreter).format_text(info.value, verbose=True)
    lines = text.splitlines()
    assert lines[0] == "Traceback (most recent step last):"
    assert "Step 2 (s_000002) at (0, 2), '&'" in text
    assert "Stack: [1, 2]" in text
    assert lines[-1] == (
        "EmptyInputError: No supplied values left to read (at (0, 2), instruction '&', step 2)"
    )


def test_traceback_limit(make_interpreter):
    interpreter = make_interpreter("123456&@")
    with pytest.raises(EmptyInputError) as info:
        interpreter.execute()
    text = TracebackFormatter(interpreter, limit=2).format_text(info.value, verbose=False)
    assert "Step 5 " in text
    assert "Step 4 " not in text


def test_traceback_json(make_interpreter):
    interpreter = make_interpreter("10/@")
    with pytest.raises(ArithmeticError) as info:
        interpreter.execute()
    data = json.loads(TracebackFormatter(interpreter).to_json(info.value))
    assert data["error"]["type"] == "BefungeArithmeticError"
    assert data["error"]["failing_step_index"] == 2
    assert data["error"]["position"] == {"row": 0, "column": 2}
    assert [step["instruction"] for step in data["steps"]] == ["1", "0", "/"]
    assert "stack" not in data["steps"][0]


def test_output_sink_receives_completion_notice(make_interpreter):
    sink = []
    make_interpreter("@", output_sink=sink.append).execute()
    assert sink[-1] == COMPLETION_NOTICE


def test_failing_end_hook_reports_last_step_position(make_interpreter):
    def register(ext: ExtensionAPI) -> None:
        ext.on_event("program_end", lambda interp: [][0])

    interpreter = make_interpreter(["v", ">@"], services=load_runtime_services([register]))
    with pytest.raises(BefungeRuntimeError, match="program_end") as info:
        interpreter.execute()
    assert info.value.position == Position(1, 1)


def test_step_rule_errors_keep_their_own_details(make_interpreter):
    def register(ext: ExtensionAPI) -> None:
        def stop(interp, ctx):
            if ctx.step_index == 1:
                raise BefungeRuntimeError("stopped by rule")

        ext.every_n_steps(1, stop)

    interpreter = make_interpreter("123@", services=load_runtime_services([register]))
    with pytest.raises(BefungeRuntimeError, match="stopped by rule") as info:
        interpreter.execute()
    assert info.value.step_index == 1
