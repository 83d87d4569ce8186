import asyncio
import math
from unittest import mock

import pytest

from cyano.cyano_bridge import HostBridge, HostError
from cyano.cyano_config import RuntimeConfig
from cyano.cyano_datatypes import Context
from cyano.cyano_interpreter import NO_VALUE
from cyano.cyano_runtime import ExecutionHost, build_output, detect_output


def assert_ok(res, expected=None):
    assert res.status == "success", f"expected success, got {res}"
    if expected is not None:
        assert res.value == expected, f"expected {expected!r}, got {res.value!r}"


def assert_error(res, contains):
    assert res.status == "error", f"expected error, got {res}"
    assert contains in res.error_message


def execute(code, context=None, cell_id="c1", **extra):
    message = {"type": "execute", "cellId": cell_id, "code": code, **extra}
    if context is not None:
        message["context"] = context
    return message


@pytest.fixture
def host():
    return ExecutionHost()


# ---------------------------------------------------------------------------
# Scenario seeds through the message contract

@pytest.mark.asyncio
async def test_addition_result_envelope(host):
    response = await host.handle_message(execute("1 + 2"))
    assert response["type"] == "result"
    assert response["cellId"] == "c1"
    assert response["output"]["type"] == "text"
    assert response["output"]["data"] == "3"
    assert isinstance(response["output"]["timing_ms"], int)
    assert response["context"] == []
    assert set(response) == {"type", "cellId", "output", "context"}


@pytest.mark.asyncio
async def test_let_binding_is_returned_in_context(host):
    response = await host.handle_message(execute("let x = 5\nx * 2"))
    assert response["output"]["data"] == "10"
    assert response["context"] == [["x", 5.0]]


@pytest.mark.asyncio
async def test_last_display_output_wins(host):
    response = await host.handle_message(execute("for i in [1,2,3]\ndisplay(i)\nend"))
    assert response["output"]["type"] == "text"
    assert response["output"]["data"] == "3"
    assert response["context"] == [["i", 3.0]]


@pytest.mark.asyncio
async def test_division_by_zero_error_envelope(host):
    response = await host.handle_message(execute("5 / 0", cell_id=42))
    assert response["type"] == "error"
    assert response["cellId"] == 42
    assert response["message"] == "Line 1: Division by zero"


@pytest.mark.asyncio
async def test_gc_content_through_default_library(host):
    response = await host.handle_message(execute('"ACGT" |> Seq.gcContent()'))
    assert response["output"]["data"] == "0.5"


@pytest.mark.asyncio
async def test_unknown_namespace_envelope():
    host = ExecutionHost(HostBridge())
    response = await host.handle_message(execute('"ACGT" |> Seq.gcContent()'))
    assert response["type"] == "error"
    assert response["message"] == "Line 1: Unknown namespace: Seq"


@pytest.mark.asyncio
async def test_zero_is_falsy_in_if(host):
    response = await host.handle_message(execute('if 0\ndisplay("a")\nelse\ndisplay("b")\nend'))
    assert response["output"] == {"type": "text", "data": "b", "timing_ms": response["output"]["timing_ms"]}


# ---------------------------------------------------------------------------
# Context across runs

@pytest.mark.asyncio
async def test_context_threads_across_requests(host):
    first = await host.handle_message(execute("let total = 10"))
    second = await host.handle_message(execute("total = total + 5\ntotal", context=first["context"]))
    assert second["output"]["data"] == "15"
    assert second["context"] == [["total", 15.0]]


@pytest.mark.asyncio
async def test_context_order_is_preserved(host):
    response = await host.handle_message(execute("a = 1", context=[["z", 1], ["m", "s"]]))
    assert [name for name, _ in response["context"]] == ["z", "m", "a"]


@pytest.mark.asyncio
async def test_runtime_error_reports_partial_context(host):
    response = await host.handle_message(execute("a = 1\nb = missing\nc = 3"))
    assert response["type"] == "error"
    assert response["message"] == "Line 2: Undefined variable: missing"
    assert response["context"] == [["a", 1.0]]


@pytest.mark.asyncio
async def test_parse_error_runs_nothing(host):
    response = await host.handle_message(execute("a = 1\nb = (", context=[["keep", 1]]))
    assert response["type"] == "error"
    assert "Expected" in response["message"] or "Unexpected token" in response["message"]
    assert response["context"] == [["keep", 1.0]]


@pytest.mark.asyncio
async def test_handle_script_mutates_given_context(host):
    ctx = Context()
    res = await host.handle_script("x = 2\nx * 3", ctx)
    assert_ok(res, 6)
    assert ctx["x"] == 2
    assert res.context is ctx


# ---------------------------------------------------------------------------
# Output selection

@pytest.mark.asyncio
async def test_no_output_sentinel(host):
    response = await host.handle_message(execute(""))
    assert response["output"]["type"] == "text"
    assert response["output"]["data"] == "(no output)"


@pytest.mark.asyncio
async def test_no_output_text_is_configurable():
    host = ExecutionHost(config=RuntimeConfig(no_output_text="-"))
    res = await host.handle_script("if false\nend")
    assert_ok(res)
    assert res.value is NO_VALUE
    assert res.output["data"] == "-"


@pytest.mark.asyncio
async def test_null_value_is_output_not_sentinel(host):
    response = await host.handle_message(execute("null"))
    assert response["output"]["data"] == "null"


@pytest.mark.asyncio
async def test_explicit_output_type_passes_raw_value(host):
    response = await host.handle_message(execute('display({x: 1}, "chart")'))
    assert response["output"]["type"] == "chart"
    assert response["output"]["data"] == {"x": 1.0}


@pytest.mark.asyncio
async def test_explicit_text_type_stringifies(host):
    response = await host.handle_message(execute("[1, 2] |> display(\"text\")"))
    assert response["output"] == {"type": "text", "data": "[\n  1,\n  2\n]",
                                  "timing_ms": response["output"]["timing_ms"]}


@pytest.mark.asyncio
async def test_display_output_wins_over_last_value(host):
    response = await host.handle_message(execute('display("shown")\n99'))
    assert response["output"]["data"] == "shown"


@pytest.mark.asyncio
async def test_describe_renders_as_table(host):
    response = await host.handle_message(execute("[1, 2, 3] |> Stats.describe()"))
    assert response["output"]["type"] == "table"
    assert response["output"]["data"][0]["mean"] == 2


@pytest.mark.asyncio
async def test_alignment_output(host):
    response = await host.handle_message(execute('Align.alignDna("ACGT", "ACGT")'))
    assert response["output"]["type"] == "alignment"
    assert response["output"]["data"]["aligned_query"] == "ACGT"


@pytest.mark.parametrize("value, expected", [
    (None, {"type": "text", "data": "null"}),
    ("hi", {"type": "text", "data": "hi"}),
    (3.0, {"type": "text", "data": "3"}),
    (True, {"type": "text", "data": "true"}),
    ([1.0, 2.0], {"type": "text", "data": "[\n  1,\n  2\n]"}),
    ([], {"type": "text", "data": "[]"}),
    ([[1.0], [2.0]], {"type": "table", "data": [[1.0], [2.0]]}),
    ([{"a": 1.0}], {"type": "table", "data": [{"a": 1.0}]}),
    ({"count": 2.0}, {"type": "table", "data": [{"count": 2.0}]}),
    ({"aligned_query": "A", "aligned_target": "A"},
     {"type": "alignment", "data": {"aligned_query": "A", "aligned_target": "A"}}),
    ({"aligned_query": "A"}, {"type": "text", "data": '{\n  "aligned_query": "A"\n}'}),
    ({}, {"type": "text", "data": "{}"}),
])
def test_detect_output(value, expected):
    assert detect_output(value) == expected


def test_mixed_array_is_text():
    assert detect_output([{"a": 1.0}, 2.0])["type"] == "text"


def test_build_output_honors_explicit_type():
    assert build_output([1.0], "table") == {"type": "table", "data": [1.0]}
    assert build_output(2.0, "text") == {"type": "text", "data": "2"}
    assert build_output({"mean": 1.0}, None)["type"] == "table"
    assert build_output({"mean": 1.0}, "")["type"] == "table"


# ---------------------------------------------------------------------------
# Request validation

@pytest.mark.asyncio
async def test_missing_code_is_empty_program(host):
    response = await host.handle_message({"type": "execute", "cellId": "c9"})
    assert response["type"] == "result"
    assert response["output"]["data"] == "(no output)"


@pytest.mark.asyncio
async def test_unsupported_message_type(host):
    response = await host.handle_message({"type": "interrupt", "cellId": 7})
    assert response == {"type": "error", "cellId": 7, "message": "Unsupported message type: 'interrupt'"}


@pytest.mark.asyncio
async def test_non_object_request(host):
    response = await host.handle_message(["execute"])
    assert response["type"] == "error"
    assert response["cellId"] is None


@pytest.mark.asyncio
async def test_non_string_code(host):
    response = await host.handle_message(execute(12))
    assert response["message"] == "code must be a string"


@pytest.mark.asyncio
async def test_malformed_context_is_a_boundary_error(host):
    response = await host.handle_message(execute("1", context=[["x"]]))
    assert response["type"] == "error"
    assert "[name, value] pair" in response["message"]


@pytest.mark.asyncio
async def test_unserializable_output_is_a_boundary_error():
    bridge = HostBridge.from_mapping({"Ns": {"opaque": lambda: object()}})
    host = ExecutionHost(bridge)
    response = await host.handle_message(execute('Ns.opaque() |> display("raw")'))
    assert response["type"] == "error"
    assert "cannot cross the message boundary" in response["message"]


@pytest.mark.asyncio
async def test_non_finite_numbers_render_as_text(host):
    response = await host.handle_message(execute("5 % 0"))
    assert response["output"]["data"] == "NaN"


# ---------------------------------------------------------------------------
# Lazy initialization

@pytest.mark.asyncio
async def test_runtime_initializes_lazily_and_once():
    loader = mock.Mock(return_value=HostBridge.from_mapping({"Ns": {"f": lambda: 1.0}}))
    host = ExecutionHost(loader=loader)
    assert not host.initialized
    loader.assert_not_called()

    await host.handle_message(execute("Ns.f()"))
    await host.handle_message(execute("Ns.f()"))
    assert host.initialized
    loader.assert_called_once()


@pytest.mark.asyncio
async def test_concurrent_first_requests_share_initialization():
    started = []

    async def slow_loader():
        started.append(1)
        await asyncio.sleep(0.01)
        return HostBridge.from_mapping({"Ns": {"f": lambda x: x * 2}})

    host = ExecutionHost(loader=slow_loader)
    responses = await asyncio.gather(*(
        host.handle_message(execute(f"Ns.f({n})", cell_id=n)) for n in range(5)
    ))
    assert started == [1]
    assert [r["output"]["data"] for r in responses] == ["0", "2", "4", "6", "8"]
    assert [r["cellId"] for r in responses] == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_failed_initialization_is_reported_and_retried():
    attempts = []

    def flaky_loader():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("library not ready")
        return HostBridge.from_mapping({"Ns": {"f": lambda: 1.0}})

    host = ExecutionHost(loader=flaky_loader)
    first = await host.handle_message(execute("Ns.f()"))
    assert first["type"] == "error"
    assert first["message"] == "Runtime initialization failed: library not ready"
    assert not host.initialized

    second = await host.handle_message(execute("Ns.f()"))
    assert second["type"] == "result"
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_loader_must_return_a_bridge():
    host = ExecutionHost(loader=lambda: {"Ns": {}})
    res = await host.handle_script("1")
    assert_error(res, "expected HostBridge")


@pytest.mark.asyncio
async def test_reset_forces_reload():
    loader = mock.Mock(side_effect=lambda: HostBridge())
    host = ExecutionHost(loader=loader)
    await host.handle_script("1")
    host.reset()
    assert not host.initialized
    await host.handle_script("1")
    assert loader.call_count == 2


@pytest.mark.asyncio
async def test_injected_bridge_skips_loader():
    loader = mock.Mock()
    host = ExecutionHost(HostBridge(), loader=loader)
    assert host.initialized
    assert_ok(await host.handle_script("1"), 1)
    loader.assert_not_called()


# ---------------------------------------------------------------------------
# Errors and limits

@pytest.mark.asyncio
async def test_host_error_message_is_verbatim():
    def reject(seq):
        raise HostError(f"invalid base in {seq}")

    host = ExecutionHost(HostBridge.from_mapping({"Seq": {"check": reject}}))
    response = await host.handle_message(execute('\n"AXG" |> Seq.check()'))
    assert response["message"] == "Line 2: invalid base in AXG"


@pytest.mark.asyncio
async def test_internal_errors_are_contained(caplog):
    host = ExecutionHost(HostBridge())
    with mock.patch.object(host, "_make_interpreter", side_effect=ZeroDivisionError("oops")):
        res = await host.handle_script("1")
    assert_error(res, "Internal error: oops")
    assert "internal error while executing cell" in caplog.text


@pytest.mark.asyncio
async def test_step_limit_from_config():
    host = ExecutionHost(HostBridge(), config=RuntimeConfig(max_steps=10))
    response = await host.handle_message(execute("for i in [1,2,3,4,5,6,7,8]\nx = i\nend"))
    assert response["type"] == "error"
    assert "Execution step limit exceeded" in response["message"]
    assert response["context"][0][0] == "i"


@pytest.mark.asyncio
async def test_format_error_draws_caret(host):
    source = "let a = 1\nlet b = )"
    res = await host.handle_script(source)
    text = res.format_error(source)
    lines = text.splitlines()
    assert lines[0] == "Line 2: Unexpected token: RPAREN (')')"
    assert ">" in lines[2] and "let b = )" in lines[2]
    assert lines[3].endswith("        ^")


@pytest.mark.asyncio
async def test_format_error_without_position(host):
    res = await host.handle_script("1 / 0")
    assert res.error_col is None
    assert res.format_error().startswith("Line 1: Division by zero")


@pytest.mark.asyncio
async def test_format_error_on_success_is_empty(host):
    res = await host.handle_script("1")
    assert res.format_error("1") == ""


@pytest.mark.asyncio
async def test_idempotent_execution(host):
    request = execute("a = [3, 1, 2] |> Stats.median()\ndisplay(a)", context=[["seed", 4]])
    first = await host.handle_message(request)
    second = await host.handle_message(request)
    first["output"].pop("timing_ms")
    second["output"].pop("timing_ms")
    assert first == second


@pytest.mark.asyncio
async def test_nan_inside_json_output_becomes_null(host):
    response = await host.handle_message(execute("[5 % 0, 1]"))
    assert response["output"]["data"] == "[\n  null,\n  1\n]"


@pytest.mark.asyncio
async def test_nan_binding_crosses_boundary_as_float(host):
    response = await host.handle_message(execute("x = 0 % 0"))
    assert math.isnan(response["context"][0][1])


@pytest.mark.asyncio
@pytest.mark.parametrize("code", [
    "[" * 200 + "1" + "]" * 200,
    "(" * 2000 + "1" + ")" * 2000,
    "1" + " + 1" * 5000,
])
async def test_deep_nesting_is_a_located_error(host, code):
    response = await host.handle_message(execute(code))
    assert response["type"] == "error"
    assert response["message"].startswith("Line 1: Expression nested too deeply")
    assert "Internal error" not in response["message"]


@pytest.mark.asyncio
async def test_max_nesting_comes_from_config():
    host = ExecutionHost(config=RuntimeConfig(max_nesting=2))
    assert_ok(await host.handle_script("[1]"), [1.0])
    assert_error(await host.handle_script("[[1]]"), "max_nesting=2")


@pytest.mark.asyncio
async def test_host_arity_error_names_script_function(host):
    response = await host.handle_message(execute("Seq.gcContent()"))
    assert response["type"] == "error"
    assert response["message"] == "Line 1: Seq.gcContent: wrong number of arguments (expected 1, got 0)"
    assert "gc_content" not in response["message"]
