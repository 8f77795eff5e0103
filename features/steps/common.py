import typing

from behave import then, use_step_matcher

from smove import errors

# Use regular expressions
use_step_matcher("re")


@then(r"the result should be bytes (?P<expected_value>0x[0-9a-fA-F]*)")
def then_result_bytes(context: typing.Any, expected_value: str):
    expected_val = parse_hex(expected_value)
    assert context.output == expected_val, (
        "Expected " + expected_value + " but got " + describe(context.output)
    )


@then(r"the result should be string (?P<expected_value>\S+)")
def then_result_string(context: typing.Any, expected_value: str):
    assert context.output == expected_value, (
        "Expected " + expected_value + " but got " + describe(context.output)
    )


@then(r"it should fail with (?P<error_type>[a-zA-Z]+)")
def then_failure(context: typing.Any, error_type: str):
    expected_type = getattr(errors, error_type)
    assert isinstance(context.output, expected_type), (
        "Expected " + error_type + " but got " + describe(context.output)
    )


def parse_hex(input_value: str) -> bytes:
    return bytes.fromhex(input_value.removeprefix("0x"))


def describe(output: typing.Any) -> str:
    if isinstance(output, bytes):
        return "0x" + output.hex()
    if isinstance(output, Exception):
        return type(output).__name__ + ": " + str(output)
    return str(output)
