import typing

from behave import given, then, use_step_matcher, when

from smove.errors import SmoveError
from smove.script_args import parse_arg_with_type

# Use regular expressions
use_step_matcher("re")


@given(r"argument (?P<input_value>\S+)")
def given_argument(context: typing.Any, input_value: str):
    context.input = input_value


@when(r"I encode the argument")
def when_encode_argument(context: typing.Any):
    try:
        context.encoded = parse_arg_with_type(context.input)
        context.output = context.encoded.arg
    except SmoveError as e:
        context.output = e


@then(r"the vector depth should be (?P<expected_value>\d+)")
def then_vector_depth(context: typing.Any, expected_value: str):
    assert context.encoded.vector_depth == int(expected_value), (
        "Expected depth "
        + expected_value
        + " but got "
        + str(context.encoded.vector_depth)
    )
