import typing

from behave import given, then, use_step_matcher, when

from smove.errors import TypeConversionError
from smove.move_type import MoveType

# Use regular expressions
use_step_matcher("re")


@given(r"type signature (?P<input_value>.+)")
def given_type_signature(context: typing.Any, input_value: str):
    context.input = input_value


@when(r"I parse the type signature")
def when_parse_type_signature(context: typing.Any):
    context.move_type = MoveType.from_str(context.input)
    context.output = context.move_type


@when(r"I convert it to a type tag")
def when_convert_to_type_tag(context: typing.Any):
    try:
        context.output = context.move_type.to_type_tag()
    except TypeConversionError as e:
        context.output = e


@then(r"the result should be type (?P<expected_value>.+)")
def then_result_type(context: typing.Any, expected_value: str):
    assert str(context.output) == expected_value, (
        "Expected " + expected_value + " but got " + str(context.output)
    )


@then(r"the type tag should be (?P<expected_value>.+)")
def then_type_tag(context: typing.Any, expected_value: str):
    tag = context.move_type.to_type_tag()
    assert str(tag) == expected_value, (
        "Expected " + expected_value + " but got " + str(tag)
    )
