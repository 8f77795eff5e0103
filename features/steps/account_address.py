from behave import *

from smove.account_address import AccountAddress, parse_address
from smove.errors import AddressFormatError

# Use regular expressions
use_step_matcher("re")


@given(r"address (?P<input_value>\S+)")
def given_address(context, input_value):
    context.input = input_value


@when(r"I parse the account address")
def when_parse_account_address(context):
    try:
        context.output = parse_address(context.input)
    except AddressFormatError as e:
        context.output = e


@when(r"I convert the address to SS58")
def when_account_address_to_ss58(context):
    context.output = parse_address(context.input).to_ss58()


@then(r"the result should be address (?P<expected_value>0x[0-9a-fA-F]+)")
def then_result_address(context, expected_value):
    expected_val = AccountAddress.from_hex(expected_value)
    assert context.output == expected_val, (
        "Expected " + str(expected_val) + " but got " + str(context.output)
    )
    assert str(context.output) == str(expected_val)
