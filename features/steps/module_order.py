import typing

from behave import given, then, use_step_matcher, when

from smove.account_address import AccountAddress
from smove.bundle import ModuleDescriptor, sort_modules
from smove.bytecode import ModuleId
from smove.errors import CyclicDependencyError

# Use regular expressions
use_step_matcher("re")


@given(r"modules")
def given_modules(context: typing.Any):
    context.input = [
        ModuleDescriptor(
            parse_module_id(row["module"]),
            [parse_module_id(dep) for dep in row["dependencies"].split(",") if dep],
        )
        for row in context.table
    ]


@when(r"I sort the modules")
def when_sort_modules(context: typing.Any):
    try:
        context.output = [str(module.id) for module in sort_modules(context.input)]
    except CyclicDependencyError as e:
        context.output = e


@then(r"the module order should be (?P<expected_value>.+)")
def then_module_order(context: typing.Any, expected_value: str):
    expected_val = [module.strip() for module in expected_value.split(",")]
    assert context.output == expected_val, (
        "Expected " + str(expected_val) + " but got " + str(context.output)
    )


def parse_module_id(input_value: str) -> ModuleId:
    address, name = input_value.strip().split("::")
    return ModuleId(AccountAddress.from_hex(address), name)
