"""
Calculator Tool
===============

Basic arithmetic, so the model doesn't have to do sums in its head.
"""

from typing import Literal

from pydantic import BaseModel, Field

from galt.tools import Tool


class CalculatorArgs(BaseModel):
    operation: Literal["add", "subtract", "multiply", "divide"] = Field(
        description="The arithmetic operation to perform"
    )
    a: float = Field(description="The first number")
    b: float = Field(description="The second number")


async def calculate(args: CalculatorArgs) -> dict:
    """
    Apply the operation to a and b.

    Raises:
        ZeroDivisionError: When dividing by zero
    """
    a, b = args.a, args.b

    if args.operation == "add":
        return {"result": a + b, "operation": f"{a:g} + {b:g}"}
    if args.operation == "subtract":
        return {"result": a - b, "operation": f"{a:g} - {b:g}"}
    if args.operation == "multiply":
        return {"result": a * b, "operation": f"{a:g} × {b:g}"}

    if b == 0:
        raise ZeroDivisionError("Division by zero is not allowed")
    return {"result": a / b, "operation": f"{a:g} ÷ {b:g}"}


calculator_tool = Tool(
    name="calculator",
    description="Performs basic arithmetic operations (add, subtract, multiply, divide)",
    args_model=CalculatorArgs,
    execute=calculate,
)
