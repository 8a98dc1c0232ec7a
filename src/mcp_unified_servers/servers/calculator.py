"""
Calculator MCP server.

Tools: add, subtract, multiply, divide, calculate
Resources: math://pi, math://formula/{name}
Prompts: math-tutor

Run:
  calculator-server                      # stdio
  TRANSPORT=http PORT=3001 calculator-server
"""

from __future__ import annotations

import math
from typing import Literal

from mcp import types
from pydantic import BaseModel, Field

from .. import __version__
from ..cli import ServerDefinition, run_server
from ..model import (
    PromptSpec,
    ResourceSpec,
    ResourceTemplateSpec,
    ToolError,
    ToolSpec,
    user_message,
)
from ..registry import ServerRegistry

NAME = "calculator-server-unified"
DEFAULT_PORT = 3001

FORMULAS = {
    "pythagoras": "Pythagorean theorem: a² + b² = c²",
    "quadratic": "Quadratic formula: x = (-b ± √(b²-4ac)) / 2a",
    "circle-area": "Area of a circle: A = πr²",
    "volume-sphere": "Volume of a sphere: V = (4/3)πr³",
}

Operation = Literal["add", "subtract", "multiply", "divide", "power", "sqrt"]


class Operands(BaseModel):
    a: float = Field(description="First number")
    b: float = Field(description="Second number")


class CalculateArgs(BaseModel):
    operation: Operation = Field(description="Operation to perform")
    a: float = Field(description="First number")
    b: float | None = Field(default=None, description="Second number (not used by sqrt)")


class TutorArgs(BaseModel):
    topic: str = Field(description="Math topic, e.g. algebra, geometry, calculus")
    difficulty: Literal["easy", "medium", "hard"] = Field(description="Difficulty level")


# Floats beyond 2**53 are not exact integers, keep their exponent form.
_EXACT_INT_LIMIT = 2**53


def format_number(value: float) -> str:
    """Render exactly representable integral floats without the trailing ``.0``."""
    if isinstance(value, float) and value.is_integer() and abs(value) < _EXACT_INT_LIMIT:
        return str(int(value))
    return str(value)


def _finite(expression: str, value: float) -> tuple[str, float]:
    if not math.isfinite(value):
        raise ToolError(f"Error: {expression} is too large")
    return expression, value


def compute(operation: str, a: float, b: float | None = None) -> tuple[str, float]:
    """Return the rendered expression and its value; raise ToolError on domain errors."""
    if operation == "add":
        b = 0 if b is None else b
        return _finite(f"{format_number(a)} + {format_number(b)}", a + b)
    if operation == "subtract":
        b = 0 if b is None else b
        return _finite(f"{format_number(a)} - {format_number(b)}", a - b)
    if operation == "multiply":
        b = 1 if b is None else b
        return _finite(f"{format_number(a)} × {format_number(b)}", a * b)
    if operation == "divide":
        if b is None or b == 0:
            raise ToolError("Error: division requires a non-zero second number")
        return _finite(f"{format_number(a)} ÷ {format_number(b)}", a / b)
    if operation == "power":
        b = 2 if b is None else b
        expression = f"{format_number(a)}^{format_number(b)}"
        try:
            result = math.pow(a, b)
        except OverflowError:
            raise ToolError(f"Error: {expression} is too large") from None
        except ValueError:
            raise ToolError(f"Error: {expression} is not a real number") from None
        return _finite(expression, result)
    if operation == "sqrt":
        if a < 0:
            raise ToolError("Error: cannot take the square root of a negative number")
        return f"√{format_number(a)}", math.sqrt(a)
    raise ToolError(f"Error: unknown operation {operation!r}")


def _render(operation: str, a: float, b: float | None = None) -> str:
    expression, result = compute(operation, a, b)
    return f"{expression} = {format_number(result)}"


async def add(args: Operands) -> str:
    return _render("add", args.a, args.b)


async def subtract(args: Operands) -> str:
    return _render("subtract", args.a, args.b)


async def multiply(args: Operands) -> str:
    return _render("multiply", args.a, args.b)


async def divide(args: Operands) -> str:
    if args.b == 0:
        raise ToolError("Error: cannot divide by zero")
    return _render("divide", args.a, args.b)


async def calculate(args: CalculateArgs) -> str:
    return _render(args.operation, args.a, args.b)


async def read_pi(uri: str) -> str:
    return f"π = {math.pi}\nThe ratio of a circle's circumference to its diameter."


async def read_formula(uri: str, name: str) -> str:
    return FORMULAS.get(name, f"Formula not found: {name}")


def math_tutor(args: TutorArgs) -> list[types.PromptMessage]:
    return [
        user_message(
            f"You are a professional math tutor. Explain {args.difficulty} {args.topic} "
            "problems in simple terms, with concrete examples and step-by-step solutions.\n\n"
            f"Teach me the basics of {args.topic}, starting with {args.difficulty} problems."
        )
    ]


def build_registry() -> ServerRegistry:
    registry = ServerRegistry(NAME, __version__)

    registry.tools.register(ToolSpec("add", "Addition", "Add two numbers", Operands, add))
    registry.tools.register(
        ToolSpec("subtract", "Subtraction", "Subtract the second number from the first", Operands, subtract)
    )
    registry.tools.register(ToolSpec("multiply", "Multiplication", "Multiply two numbers", Operands, multiply))
    registry.tools.register(
        ToolSpec("divide", "Division", "Divide the first number by the second", Operands, divide)
    )
    registry.tools.register(
        ToolSpec(
            "calculate",
            "Advanced calculator",
            "Supports add, subtract, multiply, divide, power and sqrt",
            CalculateArgs,
            calculate,
        )
    )

    registry.resources.register(
        ResourceSpec(
            "pi",
            "math://pi",
            read_pi,
            title="Pi",
            description="The mathematical constant π",
            mime_type="text/plain",
        )
    )
    registry.resources.register(
        ResourceTemplateSpec(
            "formula",
            "math://formula/{name}",
            read_formula,
            title="Math formulas",
            description=f"Well-known formulas: {', '.join(FORMULAS)}",
            mime_type="text/plain",
        )
    )

    registry.prompts.register(
        PromptSpec(
            "math-tutor",
            "Math tutor",
            "A friendly tutor that helps you work through math problems",
            TutorArgs,
            math_tutor,
        )
    )
    return registry


DEFINITION = ServerDefinition(
    name=NAME,
    http_name="calculator-server-http",
    default_port=DEFAULT_PORT,
    build_registry=build_registry,
    description="Calculator MCP server (stdio or Streamable HTTP)",
)


def main() -> None:
    run_server(DEFINITION)


if __name__ == "__main__":
    main()
