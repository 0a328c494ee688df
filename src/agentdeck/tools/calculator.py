"""Arithmetic tools for the calculator agent."""

import logging
from typing import Annotated

from pydantic import Field

from agentdeck.tools import register_tool

logger = logging.getLogger(__name__)

Operand = Annotated[float, Field(description="First number")]
SecondOperand = Annotated[float, Field(description="Second number")]


def format_number(value: float) -> str:
    """Render integral floats without a trailing ``.0`` so ``12 + 7`` reads ``19``."""
    if value.is_integer():
        return str(int(value))
    return repr(value)


@register_tool("add")
async def add(a: Operand, b: SecondOperand) -> str:
    """Add two numbers together"""
    result = a + b
    logger.debug("add: %s + %s = %s", a, b, result)
    return format_number(result)


@register_tool("subtract")
async def subtract(a: Operand, b: SecondOperand) -> str:
    """Subtract the second number from the first"""
    result = a - b
    logger.debug("subtract: %s - %s = %s", a, b, result)
    return format_number(result)


@register_tool("multiply")
async def multiply(a: Operand, b: SecondOperand) -> str:
    """Multiply two numbers"""
    result = a * b
    logger.debug("multiply: %s * %s = %s", a, b, result)
    return format_number(result)


@register_tool("divide")
async def divide(
    a: Annotated[float, Field(description="Numerator")],
    b: Annotated[float, Field(description="Denominator (cannot be zero)")],
) -> str:
    """Divide the first number by the second"""
    if b == 0:
        return "Error: cannot divide by zero (denominator b must be non-zero)"
    result = a / b
    logger.debug("divide: %s / %s = %s", a, b, result)
    return format_number(result)
