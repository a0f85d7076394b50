"""Demo capabilities served by default.

A configuration resource, a user profile template, a calculator and a
mock weather tool, and two prompts.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

from . import __version__
from .protocol.server import McpServer

SERVER_NAME = "mcp-sse-runtime"

# Mock weather data keyed by lowercase city name
WEATHER: dict[str, tuple[int, str]] = {
    "new york": (22, "Partly cloudy"),
    "london": (18, "Rainy"),
    "tokyo": (26, "Sunny"),
    "sydney": (30, "Clear"),
}


class CalculateArgs(BaseModel):
    operation: Literal["add", "subtract", "multiply", "divide"]
    a: float
    b: float


class WeatherArgs(BaseModel):
    city: str


class IntroduceArgs(BaseModel):
    topic: str | None = None


class AnalyzeArgs(BaseModel):
    data: str


def _format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return str(value)


def calculate(args: CalculateArgs) -> dict[str, Any]:
    if args.operation == "add":
        result = args.a + args.b
    elif args.operation == "subtract":
        result = args.a - args.b
    elif args.operation == "multiply":
        result = args.a * args.b
    else:
        if args.b == 0:
            return {
                "content": [{"type": "text", "text": "Error: Division by zero"}],
                "isError": True,
            }
        result = args.a / args.b

    return {"content": [{"type": "text", "text": _format_number(result)}]}


def get_weather(args: WeatherArgs) -> str:
    temp, condition = WEATHER.get(args.city.lower(), (25, "Unknown"))
    return f"Weather in {args.city}: {temp}°C, {condition}"


def app_config(uri: str) -> str:
    return "This is the app configuration data"


def user_profile(uri: str, userId: str) -> dict[str, Any]:  # noqa: N803
    text = (
        f'Profile data for user {userId}: '
        f'{{ name: "User {userId}", email: "user{userId}@example.com" }}'
    )
    return {"contents": [{"uri": uri, "text": text}]}


def introduce_yourself(args: IntroduceArgs) -> str:
    if args.topic:
        return f"Please introduce yourself and tell me about {args.topic}"
    return "Please introduce yourself"


def analyze_data(args: AnalyzeArgs) -> str:
    return f"Please analyze this data and provide insights:\n\n{args.data}"


def build_demo_server() -> McpServer:
    """Create a protocol server with the demo capabilities registered."""
    server = McpServer(SERVER_NAME, __version__)

    server.add_resource("config", "config://app", app_config)
    server.add_resource("user-profile", "users://{userId}/profile", user_profile)

    server.add_tool(
        "calculate",
        calculate,
        args_model=CalculateArgs,
        description="Perform basic arithmetic",
    )
    server.add_tool(
        "get-weather",
        get_weather,
        args_model=WeatherArgs,
        description="Get the (mock) current weather for a city",
    )

    server.add_prompt("introduce-yourself", introduce_yourself, args_model=IntroduceArgs)
    server.add_prompt("analyze-data", analyze_data, args_model=AnalyzeArgs)

    return server
