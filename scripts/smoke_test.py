#!/usr/bin/env python3
"""
Smoke Test Script

Validates configuration and connectivity without opening a realtime session.

Checks:
1. Dependencies import
2. Environment variables are set (without printing secrets) and validate
3. The configured realtime model exists via the OpenAI API
4. FastAPI app starts and /health returns OK
"""

import asyncio
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def print_header(text: str) -> None:
    """Print a section header."""
    print(f"\n{'=' * 50}")
    print(f" {text}")
    print('=' * 50)


def print_ok(text: str) -> None:
    print(f"  [OK] {text}")


def print_error(text: str) -> None:
    print(f"  [ERR] {text}")


def print_warn(text: str) -> None:
    print(f"  [WARN] {text}")


def check_dependencies() -> bool:
    """Check that required dependencies are importable."""
    print_header("Checking Dependencies")

    dependencies = [
        ("fastapi", "FastAPI"),
        ("uvicorn", "Uvicorn"),
        ("websockets", "WebSockets"),
        ("msgspec", "msgspec"),
        ("numpy", "NumPy"),
        ("structlog", "Structlog"),
        ("dotenv", "python-dotenv"),
        ("httpx", "HTTPX"),
    ]

    all_ok = True
    for module, name in dependencies:
        try:
            __import__(module)
            print_ok(name)
        except ImportError as e:
            print_error(f"{name}: {e}")
            all_ok = False

    print("\nOptional dependencies:")
    try:
        __import__("uvloop")
        print_ok("uvloop")
    except ImportError:
        print_warn("uvloop: not installed (default asyncio loop is used)")

    return all_ok


def check_env_vars() -> bool:
    """Check that required environment variables are set and valid."""
    print_header("Checking Environment Variables")

    from src.trigger_agent.config import ConfigError, get_config

    optional_vars = [
        "PORT",
        "LOG_LEVEL",
        "OPENAI_REALTIME_MODEL",
        "OPENAI_REALTIME_VOICE",
        "QUICK_HINT_PHRASE",
        "FULL_GUIDANCE_PHRASE",
        "INTERRUPT_PHRASES",
        "QUICK_HINT_DURATION_SECONDS",
        "FULL_GUIDANCE_DURATION_SECONDS",
        "PLAYBACK_GRACE_SECONDS",
    ]

    value = os.getenv("OPENAI_API_KEY")
    if value:
        masked = value[:4] + "..." + value[-4:] if len(value) > 8 else "****"
        print_ok(f"OPENAI_API_KEY: {masked}")
    else:
        print_error("OPENAI_API_KEY: NOT SET")

    print("\nOptional variables:")
    for var in optional_vars:
        value = os.getenv(var)
        if value:
            print_ok(f"{var}: {value}")
        else:
            print_warn(f"{var}: not set (using default)")

    get_config.cache_clear()
    try:
        get_config().validate()
    except ConfigError as e:
        print_error(str(e).splitlines()[0])
        return False

    print_ok("Configuration valid")
    return True


async def check_realtime_model() -> bool:
    """Validate the realtime model exists."""
    print_header("Validating Realtime Model")

    import httpx

    from src.trigger_agent.config import get_config

    config = get_config()
    if not config.openai_api_key:
        print_error("OPENAI_API_KEY not set")
        return False

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"https://api.openai.com/v1/models/{config.openai_realtime_model}",
                headers={"Authorization": f"Bearer {config.openai_api_key}"},
                timeout=10.0,
            )

        if response.status_code == 200:
            print_ok(f"Model '{config.openai_realtime_model}' exists")
            return True
        if response.status_code == 404:
            print_error(f"Model '{config.openai_realtime_model}' NOT FOUND")
            return False
        print_error(f"API returned status {response.status_code}")
        return False

    except httpx.RequestError as e:
        print_error(f"Failed to connect to OpenAI API: {e}")
        return False


def check_health_endpoint() -> bool:
    """Check that the FastAPI /health endpoint works."""
    print_header("Testing Health Endpoint")

    try:
        from fastapi.testclient import TestClient
        from server.app import app

        client = TestClient(app)
        response = client.get("/health")
    except Exception as e:
        print_error(f"Failed to test health endpoint: {e}")
        return False

    if response.status_code != 200:
        print_error(f"Health endpoint returned status {response.status_code}")
        return False

    data = response.json()
    if data.get("status") != "healthy":
        print_error(f"Unexpected response: {data}")
        return False

    print_ok("Health endpoint returned healthy")
    return True


async def main() -> int:
    """Run all smoke tests."""
    print("\n" + "=" * 50)
    print(" TRIGGER VOICE AGENT - SMOKE TEST")
    print("=" * 50)

    results = []
    results.append(("Dependencies", check_dependencies()))
    results.append(("Environment Variables", check_env_vars()))
    results.append(("Realtime Model", await check_realtime_model()))
    results.append(("Health Endpoint", check_health_endpoint()))

    print_header("Summary")

    all_passed = True
    for name, passed in results:
        if passed:
            print_ok(name)
        else:
            print_error(name)
            all_passed = False

    print()

    if all_passed:
        print("[OK] All checks passed!")
        print("\nNext steps:")
        print("  1. Run 'python -m server.app' to start the server")
        print("  2. Connect a client to ws://localhost:7860/ws")
        print("  3. Say the quick hint phrase and listen for the agent")
        return 0

    print("[ERR] Some checks failed. Please fix the issues above.")
    return 1


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
