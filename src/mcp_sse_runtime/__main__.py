"""Allow running as python -m mcp_sse_runtime."""

from .cli import main

if __name__ == "__main__":
    main()
