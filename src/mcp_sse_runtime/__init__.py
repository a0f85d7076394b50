"""MCP server runtime over Server-Sent Events.

Each client holds one long-lived SSE stream for server-to-client
messages and POSTs its requests to a separate endpoint; the two are
tied together by a session id.
"""

__version__ = "1.0.0"
