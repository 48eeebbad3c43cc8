"""Integration tests for the SAFE telemetry MCP server."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastmcp import Client

from safe.core.server.app import create_app


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


ALL_EXPECTED_TOOLS = [
    "health_check",
    "ingest_telemetry",
    "get_latest_data",
    "get_device_logs",
    "register_device",
]


@pytest.fixture
def client(telemetry_repository):
    """Create an MCP client connected to a server backed by in-memory storage."""
    mcp = create_app(repository_override=telemetry_repository)
    return Client(mcp)


def _envelope(result) -> dict:
    return json.loads(result.content[0].text)


def test_server_starts_and_lists_tools(client):
    """Server should start and expose all registered tools."""
    async def _check():
        async with client:
            tools = await client.list_tools()
            tool_names = [t.name for t in tools]
            for expected in ALL_EXPECTED_TOOLS:
                assert expected in tool_names, f"Missing tool: {expected}"
    _run(_check())


def test_health_check_returns_ok(client):
    """health_check tool should return status ok with record counts."""
    async def _check():
        async with client:
            result = await client.call_tool("health_check", {})
            result_text = str(result)
            assert "ok" in result_text
            assert "gps_tracking" in result_text
    _run(_check())


def test_ingest_then_snapshot(client):
    """Events ingested through MCP show up in the dashboard snapshot."""
    async def _check():
        async with client:
            gps = _envelope(await client.call_tool("ingest_telemetry", {"event": {
                "data_type": "gps", "device_id": "SAFE-001", "latitude": -7.2575, "longitude": 112.7521,
            }}))
            assert gps["success"] is True
            assert gps["message"] == "GPS data saved successfully"

            fall = _envelope(await client.call_tool("ingest_telemetry", {"event": {
                "data_type": "fall_detection", "device_id": "SAFE-001", "confidence": 0.95,
            }}))
            assert fall["data"]["severity"] == "high"

            snapshot = _envelope(await client.call_tool("get_latest_data", {}))
            assert snapshot["success"] is True
            assert snapshot["data"]["gps"]["latitude"] == -7.2575
            assert snapshot["data"]["today_falls"]["count"] == 1
    _run(_check())


def test_ingest_rejects_unknown_type(client):
    async def _check():
        async with client:
            envelope = _envelope(await client.call_tool("ingest_telemetry", {"event": {
                "data_type": "unknown_type", "device_id": "SAFE-001",
            }}))
            assert envelope["success"] is False
            assert envelope["data"] is None
            assert "Unknown data_type" in envelope["message"]
    _run(_check())


def test_register_device_sets_notification_recipient(client, telemetry_repository):
    async def _check():
        async with client:
            registered = _envelope(await client.call_tool("register_device", {
                "device_id": "SAFE-001", "name": "Siti", "age": 78, "emergency_contact": "+62 811 222",
            }))
            assert registered["success"] is True

            await client.call_tool("ingest_telemetry", {"event": {
                "data_type": "fall_detection", "device_id": "SAFE-001", "confidence": 0.8,
            }})

            snapshot = _envelope(await client.call_tool("get_latest_data", {"device_id": "SAFE-001"}))
            assert snapshot["data"]["device_info"]["name"] == "Siti"
            fall_id = snapshot["data"]["today_falls"]["events"][0]["id"]

            [notification] = telemetry_repository.get_notification_logs(fall_id)
            assert notification.recipient == "+62 811 222"
    _run(_check())


def test_device_logs_filter_by_level(client):
    async def _check():
        async with client:
            await client.call_tool("ingest_telemetry", {"event": {
                "data_type": "battery", "device_id": "SAFE-001", "battery_level": 10,
            }})
            logs = _envelope(await client.call_tool("get_device_logs", {"level": "warning"}))
            assert logs["data"]["count"] == 1
            assert logs["data"]["entries"][0]["message"] == "Low battery: 10%"

            invalid = _envelope(await client.call_tool("get_device_logs", {"level": "debug"}))
            assert invalid["success"] is False
    _run(_check())
