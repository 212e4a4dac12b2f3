"""Tests for the MCP tool layer."""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from mcp.server.fastmcp import FastMCP

from opendock_mcp.api_client import APIError
from opendock_mcp.token_manager import AuthenticationError
from opendock_mcp.tools import (
    METRICS_GET_TOOLS,
    METRICS_POST_TOOLS,
    OpendockTools,
    handle_error,
    register_tools,
)


@pytest.fixture
def api():
    api = MagicMock()
    api.request = AsyncMock(return_value={"ok": True})
    return api


@pytest.fixture
def tools(api):
    return OpendockTools(api)


# ============================================================================
# Request mapping
# ============================================================================

@pytest.mark.asyncio
async def test_get_profile(tools, api):
    api.request.return_value = {"email": "user@example.com"}

    result = await tools.get_profile()

    api.request.assert_awaited_once_with("/auth/profile")
    assert json.loads(result) == {"email": "user@example.com"}


@pytest.mark.asyncio
async def test_list_warehouses_passes_filters_as_query(tools, api):
    await tools.list_warehouses(name="Main", limit=5)

    api.request.assert_awaited_once_with(
        "/warehouse",
        query={"page": None, "limit": 5, "name": "Main", "city": None, "state": None, "zip": None},
    )


@pytest.mark.asyncio
async def test_get_warehouse_hours_omits_empty_body(tools, api):
    await tools.get_warehouse_hours("wh-1")

    api.request.assert_awaited_once_with(
        "/warehouse/wh-1/get-hours-of-operation", method="POST", body=None
    )


@pytest.mark.asyncio
async def test_get_warehouse_hours_with_dates(tools, api):
    await tools.get_warehouse_hours("wh-1", startDate="2026-01-05")

    api.request.assert_awaited_once_with(
        "/warehouse/wh-1/get-hours-of-operation", method="POST", body={"startDate": "2026-01-05"}
    )


@pytest.mark.asyncio
async def test_get_load_type_availability(tools, api):
    await tools.get_load_type_availability("lt-1", "2026-01-05", "2026-01-06")

    api.request.assert_awaited_once_with(
        "/loadtype/lt-1/get-availability",
        method="POST",
        body={"startDate": "2026-01-05", "endDate": "2026-01-06"},
    )


@pytest.mark.asyncio
async def test_list_appointments_passes_join_sequence(tools, api):
    await tools.list_appointments(warehouseId="wh-1", join=["user||email,companyId", "user.company||name"])

    _, kwargs = api.request.call_args
    assert kwargs["query"]["warehouseId"] == "wh-1"
    assert kwargs["query"]["join"] == ["user||email,companyId", "user.company||name"]


@pytest.mark.asyncio
async def test_create_appointment_drops_unset_fields(tools, api):
    await tools.create_appointment(
        warehouseId="wh-1",
        dockId="dock-1",
        loadTypeId="lt-1",
        startTime="2026-01-05T08:00:00Z",
        endTime="2026-01-05T09:00:00Z",
        notes="Fragile",
    )

    api.request.assert_awaited_once_with(
        "/appointment",
        method="POST",
        body={
            "warehouseId": "wh-1",
            "dockId": "dock-1",
            "loadTypeId": "lt-1",
            "startTime": "2026-01-05T08:00:00Z",
            "endTime": "2026-01-05T09:00:00Z",
            "notes": "Fragile",
        },
    )


@pytest.mark.asyncio
async def test_update_appointment_uses_patch(tools, api):
    await tools.update_appointment("appt-1", status="Cancelled")

    api.request.assert_awaited_once_with(
        "/appointment/appt-1", method="PATCH", body={"status": "Cancelled"}
    )


@pytest.mark.asyncio
async def test_delete_appointment_confirms(tools, api):
    api.request.return_value = None

    result = await tools.delete_appointment("appt-1")

    api.request.assert_awaited_once_with("/appointment/appt-1", method="DELETE")
    assert result == "Appointment appt-1 deleted successfully."


@pytest.mark.asyncio
async def test_update_favorite_carriers_sends_bare_list(tools, api):
    await tools.update_favorite_carriers("org-1", ["c-1", "c-2"])

    api.request.assert_awaited_once_with(
        "/org/org-1/favorite-carriers", method="PATCH", body=["c-1", "c-2"]
    )


@pytest.mark.asyncio
async def test_setting_metadata_paths(tools, api):
    await tools.get_setting_metadata("warehouse", "timezone")
    await tools.validate_settings_metadata("dock")

    assert api.request.await_args_list[0].args == ("/settings-metadata/warehouse/timezone",)
    assert api.request.await_args_list[1].args == ("/settings-metadata/validate/dock",)
    assert api.request.await_args_list[1].kwargs == {"method": "POST"}


@pytest.mark.asyncio
async def test_appointment_count_for_docks_uses_repeated_query(tools, api):
    await tools.get_appointment_count_for_docks(["d-1", "d-2"])

    api.request.assert_awaited_once_with(
        "/metrics/counts/appointment-count-for-docks", query={"dockIds": ["d-1", "d-2"]}
    )


@pytest.mark.asyncio
async def test_reserve_count_for_user(tools, api):
    await tools.get_reserve_count_for_user()
    await tools.get_reserve_count_for_user("user-1")

    assert api.request.await_args_list[0].args == ("/metrics/counts/reserve-count-for-user",)
    assert api.request.await_args_list[0].kwargs == {"query": {"userId": None}}
    assert api.request.await_args_list[1].kwargs == {"query": {"userId": "user-1"}}


@pytest.mark.asyncio
async def test_dock_dwell_time_passes_filters_as_query(tools, api):
    await tools.get_dock_dwell_time(fromDate="2026-01-01", warehouseId="wh-1")

    api.request.assert_awaited_once_with(
        "/metrics/dock/dwell-time",
        query={"fromDate": "2026-01-01", "toDate": None, "warehouseId": "wh-1", "dockId": None},
    )


@pytest.mark.asyncio
async def test_list_appointment_metrics_posts_filter(tools, api):
    date_field = {"field": "start", "from": "2026-01-01", "to": "2026-01-31"}

    await tools.list_appointment_metrics(
        dockIds=["d-1"],
        dateField=date_field,
        allCarriers=False,
        skipCustomFields=True,
    )

    api.request.assert_awaited_once_with(
        "/metrics-v2/appointments",
        method="POST",
        body={
            "dockIds": ["d-1"],
            "dateField": date_field,
            "allCarriers": False,
            "skipCustomFields": True,
        },
    )


@pytest.mark.asyncio
async def test_export_appointment_metrics_excel_sends_cc_query_and_filter_body(tools, api):
    await tools.export_appointment_metrics_excel(
        ["ops@example.com", "lead@example.com"],
        carrierIds=["c-1"],
        exportFields=["refNumber", "status"],
    )

    api.request.assert_awaited_once_with(
        "/metrics/appointments/excel",
        method="POST",
        query={"emailCCs": ["ops@example.com", "lead@example.com"]},
        body={"carrierIds": ["c-1"], "exportFields": ["refNumber", "status"]},
    )


@pytest.mark.asyncio
async def test_warehouse_capacity_usage(tools, api):
    await tools.get_warehouse_capacity_usage(["d-1", "d-2"])
    await tools.get_warehouse_capacity_usage()

    assert api.request.await_args_list[0].args == ("/metrics/warehouse/capacity-usage",)
    assert api.request.await_args_list[0].kwargs == {"method": "POST", "body": {"dockIds": ["d-1", "d-2"]}}
    assert api.request.await_args_list[1].kwargs == {"method": "POST", "body": {}}


@pytest.mark.asyncio
async def test_metrics_post_sends_empty_body(tools, api):
    await tools.metrics_post("get_warehouse_insights", "/metrics/warehouse")

    api.request.assert_awaited_once_with("/metrics/warehouse", method="POST", body={})


# ============================================================================
# Error handling
# ============================================================================

@pytest.mark.asyncio
async def test_api_errors_become_text(tools, api):
    api.request.side_effect = APIError(404, "Warehouse not found")

    result = await tools.get_warehouse("missing")

    assert result.startswith("**Not Found**: API error 404: Warehouse not found")


@pytest.mark.asyncio
async def test_delete_appointment_failure_becomes_text(tools, api):
    api.request.side_effect = APIError(409, "Appointment already started")

    result = await tools.delete_appointment("appt-1")

    assert result == "**API Error**: API error 409: Appointment already started"


def test_handle_error_variants():
    assert handle_error(AuthenticationError("No credentials available for login")).startswith(
        "**Authentication Error**: No credentials available for login"
    )
    assert handle_error(RuntimeError("boom")) == "**Unexpected Error**: RuntimeError: boom"


# ============================================================================
# Registration
# ============================================================================

@pytest.mark.asyncio
async def test_register_tools_exposes_every_tool(api):
    mcp = FastMCP("opendock-test")

    register_tools(mcp, api)

    names = {tool.name for tool in await mcp.list_tools()}
    expected = {
        "get_profile",
        "list_warehouses",
        "get_warehouse",
        "get_warehouse_hours",
        "list_docks",
        "get_dock",
        "list_load_types",
        "get_load_type",
        "get_load_type_availability",
        "list_appointments",
        "search_appointments",
        "get_appointment",
        "create_appointment",
        "update_appointment",
        "delete_appointment",
        "list_carriers",
        "get_carrier",
        "list_companies",
        "get_company",
        "create_company",
        "update_company",
        "get_org",
        "update_org",
        "update_favorite_carriers",
        "get_audit_log",
        "get_settings_metadata",
        "get_setting_metadata",
        "validate_settings_metadata",
        "get_appointment_count_for_carrier",
        "get_appointment_count_for_docks",
        "get_reserve_count_for_user",
        "get_dock_dwell_time",
        "list_appointment_metrics",
        "export_appointment_metrics_excel",
        "get_warehouse_capacity_usage",
    }
    expected |= {name for name, _, _ in METRICS_GET_TOOLS}
    expected |= {name for name, _, _ in METRICS_POST_TOOLS}
    assert names == expected


@pytest.mark.asyncio
async def test_registered_destructive_tool_is_annotated(api):
    mcp = FastMCP("opendock-test")
    register_tools(mcp, api)

    tools = {tool.name: tool for tool in await mcp.list_tools()}

    assert tools["delete_appointment"].annotations.destructiveHint is True
    assert tools["list_warehouses"].annotations.readOnlyHint is True
    assert tools["export_appointment_metrics_excel"].annotations.readOnlyHint is True
