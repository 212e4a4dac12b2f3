"""MCP Tools for OpenDock.

This module defines the tools that the agent can use to interact with
the OpenDock scheduling API. Each tool:
- Maps its arguments onto a single ApiClient request
- Drops arguments that were not provided
- Returns the decoded JSON response as text
- Turns failures into a readable error message instead of raising
"""
import json
from typing import Any, Awaitable, Optional
import logging

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from .api_client import ApiClient, APIError
from .token_manager import AuthenticationError

logger = logging.getLogger(__name__)


READ_ONLY = ToolAnnotations(
    readOnlyHint=True,
    destructiveHint=False,
    idempotentHint=True,
    openWorldHint=True,
)

WRITE = ToolAnnotations(
    readOnlyHint=False,
    destructiveHint=False,
    idempotentHint=False,
    openWorldHint=True,
)

DESTRUCTIVE = ToolAnnotations(
    readOnlyHint=False,
    destructiveHint=True,
    idempotentHint=True,
    openWorldHint=True,
)

# (tool name, description, path) for metrics endpoints without parameters
METRICS_GET_TOOLS = [
    ("get_appointment_volume_by_date", "Appointment volume by date", "/metrics/appointment-volume/date"),
    ("get_appointment_volume_by_carrier", "Appointment volume by carrier", "/metrics/appointment-volume/carrier"),
    ("get_appointment_volume_by_load_type", "Appointment volume by load type and week day", "/metrics/appointment-volume/load-type"),
    ("get_appointment_volume_by_time_of_day", "Appointment volume by time of day", "/metrics/appointment-volume/time-of-day"),
    ("get_appointment_volume_by_day_of_week", "Appointment duration average by dock and day of week", "/metrics/appointment-volume/day-of-week"),
    ("get_appointment_avg_duration_by_load_type", "Appointment duration average by load type", "/metrics/appointment-volume/average-duration-by-load-type"),
    ("get_appointment_avg_duration_by_status", "Appointment duration average by status", "/metrics/appointment-volume/status"),
    ("get_appointment_avg_duration_by_dock_and_status", "Appointment duration average by dock and status", "/metrics/appointment-volume/status-by-dock"),
    ("get_appointment_count_by_status_for_carrier", "Appointment count by status for current carrier", "/metrics/counts/appointment-count-for-carrier/status"),
    ("get_carrier_status_percentages", "Retrieve carrier insights data with each status percentage", "/metrics/carrier/status-percentages"),
]

METRICS_POST_TOOLS = [
    ("get_appointment_status_times", "The average time spent in each appointment status", "/metrics/appointments/status-times"),
    ("get_first_available_appointment", "Find the next available appointment time for each dock and load type, starting now", "/metrics/loadtype/first-avail-appt"),
    ("get_warehouse_insights", "Retrieve warehouse insights", "/metrics/warehouse"),
    ("export_yard_data_excel", "Retrieve a file link with the yard data list as XLSX", "/metrics/yard/excel"),
]


# ==============================================================================
# Response Formatting Helpers
# ==============================================================================

def format_json(data: Any) -> str:
    """Render an API response for the agent."""
    return json.dumps(data, indent=2)


def compact(**fields: Any) -> dict[str, Any]:
    """Keep only the fields that were provided."""
    return {key: value for key, value in fields.items() if value is not None}


def handle_error(e: Exception) -> str:
    """Format an error as a helpful message."""
    if isinstance(e, AuthenticationError):
        return f"**Authentication Error**: {e}\n\nCheck the OpenDock credentials the server was started with."
    elif isinstance(e, APIError):
        if e.status_code == 404:
            return f"**Not Found**: {e}\n\nPlease check that the resource ID is correct."
        return f"**API Error**: {e}"
    else:
        return f"**Unexpected Error**: {type(e).__name__}: {e}"


# ==============================================================================
# Tool Functions
# ==============================================================================

class OpendockTools:
    """Tool implementations bound to one ApiClient."""

    def __init__(self, api: ApiClient):
        self.api = api

    async def _run(self, tool_name: str, call: Awaitable[Any]) -> str:
        try:
            data = await call
        except Exception as e:
            logger.error(f"[Tools] {tool_name} failed: {e}")
            return handle_error(e)
        return format_json(data)

    # --- Profile ---------------------------------------------------------------

    async def get_profile(self) -> str:
        """Get the current authenticated user's profile."""
        return await self._run("get_profile", self.api.request("/auth/profile"))

    # --- Warehouses ------------------------------------------------------------

    async def list_warehouses(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        name: Optional[str] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
        zip: Optional[str] = None,
    ) -> str:
        """List warehouses with optional filters and pagination."""
        query = {"page": page, "limit": limit, "name": name, "city": city, "state": state, "zip": zip}
        return await self._run("list_warehouses", self.api.request("/warehouse", query=query))

    async def get_warehouse(self, id: str) -> str:
        """Get details for a specific warehouse."""
        return await self._run("get_warehouse", self.api.request(f"/warehouse/{id}"))

    async def get_warehouse_hours(
        self,
        id: str,
        startDate: Optional[str] = None,
        endDate: Optional[str] = None,
    ) -> str:
        """Get hours of operation for a warehouse's docks.

        Dates are YYYY-MM-DD; the body is omitted when neither is given.
        """
        body = compact(startDate=startDate, endDate=endDate) or None
        return await self._run(
            "get_warehouse_hours",
            self.api.request(f"/warehouse/{id}/get-hours-of-operation", method="POST", body=body),
        )

    # --- Docks -----------------------------------------------------------------

    async def list_docks(
        self,
        warehouseId: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> str:
        """List docks with optional filters."""
        query = {"warehouseId": warehouseId, "page": page, "limit": limit}
        return await self._run("list_docks", self.api.request("/dock", query=query))

    async def get_dock(self, id: str) -> str:
        """Get details for a specific dock."""
        return await self._run("get_dock", self.api.request(f"/dock/{id}"))

    # --- Load types ------------------------------------------------------------

    async def list_load_types(
        self,
        warehouseId: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> str:
        """List load types with optional filters."""
        query = {"warehouseId": warehouseId, "page": page, "limit": limit}
        return await self._run("list_load_types", self.api.request("/loadtype", query=query))

    async def get_load_type(self, id: str) -> str:
        """Get details for a specific load type."""
        return await self._run("get_load_type", self.api.request(f"/loadtype/{id}"))

    async def get_load_type_availability(self, id: str, startDate: str, endDate: str) -> str:
        """Get available appointment slots for a load type between two dates (YYYY-MM-DD)."""
        return await self._run(
            "get_load_type_availability",
            self.api.request(
                f"/loadtype/{id}/get-availability",
                method="POST",
                body={"startDate": startDate, "endDate": endDate},
            ),
        )

    # --- Appointments ----------------------------------------------------------

    async def list_appointments(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        warehouseId: Optional[str] = None,
        dockId: Optional[str] = None,
        status: Optional[str] = None,
        startDate: Optional[str] = None,
        endDate: Optional[str] = None,
        join: Optional[list[str]] = None,
    ) -> str:
        """List appointments with optional filters and pagination.

        ``join`` names relations to include, e.g. ["user||email,companyId"].
        """
        query = {
            "page": page,
            "limit": limit,
            "warehouseId": warehouseId,
            "dockId": dockId,
            "status": status,
            "startDate": startDate,
            "endDate": endDate,
            "join": join,
        }
        return await self._run("list_appointments", self.api.request("/appointment", query=query))

    async def search_appointments(
        self,
        carrierId: Optional[str] = None,
        referenceNumber: Optional[str] = None,
        status: Optional[str] = None,
        startDate: Optional[str] = None,
        endDate: Optional[str] = None,
        warehouseId: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> str:
        """Search appointments by carrier, reference number, status, or date range."""
        body = compact(
            carrierId=carrierId,
            referenceNumber=referenceNumber,
            status=status,
            startDate=startDate,
            endDate=endDate,
            warehouseId=warehouseId,
            page=page,
            limit=limit,
        )
        return await self._run(
            "search_appointments",
            self.api.request("/search/appointments", method="POST", body=body),
        )

    async def get_appointment(self, id: str) -> str:
        """Get details for a specific appointment."""
        return await self._run("get_appointment", self.api.request(f"/appointment/{id}"))

    async def create_appointment(
        self,
        warehouseId: str,
        dockId: str,
        loadTypeId: str,
        startTime: str,
        endTime: str,
        carrierId: Optional[str] = None,
        referenceNumber: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> str:
        """Schedule a new appointment. Times are ISO 8601 datetimes."""
        body = compact(
            warehouseId=warehouseId,
            dockId=dockId,
            loadTypeId=loadTypeId,
            startTime=startTime,
            endTime=endTime,
            carrierId=carrierId,
            referenceNumber=referenceNumber,
            notes=notes,
        )
        return await self._run(
            "create_appointment",
            self.api.request("/appointment", method="POST", body=body),
        )

    async def update_appointment(
        self,
        id: str,
        startTime: Optional[str] = None,
        endTime: Optional[str] = None,
        dockId: Optional[str] = None,
        loadTypeId: Optional[str] = None,
        carrierId: Optional[str] = None,
        referenceNumber: Optional[str] = None,
        notes: Optional[str] = None,
        status: Optional[str] = None,
    ) -> str:
        """Modify or reschedule an existing appointment."""
        body = compact(
            startTime=startTime,
            endTime=endTime,
            dockId=dockId,
            loadTypeId=loadTypeId,
            carrierId=carrierId,
            referenceNumber=referenceNumber,
            notes=notes,
            status=status,
        )
        return await self._run(
            "update_appointment",
            self.api.request(f"/appointment/{id}", method="PATCH", body=body),
        )

    async def delete_appointment(self, id: str) -> str:
        """Cancel/delete an appointment."""
        try:
            await self.api.request(f"/appointment/{id}", method="DELETE")
        except Exception as e:
            logger.error(f"[Tools] delete_appointment failed: {e}")
            return handle_error(e)
        return f"Appointment {id} deleted successfully."

    # --- Carriers and companies ------------------------------------------------

    async def list_carriers(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        name: Optional[str] = None,
    ) -> str:
        """List carriers with optional filters."""
        query = {"page": page, "limit": limit, "name": name}
        return await self._run("list_carriers", self.api.request("/carrier", query=query))

    async def get_carrier(self, id: str) -> str:
        """Get details for a specific carrier."""
        return await self._run("get_carrier", self.api.request(f"/carrier/{id}"))

    async def list_companies(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        s: Optional[str] = None,
        sort: Optional[list[str]] = None,
        join: Optional[list[str]] = None,
        cache: Optional[int] = None,
    ) -> str:
        """List carrier companies with optional filters and pagination.

        ``s`` is a search JSON such as '{"name":{"$contL":"acme"}}'; each
        ``sort`` entry is 'field,ASC' or 'field,DESC'; ``cache=0`` bypasses
        the server cache.
        """
        query = {"page": page, "limit": limit, "s": s, "sort": sort, "join": join, "cache": cache}
        return await self._run("list_companies", self.api.request("/company", query=query))

    async def get_company(self, id: str) -> str:
        """Get details for a specific carrier company."""
        return await self._run("get_company", self.api.request(f"/company/{id}"))

    async def create_company(
        self,
        name: Optional[str] = None,
        scac: Optional[str] = None,
        mc: Optional[str] = None,
        usdot: Optional[str] = None,
        type: Optional[str] = None,
    ) -> str:
        """Create a new carrier company.

        ``type`` is one of type_broker, type_carrier, type_carrier_broker,
        type_forwarder.
        """
        body = compact(name=name, scac=scac, mc=mc, usdot=usdot, type=type)
        return await self._run("create_company", self.api.request("/company", method="POST", body=body))

    async def update_company(
        self,
        id: str,
        name: Optional[str] = None,
        scac: Optional[str] = None,
        mc: Optional[str] = None,
        usdot: Optional[str] = None,
        type: Optional[str] = None,
    ) -> str:
        """Update a carrier company."""
        body = compact(name=name, scac=scac, mc=mc, usdot=usdot, type=type)
        return await self._run(
            "update_company",
            self.api.request(f"/company/{id}", method="PATCH", body=body),
        )

    # --- Organizations ---------------------------------------------------------

    async def get_org(self, id: str) -> str:
        """Get details for an organization."""
        return await self._run("get_org", self.api.request(f"/org/{id}"))

    async def update_org(
        self,
        id: str,
        name: Optional[str] = None,
        settings: Optional[dict[str, Any]] = None,
        favoriteCarrierIds: Optional[list[str]] = None,
    ) -> str:
        """Update an organization."""
        body = compact(name=name, settings=settings, favoriteCarrierIds=favoriteCarrierIds)
        return await self._run("update_org", self.api.request(f"/org/{id}", method="PATCH", body=body))

    async def update_favorite_carriers(self, orgId: str, carrierIds: list[str]) -> str:
        """Replace the list of favorite carriers for an organization."""
        return await self._run(
            "update_favorite_carriers",
            self.api.request(f"/org/{orgId}/favorite-carriers", method="PATCH", body=carrierIds),
        )

    # --- Audit log and settings metadata ---------------------------------------

    async def get_audit_log(self, objectId: str) -> str:
        """Get the audit log for an object (warehouse, dock, appointment, etc.)."""
        return await self._run("get_audit_log", self.api.request(f"/audit-log/{objectId}"))

    async def get_settings_metadata(self, entityType: str) -> str:
        """Get all settings metadata for an entity type (e.g. 'warehouse', 'dock')."""
        return await self._run(
            "get_settings_metadata",
            self.api.request(f"/settings-metadata/{entityType}"),
        )

    async def get_setting_metadata(self, entityType: str, settingKey: str) -> str:
        """Get one setting metadata entry by entity type and setting key."""
        return await self._run(
            "get_setting_metadata",
            self.api.request(f"/settings-metadata/{entityType}/{settingKey}"),
        )

    async def validate_settings_metadata(self, entityType: str) -> str:
        """Validate settings for an entity type."""
        return await self._run(
            "validate_settings_metadata",
            self.api.request(f"/settings-metadata/validate/{entityType}", method="POST"),
        )

    # --- Metrics ---------------------------------------------------------------

    async def metrics_get(self, tool_name: str, path: str) -> str:
        return await self._run(tool_name, self.api.request(path))

    async def metrics_post(self, tool_name: str, path: str) -> str:
        return await self._run(tool_name, self.api.request(path, method="POST", body={}))

    async def get_appointment_count_for_carrier(self, carrierId: str) -> str:
        """Appointment count per carrier."""
        return await self._run(
            "get_appointment_count_for_carrier",
            self.api.request("/metrics/counts/appointment-count-for-carrier", query={"carrierId": carrierId}),
        )

    async def get_appointment_count_for_docks(self, dockIds: list[str]) -> str:
        """Appointment count per dock."""
        return await self._run(
            "get_appointment_count_for_docks",
            self.api.request("/metrics/counts/appointment-count-for-docks", query={"dockIds": dockIds}),
        )

    async def get_reserve_count_for_user(self, userId: Optional[str] = None) -> str:
        """Reserve count for a user (the current user when omitted)."""
        return await self._run(
            "get_reserve_count_for_user",
            self.api.request("/metrics/counts/reserve-count-for-user", query={"userId": userId}),
        )

    async def get_dock_dwell_time(
        self,
        fromDate: Optional[str] = None,
        toDate: Optional[str] = None,
        warehouseId: Optional[str] = None,
        dockId: Optional[str] = None,
    ) -> str:
        """Average dwell time at docks, optionally narrowed by date range, warehouse or dock."""
        return await self._run(
            "get_dock_dwell_time",
            self.api.request(
                "/metrics/dock/dwell-time",
                query={"fromDate": fromDate, "toDate": toDate, "warehouseId": warehouseId, "dockId": dockId},
            ),
        )

    async def list_appointment_metrics(
        self,
        dockIds: Optional[list[str]] = None,
        loadTypeIds: Optional[list[str]] = None,
        carrierIds: Optional[list[str]] = None,
        tags: Optional[list[str]] = None,
        dateField: Optional[dict[str, Any]] = None,
        appointmentTypes: Optional[list[str]] = None,
        allCarriers: Optional[bool] = None,
        exportFields: Optional[list[str]] = None,
        skipCustomFields: Optional[bool] = None,
    ) -> str:
        """Appointment metrics matching a filter.

        Args:
            dateField: Date range filter, e.g. {"field": "start", "from": "...", "to": "..."}
        """
        body = compact(
            dockIds=dockIds,
            loadTypeIds=loadTypeIds,
            carrierIds=carrierIds,
            tags=tags,
            dateField=dateField,
            appointmentTypes=appointmentTypes,
            allCarriers=allCarriers,
            exportFields=exportFields,
            skipCustomFields=skipCustomFields,
        )
        return await self._run(
            "list_appointment_metrics",
            self.api.request("/metrics-v2/appointments", method="POST", body=body),
        )

    async def export_appointment_metrics_excel(
        self,
        emailCCs: list[str],
        dockIds: Optional[list[str]] = None,
        loadTypeIds: Optional[list[str]] = None,
        carrierIds: Optional[list[str]] = None,
        tags: Optional[list[str]] = None,
        dateField: Optional[dict[str, Any]] = None,
        appointmentTypes: Optional[list[str]] = None,
        allCarriers: Optional[bool] = None,
        exportFields: Optional[list[str]] = None,
        skipCustomFields: Optional[bool] = None,
    ) -> str:
        """Email an XLSX export of the filtered appointments to the given addresses."""
        body = compact(
            dockIds=dockIds,
            loadTypeIds=loadTypeIds,
            carrierIds=carrierIds,
            tags=tags,
            dateField=dateField,
            appointmentTypes=appointmentTypes,
            allCarriers=allCarriers,
            exportFields=exportFields,
            skipCustomFields=skipCustomFields,
        )
        return await self._run(
            "export_appointment_metrics_excel",
            self.api.request(
                "/metrics/appointments/excel",
                method="POST",
                query={"emailCCs": emailCCs},
                body=body,
            ),
        )

    async def get_warehouse_capacity_usage(self, dockIds: Optional[list[str]] = None) -> str:
        """Capacity usage of a warehouse, optionally limited to some docks."""
        return await self._run(
            "get_warehouse_capacity_usage",
            self.api.request(
                "/metrics/warehouse/capacity-usage",
                method="POST",
                body=compact(dockIds=dockIds),
            ),
        )


# ==============================================================================
# Registration
# ==============================================================================

READ_TOOLS = [
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
    "list_carriers",
    "get_carrier",
    "list_companies",
    "get_company",
    "get_org",
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
]

WRITE_TOOLS = [
    "create_appointment",
    "update_appointment",
    "create_company",
    "update_company",
    "update_org",
    "update_favorite_carriers",
]

DESTRUCTIVE_TOOLS = [
    "delete_appointment",
]


def _metrics_tool(tools: OpendockTools, name: str, path: str, post: bool):
    if post:
        async def tool() -> str:
            return await tools.metrics_post(name, path)
    else:
        async def tool() -> str:
            return await tools.metrics_get(name, path)
    tool.__name__ = name
    return tool


def register_tools(mcp: FastMCP, api: ApiClient) -> OpendockTools:
    """Register every OpenDock tool on an MCP server.

    Returns:
        The tool implementations, bound to ``api``
    """
    tools = OpendockTools(api)
    count = 0

    for names, annotations in (
        (READ_TOOLS, READ_ONLY),
        (WRITE_TOOLS, WRITE),
        (DESTRUCTIVE_TOOLS, DESTRUCTIVE),
    ):
        for name in names:
            mcp.add_tool(getattr(tools, name), name=name, annotations=annotations)
            count += 1

    for name, description, path in METRICS_GET_TOOLS:
        mcp.add_tool(
            _metrics_tool(tools, name, path, post=False),
            name=name,
            description=description,
            annotations=READ_ONLY,
        )
        count += 1

    for name, description, path in METRICS_POST_TOOLS:
        mcp.add_tool(
            _metrics_tool(tools, name, path, post=True),
            name=name,
            description=description,
            annotations=READ_ONLY,
        )
        count += 1

    logger.info(f"[Tools] Registered {count} tools")
    return tools
