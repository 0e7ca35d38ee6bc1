"""
Metrics Repository for the Analytics Gateway

This module runs the chatbot funnel and engagement queries against a tenant's own
PostgreSQL database. It is a thin data-access facade over the
TenantConnectionManager: every call re-executes against the live connection,
nothing is cached and nothing is retried.

Tables (owned by the chatbot service, read-only here):
    - "UserEvents": one row per session with funnel milestone timestamps
    - "Leads": captured contact details and their Salesforce sync state
    - "AgentConnections": human hand-off sessions
    - "ChatLogs": individual chat messages
    - "LinksClicked": links opened from the chat widget

Time Zones:
    Calendar days and hours are computed in the tenant's configured time zone.
    Days without rows are absent from per-day results; they are not zero-filled.

Error Handling:
    Failures while executing a query raise QueryError carrying the tenant id and
    the operation name. TenantConnectionError from establishing the connection
    propagates unchanged.

Example:
    ```python
    repo = MetricsRepository(connection_manager, registry)
    leads = await repo.get_lead_stats("maple", days=14)
    overview = await repo.get_dashboard_overview("maple")
    ```
"""

import asyncio
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from common.database import TenantConnectionManager
from common.exceptions import QueryError
from common.tenants import TenantRegistry

from .base import DEFAULT_DAYS, DEFAULT_HOURLY_DAYS, normalize_rows

FUNNEL_QUERY = """
    SELECT
        COUNT(*) AS total_sessions,
        COUNT("pageLoaded") AS page_loads,
        COUNT("widgetOpened") AS widget_opens,
        COUNT("requestedHuman") AS human_requests,
        COUNT("pressedAccept") AS accept_presses,
        COUNT("pressedCallback") AS callback_presses,
        COUNT("pressedContinue") AS continue_presses,
        ROUND(((COUNT("widgetOpened")::float / NULLIF(COUNT("pageLoaded"), 0)) * 100)::numeric, 2)
            AS page_to_widget_rate,
        ROUND(((COUNT("requestedHuman")::float / NULLIF(COUNT("widgetOpened"), 0)) * 100)::numeric, 2)
            AS widget_to_human_rate,
        ROUND(((COUNT("pressedAccept")::float / NULLIF(COUNT("requestedHuman"), 0)) * 100)::numeric, 2)
            AS human_to_accept_rate,
        ROUND(((COUNT("pressedCallback")::float / NULLIF(COUNT("requestedHuman"), 0)) * 100)::numeric, 2)
            AS human_to_callback_rate,
        ROUND((((COUNT("pressedAccept") + COUNT("pressedCallback"))::float
            / NULLIF(COUNT("pageLoaded"), 0)) * 100)::numeric, 2) AS overall_conversion_rate
    FROM "UserEvents"
    WHERE "clientId" = :source_id {date_filter}
"""

FUNNEL_DATE_FILTER = """
        AND "createdAt" >= CAST(:start_at AS timestamp)
        AND "createdAt" < CAST(:end_before AS timestamp)
"""

DAILY_QUERY = """
    SELECT
        DATE("createdAt" AT TIME ZONE :timezone) AS date,
        COUNT(*) AS total_sessions,
        COUNT("pageLoaded") AS page_loads,
        COUNT("widgetOpened") AS widget_opens,
        COUNT("requestedHuman") AS human_requests,
        COUNT("pressedAccept") AS accept_presses,
        COUNT("pressedCallback") AS callback_presses,
        COUNT("pressedContinue") AS continue_presses,
        ROUND(((COUNT("widgetOpened")::float / NULLIF(COUNT("pageLoaded"), 0)) * 100)::numeric, 2)
            AS daily_page_to_widget_rate,
        ROUND((((COUNT("pressedAccept") + COUNT("pressedCallback"))::float
            / NULLIF(COUNT("requestedHuman"), 0)) * 100)::numeric, 2) AS daily_handoff_success_rate
    FROM "UserEvents"
    WHERE "clientId" = :source_id
        AND "createdAt" >= CURRENT_DATE - make_interval(days => :days)
    GROUP BY 1
    ORDER BY 1 DESC
"""

HOURLY_QUERY = """
    SELECT
        EXTRACT(hour FROM "createdAt" AT TIME ZONE :timezone)::int AS hour,
        COUNT("widgetOpened") AS widget_opens,
        COUNT("requestedHuman") AS human_requests,
        COUNT("pressedAccept") AS accept_presses,
        COUNT("pressedCallback") AS callback_presses,
        ROUND((AVG(CASE WHEN "widgetOpened" IS NOT NULL THEN 1 ELSE 0 END) * 100)::numeric, 2)
            AS avg_engagement_rate
    FROM "UserEvents"
    WHERE "clientId" = :source_id
        AND "createdAt" >= CURRENT_DATE - make_interval(days => :days)
    GROUP BY 1
    ORDER BY 1
"""

LEADS_QUERY = """
    SELECT
        DATE("capturedAt" AT TIME ZONE :timezone) AS date,
        COUNT(*) AS total_leads,
        COUNT(CASE WHEN source = 'chatbot' THEN 1 END) AS chatbot_leads,
        COUNT(CASE WHEN source = 'callback' THEN 1 END) AS callback_leads,
        COUNT(CASE WHEN status = 'new' THEN 1 END) AS new_leads,
        COUNT(CASE WHEN status = 'contacted' THEN 1 END) AS contacted_leads,
        COUNT(CASE WHEN "salesforceSynced" = true THEN 1 END) AS synced_to_salesforce,
        COUNT(CASE WHEN "salesforceSynced" = false THEN 1 END) AS pending_sync,
        ROUND((AVG(CASE WHEN "firstName" IS NOT NULL AND "lastName" IS NOT NULL
            THEN 1 ELSE 0 END) * 100)::numeric, 2) AS complete_name_percentage,
        ROUND(((COUNT(CASE WHEN "salesforceSynced" = true THEN 1 END)::float
            / NULLIF(COUNT(*), 0)) * 100)::numeric, 2) AS sync_success_rate
    FROM "Leads"
    WHERE "clientId" = :source_id
        AND "capturedAt" >= CURRENT_DATE - make_interval(days => :days)
    GROUP BY 1
    ORDER BY 1 DESC
"""

AGENTS_QUERY = """
    SELECT
        DATE("connectedAt" AT TIME ZONE :timezone) AS date,
        "agentName" AS agent_name,
        COUNT(*) AS total_connections,
        COUNT(CASE WHEN status = 'connected' THEN 1 END) AS active_connections,
        COUNT(CASE WHEN status = 'disconnected' THEN 1 END) AS completed_connections,
        COUNT(CASE WHEN status = 'timeout' THEN 1 END) AS timed_out_connections,
        COUNT(CASE WHEN "disconnectionReason" = 'agent_ended' THEN 1 END) AS agent_ended,
        COUNT(CASE WHEN "disconnectionReason" = 'user_left' THEN 1 END) AS user_left,
        COUNT(CASE WHEN "disconnectionReason" = 'timeout' THEN 1 END) AS timeout_disconnections,
        ROUND(AVG("waitingDuration")::numeric, 2) AS avg_waiting_seconds,
        ROUND(AVG("sessionDuration")::numeric, 2) AS avg_session_seconds,
        ROUND(MAX("waitingDuration")::numeric, 2) AS max_waiting_seconds,
        ROUND(MAX("sessionDuration")::numeric, 2) AS max_session_seconds
    FROM "AgentConnections"
    WHERE "clientId" = :source_id
        AND "connectedAt" >= CURRENT_DATE - make_interval(days => :days)
    GROUP BY 1, 2
    ORDER BY 1 DESC, total_connections DESC
"""

CONVERSATIONS_QUERY = """
    SELECT
        DATE("timestamp" AT TIME ZONE :timezone) AS date,
        COUNT(*) AS total_messages,
        COUNT(CASE WHEN "messageType" = 'user' THEN 1 END) AS user_messages,
        COUNT(CASE WHEN "messageType" = 'bot' THEN 1 END) AS bot_messages,
        COUNT(CASE WHEN "messageType" = 'human' THEN 1 END) AS human_messages,
        COUNT(CASE WHEN "messageType" = 'system' THEN 1 END) AS system_messages,
        COUNT(DISTINCT "sessionId") AS unique_sessions,
        ROUND(AVG("convoId")::numeric, 2) AS avg_messages_per_session,
        MAX("convoId") AS longest_conversation,
        COUNT(CASE WHEN "salesforceSynced" = true THEN 1 END) AS synced_messages
    FROM "ChatLogs"
    WHERE "clientId" = :source_id
        AND "timestamp" >= CURRENT_DATE - make_interval(days => :days)
    GROUP BY 1
    ORDER BY 1 DESC
"""

LINKS_QUERY = """
    SELECT
        url,
        DATE("dateCreated" AT TIME ZONE :timezone) AS date,
        COUNT(*) AS click_count,
        COUNT(DISTINCT "sessionId") AS unique_sessions,
        ROUND(((COUNT(*)::float / NULLIF((
            SELECT COUNT(*) FROM "LinksClicked"
            WHERE "clientId" = :source_id
                AND "dateCreated" >= CURRENT_DATE - make_interval(days => :days)
        ), 0)) * 100)::numeric, 2) AS percentage_of_total_clicks
    FROM "LinksClicked"
    WHERE "clientId" = :source_id
        AND "dateCreated" >= CURRENT_DATE - make_interval(days => :days)
    GROUP BY 1, 2
    ORDER BY click_count DESC, 2 DESC
"""


class MetricsRepository:
    """
    Repository for chatbot analytics queries.

    Thread Safety:
        Stateless apart from its collaborators; safe to share across concurrent
        requests. Each query checks a connection out of the tenant's engine pool.
    """

    def __init__(self, connections: TenantConnectionManager, registry: TenantRegistry) -> None:
        self._connections = connections
        self._registry = registry

    async def _fetch(
        self, tenant_id: str, operation: str, statement: str, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        tenant = self._registry.lookup(tenant_id)
        params = {"source_id": tenant.source_id, "timezone": tenant.timezone, **params}
        try:
            rows = await self._connections.query(tenant_id, statement, params)
        except SQLAlchemyError as e:
            logger.error(f"Error getting {operation} for tenant {tenant_id}: {e}")
            raise QueryError(tenant_id, operation, e) from e
        return normalize_rows(rows)

    async def get_user_events_funnel(
        self,
        tenant_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[dict[str, Any]]:
        """
        Aggregate the engagement funnel (page load -> widget -> human -> outcome).

        Args:
            tenant_id: Registered tenant id.
            start_date: First day included. Applied only together with end_date.
            end_date: Last day included (the whole day counts).

        Returns:
            A single-row list with milestone counts and conversion rates (percent,
            2 decimals; None where the denominator is zero).
        """
        params: dict[str, Any] = {}
        date_filter = ""
        if start_date and end_date:
            date_filter = FUNNEL_DATE_FILTER
            params["start_at"] = datetime.combine(start_date, time.min)
            params["end_before"] = datetime.combine(end_date + timedelta(days=1), time.min)
        statement = FUNNEL_QUERY.format(date_filter=date_filter)
        return await self._fetch(tenant_id, "funnel", statement, params)

    async def get_daily_user_events(
        self, tenant_id: str, days: int = DEFAULT_DAYS
    ) -> list[dict[str, Any]]:
        """Per-day funnel counts for the trailing window, newest day first."""
        return await self._fetch(tenant_id, "daily", DAILY_QUERY, {"days": days})

    async def get_hourly_distribution(
        self, tenant_id: str, days: int = DEFAULT_HOURLY_DAYS
    ) -> list[dict[str, Any]]:
        """Activity by hour of day (0-23, tenant time zone); hours without data are absent."""
        return await self._fetch(tenant_id, "hourly", HOURLY_QUERY, {"days": days})

    async def get_lead_stats(self, tenant_id: str, days: int = DEFAULT_DAYS) -> list[dict[str, Any]]:
        """Lead capture and Salesforce sync statistics per day."""
        return await self._fetch(tenant_id, "leads", LEADS_QUERY, {"days": days})

    async def get_agent_connection_stats(
        self, tenant_id: str, days: int = DEFAULT_DAYS
    ) -> list[dict[str, Any]]:
        """Human hand-off statistics per day and agent, busiest agent first."""
        return await self._fetch(tenant_id, "agents", AGENTS_QUERY, {"days": days})

    async def get_conversation_stats(
        self, tenant_id: str, days: int = DEFAULT_DAYS
    ) -> list[dict[str, Any]]:
        return await self._fetch(tenant_id, "conversations", CONVERSATIONS_QUERY, {"days": days})

    async def get_link_click_stats(
        self, tenant_id: str, days: int = DEFAULT_DAYS
    ) -> list[dict[str, Any]]:
        return await self._fetch(tenant_id, "links", LINKS_QUERY, {"days": days})

    async def get_dashboard_overview(
        self, tenant_id: str, days: int = DEFAULT_DAYS
    ) -> dict[str, Any]:
        """
        Run the funnel, lead, agent, conversation and link queries concurrently.

        The join is fail-fast: the first branch to fail cancels the others and its
        error is raised; no partial overview is returned.

        Returns:
            Dictionary with userEventsFunnel, leadPerformance, agentPerformance,
            conversationInsights, contentEngagement, generatedAt and timezone.
        """
        tenant = self._registry.lookup(tenant_id)
        branches = {
            "userEventsFunnel": self.get_user_events_funnel(tenant_id),
            "leadPerformance": self.get_lead_stats(tenant_id, days),
            "agentPerformance": self.get_agent_connection_stats(tenant_id, days),
            "conversationInsights": self.get_conversation_stats(tenant_id, days),
            "contentEngagement": self.get_link_click_stats(tenant_id, days),
        }
        tasks = [asyncio.ensure_future(coro) for coro in branches.values()]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        overview: dict[str, Any] = dict(zip(branches, results))
        overview["generatedAt"] = datetime.now(timezone.utc).isoformat()
        overview["timezone"] = tenant.timezone
        return overview

    async def test_connection(self, tenant_id: str) -> None:
        """Establish (or reuse) the tenant connection, raising TenantConnectionError on failure."""
        await self._connections.acquire(tenant_id)
