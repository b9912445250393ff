"""
Notification Executor

Providers:
- email: one message per recipient through the EmailTransport
- slack: incoming-webhook POST
- webhook: arbitrary HTTP call, JSON payload by default
- pagerduty: Events API v2 "trigger" event, ``recipient`` is the routing key
- team_notification: email every member of a team (TeamDirectory)

Delivery failures fail the node. For email the node only fails when
every recipient failed; partial failures are reported per recipient.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..context import ExecutionContext
from ..exceptions import CollaboratorNotConfiguredError, NotificationError
from ..integrations.email import EmailTransport
from ..integrations.teams import TeamDirectory
from ..nodes import NodeData, NotificationData, WorkflowNode
from .base import NodeExecutor

logger = logging.getLogger(__name__)

DEFAULT_PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"
DEFAULT_TIMEOUT_SECONDS = 30


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class NotificationExecutor(NodeExecutor):
    """
    Args:
        email: transport for email and team notifications
        teams: team member lookup for team_notification
        http_transport: optional httpx transport (tests pass httpx.MockTransport)
        pagerduty_events_url: Events API endpoint
    """

    def __init__(
        self,
        email: Optional[EmailTransport] = None,
        teams: Optional[TeamDirectory] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        pagerduty_events_url: str = DEFAULT_PAGERDUTY_EVENTS_URL,
    ):
        self.email = email
        self.teams = teams
        self.http_transport = http_transport
        self.pagerduty_events_url = pagerduty_events_url

    async def _run(self, node: WorkflowNode, context: ExecutionContext, previous_outputs: Dict[str, Any]) -> Dict[str, Any]:
        data: NotificationData = self.load_data(node)

        if data.provider == "email":
            recipients = data.recipients or ([data.recipient] if data.recipient else [])
            return await self._send_emails(recipients, data)
        if data.provider == "slack":
            return await self._send_slack(data, context)
        if data.provider == "webhook":
            return await self._send_webhook(data, context, previous_outputs)
        if data.provider == "pagerduty":
            return await self._send_pagerduty(data, context)
        if data.provider == "team_notification":
            return await self._send_team_notification(data, context)

        raise NotificationError(f"Unknown notification provider: {data.provider}", data.provider)

    def _check(self, raw: Dict[str, Any], data: Optional[NodeData]) -> List[str]:
        provider = raw.get("provider")
        if not provider:
            return ["Notification provider is required"]

        errors: List[str] = []
        if provider == "email":
            if not raw.get("recipients") and not raw.get("recipient"):
                errors.append("Email recipients are required")
            if not raw.get("subject"):
                errors.append("Email subject is required")
        elif provider == "slack":
            if not raw.get("channel"):
                errors.append("Slack channel is required")
        elif provider == "webhook":
            if not raw.get("url") and not raw.get("webhook"):
                errors.append("Webhook URL is required")
        elif provider == "pagerduty":
            if not raw.get("recipient"):
                errors.append("PagerDuty recipient is required")
        elif provider == "team_notification":
            if not raw.get("teamId"):
                errors.append("Team ID is required for team notifications")
        return errors

    async def _post(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS, transport=self.http_transport) as client:
            return await client.request(method, url, **kwargs)

    # ========================================================================
    # EMAIL
    # ========================================================================

    async def _send_emails(self, recipients: List[str], data: NotificationData, provider: str = "email") -> Dict[str, Any]:
        if self.email is None:
            raise CollaboratorNotConfiguredError("Email service")
        if not recipients:
            raise NotificationError("Email recipients are required", provider)

        subject = data.subject or "Workflow Notification"
        message = data.message or data.template or "Workflow notification"

        results = []
        for recipient in recipients:
            result = await self.email.send_email(recipient, subject, message)
            results.append({
                "recipient": recipient,
                "success": result.success,
                "messageId": result.message_id,
                "error": result.error,
            })

        if not any(item["success"] for item in results):
            errors = "; ".join(f"{item['recipient']}: {item['error']}" for item in results)
            raise NotificationError(f"Email delivery failed for all recipients: {errors}", provider)

        return {
            "provider": provider,
            "recipients": recipients,
            "subject": subject,
            "results": results,
            "timestamp": _now(),
        }

    async def _send_team_notification(self, data: NotificationData, context: ExecutionContext) -> Dict[str, Any]:
        team_id = data.team_id or context.team_id
        if not team_id:
            raise NotificationError("Team ID is required for team notifications", data.provider)
        if self.teams is None:
            raise CollaboratorNotConfiguredError("Team directory")

        emails = [email for email in await self.teams.get_member_emails(team_id) if email]
        if not emails:
            raise NotificationError(f"No valid email addresses found for team members in team: {team_id}", data.provider)

        result = await self._send_emails(emails, data, provider="team_notification")
        result["teamId"] = team_id
        return result

    # ========================================================================
    # HTTP PROVIDERS
    # ========================================================================

    async def _send_slack(self, data: NotificationData, context: ExecutionContext) -> Dict[str, Any]:
        webhook_url = data.url or data.webhook
        if not webhook_url:
            raise NotificationError("Slack webhook URL is required", data.provider)

        message = data.message or "Workflow notification"
        payload = {
            "channel": data.channel,
            "text": message,
            "attachments": [{
                "color": "#36a64f",
                "fields": [
                    {"title": "Workflow", "value": context.workflow_id, "short": True},
                    {"title": "Execution", "value": context.execution_id, "short": True},
                ],
            }],
        }

        try:
            response = await self._post("POST", webhook_url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationError(f"Slack webhook failed: {e}", data.provider) from e

        if not response.is_success:
            raise NotificationError(
                f"Slack webhook failed: {response.status_code} {response.reason_phrase}", data.provider
            )

        return {
            "provider": "slack",
            "webhookUrl": webhook_url,
            "channel": data.channel,
            "message": message,
            "sent": True,
            "timestamp": _now(),
        }

    async def _send_webhook(
        self,
        data: NotificationData,
        context: ExecutionContext,
        previous_outputs: Dict[str, Any],
    ) -> Dict[str, Any]:
        url = data.url or data.webhook
        if not url:
            raise NotificationError("Webhook URL is required", data.provider)

        body = data.body
        if body is None:
            body = {
                "workflowId": context.workflow_id,
                "executionId": context.execution_id,
                "message": data.message,
                "previousOutput": previous_outputs,
                "timestamp": _now(),
            }

        headers = {"Content-Type": "application/json", **data.headers}
        request_kwargs: Dict[str, Any] = {"headers": headers}
        if isinstance(body, (str, bytes)):
            request_kwargs["content"] = body
        else:
            request_kwargs["json"] = body

        try:
            response = await self._post(data.method.upper(), url, **request_kwargs)
        except httpx.HTTPError as e:
            raise NotificationError(f"Webhook failed: {e}", data.provider) from e

        if not response.is_success:
            raise NotificationError(f"Webhook failed: {response.status_code} {response.reason_phrase}", data.provider)

        return {
            "provider": "webhook",
            "url": url,
            "method": data.method.upper(),
            "status": response.status_code,
            "timestamp": _now(),
        }

    async def _send_pagerduty(self, data: NotificationData, context: ExecutionContext) -> Dict[str, Any]:
        if not data.recipient:
            raise NotificationError("PagerDuty recipient is required", data.provider)

        summary = data.message or f"Workflow {context.workflow_id} notification"
        event = {
            "routing_key": data.recipient,
            "event_action": "trigger",
            "dedup_key": f"{context.execution_id}",
            "payload": {
                "summary": summary,
                "source": "migraflow",
                "severity": data.severity,
                "custom_details": {
                    "workflowId": context.workflow_id,
                    "executionId": context.execution_id,
                },
            },
        }

        try:
            response = await self._post("POST", self.pagerduty_events_url, json=event)
        except httpx.HTTPError as e:
            raise NotificationError(f"PagerDuty request failed: {e}", data.provider) from e

        if not response.is_success:
            raise NotificationError(
                f"PagerDuty request failed: {response.status_code} {response.reason_phrase}", data.provider
            )

        return {
            "provider": "pagerduty",
            "recipient": data.recipient,
            "message": summary,
            "sent": True,
            "timestamp": _now(),
        }
