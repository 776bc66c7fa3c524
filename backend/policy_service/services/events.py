"""Fire-and-forget policy event notifications

Events are handed to a thread pool and the caller gets the ``Future`` back
without waiting on it. Delivery failures are logged and counted by a
done-callback; they never reach the lifecycle operation that produced the
event.

Backends (``EVENTS_BACKEND``):
  - ``webhook``     -- POST the JSON event to ``WEBHOOK_URL``; when
                       ``WEBHOOK_SECRET`` is set the body is signed in
                       ``X-Policy-Signature: sha256=<hex>``.
  - ``eventbridge`` -- ``PutEvents`` onto ``EVENT_BUS_NAME`` via boto3.
"""
import hashlib
import hmac
import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from functools import partial
from typing import Any, Dict, Optional

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from policy_service.core.errors import NotificationError
from policy_service.core.resolver import count_principals
from policy_service.middleware.monitoring import record_event_delivery
from policy_service.schemas.policy import PolicyDocument, PolicyStatus
from policy_service.utils.logger import logger

SERVICE_NAME = "policy-service"

POLICY_CREATED = "POLICY_CREATED"
POLICY_UPDATED = "POLICY_UPDATED"
POLICY_DELETED = "POLICY_DELETED"

DETAIL_TYPES = {
    POLICY_CREATED: "Policy Created",
    POLICY_UPDATED: "Policy Updated",
    POLICY_DELETED: "Policy Deleted",
}


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


def _policy_summary(document: PolicyDocument) -> Dict[str, Any]:
    policy = document.policy
    return {
        "policyId": policy.policy_id,
        "tenantId": policy.tenant_id,
        "version": policy.version,
        "location": policy.location,
        "status": policy.status.value,
        **count_principals(policy),
    }


def build_policy_created_event(document: PolicyDocument) -> Dict[str, Any]:
    return {
        "eventType": POLICY_CREATED,
        **_policy_summary(document),
        "timestamp": _timestamp(),
        "metadata": {"service": SERVICE_NAME, "action": "create"},
    }


def build_policy_updated_event(
    policy_id: str, document: PolicyDocument, changes: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    return {
        "eventType": POLICY_UPDATED,
        **_policy_summary(document),
        "policyId": policy_id,
        "changes": changes or None,
        "timestamp": _timestamp(),
        "metadata": {"service": SERVICE_NAME, "action": "update"},
    }


def build_policy_deleted_event(policy_id: str, tenant_id: str) -> Dict[str, Any]:
    return {
        "eventType": POLICY_DELETED,
        "policyId": policy_id,
        "tenantId": tenant_id,
        "status": PolicyStatus.DELETED.value,
        "timestamp": _timestamp(),
        "metadata": {"service": SERVICE_NAME, "action": "delete"},
    }


class EventPublisher:
    """Publishes policy lifecycle events in the background"""

    def __init__(
        self,
        enabled: bool = False,
        backend: str = "webhook",
        webhook_url: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        event_bus_name: str = "default",
        event_source: str = SERVICE_NAME,
        region: str = "us-east-1",
        timeout: int = 5,
        max_workers: int = 4,
    ):
        self.enabled = enabled
        self.backend = backend
        self.webhook_url = webhook_url
        self.webhook_secret = webhook_secret
        self.event_bus_name = event_bus_name
        self.event_source = event_source
        self.region = region
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="policy-events")
        self._client = None
        self._client_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "EventPublisher":
        return cls(
            enabled=settings.EVENTS_ENABLED,
            backend=settings.EVENTS_BACKEND,
            webhook_url=settings.WEBHOOK_URL,
            webhook_secret=settings.WEBHOOK_SECRET,
            event_bus_name=settings.EVENT_BUS_NAME,
            event_source=settings.EVENT_SOURCE,
            region=settings.AWS_REGION,
            timeout=settings.EVENTS_TIMEOUT,
            max_workers=settings.EVENTS_MAX_WORKERS,
        )

    # ── Lifecycle events ──────────────────────────────────────────────────────

    def publish_policy_created(self, document: PolicyDocument) -> Optional[Future]:
        return self.publish(build_policy_created_event(document))

    def publish_policy_updated(
        self, policy_id: str, document: PolicyDocument, changes: Optional[Dict[str, Any]] = None
    ) -> Optional[Future]:
        return self.publish(build_policy_updated_event(policy_id, document, changes))

    def publish_policy_deleted(self, policy_id: str, tenant_id: str) -> Optional[Future]:
        return self.publish(build_policy_deleted_event(policy_id, tenant_id))

    # ── Dispatch ──────────────────────────────────────────────────────────────

    def publish(self, event: Dict[str, Any]) -> Optional[Future]:
        """Submit ``event`` for delivery and return immediately"""
        event_type = event["eventType"]
        log_extra = {"event": event_type, "policy_id": event.get("policyId")}

        if not self.enabled:
            logger.info(f"Events disabled - {DETAIL_TYPES[event_type]} event not published", extra=log_extra)
            record_event_delivery(event_type, "skipped")
            return None

        try:
            future = self._executor.submit(self._send, event)
        except RuntimeError as exc:
            # Executor already shut down
            logger.warning("Policy event dropped", extra={**log_extra, "error": str(exc)})
            record_event_delivery(event_type, "failed")
            return None

        future.add_done_callback(partial(self._on_delivered, event))
        return future

    def _on_delivered(self, event: Dict[str, Any], future: Future) -> None:
        event_type = event["eventType"]
        log_extra = {"event": event_type, "policy_id": event.get("policyId")}
        exc = future.exception()
        if exc is not None:
            logger.warning(
                f"Failed to publish {DETAIL_TYPES[event_type]} event",
                extra={**log_extra, "error": str(exc)},
            )
            record_event_delivery(event_type, "failed")
        else:
            logger.debug(f"Published {DETAIL_TYPES[event_type]} event", extra=log_extra)
            record_event_delivery(event_type, "delivered")

    def _send(self, event: Dict[str, Any]) -> None:
        if self.backend == "eventbridge":
            self._send_eventbridge(event)
        elif self.backend == "webhook":
            self._send_webhook(event)
        else:
            raise NotificationError(f"Unknown events backend: {self.backend}")

    def _send_webhook(self, event: Dict[str, Any]) -> None:
        if not self.webhook_url:
            raise NotificationError("WEBHOOK_URL is not configured")

        body = json.dumps(event, default=str).encode()
        headers = {"Content-Type": "application/json"}
        if self.webhook_secret:
            sig = hmac.new(self.webhook_secret.encode(), body, hashlib.sha256).hexdigest()
            headers["X-Policy-Signature"] = f"sha256={sig}"

        try:
            resp = requests.post(self.webhook_url, data=body, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise NotificationError(f"Webhook delivery failed: {exc}") from exc

    def _eventbridge_client(self):
        with self._client_lock:
            if self._client is None:
                self._client = boto3.client("events", region_name=self.region)
            return self._client

    def _send_eventbridge(self, event: Dict[str, Any]) -> None:
        entry = {
            "Source": self.event_source,
            "DetailType": DETAIL_TYPES[event["eventType"]],
            "Detail": json.dumps(event, default=str),
            "EventBusName": self.event_bus_name,
        }
        try:
            result = self._eventbridge_client().put_events(Entries=[entry])
        except (BotoCoreError, ClientError) as exc:
            raise NotificationError(f"EventBridge error: {exc}") from exc

        if result.get("FailedEntryCount"):
            entries = result.get("Entries") or [{}]
            raise NotificationError(entries[0].get("ErrorMessage", "EventBridge rejected the event"))

    # ── Introspection / shutdown ──────────────────────────────────────────────

    def get_config(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "backend": self.backend,
            "eventBusName": self.event_bus_name,
            "source": self.event_source,
            "region": self.region,
        }

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting events; with ``wait`` pending deliveries finish first"""
        self._executor.shutdown(wait=wait)
