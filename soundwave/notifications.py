"""Soundwave - Webhook notification dispatcher.

Best-effort status delivery. A notification is a single JSON POST; failures
(transport errors or non-2xx responses) are logged and swallowed, never
retried and never allowed to change a job's outcome.

Routing by payload status:
- processing -> progress_webhook_url
- completed  -> webhook_url (+ Slack)
- failed     -> error_webhook_url, falling back to webhook_url (+ Slack)

All endpoints for one checkpoint are sent concurrently; each result is
independent of the others.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import requests

from soundwave.errors import NotificationError
from soundwave.schemas import JobRequest

logger = logging.getLogger(__name__)

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

# Endpoint kinds in publish() results
KIND_WEBHOOK = "webhook"
KIND_SLACK = "slack"


# --- Payload Builders ---


def processing_payload(
    job_id: str,
    request: JobRequest,
    progress: int,
    stage: str | None = None,
    message: str | None = None,
    current_output: int | None = None,
) -> dict[str, Any]:
    """Build a progress checkpoint payload.

    Args:
        job_id: Queue job identifier.
        request: The job being processed.
        progress: Progress percentage at this checkpoint.
        stage: Machine-readable checkpoint name (e.g. "download_complete").
        message: Human-readable checkpoint description.
        current_output: 1-based ordinal of the output just completed.
    """
    payload: dict[str, Any] = {
        "job_id": job_id,
        "internal_id": request.internal_id,
        "status": STATUS_PROCESSING,
        "progress": progress,
    }
    if stage is not None:
        payload["stage"] = stage
    if message is not None:
        payload["message"] = message
    if current_output is not None:
        payload["current_output"] = current_output
    payload["metadata"] = request.metadata
    return payload


def completed_payload(
    job_id: str,
    request: JobRequest,
    outputs: list[dict[str, Any]],
    waveform: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "job_id": job_id,
        "internal_id": request.internal_id,
        "status": STATUS_COMPLETED,
        "outputs": outputs,
    }
    if waveform is not None:
        payload["waveform"] = waveform
    payload["metadata"] = request.metadata
    return payload


def failed_payload(job_id: str, request: JobRequest, error: str) -> dict[str, Any]:
    return {
        "job_id": job_id,
        "internal_id": request.internal_id,
        "status": STATUS_FAILED,
        "error": error,
        "metadata": request.metadata,
    }


def slack_message(payload: dict[str, Any]) -> str | None:
    """Human-readable Slack text for a completed or failed payload."""
    status = payload.get("status")
    if status == STATUS_COMPLETED:
        return (
            ":white_check_mark: Audio processing completed\n"
            f"Job ID: {payload['job_id']}\n"
            f"Internal ID: {payload.get('internal_id')}\n"
            f"Outputs: {len(payload.get('outputs', []))}"
        )
    if status == STATUS_FAILED:
        return (
            ":x: Audio processing failed\n"
            f"Job ID: {payload['job_id']}\n"
            f"Internal ID: {payload.get('internal_id')}\n"
            f"Error: {payload.get('error')}"
        )
    return None


# --- Dispatcher ---


class NotificationDispatcher:
    """Sends status payloads to webhook endpoints."""

    def __init__(
        self,
        timeout_seconds: float = 30,
        max_workers: int = 4,
        session: requests.Session | None = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_workers = max_workers
        self._http = session or requests

    def _post(self, endpoint: str, body: dict[str, Any]) -> None:
        try:
            response = self._http.post(
                endpoint,
                data=json.dumps(body, default=str),
                headers={"content-type": "application/json"},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            raise NotificationError(f"Webhook request to {endpoint} failed: {e}") from e
        if not response.ok:
            raise NotificationError(
                f"Webhook {endpoint} failed with status {response.status_code}"
            )

    def notify(self, endpoint: str, payload: dict[str, Any]) -> bool:
        """POST payload to endpoint.

        Returns:
            True if the endpoint answered 2xx. Never raises.
        """
        try:
            self._post(endpoint, payload)
        except NotificationError as e:
            logger.warning("Webhook notification failed: %s", e)
            return False
        return True

    def notify_slack(self, endpoint: str, message: str) -> bool:
        """Post a Slack incoming-webhook message. Never raises."""
        body = {
            "text": message,
            "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": message}}],
        }
        try:
            self._post(endpoint, body)
        except NotificationError as e:
            logger.warning("Slack notification failed: %s", e)
            return False
        return True

    def publish(
        self, request: JobRequest, payload: dict[str, Any]
    ) -> dict[tuple[str, str], bool]:
        """Route a payload to the request's endpoints by status.

        Args:
            request: Job whose endpoints receive the payload.
            payload: Built by one of the *_payload helpers.

        Returns:
            Mapping of (kind, endpoint URL) to delivery result, where kind is
            "webhook" or "slack". Empty if no endpoint applies.
        """
        sends = []
        status = payload.get("status")

        if status == STATUS_PROCESSING:
            if request.progress_webhook_url:
                sends.append((KIND_WEBHOOK, request.progress_webhook_url, self.notify, payload))
        elif status == STATUS_COMPLETED:
            if request.webhook_url:
                sends.append((KIND_WEBHOOK, request.webhook_url, self.notify, payload))
        elif status == STATUS_FAILED:
            endpoint = request.error_webhook_url or request.webhook_url
            if endpoint:
                sends.append((KIND_WEBHOOK, endpoint, self.notify, payload))
        else:
            logger.warning("Not publishing payload with unknown status=%r", status)

        if request.slack_webhook_url:
            text = slack_message(payload)
            if text is not None:
                sends.append((KIND_SLACK, request.slack_webhook_url, self.notify_slack, text))

        if not sends:
            return {}
        if len(sends) == 1:
            kind, endpoint, send, body = sends[0]
            return {(kind, endpoint): send(endpoint, body)}

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(sends))) as pool:
            futures = [
                ((kind, endpoint), pool.submit(send, endpoint, body))
                for kind, endpoint, send, body in sends
            ]
            return {key: future.result() for key, future in futures}


__all__ = [
    "NotificationDispatcher",
    "processing_payload",
    "completed_payload",
    "failed_payload",
    "slack_message",
]
