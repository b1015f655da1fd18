"""
Host Bridge - Replaying Switches on the Live Document

The switcher computes reference rewrites against a snapshot. This module
turns each recorded `ReferenceChange` into a plugin tool call, sends it over
the bridge socket, and matches the plugin's `tool_response` frames back to
the waiting caller. The user-facing report goes out the same way as a
`show_notification` call.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from document_model import ReferenceChange, StyleKind

logger = logging.getLogger(__name__)

COMMAND_APPLY_SHARED_STYLE = "apply_shared_style"
COMMAND_SWAP_SYMBOL = "swap_symbol"
COMMAND_SHOW_NOTIFICATION = "show_notification"


class HostAPIError(Exception):
    """
    Failure reported by (or on behalf of) the host environment.

    Expected payload shape: { code: str, message: str, details?: dict }.
    Anything else is wrapped as `unknown_plugin_error`.
    """

    def __init__(self, payload: Any, command: Optional[str] = None):
        if not isinstance(payload, dict):
            payload = {"code": "unknown_plugin_error", "message": str(payload), "details": {}}
        self.code: str = str(payload.get("code", "unknown_plugin_error"))
        self.message: str = str(payload.get("message", ""))
        self.details: Dict[str, Any] = payload.get("details") or {}
        self.payload = payload
        self.command = command
        super().__init__(self.message or self.code)


def _error_payload(value: Any) -> Dict[str, Any]:
    # `error` arrives either as an object or as JSON text
    if isinstance(value, dict):
        return value
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        parsed = None
    if isinstance(parsed, dict):
        return parsed
    return {"code": "unknown_plugin_error", "message": str(value)}


class ToolResponse(BaseModel):
    """A `tool_response` frame sent back by the plugin."""
    model_config = ConfigDict(extra="ignore")

    id: str
    result: Any = None
    error: Any = None
    error_structured: Optional[Dict[str, Any]] = None

    def failure(self, command: Optional[str] = None) -> Optional[HostAPIError]:
        """The error carried by this frame, or None if the call succeeded."""
        if self.error_structured is not None:
            return HostAPIError(self.error_structured, command=command)
        if self.error is not None:
            return HostAPIError(_error_payload(self.error), command=command)
        if isinstance(self.result, dict) and self.result.get("success") is False:
            return HostAPIError({
                "code": "plugin_reported_failure",
                "message": str(self.result.get("message") or "Tool reported failure"),
                "details": {"result": self.result},
            }, command=command)
        return None


@dataclass
class PendingCall:
    command: str
    future: asyncio.Future
    started: float


class HostCommunicator:
    """Request/response RPC over the bridge socket, one future per tool_call id."""

    def __init__(self, websocket, timeout: float = 30.0):
        self.websocket = websocket
        self.timeout = timeout
        self.pending_requests: Dict[str, PendingCall] = {}

    async def send_command(self, command: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send one tool_call and wait for the matching tool_response.

        Returns:
            The `result` field of the response ({} when absent).

        Raises:
            asyncio.TimeoutError: If no response arrives within `timeout` seconds.
            HostAPIError: If the plugin answers with an error.
        """
        if not self.websocket:
            raise RuntimeError("WebSocket connection not available")

        loop = asyncio.get_running_loop()
        request_id = uuid.uuid4().hex
        call = PendingCall(command=command, future=loop.create_future(), started=loop.time())
        self.pending_requests[request_id] = call
        frame = {"type": "tool_call", "id": request_id, "command": command, "params": params or {}}

        logger.info(f"🚀 tool_call {command} [{request_id}]")
        logger.debug(f"🚀 Tool call payload: {frame}")
        try:
            await self.websocket.send(json.dumps(frame))
            return await asyncio.wait_for(call.future, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"⏰ {command} [{request_id}] got no response within {self.timeout}s")
            raise asyncio.TimeoutError(f"Tool call '{command}' timed out after {self.timeout} seconds")
        finally:
            self.pending_requests.pop(request_id, None)

    def handle_tool_response(self, message: Dict[str, Any]) -> None:
        """Resolve the call waiting on this frame's id."""
        try:
            response = ToolResponse.model_validate(message)
        except ValidationError as e:
            request_id = message.get("id") if isinstance(message, dict) else None
            logger.warning(f"❌ Malformed tool_response {request_id or '(no id)'}: {e.error_count()} error(s)")
            call = self.pending_requests.pop(request_id, None) if isinstance(request_id, str) else None
            if call is not None and not call.future.done():
                call.future.set_exception(HostAPIError({
                    "code": "invalid_tool_response",
                    "message": "Plugin sent a malformed tool_response",
                    "details": {"errors": json.loads(e.json(include_url=False))},
                }, command=call.command))
            return

        call = self.pending_requests.pop(response.id, None)
        if call is None:
            logger.warning(f"❌ Received tool_response for unknown ID: {response.id}")
            return
        if call.future.done():
            logger.debug(f"⚠️ tool_response for {response.id} arrived after the call finished")
            return

        elapsed = call.future.get_loop().time() - call.started
        error = response.failure(call.command)
        if error is not None:
            logger.error(f"❌ {call.command} [{response.id}] failed after {elapsed:.3f}s: code={error.code}, message={error.message}")
            call.future.set_exception(error)
            return

        logger.info(f"✅ {call.command} [{response.id}] completed after {elapsed:.3f}s")
        call.future.set_result(response.result if response.result is not None else {})

    def cleanup_pending_requests(self) -> None:
        """Cancel every outstanding call; used when the plugin leaves or on shutdown."""
        for request_id, call in self.pending_requests.items():
            if not call.future.done():
                call.future.cancel()
                logger.info(f"Cancelled pending {call.command} [{request_id}]")
        self.pending_requests.clear()


class ReplayOutcome(BaseModel):
    node_id: str
    command: str
    ok: bool
    error: Optional[Dict[str, Any]] = None


def change_to_command(change: ReferenceChange) -> tuple[str, Dict[str, Any]]:
    """Translate a recorded rewrite into the plugin command that reproduces it."""
    if change.reference == "shared_style":
        style_type = "TEXT" if change.style_kind is StyleKind.TEXT else "LAYER"
        return COMMAND_APPLY_SHARED_STYLE, {
            "node_id": change.node_id,
            "style_id": change.to_id,
            "style_type": style_type,
            # Direct properties are reset to the new style
            "reset_overrides": True,
        }
    return COMMAND_SWAP_SYMBOL, {
        "node_id": change.node_id,
        "symbol_id": change.to_id,
        "overrides": change.overrides or {},
    }


async def replay_changes(communicator: HostCommunicator, changes: List[ReferenceChange]) -> List[ReplayOutcome]:
    """
    Push recorded rewrites to the live document, one RPC per change, in order.

    A failing change is logged and reported in its outcome; the remaining
    changes are still sent.
    """
    outcomes: List[ReplayOutcome] = []
    for change in changes:
        command, params = change_to_command(change)
        try:
            await communicator.send_command(command, params)
            outcomes.append(ReplayOutcome(node_id=change.node_id, command=command, ok=True))
        except HostAPIError as he:
            logger.error(f"❌ {command} failed for node {change.node_id} | code={he.code} | details={he.details}")
            outcomes.append(ReplayOutcome(node_id=change.node_id, command=command, ok=False, error=he.payload))
        except Exception as e:
            logger.error(f"❌ Communication/system error in {command} for node {change.node_id}: {e}")
            outcomes.append(ReplayOutcome(
                node_id=change.node_id,
                command=command,
                ok=False,
                error={"code": "communication_error", "message": str(e), "details": {"command": command}},
            ))
    return outcomes


async def deliver_report(communicator: Optional[HostCommunicator], message: str) -> None:
    """Fire-and-forget notification; delivery failures are logged and dropped."""
    if communicator is None:
        logger.warning(f"🔕 No communicator; report not delivered: {message}")
        return
    try:
        logger.info(f"🔔 show_notification: message='{message[:80]}'")
        await communicator.send_command(COMMAND_SHOW_NOTIFICATION, {"message": message})
    except Exception as e:
        logger.warning(f"⚠️ Failed to deliver report '{message}': {e}")
