"""
Mode Switcher Agent - Bridge Client

Joins a bridge channel next to the design-tool plugin and answers each
`switch_request` by running a mode command against the attached snapshot.
The reference rewrites it produces are replayed on the live document
through tool calls, then a `switch_result` goes back to the plugin.
"""

import json
import os
import sys
import signal
import logging
import asyncio
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

import websockets
from dotenv import load_dotenv
from websockets.exceptions import ConnectionClosed

# Load environment variables from .env file
load_dotenv()

from host_bridge import HostAPIError, HostCommunicator, deliver_report, replay_changes
from host_interface import SnapshotSession
from mode_commands import COMMANDS, ModeSwitcher
from name_codec import DEFAULT_SEPARATOR, NameCodec, parse_mode

logger = logging.getLogger(__name__)

MESSAGE_TYPE_JOIN = "join"
MESSAGE_TYPE_PING = "ping"
MESSAGE_TYPE_PONG = "pong"
MESSAGE_TYPE_SYSTEM = "system"
MESSAGE_TYPE_PROGRESS_UPDATE = "progress_update"
MESSAGE_TYPE_SWITCH_REQUEST = "switch_request"
MESSAGE_TYPE_SWITCH_RESULT = "switch_result"
MESSAGE_TYPE_TOOL_RESPONSE = "tool_response"
MESSAGE_TYPE_ERROR = "error"

AGENT_ROLE = "mode_switcher"

# Protocol-level pings sent by the websockets client
KEEPALIVE_INTERVAL = 30
KEEPALIVE_TIMEOUT = 10
MAX_RECONNECT_DELAY = 30


@dataclass
class SwitcherConfig:
    bridge_url: str = "ws://localhost:3055"
    channel: str = "mode-switcher-default"
    separator: str = DEFAULT_SEPARATOR
    rpc_timeout: float = 30.0
    log_level: str = "INFO"


def decode_frame(raw_message: Any) -> Optional[Dict[str, Any]]:
    """Parse one bridge frame; anything but a JSON object is logged and dropped."""
    if not raw_message:
        logger.warning("📡 Received empty WebSocket message")
        return None
    try:
        message = json.loads(raw_message)
    except (TypeError, ValueError) as e:
        logger.error(f"❌ Failed to decode message: {e}, Raw: {str(raw_message)[:200]}")
        return None
    if not isinstance(message, dict):
        logger.warning(f"📡 Ignoring non-object message: {str(raw_message)[:200]}")
        return None
    return message


class ModeSwitcherAgent:
    def __init__(self, config: SwitcherConfig):
        self.config = config
        self.codec = NameCodec(config.separator)
        self.websocket = None
        self.communicator: Optional[HostCommunicator] = None
        self.running = True
        self.reconnect_delay = 1
        self._background_tasks: set[asyncio.Task] = set()

    async def _send_json(self, payload: Dict[str, Any]) -> None:
        if not self.websocket:
            raise RuntimeError("WebSocket not connected")
        await self.websocket.send(json.dumps(payload))

    async def connect(self) -> bool:
        """Open the bridge socket, join the channel and announce the commands."""
        url, channel = self.config.bridge_url, self.config.channel
        logger.info(f"🌉 Connecting to bridge at {url} (channel: {channel})")
        try:
            # Snapshots of large pages exceed the default frame limit
            self.websocket = await websockets.connect(
                url,
                max_size=None,
                ping_interval=KEEPALIVE_INTERVAL,
                ping_timeout=KEEPALIVE_TIMEOUT,
            )
            await self._send_json({"type": MESSAGE_TYPE_JOIN, "role": AGENT_ROLE, "channel": channel})
            await self._send_json({"type": MESSAGE_TYPE_PING})
        except Exception as e:
            logger.error(f"Failed to connect: {e}")
            self.websocket = None
            return False

        self.communicator = HostCommunicator(self.websocket, timeout=self.config.rpc_timeout)
        logger.info(f"Joined '{channel}' as {AGENT_ROLE} (tool call timeout: {self.config.rpc_timeout}s)")
        await self._announce_commands()
        self.reconnect_delay = 1
        return True

    async def _announce_commands(self) -> None:
        try:
            await self._send_json({
                "type": MESSAGE_TYPE_PROGRESS_UPDATE,
                "message": {
                    "status": "commands_loaded",
                    "message": f"Loaded {len(COMMANDS)} commands",
                    "data": {"commands": sorted(COMMANDS), "separator": self.codec.separator},
                },
            })
        except Exception as e:
            logger.warning(f"Failed to send commands_loaded progress update: {e}")

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Route one decoded bridge frame by its `type`."""
        msg_type = message.get("type")
        logger.debug(f"🔍 Message received - Type: '{msg_type}', Keys: {list(message.keys())}")

        handlers = {
            MESSAGE_TYPE_SYSTEM: self._handle_system,
            MESSAGE_TYPE_PONG: self._handle_pong,
            MESSAGE_TYPE_PROGRESS_UPDATE: self._handle_progress_update,
            MESSAGE_TYPE_SWITCH_REQUEST: self._handle_switch_request,
            MESSAGE_TYPE_TOOL_RESPONSE: self._handle_tool_response,
            MESSAGE_TYPE_ERROR: self._handle_bridge_error,
        }

        handler = handlers.get(msg_type, self._handle_unknown)
        await handler(message)

    async def _handle_system(self, message: Dict[str, Any]) -> None:
        sys_msg = message.get('message')
        logger.info(f"🔧 System message: {sys_msg}")
        if isinstance(sys_msg, str) and 'disconnected' in sys_msg.lower() and 'plugin' in sys_msg.lower():
            await self.cancel_active_operations(reason="plugin_disconnected")

    async def _handle_pong(self, _: Dict[str, Any]) -> None:
        logger.info("🏓 Bridge answered ping")

    async def _handle_progress_update(self, message: Dict[str, Any]) -> None:
        logger.debug(f"📈 Progress update: {message.get('message') or {}}")

    async def _handle_switch_request(self, message: Dict[str, Any]) -> None:
        logger.info(f"🎛️ Received switch_request: id={message.get('id')} command={message.get('command')}")
        # Replay waits on tool_responses that only the listen loop can deliver
        task = asyncio.create_task(self.process_switch_request(message))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _handle_tool_response(self, message: Dict[str, Any]) -> None:
        if self.communicator:
            self.communicator.handle_tool_response(message)
        else:
            logger.warning("Received tool_response but communicator not initialized")

    async def _handle_bridge_error(self, message: Dict[str, Any]) -> None:
        logger.error(f"Bridge error: {message.get('message', 'Unknown error')}")

    async def _handle_unknown(self, message: Dict[str, Any]) -> None:
        logger.debug(f"Ignoring unknown message type: {message.get('type')}")

    async def process_switch_request(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Answer one switch_request; never raises.

        Rejected requests and unexpected failures are answered with an
        `error` payload instead of the tally.

        Returns:
            The switch_result payload that was sent back to the bridge.
        """
        request_id = message.get("id")
        command = message.get("command")
        try:
            response = await self._run_switch(message)
        except HostAPIError as he:
            logger.error(f"❌ Rejected switch_request {request_id} | code={he.code} | message={he.message}")
            response = {"type": MESSAGE_TYPE_SWITCH_RESULT, "id": request_id, "command": command, "error": he.payload}
        except Exception as e:
            logger.error(f"💥 switch_request {request_id} failed unexpectedly: {e}", exc_info=True)
            response = {
                "type": MESSAGE_TYPE_SWITCH_RESULT,
                "id": request_id,
                "command": command,
                "error": {"code": "internal_error", "message": str(e), "details": {}},
            }
        await self._send_result(response)
        return response

    async def _run_switch(self, message: Dict[str, Any]) -> Dict[str, Any]:
        command = message.get("command")
        if not isinstance(command, str) or command not in COMMANDS:
            raise HostAPIError({
                "code": "unknown_command",
                "message": f"Unknown command '{command}'",
                "details": {"supported": sorted(COMMANDS)},
            })
        needs_mode, runner = COMMANDS[command]
        args = []
        if needs_mode:
            try:
                args.append(parse_mode(message.get("mode")))
            except ValueError as e:
                raise HostAPIError({"code": "invalid_mode", "message": str(e), "details": {"mode": message.get("mode")}})

        session = SnapshotSession.from_payload(message.get("snapshot"))
        switcher = ModeSwitcher(session.selection, session.accessor, session.sink, self.codec)
        tally = runner(switcher, *args)
        changes = session.accessor.changes

        applied = []
        if changes and self.communicator:
            applied = await replay_changes(self.communicator, changes)
        elif changes:
            logger.warning(f"⚠️ {len(changes)} change(s) computed but no communicator to replay them")

        for report in session.sink.messages:
            await deliver_report(self.communicator, report)

        return {
            "type": MESSAGE_TYPE_SWITCH_RESULT,
            "id": message.get("id"),
            "command": command,
            "switched": tally.switched if tally else 0,
            "skipped": tally.skipped if tally else 0,
            "message": session.sink.last,
            "changes": [change.model_dump(mode="json") for change in changes],
            "applied": [outcome.model_dump(exclude_none=True) for outcome in applied],
        }

    async def _send_result(self, response: Dict[str, Any]) -> None:
        try:
            await self._send_json(response)
        except Exception as e:
            logger.error(f"❌ Failed to send switch_result {response.get('id')}: {e}")

    async def cancel_active_operations(self, reason: str = "") -> None:
        """Cancel all in-flight switch requests and pending tool calls."""
        if self._background_tasks:
            logger.info(f"🧹 Cancelling {len(self._background_tasks)} active request(s) ({reason})")
            for task in list(self._background_tasks):
                if not task.done():
                    task.cancel()
            await asyncio.sleep(0)
        if self.communicator:
            self.communicator.cleanup_pending_requests()

    async def listen(self) -> None:
        """Dispatch bridge frames until the socket closes."""
        logger.info("🎧 Listening for bridge messages")
        try:
            async for raw_message in self.websocket:
                message = decode_frame(raw_message)
                if message is None:
                    continue
                try:
                    await self.handle_message(message)
                except Exception as e:
                    logger.error(f"❌ Error handling '{message.get('type')}' message: {e}")
        except ConnectionClosed as e:
            logger.warning(f"📡 Bridge connection closed: {e}")

    async def _disconnect(self) -> None:
        await self.cancel_active_operations(reason="connection_closed")
        websocket, self.websocket = self.websocket, None
        if websocket is not None:
            await websocket.close()

    async def run_with_reconnect(self) -> None:
        """Stay connected until shutdown, backing off exponentially between attempts."""
        while self.running:
            if await self.connect():
                try:
                    await self.listen()
                finally:
                    await self._disconnect()
            if not self.running:
                break
            logger.info(f"Reconnecting in {self.reconnect_delay} seconds...")
            await asyncio.sleep(self.reconnect_delay)
            self.reconnect_delay = min(self.reconnect_delay * 2, MAX_RECONNECT_DELAY)

    def shutdown(self) -> None:
        """Stop reconnecting and abandon outstanding tool calls."""
        logger.info("Shutting down mode switcher")
        self.running = False
        if self.communicator:
            self.communicator.cleanup_pending_requests()


def get_config(argv: Optional[List[str]] = None) -> SwitcherConfig:
    """Get configuration from environment variables or CLI args"""
    config = SwitcherConfig(
        bridge_url=os.getenv("BRIDGE_URL", SwitcherConfig.bridge_url),
        channel=os.getenv("SWITCHER_CHANNEL") or SwitcherConfig.channel,
        separator=os.getenv("NAMING_SEPARATOR") or SwitcherConfig.separator,
        log_level=os.getenv("LOG_LEVEL", SwitcherConfig.log_level).upper(),
    )
    timeout = os.getenv("HOST_RPC_TIMEOUT")

    args = sys.argv[1:] if argv is None else argv
    for arg in args:
        if arg.startswith("--channel="):
            config.channel = arg.split("=", 1)[1]
        elif arg.startswith("--bridge-url="):
            config.bridge_url = arg.split("=", 1)[1]
        elif arg.startswith("--separator="):
            config.separator = arg.split("=", 1)[1]
        elif arg.startswith("--timeout="):
            timeout = arg.split("=", 1)[1]

    if timeout is not None:
        try:
            config.rpc_timeout = float(timeout)
        except ValueError:
            logger.warning(f"Ignoring invalid RPC timeout '{timeout}', using {config.rpc_timeout}s")

    if not config.separator:
        config.separator = DEFAULT_SEPARATOR
    return config


async def serve(agent: ModeSwitcherAgent) -> None:
    """Run the agent until SIGINT or SIGTERM."""
    loop = asyncio.get_running_loop()
    serving = asyncio.current_task()

    def stop() -> None:
        logger.info("Received shutdown signal")
        agent.shutdown()
        serving.cancel()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop)
    try:
        await agent.run_with_reconnect()
    except asyncio.CancelledError:
        logger.info("Switcher stopped")


def main():
    config = get_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='[%(asctime)s] [mode-switcher] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%S'
    )

    logger.info("Starting Light/Dark Mode Switcher")
    logger.info(f"Bridge URL: {config.bridge_url}")
    logger.info(f"Channel: {config.channel}")
    logger.info(f"Naming separator: '{config.separator}'")

    agent = ModeSwitcherAgent(config)
    try:
        asyncio.run(serve(agent))
    except KeyboardInterrupt:
        logger.info("Switcher interrupted")
    finally:
        agent.shutdown()


if __name__ == "__main__":
    main()
