"""
Peer Room Chat Client Example
Interactive client and scripted scenarios for manual testing against a running server
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

import websockets


class ChatClient:
    """WebSocket peer room client"""

    def __init__(self, token: str, server_url: str = "ws://localhost:8000/ws", label: str = "client"):
        self.token = token
        self.server_url = server_url
        self.label = label
        self.websocket = None
        self.current_room: Optional[str] = None
        self.running = False

    async def connect(self) -> bool:
        """Connect to the server; the token travels in the query string"""
        try:
            self.websocket = await websockets.connect(f"{self.server_url}?token={self.token}")
            print(f"[{self.label}] Connected to {self.server_url}")
            return True
        except Exception as e:
            print(f"[{self.label}] Connection refused: {e}")
            return False

    async def _send(self, payload: dict) -> bool:
        if not self.websocket:
            return False
        try:
            await self.websocket.send(json.dumps(payload))
            return True
        except websockets.exceptions.ConnectionClosed as e:
            print(f"[{self.label}] Send failed: {e}")
            return False

    async def join_room(self, slug: str, display_name: Optional[str] = None) -> bool:
        """Ask to join a room; the reply arrives as joinedRoom or error"""
        payload = {"type": "joinRoom", "slug": slug}
        if display_name:
            payload["displayName"] = display_name
        if await self._send(payload):
            self.current_room = slug
            return True
        return False

    async def leave_room(self, slug: str) -> bool:
        if await self._send({"type": "leaveRoom", "slug": slug}):
            if self.current_room == slug:
                self.current_room = None
            return True
        return False

    async def send_message(self, body: str, slug: Optional[str] = None) -> bool:
        """Send a message to a room (the current room by default)"""
        room = slug or self.current_room
        if not room:
            print(f"[{self.label}] Join a room first: /join <slug>")
            return False
        return await self._send({"type": "sendMessage", "slug": room, "body": body})

    async def listen_for_messages(self):
        """Print incoming events until stopped"""
        if not self.websocket:
            return

        while self.running:
            try:
                raw = await asyncio.wait_for(self.websocket.recv(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except websockets.exceptions.ConnectionClosed:
                print(f"[{self.label}] Connection closed by server")
                break

            data = json.loads(raw)
            event = data.get("type")

            if event == "receiveMessage":
                author = data.get("author", {}).get("displayName") or data.get("author", {}).get("id")
                marker = f" [flagged: {', '.join(data.get('flags', []))}]" if data.get("flagged") else ""
                print(f"[{self.label}] {data.get('createdAt')} {author}: {data.get('body')}{marker}")
            elif event == "joinedRoom":
                print(f"[{self.label}] Joined {data.get('roomTitle')} ({data.get('roomSlug')})")
            elif event == "userJoined":
                print(f"[{self.label}] {data.get('displayName') or data.get('userId')} joined {data.get('roomSlug')}")
            elif event == "userLeft":
                print(f"[{self.label}] {data.get('userId')} left {data.get('roomSlug')}")
            elif event == "messageFlagged":
                print(f"[{self.label}] MODERATION: message {data.get('messageId')} in {data.get('roomSlug')} "
                      f"flagged {data.get('flags')} (user {data.get('userId')})")
            elif event == "error":
                print(f"[{self.label}] Server error: {data.get('message')}")
            else:
                print(f"[{self.label}] Unknown event: {event}")

    async def disconnect(self):
        """Disconnect from server"""
        self.running = False
        if self.websocket:
            await self.websocket.close()
            print(f"[{self.label}] Disconnected")

    async def run_interactive(self, slug: Optional[str] = None):
        """Run interactive chat session"""
        if not await self.connect():
            return

        self.running = True
        listen_task = asyncio.create_task(self.listen_for_messages())

        if slug:
            await self.join_room(slug)

        print("Commands: /join <slug>, /leave <slug>, /quit, or just type your message")
        print("-" * 50)

        loop = asyncio.get_running_loop()
        try:
            while self.running:
                try:
                    user_input = (await loop.run_in_executor(None, input, f"{self.current_room or '-'}> ")).strip()
                except (KeyboardInterrupt, EOFError):
                    break

                if not user_input:
                    continue
                if user_input == "/quit":
                    break
                if user_input.startswith("/join "):
                    await self.join_room(user_input.split(maxsplit=1)[1])
                elif user_input.startswith("/leave "):
                    await self.leave_room(user_input.split(maxsplit=1)[1])
                else:
                    await self.send_message(user_input)
        finally:
            self.running = False
            listen_task.cancel()
            await self.disconnect()


async def run_client(client: ChatClient, slug: str, messages, start_delay: float = 0.0, linger: float = 3.0):
    """Join a room, send some messages, print everything received"""
    await asyncio.sleep(start_delay)
    if not await client.connect():
        return
    client.running = True
    listen_task = asyncio.create_task(client.listen_for_messages())

    await client.join_room(slug)
    await asyncio.sleep(1)
    for body in messages:
        await client.send_message(body)
        await asyncio.sleep(1)

    await asyncio.sleep(linger)
    client.running = False
    listen_task.cancel()
    await client.disconnect()


async def scenario_conversation(server: str, token_a: str, token_b: str, slug: str):
    """Two members chat; both see every message through the room stream"""
    print("\nScenario: two members in one room")
    print("=" * 60)
    await asyncio.gather(
        run_client(ChatClient(token_a, server, "A"), slug, ["I feel anxious about exams"]),
        run_client(ChatClient(token_b, server, "B"), slug, ["Same here, it helps to talk"], start_delay=0.5),
    )


async def scenario_flagged(server: str, token_a: str, token_b: str, moderator_token: str, slug: str):
    """A flagged message reaches the room and, separately, the moderator"""
    print("\nScenario: flagged message with a moderator online")
    print("=" * 60)

    moderator = ChatClient(moderator_token, server, "MOD")
    if not await moderator.connect():
        return
    moderator.running = True
    moderator_task = asyncio.create_task(moderator.listen_for_messages())

    await asyncio.gather(
        run_client(ChatClient(token_a, server, "A"), slug, ["I want to kill myself"], start_delay=0.5),
        run_client(ChatClient(token_b, server, "B"), slug, []),
    )

    moderator.running = False
    moderator_task.cancel()
    await moderator.disconnect()


async def main():
    """Main function with command line interface"""
    parser = argparse.ArgumentParser(description="Peer Room Chat Client")
    parser.add_argument("--token", required=True, help="Bearer token issued by the auth service")
    parser.add_argument("--peer-token", help="Second member's token (scenarios)")
    parser.add_argument("--moderator-token", help="Moderator token (flagged scenario)")
    parser.add_argument("--room", default="anxiety-support", help="Room slug")
    parser.add_argument("--server", default="ws://localhost:8000/ws", help="Server URL")
    parser.add_argument("--scenario", choices=["conversation", "flagged"], help="Run a scripted scenario")

    args = parser.parse_args()

    if args.scenario and not args.peer_token:
        parser.error("--peer-token is required for scenarios")

    if args.scenario == "conversation":
        await scenario_conversation(args.server, args.token, args.peer_token, args.room)
    elif args.scenario == "flagged":
        if not args.moderator_token:
            parser.error("--moderator-token is required for the flagged scenario")
        await scenario_flagged(args.server, args.token, args.peer_token, args.moderator_token, args.room)
    else:
        client = ChatClient(args.token, args.server)
        await client.run_interactive(args.room)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nGoodbye!")
