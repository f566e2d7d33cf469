"""Utility for stress-testing the LionSphere realtime chat relay.

Each worker signs a token for its own user id, opens ``/ws/chat``, announces
itself with ``user_connect`` and then relays messages to a partner worker.
Delivery latency is measured from send to the partner's ``receive_message``.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import statistics
import sys
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

import jwt
import websockets


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerResult:
    """Outcome of a single chat connection."""

    user_id: int
    connected: bool = False
    connect_latency: float | None = None
    messages_sent: int = 0
    acks_received: int = 0
    messages_received: int = 0
    delivery_latencies: list[float] = field(default_factory=list)
    duration: float = 0.0
    error: str | None = None


def _sign_token(user_id: int, secret: str, algorithm: str) -> str:
    expires = datetime.now(timezone.utc) + timedelta(hours=1)
    return jwt.encode({"sub": str(user_id), "exp": expires}, secret, algorithm=algorithm)


async def _reader(websocket: Any, result: WorkerResult) -> None:
    async for raw in websocket:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            continue
        event = frame.get("type")
        if event == "message_sent":
            result.acks_received += 1
        elif event == "receive_message":
            result.messages_received += 1
            with contextlib.suppress(KeyError, ValueError, TypeError):
                sent_at = float(json.loads(frame["text"])["sent_at"])
                result.delivery_latencies.append(time.time() - sent_at)
        elif event == "ping":
            await websocket.send(json.dumps({"type": "pong"}))


async def _worker(
    user_id: int,
    partner_id: int,
    url: str,
    *,
    token: str,
    session_duration: float,
    interval: float,
    open_timeout: float,
    start_barrier: asyncio.Event,
) -> WorkerResult:
    """Keep one chat connection open, relaying to *partner_id* on every interval."""

    start_time = time.perf_counter()
    result = WorkerResult(user_id=user_id)
    separator = "&" if "?" in url else "?"
    try:
        async with websockets.connect(
            f"{url}{separator}token={token}", open_timeout=open_timeout
        ) as websocket:
            result.connected = True
            result.connect_latency = time.perf_counter() - start_time
            await websocket.send(json.dumps({"type": "user_connect", "user_id": user_id}))
            reader = asyncio.create_task(_reader(websocket, result))
            await start_barrier.wait()

            deadline = time.perf_counter() + session_duration
            try:
                while time.perf_counter() < deadline:
                    text = json.dumps({"sent_at": time.time(), "seq": result.messages_sent})
                    await websocket.send(
                        json.dumps(
                            {"type": "send_message", "recipient_id": partner_id, "text": text}
                        )
                    )
                    result.messages_sent += 1
                    await asyncio.sleep(interval)
                await asyncio.sleep(min(interval, 1.0))
            finally:
                reader.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reader
    except asyncio.CancelledError:
        raise
    except Exception as exc:  # pragma: no cover - network failures are non-deterministic
        result.error = f"{type(exc).__name__}: {exc}"
        logger.warning("user %s failed: %s", user_id, result.error)
    finally:
        result.duration = time.perf_counter() - start_time
    return result


def _aggregate(results: Iterable[WorkerResult]) -> dict[str, Any]:
    results = list(results)
    successes = [item for item in results if item.connected and item.error is None]
    failures = [item for item in results if item.error is not None or not item.connected]
    latencies = [lat for item in successes for lat in item.delivery_latencies]

    def _stats(samples: list[float]) -> dict[str, float] | None:
        if not samples:
            return None
        samples_sorted = sorted(samples)
        count = len(samples_sorted)
        return {
            "avg": statistics.fmean(samples_sorted),
            "p50": statistics.median(samples_sorted),
            "p95": samples_sorted[int(0.95 * (count - 1))],
            "max": samples_sorted[-1],
        }

    sent = sum(item.messages_sent for item in successes)
    received = sum(item.messages_received for item in successes)
    return {
        "attempted": len(results),
        "connected": len(successes),
        "failed": len(failures),
        "connection_latency": _stats(
            [item.connect_latency for item in successes if item.connect_latency]
        ),
        "delivery_latency": _stats(latencies),
        "messages_sent": sent,
        "acks_received": sum(item.acks_received for item in successes),
        "messages_received": received,
        "delivery_ratio": (received / sent) if sent else 0.0,
        "failures": dict(Counter(item.error for item in failures if item.error)),
    }


async def run_load_test(args: argparse.Namespace) -> dict[str, Any]:
    """Pair up workers (1<->2, 3<->4, ...) and relay between partners."""

    connections = args.connections + (args.connections % 2)
    user_ids = [args.first_user_id + offset for offset in range(connections)]
    partners = {}
    for left, right in zip(user_ids[::2], user_ids[1::2]):
        partners[left], partners[right] = right, left

    logger.info(
        "starting relay load test: url=%s connections=%s duration=%ss",
        args.url,
        connections,
        args.session_duration,
    )
    start_barrier = asyncio.Event()
    tasks = [
        asyncio.create_task(
            _worker(
                user_id,
                partners[user_id],
                args.url,
                token=_sign_token(user_id, args.secret, args.algorithm),
                session_duration=args.session_duration,
                interval=args.interval,
                open_timeout=args.open_timeout,
                start_barrier=start_barrier,
            ),
            name=f"relay-load-worker-{user_id}",
        )
        for user_id in user_ids
    ]

    def _cancel(signum: int, _frame: Any) -> None:  # pragma: no cover - signal handling
        logger.warning("received signal %s, cancelling load test", signum)
        for task in tasks:
            task.cancel()

    handlers: dict[int, Any] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):  # pragma: no cover - platform specific
        with contextlib.suppress(ValueError):
            handlers[signum] = signal.getsignal(signum)
            signal.signal(signum, _cancel)

    try:
        # let every worker announce presence before relaying starts
        await asyncio.sleep(args.warmup)
        start_barrier.set()
        results = await asyncio.gather(*tasks)
    finally:
        for signum, previous in handlers.items():  # pragma: no cover - best effort cleanup
            with contextlib.suppress(ValueError):
                signal.signal(signum, previous)

    summary = _aggregate(results)
    logger.info(
        "load test finished: %s connected, %s failed", summary["connected"], summary["failed"]
    )
    return summary


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("url", help="Chat socket URL, e.g. ws://localhost:8000/ws/chat")
    parser.add_argument("--secret", required=True, help="JWT_SECRET_KEY shared with the API")
    parser.add_argument("--algorithm", default="HS256", help="JWT signing algorithm")
    parser.add_argument(
        "--first-user-id",
        type=int,
        default=1,
        help="Lowest user id to impersonate; ids must exist in the database",
    )
    parser.add_argument("--connections", type=int, default=10, help="Concurrent chat connections")
    parser.add_argument(
        "--session-duration", type=float, default=30.0, help="Relay phase length (seconds)"
    )
    parser.add_argument("--interval", type=float, default=1.0, help="Delay between sends (seconds)")
    parser.add_argument("--warmup", type=float, default=1.0, help="Delay before relaying starts")
    parser.add_argument("--open-timeout", type=float, default=10.0, help="Connect timeout (seconds)")
    parser.add_argument("--json", action="store_true", help="Emit the summary as JSON")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log verbosity level",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        summary = asyncio.run(run_load_test(args))
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        logger.warning("interrupted by user")
        return 130

    if args.json:
        print(json.dumps(summary, indent=2, sort_keys=True))
    else:
        print("\n=== Relay Load Test Summary ===")
        for key, value in summary.items():
            print(f"{key}: {value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
