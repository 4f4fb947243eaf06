"""
Correlation Engine
==================

Single consumer of a command mailbox. It owns the CorrelationStore and is the
only place a pending request is resolved, so a reply and the expiry sweep
can never both resolve the same token.

Commands:
- register(request)   insert (or replace) the entry for request.token
- submit_reply(event) resolve the entry as approved/rejected, or drop it
- cancel(token)       remove the entry, no side effects
- sweep()             expire entries older than the deadline

Each command is handled in one turn with no awaits. Side effects on the
Discharge Authority run as separate tasks; synchronous waiters are released
by completing their future.

Usage:
    engine = CorrelationEngine(authority, deadline=300, sweep_interval=5)
    await engine.start()

    waiter = asyncio.get_running_loop().create_future()
    engine.register(PendingRequest.synchronous("1700000000.000100", waiter))
    engine.submit_reply(ReplyEvent("1700000000.000100", "U123", approved=True))
    resolution = await waiter
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from ...core.reactions import ReplyEvent
from ..discharge.authority import DischargeAuthority
from .store import CorrelationMode, CorrelationStore, Outcome, PendingRequest, Resolution

logger = logging.getLogger("reactgate.correlation.engine")


@dataclass
class _Register:
    request: PendingRequest


@dataclass
class _Reply:
    event: ReplyEvent


@dataclass
class _Cancel:
    token: str


@dataclass
class _Sweep:
    pass


@dataclass
class _Snapshot:
    result: "asyncio.Future[Dict[str, Any]]"


class CorrelationEngine:
    """
    Serialized owner of all pending approval requests.

    Features:
    - Exactly-once resolution per token
    - Periodic expiry sweep driven through the same mailbox
    - Fire-and-forget discharge/abort calls for polled requests
    - Guaranteed release of synchronous waiters (reply, expiry, shutdown)
    """

    DEFAULT_DEADLINE = 300.0  # 5 minutes
    DEFAULT_SWEEP_INTERVAL = 5.0

    def __init__(
        self,
        authority: DischargeAuthority,
        deadline: float = DEFAULT_DEADLINE,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the engine.

        Args:
            authority: Discharge Authority notified about polled outcomes
            deadline: Seconds an entry may wait for a reply
            sweep_interval: Seconds between expiry sweeps
            clock: Monotonic time source (injectable for tests)
        """
        self._authority = authority
        self._deadline = deadline
        self._sweep_interval = sweep_interval
        self._clock = clock

        self._store = CorrelationStore()
        self._mailbox: "asyncio.Queue[Any]" = asyncio.Queue()
        self._side_effects: Set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._running = False

        self._handlers = {
            _Register: self._on_register,
            _Reply: self._on_reply,
            _Cancel: self._on_cancel,
            _Sweep: self._on_sweep,
            _Snapshot: self._on_snapshot,
        }

        # Statistics
        self._stats = {
            "registered": 0,
            "approved": 0,
            "rejected": 0,
            "expired": 0,
            "cancelled": 0,
            "superseded": 0,
            "dropped_replies": 0,
            "authority_failures": 0,
            "pending": 0,
        }

        logger.info(
            f"CorrelationEngine initialized: deadline={deadline}s, "
            f"sweep_interval={sweep_interval}s"
        )

    @property
    def deadline(self) -> float:
        return self._deadline

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the command loop and the sweep ticker."""
        if self._running:
            return

        self._running = True
        self._loop_task = asyncio.create_task(self._run_loop())
        self._tick_task = asyncio.create_task(self._tick_loop())
        logger.info("CorrelationEngine started")

    async def stop(self) -> None:
        """
        Stop the engine.

        Commands already queued are processed first. Whatever is still pending
        afterwards is released: synchronous waiters get EXPIRED, polled
        requests are aborted with reason "shutdown".
        """
        if not self._running:
            return
        self._running = False

        if self._tick_task:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass

        await self._mailbox.join()

        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass

        leftovers = self._store.sweep(lambda request: True)
        for request in leftovers:
            self._resolve(request, Outcome.EXPIRED, reason="shutdown")
        self._stats["pending"] = 0
        if leftovers:
            logger.info(f"Released {len(leftovers)} pending request(s) on shutdown")

        await self._drain_side_effects()
        logger.info("CorrelationEngine stopped")

    # === Commands ===

    def register(self, request: PendingRequest) -> None:
        """Queue a request for correlation."""
        self._enqueue(_Register(request))

    def submit_reply(self, event: ReplyEvent) -> None:
        """Queue a human reply."""
        self._enqueue(_Reply(event))

    def cancel(self, token: str) -> None:
        """Queue removal of a request whose caller gave up."""
        self._enqueue(_Cancel(token))

    def sweep(self) -> None:
        """Queue an expiry sweep."""
        self._enqueue(_Sweep())

    def _enqueue(self, command: Any) -> None:
        # Nothing drains the mailbox once stop() has begun
        if not self._running:
            raise RuntimeError("CorrelationEngine is not running")
        self._mailbox.put_nowait(command)

    async def snapshot(self) -> Dict[str, Any]:
        """Read the pending entries from inside the engine loop."""
        result: "asyncio.Future[Dict[str, Any]]" = (
            asyncio.get_running_loop().create_future()
        )
        self._enqueue(_Snapshot(result))
        return await result

    async def flush(self) -> None:
        """Wait until queued commands and their side effects have completed."""
        if not self._running:
            raise RuntimeError("CorrelationEngine is not running")
        await self._mailbox.join()
        await self._drain_side_effects()

    def get_statistics(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "deadline_seconds": self._deadline,
            "sweep_interval_seconds": self._sweep_interval,
            "running": self._running,
        }

    # === Loop ===

    async def _run_loop(self) -> None:
        while True:
            command = await self._mailbox.get()
            try:
                self._handlers[type(command)](command)
            except Exception as e:
                logger.exception(f"Error handling {type(command).__name__}: {e}")
            finally:
                self._stats["pending"] = len(self._store)
                self._mailbox.task_done()

    async def _tick_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._sweep_interval)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in sweep ticker: {e}")

    # === Handlers (run inside the loop, never await) ===

    def _on_register(self, command: _Register) -> None:
        request = command.request
        request.created_at = self._clock()
        previous = self._store.insert(request)
        self._stats["registered"] += 1
        logger.info(f"Registered {request.mode.value} request: {request.token}")

        if previous is not None and previous is not request:
            self._stats["superseded"] += 1
            logger.warning(
                f"Token {request.token} registered twice; releasing previous request"
            )
            self._resolve(previous, Outcome.CANCELLED, reason="superseded")

    def _on_reply(self, command: _Reply) -> None:
        event = command.event
        request = self._store.remove(event.token)
        if request is None:
            self._stats["dropped_replies"] += 1
            logger.debug(f"Dropped reply for untracked token: {event.token}")
            return

        outcome = Outcome.APPROVED if event.approved else Outcome.REJECTED
        self._resolve(request, outcome, approver=event.approver)

    def _on_cancel(self, command: _Cancel) -> None:
        request = self._store.remove(command.token)
        if request is None:
            return
        self._stats["cancelled"] += 1
        logger.info(f"Cancelled request: {command.token}")

    def _on_sweep(self, command: _Sweep) -> None:
        now = self._clock()
        expired = self._store.sweep(
            lambda request: now - request.created_at > self._deadline
        )
        for request in expired:
            self._resolve(request, Outcome.EXPIRED)

    def _on_snapshot(self, command: _Snapshot) -> None:
        if command.result.done():
            return
        now = self._clock()
        command.result.set_result(
            {
                "count": len(self._store),
                "requests": [r.to_dict(now) for r in self._store],
            }
        )

    def _resolve(
        self,
        request: PendingRequest,
        outcome: Outcome,
        approver: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        """Deliver a terminal outcome; the entry is already out of the store."""
        if outcome != Outcome.CANCELLED:
            self._stats[outcome.value] += 1
        logger.info(
            f"Resolved {request.token} as {outcome.value}"
            + (f" by {approver}" if approver else "")
        )

        if request.mode == CorrelationMode.SYNCHRONOUS:
            waiter = request.waiter
            if waiter is not None and not waiter.done():
                waiter.set_result(
                    Resolution(token=request.token, outcome=outcome, approver=approver)
                )
            return

        secret = request.poll_secret
        if outcome == Outcome.APPROVED:
            self._spawn(self._authority.discharge(secret), f"discharge {request.token}")
        elif outcome == Outcome.REJECTED:
            self._spawn(
                self._authority.abort(secret, f"rejected by @{approver}"),
                f"abort {request.token}",
            )
        else:
            self._spawn(
                self._authority.abort(secret, reason or "timeout"),
                f"abort {request.token}",
            )

    # === Side effects ===

    def _spawn(self, call: Awaitable[None], description: str) -> None:
        task = asyncio.get_running_loop().create_task(
            self._call_authority(call, description)
        )
        self._side_effects.add(task)
        task.add_done_callback(self._side_effects.discard)

    async def _call_authority(self, call: Awaitable[None], description: str) -> None:
        try:
            await call
        except Exception as e:
            self._stats["authority_failures"] += 1
            logger.error(f"Discharge authority call failed ({description}): {e}")

    async def _drain_side_effects(self) -> None:
        while self._side_effects:
            await asyncio.gather(*list(self._side_effects))
