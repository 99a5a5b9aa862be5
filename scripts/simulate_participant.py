"""Simulate a participant device against a running broker.

Registers a participant for the active event (or creates one), then walks a
random route and publishes a location sample every interval. Useful for
watching a dashboard move without a phone.

Usage:
    uv run python -m livetrack_sync.transport.broker --port 8765 &
    uv run python scripts/simulate_participant.py --name Ana --number 17

Environment variables (LIVETRACK_BROKER_URL, LIVETRACK_SAMPLE_INTERVAL, ...)
are read through TrackingConfig.from_environment().
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random

from livetrack_sync import (
    LocationSampler,
    SamplerStatus,
    TrackingConfig,
    TrackingController,
    TrackingState,
    TransportClient,
    configure_structured_logging,
)
from livetrack_sync.models import Location

logger = logging.getLogger(__name__)

# Puerta del Sol, Madrid
_START = Location(lat=40.4168, lng=-3.7038)
_STEP_DEGREES = 0.0005


class RandomWalkSensor:
    """Location sensor that drifts a few tens of metres per read."""

    def __init__(self, start: Location, seed: int | None = None) -> None:
        self._position = start
        self._rng = random.Random(seed)

    async def get_current_location(self) -> Location:
        self._position = Location(
            lat=self._position.lat + self._rng.uniform(-_STEP_DEGREES, _STEP_DEGREES),
            lng=self._position.lng + self._rng.uniform(-_STEP_DEGREES, _STEP_DEGREES),
        )
        return self._position


class LogPresenter:
    def render(self, state: TrackingState) -> None:
        logger.info(f"State: {len(state.events)} event(s), {len(state.participants)} participant(s)")

    def show_tracking_status(self, status: SamplerStatus, message: str | None) -> None:
        logger.info(f"Tracking status: {status.value}" + (f" ({message})" if message else ""))


async def run(args: argparse.Namespace) -> None:
    config = TrackingConfig.from_environment()
    transport = TransportClient.from_config(config)
    sampler = LocationSampler(
        transport,
        RandomWalkSensor(_START, seed=args.seed),
        interval=config.sample_interval,
        sensor_timeout=config.sensor_timeout,
    )
    controller = TrackingController(transport, presenter=LogPresenter(), sampler=sampler)

    await controller.attach()
    if not await transport.wait_until_connected(timeout=args.connect_timeout):
        logger.warning(f"Broker at {config.broker_url} not reachable yet; frames will be queued")

    # The broker keeps no history; only events announced from now on are seen.
    await asyncio.sleep(1.0)
    event = controller.active_event
    if event is None:
        event = controller.add_event(args.event_name, active=True)
        logger.info(f"No active event seen, created {event.id}")

    participant = controller.register_participant(args.name, args.number, event.id)
    logger.info(f"Registered {participant.id} for {event.name}")

    try:
        if args.panic_after is not None:
            await asyncio.sleep(args.panic_after)
            controller.trigger_panic()
            logger.info("Panic raised")
        await asyncio.Event().wait()
    finally:
        controller.stop_tracking()
        await controller.close()
        # Let participant-left reach the broker before closing.
        await asyncio.sleep(0.2)
        await transport.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate a tracked participant")
    parser.add_argument("--name", default="Simulated runner")
    parser.add_argument("--number", default="0")
    parser.add_argument("--event-name", default="Simulated event")
    parser.add_argument("--panic-after", type=float, default=None, help="Seconds until a panic alert")
    parser.add_argument("--connect-timeout", type=float, default=5.0)
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    configure_structured_logging(TrackingConfig.from_environment().log_level)
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == "__main__":
    main()
