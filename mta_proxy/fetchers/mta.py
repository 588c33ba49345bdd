from __future__ import annotations

import logging
import sys
import time
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, TypedDict

import requests
from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from mta_proxy.config import AppConfig, StopPair, load_config
from mta_proxy.errors import FeedDecodeError, ProxyError, UpstreamUnavailable
from mta_proxy.series import minutes_until, select


logger = logging.getLogger(__name__)

FeedEntity = gtfs_realtime_pb2.FeedEntity
StopTimeUpdate = gtfs_realtime_pb2.TripUpdate.StopTimeUpdate


class ArrivalRecord(TypedDict):
    minutes: int
    train: str


class ArrivalBoard(TypedDict):
    north: List[ArrivalRecord]
    south: List[ArrivalRecord]


def fetch_feed_bytes(config: AppConfig) -> bytes:
    headers = {"x-api-key": config.api_key} if config.api_key else None
    response = requests.get(
        config.feed_url,
        headers=headers,
        timeout=config.timeout_seconds,
    )
    if response.status_code in {401, 403}:
        logger.error(
            "MTA feed request unauthorized for %s (HTTP %s).",
            config.feed_url,
            response.status_code,
        )
    if not response.ok:
        logger.error("MTA feed returned HTTP %s.", response.status_code)
        raise UpstreamUnavailable("MTA", response.status_code, config.feed_url)
    return response.content


def decode_feed(data: bytes) -> Sequence[FeedEntity]:
    feed = gtfs_realtime_pb2.FeedMessage()
    try:
        feed.ParseFromString(data)
    except DecodeError as exc:
        raise FeedDecodeError(f"Failed to decode GTFS-realtime feed: {exc}") from exc
    logger.debug("Decoded feed with %s entities", len(feed.entity))
    return feed.entity


def _prediction_time(update: StopTimeUpdate) -> Optional[int]:
    # Zero is the protobuf default and never a real prediction.
    for event_name in ("arrival", "departure"):
        if not update.HasField(event_name):
            continue
        event = getattr(update, event_name)
        if event.HasField("time") and event.time:
            return int(event.time)
    return None


def _predictions(
    entities: Iterable[FeedEntity],
    now_timestamp: int,
) -> Iterator[Tuple[str, int, str]]:
    for entity in entities:
        if not entity.HasField("trip_update"):
            continue
        trip_update = entity.trip_update
        if not trip_update.stop_time_update:
            continue

        # Route id, not trip id; the board only shows the line letter.
        train = trip_update.trip.route_id

        for update in trip_update.stop_time_update:
            predicted = _prediction_time(update)
            if predicted is None:
                continue
            minutes = minutes_until(predicted, now_timestamp)
            yield update.stop_id, minutes, train


def extract_arrivals(
    entities: Iterable[FeedEntity],
    stops: StopPair,
    now_timestamp: int,
) -> Tuple[List[ArrivalRecord], List[ArrivalRecord]]:
    candidates = list(_predictions(entities, now_timestamp))

    def upcoming_at(stop_id: str):
        def keep(candidate: Tuple[str, int, str]) -> bool:
            return candidate[0] == stop_id and candidate[1] >= 0

        return keep

    def records(stop_id: str) -> List[ArrivalRecord]:
        return [
            ArrivalRecord(minutes=minutes, train=train)
            for _, minutes, train in select(candidates, keep=upcoming_at(stop_id))
        ]

    return records(stops.north), records(stops.south)


def rank_arrivals(
    northbound: Sequence[ArrivalRecord],
    southbound: Sequence[ArrivalRecord],
    limit: int = 5,
) -> ArrivalBoard:
    def by_minutes(record: ArrivalRecord) -> int:
        return record["minutes"]

    return ArrivalBoard(
        north=select(northbound, key=by_minutes, limit=limit),
        south=select(southbound, key=by_minutes, limit=limit),
    )


def build_board(
    data: bytes,
    config: AppConfig,
    now_timestamp: Optional[int] = None,
) -> ArrivalBoard:
    if now_timestamp is None:
        now_timestamp = int(time.time())
    entities = decode_feed(data)
    northbound, southbound = extract_arrivals(entities, config.stops, now_timestamp)
    return rank_arrivals(northbound, southbound, limit=config.max_arrivals)


def fetch_arrivals(config: AppConfig, now_timestamp: Optional[int] = None) -> ArrivalBoard:
    data = fetch_feed_bytes(config)
    # Captured after the fetch so every record in the board shares one "now".
    if now_timestamp is None:
        now_timestamp = int(time.time())
    board = build_board(data, config, now_timestamp)
    logger.info(
        "MTA: %s northbound, %s southbound arrivals",
        len(board["north"]),
        len(board["south"]),
    )
    return board


def _render_output(config: AppConfig, board: ArrivalBoard) -> str:
    output_lines: List[str] = []
    for label, stop_id, records in (
        ("Northbound", config.stops.north, board["north"]),
        ("Southbound", config.stops.south, board["south"]),
    ):
        output_lines.append(f"{label} ({stop_id}):")
        if not records:
            output_lines.append("  (no upcoming trains)")
            continue
        for record in records:
            output_lines.append(f"  {record['train']} train → {record['minutes']} min")
    return "\n".join(output_lines)


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    try:
        config = load_config()
    except (OSError, ValueError) as exc:
        logger.error("Failed to load config: %s", exc)
        return 1

    try:
        board = fetch_arrivals(config)
    except (ProxyError, requests.RequestException) as exc:
        logger.error("Failed to fetch arrivals: %s", exc)
        return 1

    print(_render_output(config, board))
    return 0


if __name__ == "__main__":
    sys.exit(main())
