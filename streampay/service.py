"""
StreamPay service — the operations exposed to the transport layer.

The transport authenticates callers and passes their identity in as
`caller`, together with any value attached to the call. This module does
no verification of its own beyond what the components enforce.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from loguru import logger

from streampay.admin.controller import AdminController
from streampay.config import LedgerConfig
from streampay.core.crypto import Ed25519KeyManager
from streampay.core.emitter import EventLog
from streampay.core.exceptions import EventLogError
from streampay.core.replay import AuditReplay
from streampay.core.time import parse_event_timestamp
from streampay.ledger.records import Creator, PaymentReceipt, Stream
from streampay.ledger.store import LedgerStore
from streampay.registry.creators import CreatorRegistry
from streampay.registry.streams import StreamRegistry
from streampay.settlement.engine import SettlementEngine
from streampay.settlement.params import DEFAULT_PLATFORM_FEE, PlatformParameters
from streampay.settlement.payout import InMemoryPayoutRail, PayoutRail


@dataclass
class StreamPayService:
    """Wires the ledger components together and exposes the caller-facing API."""

    params: PlatformParameters
    store: LedgerStore
    events: EventLog
    creators: CreatorRegistry
    streams: StreamRegistry
    engine: SettlementEngine
    admin: AdminController
    rail: PayoutRail

    @classmethod
    def create(
        cls,
        owner: str,
        platform_fee_percentage: int = DEFAULT_PLATFORM_FEE,
        rail: Optional[PayoutRail] = None,
        key_manager: Optional[Ed25519KeyManager] = None,
        event_log_path: Optional[Path] = None,
    ) -> "StreamPayService":
        """
        Build a service. Without event_log_path the event log is in memory.

        A persisted log that already holds entries is verified and replayed,
        so creators, streams, balances and the fee residue carry over from
        the previous run. A fee change recorded in the log overrides
        platform_fee_percentage.

        Raises:
            EventLogError: the persisted log fails verification or replay
        """
        params = PlatformParameters(owner, platform_fee_percentage)
        rail = rail if rail is not None else InMemoryPayoutRail()
        key_manager = key_manager or Ed25519KeyManager.generate()
        events = EventLog(
            key_manager,
            log_path=str(event_log_path) if event_log_path else None,
        )
        store = LedgerStore()
        creators = CreatorRegistry(store, events)
        streams = StreamRegistry(creators, events)
        engine = SettlementEngine(store, creators, params, rail, events)
        admin = AdminController(params, store, creators, rail, events)
        service = cls(
            params=params,
            store=store,
            events=events,
            creators=creators,
            streams=streams,
            engine=engine,
            admin=admin,
            rail=rail,
        )
        if len(events):
            service._restore_from_log()
        return service

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        rail: Optional[PayoutRail] = None,
    ) -> "StreamPayService":
        """Create a service from configuration, loading or creating the signing key."""
        if config.key_path:
            key_manager = Ed25519KeyManager.load_or_generate(config.key_path)
        else:
            key_manager = Ed25519KeyManager.generate()
        return cls.create(
            owner=config.owner,
            platform_fee_percentage=config.platform_fee_percentage,
            rail=rail,
            key_manager=key_manager,
            event_log_path=config.event_log_path,
        )

    # ── Creators and streams ──────────────────────────────────

    def register_creator(self, caller: str, name: str, price_per_second: int) -> Creator:
        return self.creators.register(caller, name, price_per_second)

    def start_stream(self, caller: str, title: str, description: str = "") -> Stream:
        return self.streams.start(caller, title, description)

    def end_stream(self, caller: str, stream_id: int) -> Stream:
        return self.streams.end(stream_id, caller)

    # ── Settlement ────────────────────────────────────────────

    def deposit_funds(self, caller: str, attached_value: int) -> int:
        return self.engine.deposit(caller, attached_value)

    def process_payment(
        self,
        caller: str,
        creator: str,
        watch_seconds: int,
        attached_value: int = 0,
    ) -> PaymentReceipt:
        return self.engine.pay(caller, creator, watch_seconds, attached_value)

    # ── Admin ─────────────────────────────────────────────────

    def update_platform_fee(self, caller: str, new_percentage: int) -> int:
        return self.admin.set_platform_fee(caller, new_percentage)

    def withdraw_platform_fees(self, caller: str) -> int:
        return self.admin.withdraw_platform_fees(caller)

    def pause_creator(self, caller: str, creator: str) -> Creator:
        return self.admin.pause_creator(caller, creator)

    # ── Reads ─────────────────────────────────────────────────

    def get_viewer_balance(self, viewer: str) -> int:
        return self.engine.get_balance(viewer)

    def get_watch_time(self, viewer: str, creator: str) -> int:
        return self.engine.get_watch_time(viewer, creator)

    def get_active_streams(self) -> List[int]:
        return self.streams.list_active()

    def get_stream(self, stream_id: int) -> Stream:
        return self.streams.get_stream(stream_id)

    def get_creator_info(self, creator: str) -> Creator:
        return self.creators.get_info(creator)

    def get_total_creators(self) -> int:
        return self.creators.total_creators()

    def list_creators(self) -> List[str]:
        return self.creators.list_creators()

    def get_platform_fee(self) -> int:
        return self.params.fee_percentage

    def get_platform_fee_balance(self) -> int:
        return self.store.platform_fees

    @property
    def owner(self) -> str:
        return self.params.owner

    def __repr__(self) -> str:
        return (
            f"StreamPayService("
            f"owner={self.params.owner!r}, "
            f"creators={self.creators.total_creators()}, "
            f"events={len(self.events)})"
        )

    # ── Restart ───────────────────────────────────────────────

    def _restore_from_log(self) -> None:
        """Rebuild in-memory ledger state by replaying the event log."""
        replay = AuditReplay(self.events.entries())
        summary = replay.verify()
        if not summary.chain_valid:
            first = summary.violations[0]
            raise EventLogError(
                "Persisted event log failed verification",
                {
                    "violations": len(summary.violations),
                    "first": f"{first.violation_type}@{first.at_sequence}",
                },
            )
        try:
            figures = replay.reconcile()
            streams = [_stream_from_replay(sid, rec) for sid, rec in figures.streams.items()]
        except (KeyError, ValueError) as exc:
            raise EventLogError(f"Persisted event log cannot be replayed: {exc}") from exc

        for identity in figures.creators:
            detail = figures.creator_details[identity]
            self.creators.restore(
                identity,
                detail["name"],
                detail["price_per_second"],
                is_active=identity not in figures.paused,
            )
        for viewer, balance in figures.balances.items():
            self.store.set_balance(viewer, balance)
        for creator, earned in figures.earnings.items():
            self.store.set_earnings(creator, earned)
        for viewer, per_creator in figures.watch_time.items():
            for creator, seconds in per_creator.items():
                self.store.set_watch_time(viewer, creator, seconds)
        with self.store.treasury():
            self.store.restore_fees(figures.platform_fees)
        if figures.fee_percentage is not None:
            self.params.replace_fee(figures.fee_percentage)
        self.streams.restore(streams, figures.last_stream_id + 1)

        logger.info(
            "Ledger restored from event log: entries={} creators={} streams={} fee={}%",
            summary.total_entries, len(figures.creators), figures.last_stream_id,
            self.params.fee_percentage,
        )


def _stream_from_replay(stream_id: int, record: dict) -> Stream:
    end_time = record["end_time"]
    return Stream(
        stream_id=stream_id,
        creator=record["creator"],
        title=record["title"],
        description=record["description"],
        start_time=parse_event_timestamp(record["start_time"]),
        is_live=end_time is None,
        end_time=parse_event_timestamp(end_time) if end_time else None,
    )
