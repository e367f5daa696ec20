"""
tests/test_event_log.py

Signed, hash-chained event log: signing, persistence, tamper detection,
and replay reconciliation against the live ledger.

Run:
    pytest tests/test_event_log.py -v --tb=short
"""

import json

import pytest

from streampay import (
    AlreadyEnded,
    AlreadyRegistered,
    AuditReplay,
    CreatorInactive,
    Ed25519KeyManager,
    EventEnvelope,
    EventLog,
    EventLogError,
    EventType,
    GENESIS_HASH,
    StreamPayService,
)
from streampay.core.canonical import canonicalize

OWNER = "platform-owner"


def _rewrite(path, mutate):
    lines = [json.loads(l) for l in path.read_text(encoding="utf-8").splitlines() if l.strip()]
    lines = mutate(lines)
    path.write_text("".join(json.dumps(l) + "\n" for l in lines), encoding="utf-8")


@pytest.fixture
def key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def persisted(tmp_path, rail):
    """A service with a file-backed log and a short settlement history."""
    svc = StreamPayService.create(owner=OWNER, rail=rail, event_log_path=tmp_path)
    svc.register_creator("alice", "Alice Live", 100)
    svc.start_stream("alice", "Morning set")
    svc.deposit_funds("bob", 10_000)
    svc.process_payment("bob", "alice", 50)
    svc.process_payment("bob", "alice", 10, attached_value=300)
    svc.update_platform_fee(OWNER, 10)
    svc.process_payment("bob", "alice", 7)
    svc.withdraw_platform_fees(OWNER)
    svc.end_stream("alice", 1)
    return svc


class TestEventLog:

    def test_first_entry_chains_to_genesis(self, key):
        log = EventLog(key)
        env = log.emit(EventType.DEPOSITED, {"viewer": "bob", "amount": "1", "balance": "1"})
        assert env.sequence == 0
        assert env.causal_hash == GENESIS_HASH
        assert env.verify_signature()
        assert env.signer_public_key == key.public_key_hex
        assert env.actor == "streampay"

    def test_entries_chain(self, key):
        log = EventLog(key)
        a = log.emit(EventType.CREATOR_REGISTERED, {"creator": "alice"}, actor="alice")
        b = log.emit(EventType.CREATOR_PAUSED, {"creator": "alice"}, actor=OWNER)
        assert b.sequence == 1
        assert b.causal_hash == EventEnvelope.compute_causal_hash(a)
        assert log.verify_chain()
        assert len(log) == 2

    def test_unknown_event_type_rejected(self, key):
        log = EventLog(key)
        with pytest.raises(ValueError):
            log.emit("refund_issued", {})
        assert len(log) == 0

    def test_mutated_entry_fails_signature(self, key):
        log = EventLog(key)
        env = log.emit(EventType.DEPOSITED, {"viewer": "bob", "amount": "5", "balance": "5"})
        env.payload["amount"] = "5000"
        assert not env.verify_signature()
        assert not log.verify_chain()

    def test_wrong_key_fails(self, key):
        log = EventLog(key)
        env = log.emit(EventType.DEPOSITED, {"viewer": "bob", "amount": "5", "balance": "5"})
        other = Ed25519KeyManager.generate()
        assert not env.verify_signature(other.public_key_hex)

    def test_schema_of_emitted_entry(self, key):
        env = EventLog(key).emit(EventType.STREAM_STARTED, {"stream_id": 1})
        assert env.validate_schema()
        assert env.event_id.startswith("evt-")
        assert len(env.nonce) == 32

    def test_restore_continues_chain(self, tmp_path, key):
        first = EventLog(key, log_path=str(tmp_path))
        for i in range(3):
            first.emit(EventType.STREAM_STARTED, {"stream_id": i + 1})

        second = EventLog(key, log_path=str(tmp_path))
        assert len(second) == 3
        env = second.emit(EventType.STREAM_ENDED, {"stream_id": 1})
        assert env.sequence == 3
        assert second.verify_chain()
        assert second.get_stats()["next_sequence"] == 4

    def test_corrupt_log_refuses_restore(self, tmp_path, key):
        log = EventLog(key, log_path=str(tmp_path))
        log.emit(EventType.STREAM_STARTED, {"stream_id": 1})
        with open(log.log_file, "a", encoding="utf-8") as f:
            f.write("{not json\n")

        with pytest.raises(EventLogError):
            EventLog(key, log_path=str(tmp_path))

    def test_in_memory_log_has_no_file(self, key):
        log = EventLog(key)
        log.emit(EventType.STREAM_STARTED, {"stream_id": 1})
        assert log.log_file is None
        assert log.get_stats()["log_file"] is None


class TestAuditReplay:

    def test_clean_log_verifies(self, persisted):
        replay = AuditReplay()
        replay.load(persisted.events.log_file)
        summary = replay.verify()

        assert summary.chain_valid
        assert summary.violations == []
        assert summary.total_entries == len(persisted.events)
        assert summary.valid_signatures == summary.total_entries
        assert summary.signers_seen == [persisted.events.key_manager.public_key_hex]
        assert summary.event_type_counts[EventType.PAYMENT_PROCESSED] == 3

    def test_reconcile_matches_live_ledger(self, persisted):
        replay = AuditReplay()
        replay.load(persisted.events.log_file)
        figures = replay.reconcile()

        assert figures.balances == {"bob": persisted.get_viewer_balance("bob")}
        assert figures.earnings == {"alice": persisted.get_creator_info("alice").total_earnings}
        assert figures.watch_time == {"bob": {"alice": 67}}
        assert figures.platform_fees == persisted.get_platform_fee_balance() == 0
        assert figures.fees_withdrawn == 250 + 50 + 70
        assert figures.creators == ["alice"]
        assert figures.paused == []
        assert figures.active_streams == []
        assert figures.fee_percentage == 10

    def test_tampered_payload_detected(self, persisted):
        path = persisted.events.log_file

        def inflate(lines):
            for entry in lines:
                if entry["event_type"] == EventType.DEPOSITED:
                    entry["payload"]["amount"] = str(10 ** 9)
                    break
            return lines

        _rewrite(path, inflate)
        replay = AuditReplay()
        replay.load(path)
        summary = replay.verify()

        kinds = {v.violation_type for v in summary.violations}
        assert not summary.chain_valid
        assert "invalid_signature" in kinds
        assert "chain_break" in kinds

    def test_deleted_entry_detected(self, persisted):
        path = persisted.events.log_file
        _rewrite(path, lambda lines: lines[:2] + lines[3:])

        replay = AuditReplay()
        replay.load(path)
        kinds = {v.violation_type for v in replay.verify().violations}
        assert {"sequence_gap", "chain_break"} <= kinds

    def test_duplicate_nonce_detected(self, persisted):
        path = persisted.events.log_file

        def reuse_nonce(lines):
            lines[1]["nonce"] = lines[0]["nonce"]
            return lines

        _rewrite(path, reuse_nonce)
        replay = AuditReplay()
        replay.load(path)
        kinds = {v.violation_type for v in replay.verify().violations}
        assert "duplicate_nonce" in kinds

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AuditReplay().load(tmp_path / "absent.jsonl")

    def test_malformed_line(self, tmp_path):
        path = tmp_path / "events.jsonl"
        path.write_text("not json\n", encoding="utf-8")
        with pytest.raises(ValueError):
            AuditReplay().load(path)

    def test_empty_replay(self):
        summary = AuditReplay().verify()
        assert summary.total_entries == 0
        assert summary.chain_valid

    def test_export_report(self, persisted, tmp_path):
        replay = AuditReplay()
        replay.load(persisted.events.log_file)
        out = tmp_path / "reports" / "audit.json"
        replay.export_json(out)

        report = json.loads(out.read_text(encoding="utf-8"))["streampay_audit_report"]
        assert report["chain_valid"] is True
        assert report["reconciliation"]["fee_percentage"] == 10

    def test_replay_of_in_memory_entries(self, funded):
        funded.process_payment("bob", "alice", 50)
        replay = AuditReplay(funded.events.entries())
        assert replay.verify().chain_valid
        assert replay.reconcile().balances == {"bob": 5000}


class TestWideAmounts:

    def test_amounts_are_logged_as_decimal_strings(self, service):
        service.deposit_funds("bob", 2 ** 60)
        env = service.events.entries(EventType.DEPOSITED)[0]
        assert env.payload["amount"] == str(2 ** 60)
        assert env.payload["balance"] == str(2 ** 60)

    def test_off_by_one_above_double_precision_is_detected(self, tmp_path, rail):
        svc = StreamPayService.create(owner=OWNER, rail=rail, event_log_path=tmp_path)
        svc.deposit_funds("bob", 2 ** 60)

        def nudge(lines):
            lines[0]["payload"]["amount"] = str(2 ** 60 + 1)
            return lines

        _rewrite(svc.events.log_file, nudge)
        replay = AuditReplay()
        replay.load(svc.events.log_file)
        kinds = {v.violation_type for v in replay.verify().violations}
        assert "invalid_signature" in kinds

    def test_bare_wide_integer_in_log_is_a_schema_violation(self, tmp_path, rail):
        svc = StreamPayService.create(owner=OWNER, rail=rail, event_log_path=tmp_path)
        svc.deposit_funds("bob", 2 ** 60)

        def unquote(lines):
            lines[0]["payload"]["amount"] = 2 ** 60
            return lines

        _rewrite(svc.events.log_file, unquote)
        with pytest.raises(ValueError):
            AuditReplay().load(svc.events.log_file)

    def test_mutated_wide_integer_fails_signature_without_raising(self, key):
        env = EventLog(key).emit(EventType.DEPOSITED, {"viewer": "bob", "amount": "5", "balance": "5"})
        env.payload["amount"] = 2 ** 60
        assert env.verify_signature() is False
        assert not env.validate_schema()

    def test_canonical_form_refuses_inexact_integers(self):
        assert canonicalize({"n": 2 ** 53 - 1}) == b'{"n":9007199254740991}'
        with pytest.raises(ValueError):
            canonicalize({"n": 2 ** 53})
        with pytest.raises(ValueError):
            canonicalize({"outer": [{"n": -(2 ** 60)}]})

    def test_emit_refuses_raw_wide_integer(self, key):
        log = EventLog(key)
        with pytest.raises(ValueError):
            log.emit(EventType.DEPOSITED, {"viewer": "bob", "amount": 2 ** 60})
        assert len(log) == 0

    def test_reconcile_keeps_full_precision(self, service):
        service.register_creator("whale", "Whale Live", 2 ** 70)
        service.deposit_funds("bob", 2 ** 80 + 1)
        service.process_payment("bob", "whale", 3)

        figures = AuditReplay(service.events.entries()).reconcile()
        cost = 3 * 2 ** 70
        assert figures.balances == {"bob": 2 ** 80 + 1 - cost}
        assert figures.balances["bob"] == service.get_viewer_balance("bob")
        assert figures.platform_fees == cost * 5 // 100
        assert figures.earnings == {"whale": cost - cost * 5 // 100}


class TestRestartFromLog:

    @staticmethod
    def _reopen(svc, rail, **kwargs):
        return StreamPayService.create(
            owner=OWNER,
            rail=rail,
            key_manager=svc.events.key_manager,
            event_log_path=svc.events.log_file.parent,
            **kwargs,
        )

    def test_creators_survive_restart(self, persisted, rail):
        reopened = self._reopen(persisted, rail)

        assert reopened.list_creators() == ["alice"]
        assert reopened.get_total_creators() == 1
        info = reopened.get_creator_info("alice")
        assert info.name == "Alice Live"
        assert info.price_per_second == 100
        assert info.is_active
        assert info.total_earnings == persisted.get_creator_info("alice").total_earnings
        with pytest.raises(AlreadyRegistered):
            reopened.register_creator("alice", "Alice Again", 1)

    def test_stream_ids_are_not_reused_after_restart(self, tmp_path, rail):
        first = StreamPayService.create(owner=OWNER, rail=rail, event_log_path=tmp_path)
        first.register_creator("alice", "Alice Live", 100)
        original = first.start_stream("alice", "Morning set", "coffee and chat")

        reopened = self._reopen(first, rail)
        assert reopened.get_active_streams() == [1]
        restored = reopened.get_stream(1)
        assert restored.title == "Morning set"
        assert restored.description == "coffee and chat"
        assert restored.start_time == original.start_time
        assert restored.is_live

        second = reopened.start_stream("alice", "Evening set")
        assert second.stream_id == 2
        assert reopened.get_active_streams() == [1, 2]

        reopened.end_stream("alice", 1)
        assert reopened.get_active_streams() == [2]

    def test_ended_streams_stay_ended(self, persisted, rail):
        reopened = self._reopen(persisted, rail)
        assert reopened.get_active_streams() == []
        assert not reopened.get_stream(1).is_live
        with pytest.raises(AlreadyEnded):
            reopened.end_stream("alice", 1)

    def test_figures_and_fee_survive_restart(self, persisted, rail):
        reopened = self._reopen(persisted, rail, platform_fee_percentage=5)

        assert reopened.get_viewer_balance("bob") == persisted.get_viewer_balance("bob")
        assert reopened.get_watch_time("bob", "alice") == 67
        assert reopened.get_platform_fee_balance() == 0
        assert reopened.get_platform_fee() == 10
        assert len(reopened.events) == len(persisted.events)

        receipt = reopened.process_payment("bob", "alice", 1)
        assert receipt.fee_percentage == 10
        assert receipt.viewer_balance == persisted.get_viewer_balance("bob") - 100
        assert reopened.events.verify_chain()

    def test_unwithdrawn_fees_survive_restart(self, tmp_path, rail):
        first = StreamPayService.create(owner=OWNER, rail=rail, event_log_path=tmp_path)
        first.register_creator("alice", "Alice Live", 100)
        first.deposit_funds("bob", 10_000)
        first.process_payment("bob", "alice", 50)

        reopened = self._reopen(first, rail)
        assert reopened.get_platform_fee_balance() == 250
        assert reopened.withdraw_platform_fees(OWNER) == 250

    def test_paused_creator_stays_paused(self, tmp_path, rail):
        first = StreamPayService.create(owner=OWNER, rail=rail, event_log_path=tmp_path)
        first.register_creator("alice", "Alice Live", 100)
        first.deposit_funds("bob", 10_000)
        first.pause_creator(OWNER, "alice")

        reopened = self._reopen(first, rail)
        assert not reopened.get_creator_info("alice").is_active
        with pytest.raises(CreatorInactive):
            reopened.process_payment("bob", "alice", 1)

    def test_wide_balances_survive_restart(self, tmp_path, rail):
        first = StreamPayService.create(owner=OWNER, rail=rail, event_log_path=tmp_path)
        first.deposit_funds("bob", 2 ** 200)

        reopened = self._reopen(first, rail)
        assert reopened.get_viewer_balance("bob") == 2 ** 200

    def test_tampered_log_refuses_to_start(self, persisted, rail):
        def inflate(lines):
            for entry in lines:
                if entry["event_type"] == EventType.DEPOSITED:
                    entry["payload"]["amount"] = str(10 ** 9)
                    break
            return lines

        _rewrite(persisted.events.log_file, inflate)
        with pytest.raises(EventLogError):
            self._reopen(persisted, rail)
