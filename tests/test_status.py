"""
Unittest suite for the status lifecycles and their audit history.
"""

from __future__ import annotations

import threading
import unittest
from datetime import datetime, timedelta, timezone

from jobsync.status import (
    APPLICATION,
    PROGRAM,
    TRAINING_APPLICATION,
    StatusLedger,
    StatusRecord,
    TransitionRequest,
    apply_transition,
    describe_transitions,
    validate_history,
    validate_transition,
    valid_transitions,
)
from jobsync.status.history import StatusHistoryEntry
from jobsync.status.machine import RULES, is_terminal

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestTransitionRules(unittest.TestCase):

    def test_completed_program_can_only_be_archived(self) -> None:
        result = validate_transition(PROGRAM, "completed", "active")
        self.assertFalse(result.is_valid)
        self.assertEqual(result.allowed, ("archived",))
        self.assertIn('Cannot change status from "completed" to "active"', result.error)
        self.assertIn('Valid transitions from "completed": archived', result.error)

    def test_same_status_is_a_valid_no_op(self) -> None:
        for lifecycle, rules in RULES.items():
            for status in rules:
                self.assertTrue(validate_transition(lifecycle, status, status).is_valid, (lifecycle, status))

    def test_program_paths(self) -> None:
        self.assertTrue(validate_transition(PROGRAM, "upcoming", "active").is_valid)
        self.assertTrue(validate_transition(PROGRAM, "ongoing", "active").is_valid)
        self.assertTrue(validate_transition(PROGRAM, "archived", "active").is_valid)
        self.assertFalse(validate_transition(PROGRAM, "upcoming", "completed").is_valid)

    def test_final_state_message(self) -> None:
        result = validate_transition(APPLICATION, "withdrawn", "pending")
        self.assertFalse(result.is_valid)
        self.assertEqual(result.allowed, ())
        self.assertIn("none (final state)", result.error)
        self.assertTrue(is_terminal(APPLICATION, "withdrawn"))
        self.assertFalse(is_terminal(APPLICATION, "pending"))

    def test_unknown_statuses_are_reported_not_raised(self) -> None:
        result = validate_transition(TRAINING_APPLICATION, "graduated", "certified")
        self.assertFalse(result.is_valid)
        self.assertIn("Valid statuses", result.error)
        result = validate_transition(TRAINING_APPLICATION, "completed", "graduated")
        self.assertFalse(result.is_valid)
        self.assertEqual(result.allowed, ("certified", "archived"))

    def test_unknown_lifecycle_raises(self) -> None:
        with self.assertRaises(ValueError):
            validate_transition("payroll", "a", "b")

    def test_every_allowed_target_is_a_known_status(self) -> None:
        for lifecycle, rules in RULES.items():
            for status, rule in rules.items():
                for target in rule.allowed:
                    self.assertIn(target, rules, f"{lifecycle}: {status} -> {target}")

    def test_describe_transitions(self) -> None:
        self.assertEqual(
            describe_transitions(PROGRAM, "completed"),
            'You can change this completed program to "archived".',
        )
        self.assertIn("final state", describe_transitions(APPLICATION, "archived"))
        self.assertEqual(valid_transitions(APPLICATION, "nope"), [])


class TestStatusHistory(unittest.TestCase):

    def test_submit_and_apply(self) -> None:
        record = StatusRecord.submit("P1", PROGRAM, actor="hr", at=T0)
        self.assertEqual(record.status, "upcoming")
        outcome = apply_transition(record, TransitionRequest("active", actor="hr", at=T0 + timedelta(days=1)))
        self.assertTrue(outcome.accepted)
        self.assertEqual(outcome.record.status, "active")
        self.assertEqual(len(outcome.record.history), 2)
        self.assertEqual(outcome.history_entry.from_status, "upcoming")
        # original record untouched
        self.assertEqual(record.status, "upcoming")
        self.assertEqual(validate_history(PROGRAM, outcome.record.history), [])

    def test_rejected_transition_leaves_history_alone(self) -> None:
        record = StatusRecord.submit("A1", APPLICATION, at=T0)
        outcome = apply_transition(record, TransitionRequest("hired"))
        self.assertFalse(outcome.accepted)
        self.assertIs(outcome.record, record)
        self.assertIsNone(outcome.history_entry)
        self.assertEqual(outcome.allowed, ("under_review", "withdrawn", "archived"))

    def test_no_op_adds_no_entry(self) -> None:
        record = StatusRecord.submit("A1", APPLICATION, at=T0)
        outcome = apply_transition(record, TransitionRequest("pending"))
        self.assertTrue(outcome.accepted)
        self.assertEqual(len(outcome.record.history), 1)
        self.assertIsNone(outcome.history_entry)

    def test_timestamps_never_go_backwards(self) -> None:
        record = StatusRecord.submit("A1", APPLICATION, at=T0)
        outcome = apply_transition(record, TransitionRequest("under_review", at=T0 - timedelta(days=3)))
        self.assertEqual(outcome.history_entry.changed_at, T0)

    def test_submit_rejects_bad_initial_status(self) -> None:
        with self.assertRaises(ValueError):
            StatusRecord.submit("A1", APPLICATION, initial_status="hired_yesterday")

    def test_record_round_trip(self) -> None:
        record = StatusRecord.submit("T1", TRAINING_APPLICATION, actor="applicant", at=T0)
        record = apply_transition(record, TransitionRequest("approved", actor="hr", notes="complete documents")).record
        loaded = StatusRecord.from_dict(record.to_dict())
        self.assertEqual(loaded, record)

    def test_legacy_row_without_history(self) -> None:
        record = StatusRecord.from_dict(
            {"id": 5, "status": "ongoing", "created_at": "2024-02-01T00:00:00Z"}, lifecycle=PROGRAM
        )
        self.assertEqual(record.record_id, "5")
        self.assertEqual(record.status, "ongoing")
        self.assertIsNone(record.history[0].from_status)

    def test_validate_history_finds_problems(self) -> None:
        history = [
            StatusHistoryEntry(None, "pending", T0),
            StatusHistoryEntry("pending", "hired", T0 + timedelta(days=1)),
            StatusHistoryEntry("approved", "archived", T0),
        ]
        problems = validate_history(APPLICATION, history)
        self.assertEqual(len(problems), 3)


class TestStatusLedger(unittest.TestCase):

    def test_ledger_transitions(self) -> None:
        ledger = StatusLedger([StatusRecord.submit("P1", PROGRAM, at=T0)])
        self.assertIn("P1", ledger)
        with self.assertRaises(ValueError):
            ledger.add(StatusRecord.submit("P1", PROGRAM))
        with self.assertRaises(KeyError):
            ledger.transition("missing", TransitionRequest("active"))
        self.assertTrue(ledger.transition("P1", TransitionRequest("active")).accepted)
        self.assertFalse(ledger.transition("P1", TransitionRequest("completed")).accepted)
        self.assertEqual(ledger.get("P1").status, "active")

    def test_concurrent_requests_build_on_each_other(self) -> None:
        ledger = StatusLedger([StatusRecord.submit("P1", PROGRAM, at=T0)])
        outcomes = []
        barrier = threading.Barrier(4)

        def worker() -> None:
            barrier.wait()
            outcomes.append(ledger.transition("P1", TransitionRequest("active")))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        # one real change, the rest are no-ops on the updated record
        self.assertTrue(all(o.accepted for o in outcomes))
        self.assertEqual(sum(1 for o in outcomes if o.history_entry is not None), 1)
        self.assertEqual(len(ledger.get("P1").history), 2)


if __name__ == "__main__":
    unittest.main()
