from __future__ import annotations

import random
import unittest
from datetime import datetime, timezone

from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker

from santadraw.draw import (
    Assignment,
    DrawEngine,
    GroupSnapshot,
    GroupState,
    ParticipantRow,
    plan_draw,
)
from santadraw.errors import (
    ConcurrentDrawConflictError,
    ExchangeExhaustedError,
    GroupNotLockedError,
    NameAlreadyClaimedError,
    NotEnoughParticipantsError,
    NotificationDeliveryError,
    PersistenceError,
    UnknownParticipantError,
    ValidationError,
)
from santadraw.models import Base, Participant
from santadraw.notify import NotificationSink
from santadraw.store.sql import SqlGroupStore
from santadraw.workflows import generate_group_link, reset_group, save_roster


class RecordingSink(NotificationSink):
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.calls: list[dict] = []

    def send_match_notification(self, **kwargs) -> bool:
        self.calls.append(kwargs)
        return self.succeed


class PickFirst:
    def choice(self, seq):
        return seq[0]


class PickLast:
    def choice(self, seq):
        return seq[-1]


class NoRandom:
    def choice(self, seq):
        raise AssertionError("a re-claim must not pick a new giftee")


class InterleavingStore:
    """Delegates to ``inner`` but runs ``hook`` right after participants are read.

    The rows returned are the ones read *before* the hook ran, which mimics
    another session committing between this session's read and write.
    """

    def __init__(self, inner, hook):
        self._inner = inner
        self._hook = hook

    def get_participants(self, group_id):
        rows = self._inner.get_participants(group_id)
        hook, self._hook = self._hook, None
        if hook is not None:
            hook()
        return rows

    def __getattr__(self, item):
        return getattr(self._inner, item)


class FailingReadStore:
    def __init__(self, inner):
        self._inner = inner
        self.writes = 0

    def get_participants(self, group_id):
        raise PersistenceError("Could not load participants")

    def conditional_assign_giftee(self, *args, **kwargs):
        self.writes += 1
        return self._inner.conditional_assign_giftee(*args, **kwargs)

    def __getattr__(self, item):
        return getattr(self._inner, item)


class PlanDrawTests(unittest.TestCase):
    def _snapshot(self, assignments=None) -> GroupSnapshot:
        return GroupSnapshot(
            group_id=1,
            slug="abc12345",
            roster=("Alice", "Bob", "Carol"),
            assignments=assignments or {},
            locked=True,
        )

    def test_fresh_draw_excludes_self_and_taken(self) -> None:
        snapshot = self._snapshot({"Bob": Assignment(giftee="Carol", email="b@x.com")})
        plan = plan_draw(snapshot, "Alice", "a@x.com", PickFirst())
        self.assertTrue(plan.fresh)
        self.assertEqual(plan.giftee, "Bob")

    def test_existing_draw_is_reclaimed_without_randomness(self) -> None:
        snapshot = self._snapshot({"Alice": Assignment(giftee="Carol", email="a@x.com")})
        plan = plan_draw(snapshot, "Alice", "  A@X.com ", NoRandom())
        self.assertFalse(plan.fresh)
        self.assertEqual(plan.giftee, "Carol")
        self.assertEqual(plan.email, "a@x.com")

    def test_unclaimed_existing_draw_can_be_claimed(self) -> None:
        snapshot = self._snapshot({"Alice": Assignment(giftee="Carol", email="")})
        plan = plan_draw(snapshot, "Alice", "new@x.com", NoRandom())
        self.assertFalse(plan.fresh)
        self.assertEqual(plan.giftee, "Carol")

    def test_claimed_by_other_email_raises(self) -> None:
        snapshot = self._snapshot({"Alice": Assignment(giftee="Carol", email="a@x.com")})
        with self.assertRaises(NameAlreadyClaimedError):
            plan_draw(snapshot, "Alice", "someone@x.com", NoRandom())

    def test_no_candidates_raises_exhausted(self) -> None:
        snapshot = self._snapshot(
            {
                "Alice": Assignment(giftee="Bob", email="a@x.com"),
                "Bob": Assignment(giftee="Alice", email="b@x.com"),
            }
        )
        with self.assertRaises(ExchangeExhaustedError):
            plan_draw(snapshot, "Carol", "c@x.com", PickFirst())

    def test_reconcile_prefers_remote_values(self) -> None:
        local = self._snapshot({"Alice": Assignment(giftee="Bob", email="a@x.com")})
        drawn_at = datetime(2025, 12, 1, tzinfo=timezone.utc)
        merged = local.reconcile(
            [
                ParticipantRow("Alice", "a@x.com", "Carol", drawn_at),
                ParticipantRow("Bob", None, None, None),
                ParticipantRow("Carol", "C@X.com", "Alice", None),
            ]
        )
        self.assertEqual(merged.assignments["Alice"].giftee, "Carol")
        self.assertEqual(merged.assignments["Alice"].timestamp, drawn_at)
        self.assertEqual(merged.assignments["Carol"].email, "c@x.com")
        self.assertNotIn("Bob", merged.assignments)
        self.assertEqual(merged.state, GroupState.DRAWING)

    def test_reconcile_keeps_local_email_when_remote_has_none(self) -> None:
        local = self._snapshot({"Alice": Assignment(giftee="Bob", email="a@x.com")})
        merged = local.reconcile([ParticipantRow("Alice", None, "Bob", None)])
        self.assertEqual(merged.assignments["Alice"].email, "a@x.com")

    def test_reconcile_drops_draw_the_store_does_not_have(self) -> None:
        local = self._snapshot({"Alice": Assignment(giftee="Bob", email="a@x.com")})
        merged = local.reconcile(
            [ParticipantRow("Alice"), ParticipantRow("Bob"), ParticipantRow("Carol")]
        )
        self.assertEqual(merged.assignments, {})
        self.assertEqual(merged.state, GroupState.LOCKED)

        plan = plan_draw(merged, "Alice", "a@x.com", PickLast())
        self.assertTrue(plan.fresh)
        self.assertEqual(plan.giftee, "Carol")

    def test_reconcile_drops_names_missing_from_store(self) -> None:
        local = self._snapshot({"Dave": Assignment(giftee="Alice", email="d@x.com")})
        merged = local.reconcile([ParticipantRow("Alice", "a@x.com", "Bob", None)])
        self.assertEqual(set(merged.assignments), {"Alice"})

    def test_without_name_drops_assignments_referencing_it(self) -> None:
        snapshot = self._snapshot(
            {
                "Alice": Assignment(giftee="Bob", email="a@x.com"),
                "Carol": Assignment(giftee="Alice", email="c@x.com"),
            }
        ).without_name("Bob")
        self.assertEqual(snapshot.roster, ("Alice", "Carol"))
        self.assertEqual(set(snapshot.assignments), {"Carol"})

    def test_lifecycle_states(self) -> None:
        self.assertEqual(GroupSnapshot().state, GroupState.OPEN)
        self.assertEqual(self._snapshot().state, GroupState.LOCKED)


class DrawEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )
        self.store = SqlGroupStore(self.Session)
        self.sink = RecordingSink()

    def tearDown(self) -> None:
        self.engine.dispose()

    def _locked_group(self, names=("Alice", "Bob", "Carol")) -> GroupSnapshot:
        saved = save_roster(self.store, GroupSnapshot(), "organiser@x.com", names)
        locked, _ = generate_group_link(self.store, saved, base_url="https://santa.test")
        return locked

    def _stored_assignments(self, group_id: int) -> dict[str, str]:
        return {
            row.name: row.giftee_name
            for row in self.store.get_participants(group_id)
            if row.giftee_name
        }

    def test_scenario_greedy_draw_can_strand_last_drawer(self) -> None:
        snapshot = self._locked_group()
        engine = DrawEngine(self.store, self.sink, rng=PickFirst())

        alice = engine.draw(snapshot, "Alice", "a@x.com")
        self.assertEqual(alice.giftee_name, "Bob")
        bob = engine.draw(alice.snapshot, "Bob", "b@x.com")
        self.assertEqual(bob.giftee_name, "Alice")

        with self.assertRaises(ExchangeExhaustedError):
            engine.draw(bob.snapshot, "Carol", "c@x.com")

        self.assertEqual(
            self._stored_assignments(snapshot.group_id), {"Alice": "Bob", "Bob": "Alice"}
        )
        self.assertEqual(len(self.sink.calls), 2)

    def test_scenario_full_exchange_completes(self) -> None:
        snapshot = self._locked_group()
        engine = DrawEngine(self.store, self.sink, rng=PickLast())

        for name, email in (("Alice", "a@x.com"), ("Bob", "b@x.com"), ("Carol", "c@x.com")):
            snapshot = engine.draw(snapshot, name, email).snapshot

        stored = self._stored_assignments(snapshot.group_id)
        self.assertEqual(stored, {"Alice": "Carol", "Bob": "Alice", "Carol": "Bob"})
        self.assertEqual(
            self.sink.calls[0],
            {
                "group_id": snapshot.group_id,
                "gifter_name": "Alice",
                "giftee_name": "Carol",
                "email": "a@x.com",
            },
        )

    def test_random_draws_never_self_or_duplicate(self) -> None:
        for seed in range(25):
            with self.subTest(seed=seed):
                rng = random.Random(seed)
                names = [f"Person {i}" for i in range(rng.randint(2, 7))]
                snapshot = self._locked_group(names)
                engine = DrawEngine(self.store, self.sink, rng=rng)

                order = list(names)
                rng.shuffle(order)
                for name in order:
                    try:
                        engine.draw(snapshot, name, f"{name.replace(' ', '')}@x.com")
                    except ExchangeExhaustedError:
                        pass

                stored = self._stored_assignments(snapshot.group_id)
                for gifter, giftee in stored.items():
                    self.assertNotEqual(gifter, giftee)
                self.assertEqual(len(set(stored.values())), len(stored))

    def test_redraw_with_same_email_only_resends(self) -> None:
        snapshot = self._locked_group()
        first = DrawEngine(self.store, self.sink, rng=PickFirst()).draw(
            snapshot, "Alice", "a@x.com"
        )

        # a fresh browser session that has not seen the draw yet
        again = DrawEngine(self.store, self.sink, rng=NoRandom()).draw(
            snapshot, "Alice", "A@x.com"
        )

        self.assertTrue(again.resent)
        self.assertEqual(again.giftee_name, first.giftee_name)
        self.assertEqual(self._stored_assignments(snapshot.group_id)["Alice"], first.giftee_name)
        self.assertEqual([c["giftee_name"] for c in self.sink.calls], [first.giftee_name] * 2)

    def test_view_from_before_reset_draws_fresh(self) -> None:
        old = self._locked_group()
        engine = DrawEngine(self.store, self.sink, rng=PickFirst())
        stale = engine.draw(old, "Alice", "a@x.com").snapshot
        self.assertEqual(stale.assignments["Alice"].giftee, "Bob")

        # organiser resets, then saves and locks the same roster again
        reset = reset_group(self.store, stale)
        saved = save_roster(self.store, reset, "organiser@x.com", ["Alice", "Bob", "Carol"])
        generate_group_link(self.store, saved, base_url="https://santa.test")

        again = DrawEngine(self.store, self.sink, rng=PickLast()).draw(stale, "Alice", "a@x.com")
        self.assertFalse(again.resent)
        self.assertEqual(again.giftee_name, "Carol")
        self.assertEqual(self._stored_assignments(old.group_id), {"Alice": "Carol"})

        carol = DrawEngine(self.store, self.sink, rng=PickFirst()).draw(stale, "Carol", "c@x.com")
        self.assertEqual(carol.giftee_name, "Alice")
        self.assertEqual(
            self._stored_assignments(old.group_id), {"Alice": "Carol", "Carol": "Alice"}
        )

    def test_claimed_name_blocks_other_email(self) -> None:
        snapshot = self._locked_group()
        engine = DrawEngine(self.store, self.sink, rng=PickFirst())
        engine.draw(snapshot, "Alice", "a@x.com")

        with self.assertRaises(NameAlreadyClaimedError):
            engine.draw(snapshot, "Alice", "intruder@x.com")
        self.assertEqual(len(self.sink.calls), 1)

    def test_unclaimed_draw_records_claim_email(self) -> None:
        snapshot = self._locked_group()
        with self.Session.begin() as session:
            session.execute(
                update(Participant)
                .where(Participant.name == "Alice")
                .values(giftee_name="Carol")
            )

        outcome = DrawEngine(self.store, self.sink, rng=NoRandom()).draw(
            snapshot, "Alice", "a@x.com"
        )
        self.assertTrue(outcome.resent)
        self.assertEqual(outcome.giftee_name, "Carol")
        rows = {row.name: row for row in self.store.get_participants(snapshot.group_id)}
        self.assertEqual(rows["Alice"].claim_email, "a@x.com")

    def test_concurrent_draws_for_same_name_have_one_winner(self) -> None:
        snapshot = self._locked_group()
        winner_sink = RecordingSink()
        winner = DrawEngine(self.store, winner_sink, rng=PickFirst())

        def other_session_draws() -> None:
            winner.draw(snapshot, "Alice", "a@x.com")

        racing_store = InterleavingStore(self.store, other_session_draws)
        loser = DrawEngine(racing_store, self.sink, rng=PickLast())

        with self.assertRaises(ConcurrentDrawConflictError):
            loser.draw(snapshot, "Alice", "a@x.com")

        self.assertEqual(self._stored_assignments(snapshot.group_id), {"Alice": "Bob"})
        self.assertEqual(len(winner_sink.calls), 1)
        self.assertEqual(self.sink.calls, [])

        # retrying from reconciliation turns into a resend of the winning draw
        retry = loser.draw(snapshot, "Alice", "a@x.com")
        self.assertTrue(retry.resent)
        self.assertEqual(retry.giftee_name, "Bob")

    def test_concurrent_draws_cannot_share_a_giftee(self) -> None:
        snapshot = self._locked_group()
        other_sink = RecordingSink()
        bob = DrawEngine(self.store, other_sink, rng=PickLast())

        def bob_draws_carol() -> None:
            bob.draw(snapshot, "Bob", "b@x.com")

        racing_store = InterleavingStore(self.store, bob_draws_carol)
        alice = DrawEngine(racing_store, self.sink, rng=PickLast())

        with self.assertRaises(ConcurrentDrawConflictError):
            alice.draw(snapshot, "Alice", "a@x.com")

        self.assertEqual(self._stored_assignments(snapshot.group_id), {"Bob": "Carol"})
        self.assertEqual([c["giftee_name"] for c in other_sink.calls], ["Carol"])
        self.assertEqual(self.sink.calls, [])

        retry = alice.draw(snapshot, "Alice", "a@x.com")
        self.assertFalse(retry.resent)
        self.assertEqual(retry.giftee_name, "Bob")
        self.assertEqual(
            self._stored_assignments(snapshot.group_id), {"Alice": "Bob", "Bob": "Carol"}
        )

    def test_delivery_failure_keeps_committed_draw(self) -> None:
        snapshot = self._locked_group()
        engine = DrawEngine(self.store, RecordingSink(succeed=False), rng=PickFirst())

        with self.assertRaises(NotificationDeliveryError) as ctx:
            engine.draw(snapshot, "Alice", "a@x.com")

        outcome = ctx.exception.outcome
        self.assertFalse(outcome.resent)
        self.assertEqual(self._stored_assignments(snapshot.group_id), {"Alice": outcome.giftee_name})
        self.assertIn("Alice", outcome.snapshot.assignments)

    def test_failed_reconcile_writes_nothing(self) -> None:
        snapshot = self._locked_group()
        store = FailingReadStore(self.store)
        with self.assertRaises(PersistenceError):
            DrawEngine(store, self.sink, rng=PickFirst()).draw(snapshot, "Alice", "a@x.com")
        self.assertEqual(store.writes, 0)
        self.assertEqual(self.sink.calls, [])

    def test_preconditions(self) -> None:
        locked = self._locked_group()
        engine = DrawEngine(self.store, self.sink, rng=PickFirst())

        with self.assertRaises(GroupNotLockedError):
            engine.draw(GroupSnapshot(group_id=locked.group_id, roster=locked.roster), "Alice", "a@x.com")
        with self.assertRaises(ValidationError):
            engine.draw(locked, "Alice", "   ")
        with self.assertRaises(ValidationError):
            engine.draw(locked, "", "a@x.com")
        with self.assertRaises(UnknownParticipantError):
            engine.draw(locked, "Mallory", "m@x.com")
        with self.assertRaises(NotEnoughParticipantsError):
            engine.draw(
                GroupSnapshot(group_id=locked.group_id, slug="x", roster=("Alice",), locked=True),
                "Alice",
                "a@x.com",
            )
        self.assertEqual(self.sink.calls, [])


if __name__ == "__main__":
    unittest.main()
