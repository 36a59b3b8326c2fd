#  Copyright (c) 2026 by the Tunedeck team and contributors
#  Permissions are hereby granted under the terms of the Apache 2.0 License:
#  https://opensource.org/license/apache-2-0.

from collections.abc import Sequence
from typing import Any, Optional
from unittest import TestCase

from tunedeck.api.exceptions import ClientError, TransportError
from tunedeck.api.models import Job
from tunedeck.core.snapshot import JobSnapshotStore, SnapshotObserver

from ..helpers import make_job


class MySnapshotObserver(SnapshotObserver):
    def __init__(self):
        self.records: list[tuple[str, Any]] = []

    def on_snapshot_replaced(self, jobs: Sequence[Job]):
        self.records.append(("snapshot_replaced", [job.id for job in jobs]))

    def on_snapshot_error(self, error: Optional[ClientError]):
        self.records.append(("snapshot_error", error))


class JobSnapshotStoreTest(TestCase):
    def test_empty(self):
        store = JobSnapshotStore()
        self.assertEqual((), store.get())
        self.assertEqual(0, store.version)
        self.assertEqual(0, len(store))
        self.assertIsNone(store.get_job("a"))

    def test_replace_all_sorts_newest_first(self):
        store = JobSnapshotStore()
        store.replace_all(
            [
                make_job("old", minutes=1),
                make_job("undated-1", minutes=None),
                make_job("new", minutes=30),
                make_job("undated-2", minutes=None),
                make_job("mid", minutes=10),
            ]
        )
        self.assertEqual(
            ["new", "mid", "old", "undated-1", "undated-2"],
            [job.id for job in store.get()],
        )

    def test_sort_is_stable(self):
        store = JobSnapshotStore()
        store.replace_all([make_job(str(i), minutes=5) for i in range(5)])
        self.assertEqual(["0", "1", "2", "3", "4"], [job.id for job in store.get()])

    def test_replace_all_is_whole(self):
        store = JobSnapshotStore([make_job("a"), make_job("b")])
        store.replace_all([make_job("c")])
        self.assertEqual(["c"], [job.id for job in store.get()])
        self.assertEqual("c", store.get_job("c").id)
        self.assertIsNone(store.get_job("a"))

    def test_version(self):
        store = JobSnapshotStore()
        store.replace_all([make_job("a")])
        store.replace_all([make_job("a")])
        self.assertEqual(2, store.version)

    def test_error_keeps_snapshot(self):
        store = JobSnapshotStore()
        store.replace_all([make_job("a")])
        error = TransportError("Connection refused")
        store.report_error(error)
        self.assertIs(error, store.error)
        self.assertEqual(["a"], [job.id for job in store.get()])
        self.assertEqual(1, store.version)

        store.replace_all([])
        self.assertIsNone(store.error)

    def test_observer(self):
        store = JobSnapshotStore()
        observer = MySnapshotObserver()
        store.register(observer)
        error = TransportError("Connection refused")
        store.replace_all([make_job("a", minutes=1), make_job("b", minutes=2)])
        store.report_error(error)
        self.assertEqual(
            [("snapshot_replaced", ["b", "a"]), ("snapshot_error", error)],
            observer.records,
        )
