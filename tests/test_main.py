"""End-to-end tests for the execution driver against the in-memory storage."""

import signal
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import FakeStorage, MiB
from s3_remote_concat import RemoteConcatenator, TargetStatus, concatenate
from s3_remote_concat.config import ConcatSettings
from s3_remote_concat.exceptions import ConfigurationError, StoragePermissionError, TransientIOError
from s3_remote_concat.planning import GroupPlanner

DATE_PATTERN = r"a/(\d{4})/(\d{2})/(\d{2})/*.gz"


def _run(storage, settings, source="logs/*.gz", target="merged/all.gz", **kwargs):
    return RemoteConcatenator(storage, settings).run("s3://bucket/", source, target, **kwargs)


class TestScenarios:
    def test_distinct_captures_commit_single_part_objects(self, settings):
        storage = FakeStorage([("a/2018/01/01/x.gz", 6 * MiB), ("a/2018/01/02/y.gz", 3 * MiB)])

        report = _run(storage, settings, DATE_PATTERN, "flat/$1-$2-$3.gz")

        assert [t.target_key for t in report.targets] == ["flat/2018-01-01.gz", "flat/2018-01-02.gz"]
        assert all(t.status is TargetStatus.COMMITTED for t in report.targets)
        assert storage.assembled["flat/2018-01-01.gz"] == ["a/2018/01/01/x.gz"]
        assert storage.objects["flat/2018-01-02.gz"] == 3 * MiB
        assert report.exit_code == 0

    def test_ten_objects_concatenate_into_sixty_mib(self, settings):
        keys = [f"logs/{i:02d}.gz" for i in range(10)]
        storage = FakeStorage((key, 6 * MiB) for key in keys)

        report = _run(storage, settings)

        target = report.get_target("merged/all.gz")
        assert target.status is TargetStatus.COMMITTED
        assert len(target.groups) == 1
        assert storage.assembled["merged/all.gz"] == keys
        assert storage.objects["merged/all.gz"] == 60 * MiB

    def test_small_leading_object_fails_without_network_calls(self, settings):
        storage = FakeStorage([("logs/a.gz", 3 * MiB), ("logs/b.gz", 6 * MiB)])

        report = _run(storage, settings)

        target = report.get_target("merged/all.gz")
        assert target.status is TargetStatus.VALIDATION_FAILED
        assert "logs/a.gz" in target.reason
        assert storage.mutating_calls() == []
        assert report.exit_code == 1

    def test_small_trailing_object_commits(self, settings):
        storage = FakeStorage([("logs/a.gz", 6 * MiB), ("logs/b.gz", 3 * MiB)])

        report = _run(storage, settings)

        assert report.get_target("merged/all.gz").status is TargetStatus.COMMITTED
        assert storage.assembled["merged/all.gz"] == ["logs/a.gz", "logs/b.gz"]
        assert storage.objects["merged/all.gz"] == 9 * MiB


class TestDryRun:
    def test_dry_run_never_mutates_storage(self, settings):
        storage = FakeStorage([("logs/a.gz", 6 * MiB), ("logs/b.gz", 1), ("other/c.gz", 1)])

        report = _run(storage, settings, cleanup=True, dry_run=True)

        assert storage.mutating_calls() == []
        assert [name for name, _ in storage.calls] == ["list_page"]
        target = report.get_target("merged/all.gz")
        assert target.status is TargetStatus.PLANNED
        assert target.source_keys == ["logs/a.gz", "logs/b.gz"]
        assert target.total_size == 6 * MiB + 1
        assert report.dry_run
        assert report.exit_code == 0

    def test_dry_run_reports_validation_failures(self, settings):
        storage = FakeStorage([("logs/a.gz", 1), ("logs/b.gz", 6 * MiB)])

        report = _run(storage, settings, dry_run=True)

        assert report.get_target("merged/all.gz").status is TargetStatus.VALIDATION_FAILED
        assert report.exit_code == 1


class TestCleanup:
    def test_sources_deleted_only_after_commit(self, settings):
        storage = FakeStorage([("logs/a.gz", 6 * MiB), ("logs/b.gz", 1)])

        report = _run(storage, settings, cleanup=True)

        target = report.get_target("merged/all.gz")
        assert target.deleted_keys == ["logs/a.gz", "logs/b.gz"]
        assert set(storage.objects) == {"merged/all.gz"}
        names = [name for name, _ in storage.mutating_calls()]
        assert names.index("commit") < names.index("delete")

    def test_no_cleanup_when_commit_fails(self, settings):
        storage = FakeStorage([("logs/a.gz", 6 * MiB), ("logs/b.gz", 1)])
        storage.fail("commit", TransientIOError("InternalError"))

        report = _run(storage, settings, cleanup=True)

        target = report.get_target("merged/all.gz")
        assert target.status is TargetStatus.ABORTED
        assert storage.calls_to("delete") == []
        assert "logs/a.gz" in storage.objects
        assert report.exit_code == 1

    def test_no_deletion_without_cleanup_flag(self, settings):
        storage = FakeStorage([("logs/a.gz", 6 * MiB), ("logs/b.gz", 1)])
        _run(storage, settings)
        assert storage.calls_to("delete") == []

    def test_delete_failures_are_reported_per_object(self, settings):
        storage = FakeStorage([("logs/a.gz", 6 * MiB), ("logs/b.gz", 1)])
        storage.fail("delete", StoragePermissionError("AccessDenied"), source_key="logs/a.gz")

        report = _run(storage, settings, cleanup=True)

        target = report.get_target("merged/all.gz")
        assert target.status is TargetStatus.COMMITTED
        assert target.deleted_keys == ["logs/b.gz"]
        assert target.delete_failures[0][0] == "logs/a.gz"
        assert "merged/all.gz" in storage.objects


class TestFailureIsolation:
    def test_one_target_failing_does_not_stop_siblings(self, settings):
        storage = FakeStorage(
            [
                ("a/2018/01/01/x.gz", 6 * MiB),
                ("a/2018/01/02/y.gz", 6 * MiB),
                ("a/2018/01/03/z.gz", 6 * MiB),
            ]
        )
        storage.fail("copy_segment", TransientIOError("SlowDown"), source_key="a/2018/01/02/y.gz")

        report = _run(storage, settings, DATE_PATTERN, "flat/$1-$2-$3.gz", cleanup=True)

        statuses = {t.target_key: t.status for t in report.targets}
        assert statuses == {
            "flat/2018-01-01.gz": TargetStatus.COMMITTED,
            "flat/2018-01-02.gz": TargetStatus.ABORTED,
            "flat/2018-01-03.gz": TargetStatus.COMMITTED,
        }
        assert "a/2018/01/02/y.gz" in storage.objects
        assert "a/2018/01/01/x.gz" not in storage.objects
        assert len(storage.calls_to("abort")) == 1
        assert report.exit_code == 1

    def test_unexpected_error_fails_only_its_target(self, settings):
        storage = FakeStorage([("a/2018/01/01/x.gz", 6 * MiB), ("a/2018/01/02/y.gz", 6 * MiB)])
        storage.fail("copy_segment", OSError("socket reset"), source_key="a/2018/01/02/y.gz")

        report = _run(storage, settings, DATE_PATTERN, "flat/$1-$2-$3.gz")

        assert report.get_target("flat/2018-01-01.gz").status is TargetStatus.COMMITTED
        failed = report.get_target("flat/2018-01-02.gz")
        assert failed.status is TargetStatus.ABORTED
        assert failed.reason == "socket reset"
        assert [args[1] for args in storage.calls_to("abort")] == ["flat/2018-01-02.gz"]
        assert "flat/2018-01-02.gz" not in storage.objects
        assert report.exit_code == 1

    def test_validation_failure_skips_only_that_target(self, settings):
        storage = FakeStorage(
            [
                ("a/2018/01/01/x.gz", 1),
                ("a/2018/01/01/y.gz", 6 * MiB),
                ("a/2018/01/02/z.gz", 6 * MiB),
            ]
        )

        report = _run(storage, settings, DATE_PATTERN, "flat/$1-$2-$3.gz")

        assert report.get_target("flat/2018-01-01.gz").status is TargetStatus.VALIDATION_FAILED
        assert report.get_target("flat/2018-01-02.gz").status is TargetStatus.COMMITTED


class TestInterrupt:
    @pytest.mark.skipif(not hasattr(signal, "pthread_kill"), reason="needs POSIX thread signals")
    def test_ctrl_c_aborts_the_open_upload_and_skips_cleanup(self):
        storage = FakeStorage([("logs/a.gz", 6 * MiB), ("logs/b.gz", 1)])
        settings = ConcatSettings(retry_delay=0.0, part_concurrency=1, target_concurrency=1)
        cancel_event = threading.Event()
        copy_segment = storage.copy_segment

        def copy_then_interrupt(*args):
            part = copy_segment(*args)
            signal.pthread_kill(threading.main_thread().ident, signal.SIGINT)
            cancel_event.wait(5)
            return part

        storage.copy_segment = copy_then_interrupt

        report = RemoteConcatenator(storage, settings, cancel_event=cancel_event).run(
            "bucket", "logs/*.gz", "merged.gz", cleanup=True
        )

        target = report.get_target("merged.gz")
        assert target.status is TargetStatus.CANCELLED
        assert len(storage.calls_to("copy_segment")) == 1
        assert storage.calls_to("commit") == []
        assert storage.calls_to("abort") == [("bucket", "merged.gz", "upload-1")]
        assert storage.calls_to("delete") == []
        assert report.exit_code == 1

    def test_interrupt_while_submitting_cancels_the_rest(self, settings, monkeypatch):
        submitted = []

        class InterruptingExecutor(ThreadPoolExecutor):
            def submit(self, fn, *args, **kwargs):
                if submitted:
                    raise KeyboardInterrupt
                future = super().submit(fn, *args, **kwargs)
                submitted.append(future)
                return future

        monkeypatch.setattr("s3_remote_concat.main.ThreadPoolExecutor", InterruptingExecutor)
        storage = FakeStorage([("a/2018/01/01/x.gz", 6 * MiB), ("a/2018/01/02/y.gz", 6 * MiB)])
        concatenator = RemoteConcatenator(storage, settings)

        report = concatenator.run("bucket", DATE_PATTERN, "flat/$1-$2-$3.gz")

        assert concatenator.cancel_event.is_set()
        assert len(submitted) == 1
        assert report.get_target("flat/2018-01-02.gz").status is TargetStatus.CANCELLED
        opened = [args[1] for args in storage.calls_to("open_multipart_session")]
        assert "flat/2018-01-02.gz" not in opened
        assert report.exit_code == 1


class TestOverflow:
    @pytest.fixture
    def small_planner(self, monkeypatch):
        monkeypatch.setattr(
            "s3_remote_concat.main.GroupPlanner",
            lambda overflow: GroupPlanner(overflow=overflow, max_parts=2),
        )

    def test_report_policy_never_deletes_unplaced_objects(self, settings, small_planner):
        storage = FakeStorage((f"logs/{i}.gz", 6 * MiB) for i in range(5))

        report = _run(storage, settings, cleanup=True)

        target = report.get_target("merged/all.gz")
        assert target.status is TargetStatus.COMMITTED
        assert target.unplaceable_keys == ["logs/2.gz", "logs/3.gz", "logs/4.gz"]
        assert target.deleted_keys == ["logs/0.gz", "logs/1.gz"]
        assert {"logs/2.gz", "logs/3.gz", "logs/4.gz"} <= set(storage.objects)
        assert report.exit_code == 1

    def test_split_policy_commits_numbered_targets(self, small_planner):
        storage = FakeStorage((f"logs/{i}.gz", 6 * MiB) for i in range(5))
        settings = ConcatSettings(retry_delay=0.0, overflow="split")

        report = _run(storage, settings)

        target = report.get_target("merged/all.gz")
        assert target.status is TargetStatus.COMMITTED
        assert storage.assembled == {
            "merged/all.gz": ["logs/0.gz", "logs/1.gz"],
            "merged/all.part2.gz": ["logs/2.gz", "logs/3.gz"],
            "merged/all.part3.gz": ["logs/4.gz"],
        }
        assert report.exit_code == 0


class TestDriverInputs:
    def test_pagination_is_followed(self, settings):
        storage = FakeStorage(((f"logs/{i:02d}.gz", 6 * MiB) for i in range(7)), page_size=3)

        report = _run(storage, settings)

        assert len(storage.calls_to("list_page")) == 3
        assert report.get_target("merged/all.gz").groups[0].source_keys == [f"logs/{i:02d}.gz" for i in range(7)]

    def test_prefix_limits_listing(self, settings):
        storage = FakeStorage([("logs/a.gz", 1), ("other/b.gz", 1)])

        report = RemoteConcatenator(storage, settings).run("s3://bucket/logs/", "logs/*.gz", "merged.gz")

        assert storage.calls_to("list_page")[0][:2] == ("bucket", "logs")
        assert report.prefix == "logs"

    def test_configuration_errors_happen_before_listing(self, settings):
        storage = FakeStorage([("logs/a.gz", 1)])
        with pytest.raises(ConfigurationError):
            _run(storage, settings, r"logs/(\w+)\.gz", "out/$2.gz")
        assert storage.calls == []

    def test_no_matches_is_an_empty_success(self, settings):
        report = _run(FakeStorage([("other/a.gz", 1)]), settings)
        assert report.targets == []
        assert report.exit_code == 0

    def test_concatenate_helper(self, settings):
        storage = FakeStorage([("logs/a.gz", 6 * MiB)])
        report = concatenate(storage, "bucket", "logs/*.gz", "merged.gz", settings=settings)
        assert report.get_target("merged.gz").status is TargetStatus.COMMITTED

    def test_cancelled_run_starts_no_uploads(self, settings):
        storage = FakeStorage([("logs/a.gz", 6 * MiB)])
        concatenator = RemoteConcatenator(storage, settings)
        concatenator.cancel_event.set()

        report = concatenator.run("bucket", "logs/*.gz", "merged.gz")

        assert report.get_target("merged.gz").status is TargetStatus.CANCELLED
        assert storage.mutating_calls() == []
        assert report.exit_code == 1
