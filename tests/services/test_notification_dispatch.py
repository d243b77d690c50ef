"""Tests for NotificationDispatcher: background delivery and failure isolation."""

from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import pytest

from voucher_kernel.domain.voucher import WorkflowNotice
from voucher_services.notification_dispatcher import LoggingNotifier, NotificationDispatcher


class ExplodingNotifier:
    def notify(self, voucher_id, new_stage, next_role):
        raise ConnectionError("mail relay down")


@pytest.fixture
def dispatcher_factory():
    created = []

    def _make(notifier=None, **kwargs):
        dispatcher = NotificationDispatcher(notifier, **kwargs)
        created.append(dispatcher)
        return dispatcher

    yield _make
    for dispatcher in created:
        dispatcher.shutdown()


class TestDispatch:

    def test_delivers_notice(self, dispatcher_factory, recording_notifier):
        dispatcher = dispatcher_factory(recording_notifier)
        notice = WorkflowNotice(uuid4(), 2, "MAYOR")
        assert dispatcher.dispatch(notice).result(timeout=5) is True
        assert recording_notifier.calls == [(notice.voucher_id, 2, "MAYOR")]

    def test_failure_is_logged_not_raised(self, dispatcher_factory, captured_logs):
        dispatcher = dispatcher_factory(ExplodingNotifier())
        notice = WorkflowNotice(uuid4(), None, None)
        assert dispatcher.dispatch(notice).result(timeout=5) is False

        failures = [r for r in captured_logs() if r["message"] == "notification_failed"]
        assert len(failures) == 1
        assert failures[0]["voucher_id"] == str(notice.voucher_id)
        assert failures[0]["exc_type"] == "ConnectionError"

    def test_drain_waits_for_pending(self, dispatcher_factory, recording_notifier):
        dispatcher = dispatcher_factory(recording_notifier, max_workers=1)
        for stage in (1, 2, 3):
            dispatcher.dispatch(WorkflowNotice(uuid4(), stage, "ANY"))
        dispatcher.drain(timeout=5)
        assert [call[1] for call in recording_notifier.calls] == [1, 2, 3]

    def test_default_notifier_logs(self, dispatcher_factory, captured_logs):
        dispatcher = dispatcher_factory()
        assert isinstance(dispatcher.notifier, LoggingNotifier)
        dispatcher.dispatch(WorkflowNotice(uuid4(), 4, "BUDGET")).result(timeout=5)
        records = [r for r in captured_logs() if r["message"] == "workflow_notification"]
        assert records[0]["next_role"] == "BUDGET"

    def test_borrowed_executor_not_shut_down(self, recording_notifier):
        with ThreadPoolExecutor(max_workers=1) as executor:
            dispatcher = NotificationDispatcher(recording_notifier, executor=executor)
            dispatcher.shutdown()
            future = executor.submit(lambda: "still running")
            assert future.result(timeout=5) == "still running"
