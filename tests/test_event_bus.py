from portfolio_agent.event_bus import EventBus, ExecutorEvent


def test_command_executed_reaches_subscribers():
    bus = EventBus()
    received: list[ExecutorEvent] = []
    bus.subscribe(received.append)

    emitted = bus.command_executed("add_role", True, 'Added role "Mentor"', audit_log_id="abc")

    assert received == [emitted]
    event = received[0]
    assert event.event_type == "command_executed"
    assert event.command_type == "add_role"
    assert event.success
    assert event.message == 'Added role "Mentor"'
    assert event.audit_log_id == "abc"
    assert event.error is None

    # Auto-generated fields
    assert isinstance(event.event_id, str)
    assert event.timestamp.tzinfo is not None


def test_subscribers_can_filter_by_event_type():
    bus = EventBus()
    failures = []
    everything = []
    bus.subscribe(failures.append, event_type="audit_write_failed")
    bus.subscribe(everything.append)

    bus.command_executed("noop", True, "No action needed")
    bus.audit_write_failed("add_skill", True, "entry-1", "disk full")

    assert [e.event_type for e in everything] == ["command_executed", "audit_write_failed"]
    assert [(e.command_type, e.audit_log_id, e.error) for e in failures] == [("add_skill", "entry-1", "disk full")]


def test_failing_subscriber_does_not_stop_delivery():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    bus.audit_write_failed("add_role", True, "entry-2", "disk full")
    assert [e.event_type for e in received] == ["audit_write_failed"]
