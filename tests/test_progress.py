from nexusdfs.session.progress import ProgressBus, _EventBuffer, ProgressEvent


def _statuses(events):
    return [event.status for event in events]


def test_running_events_are_handed_to_new_subscriber():
    bus = ProgressBus()
    bus.begin()
    bus.publish(40, "Generating candidates 4 of 10", current=4, target=10)

    subscription = bus.subscribe()
    bus.complete()
    events = subscription.next_batch(0)
    assert _statuses(events) == ["Initializing", "Generating candidates 4 of 10", "Completed"]
    assert [event.progress for event in events] == [0.0, 40.0, 100.0]
    assert events[-1].terminal
    assert events[1].to_payload() == {
        "progress": 40.0,
        "status": "Generating candidates 4 of 10",
        "current": 4,
        "target": 10,
    }


def test_unwatched_finished_run_is_not_replayed():
    bus = ProgressBus()
    bus.begin()
    bus.publish(60, "Scoring candidates 6 of 10")
    bus.complete()
    assert bus.last_event.status == "Completed"

    subscription = bus.subscribe()
    assert subscription.next_batch(0.01) == []

    bus.begin()
    bus.fail("Generation cancelled")
    events = subscription.next_batch(0)
    assert _statuses(events) == ["Initializing", "Error: Generation cancelled"]
    assert events[0].progress == 0.0


def test_percent_is_monotonic_and_capped_below_completion():
    bus = ProgressBus()
    subscription = bus.subscribe()
    bus.begin()
    bus.publish(50, "Generating")
    bus.publish(30, "Generating")
    bus.publish(100, "Finalizing")
    bus.complete()

    events = subscription.next_batch(0)
    percents = [event.progress for event in events]
    assert percents == [0.0, 50.0, 50.0, 99.0, 100.0]
    assert sum(1 for percent in percents if percent == 100.0) == 1


def test_fail_emits_terminal_error_at_current_percent():
    bus = ProgressBus()
    bus.begin()
    bus.publish(33.3, "Generating")
    event = bus.fail("Minimum exposure for player:X could not be met")
    assert event.terminal
    assert event.status == "Error: Minimum exposure for player:X could not be met"
    assert event.progress == 33.3


def test_begin_resets_for_next_run():
    bus = ProgressBus()
    bus.begin()
    bus.publish(80, "Scoring")
    bus.complete()
    bus.begin()

    events = bus.subscribe().next_batch(0)
    assert _statuses(events) == ["Initializing"]
    assert events[0].progress == 0.0


def test_second_subscriber_supersedes_first():
    bus = ProgressBus()
    first = bus.subscribe()
    second = bus.subscribe()

    superseded = first.next_batch(0)
    assert _statuses(superseded) == ["Superseded"]
    assert superseded[0].terminal
    assert first.closed

    bus.begin()
    assert _statuses(second.next_batch(0)) == ["Initializing"]
    assert first.next_batch(0) == []


def test_unsubscribe_returns_events_to_pending():
    bus = ProgressBus()
    subscription = bus.subscribe()
    subscription.close()
    assert not bus.has_subscriber
    assert subscription.exhausted

    bus.begin()
    assert _statuses(bus.subscribe().next_batch(0)) == ["Initializing"]


def test_next_batch_times_out_empty():
    bus = ProgressBus()
    assert bus.subscribe().next_batch(0.01) == []


def test_closed_bus_closes_subscription():
    bus = ProgressBus()
    subscription = bus.subscribe()
    bus.close()
    assert subscription.closed
    assert subscription.next_batch(0.01) == []
    assert bus.subscribe().closed


def test_buffer_coalesces_by_percent_bucket():
    buffer = _EventBuffer(capacity=4)
    for sequence, percent in enumerate([1.0, 1.5, 2.0, 2.5, 3.0], start=1):
        buffer.append(ProgressEvent(sequence, percent, "Generating"))
    buffer.append(ProgressEvent(6, 3.0, "Error: boom", terminal=True))

    events = buffer.drain()
    assert [event.sequence for event in events] == [2, 4, 5, 6]
    assert events[-1].terminal
    assert len(buffer) == 0


def test_slow_subscriber_keeps_latest_per_bucket():
    bus = ProgressBus(capacity=8)
    subscription = bus.subscribe()
    bus.begin()
    for step in range(1, 81):
        bus.publish(step * 0.5, f"Generating candidates {step} of 80", current=step, target=80)
    bus.complete()

    events = subscription.next_batch(0)
    assert events[-1].status == "Completed"
    buckets = [event.bucket for event in events]
    assert buckets == sorted(buckets)
    assert len(buckets) == len(set(buckets))
    assert len(events) < 82
