import threading
from mcv.domain.models import ConversionProgress, TaskState
from mcv.ui.state import UIState


def test_ui_state_initialization():
    state = UIState()
    assert state.completed_count == 0
    assert state.failed_count == 0
    assert state.cancelled_count == 0
    assert state.snapshot() == []
    assert state.counts()["total"] == 0


def test_add_task_keeps_submission_order():
    state = UIState()
    state.add_task("b", "second.wav", "mp3")
    state.add_task("a", "first.wav", "mp3")
    state.add_task("b", "duplicate.wav", "ogg")

    views = state.snapshot()
    assert [v.task_id for v in views] == ["b", "a"]
    assert views[0].label == "second.wav"


def test_progress_updates_running_task():
    state = UIState()
    state.add_task("t1", "clip.mov", "mp4")
    state.mark_running("t1")
    state.update_progress(ConversionProgress(task_id="t1", percent=42.0, fps=60.0, speed=2.0, eta_seconds=12))

    view = state.get("t1")
    assert view.state == TaskState.RUNNING
    assert view.percent == 42.0
    assert view.fps == 60.0
    assert view.eta_seconds == 12
    assert view.started_at is not None


def test_percent_never_moves_backwards():
    state = UIState()
    state.mark_running("t1")
    state.update_progress(ConversionProgress(task_id="t1", percent=50.0))
    state.update_progress(ConversionProgress(task_id="t1", percent=30.0))
    assert state.get("t1").percent == 50.0


def test_completion_sets_full_progress():
    state = UIState()
    state.mark_running("t1")
    state.update_progress(ConversionProgress(task_id="t1", percent=80.0, eta_seconds=5))
    state.mark_completed("t1")

    view = state.get("t1")
    assert view.state == TaskState.COMPLETED
    assert view.percent == 100.0
    assert view.eta_seconds is None
    assert state.completed_count == 1


def test_terminal_state_is_final():
    state = UIState()
    state.mark_running("t1")
    state.mark_cancelled("t1")
    state.mark_completed("t1")
    state.mark_failed("t1", "late")
    state.update_progress(ConversionProgress(task_id="t1", percent=99.0))

    view = state.get("t1")
    assert view.state == TaskState.CANCELLED
    assert view.percent == 0.0
    assert state.cancelled_count == 1
    assert state.completed_count == 0
    assert state.failed_count == 0


def test_failed_and_timed_out():
    state = UIState()
    state.mark_failed("a", "[encoding_failed] ffmpeg exited with code 1")
    state.mark_failed("b", "[timeout] Conversion timed out", timed_out=True)

    assert state.get("a").state == TaskState.FAILED
    assert state.get("b").state == TaskState.TIMED_OUT
    assert state.get("a").error.startswith("[encoding_failed]")
    assert state.failed_count == 2


def test_unknown_task_is_created_on_demand():
    state = UIState()
    state.mark_running("ghost")
    view = state.get("ghost")
    assert view.label == "ghost"
    assert view.target == ""


def test_snapshot_is_a_copy():
    state = UIState()
    state.add_task("t1", "a.wav", "mp3")
    snapshot = state.snapshot()
    snapshot[0].percent = 77.0
    assert state.get("t1").percent == 0.0


def test_counts():
    state = UIState()
    for task_id in ("a", "b", "c", "d"):
        state.add_task(task_id, f"{task_id}.wav", "flac")
    state.mark_running("a")
    state.mark_completed("b")
    state.mark_failed("c", "boom")

    assert state.counts() == {"total": 4, "running": 2, "completed": 1, "failed": 1, "cancelled": 0}


def test_concurrent_updates():
    state = UIState()

    def worker(index):
        task_id = f"t{index}"
        state.mark_running(task_id)
        for percent in range(0, 101, 10):
            state.update_progress(ConversionProgress(task_id=task_id, percent=float(percent)))
        state.mark_completed(task_id)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert state.completed_count == 8
    assert all(v.percent == 100.0 for v in state.snapshot())
