import pytest

from conftest import StubScheduler, scheduling_result
from reelframe.media import MediaKind
from reelframe.presentation import SLIDESHOW_JOB_ID, PresentationController, PresentationState
from reelframe.scheduler import NoMediaAvailable
from reelframe.services.screen import SCREEN_CHECK_JOB_ID, ScreenMonitor


class SwitchableProbe:
    def __init__(self, is_on=True):
        self.is_on = is_on

    def __call__(self):
        return self.is_on


def _controller(timer_factory, *kinds, auto_advance=True, screen=None):
    scheduler = StubScheduler(*kinds)
    controller = PresentationController(
        scheduler=scheduler,
        timer_factory=timer_factory,
        interval=30,
        auto_advance=auto_advance,
        screen=screen,
    )
    seen = []
    controller.add_listener(seen.append)
    return controller, scheduler, seen


def _screen(timer_factory, probe):
    return ScreenMonitor(probe=probe, timer_factory=timer_factory, check_interval=60)


def test_start_prepares_and_shows_first_photo(timer_factory):
    controller, scheduler, seen = _controller(timer_factory, MediaKind.PHOTO)

    result = controller.start()

    assert scheduler.prepared == 1
    assert result.media.media_id == 1
    assert seen == [result]
    assert controller.state is PresentationState.RUNNING
    assert timer_factory.timers[SLIDESHOW_JOB_ID].is_running
    assert timer_factory.timers[SLIDESHOW_JOB_ID].interval == 30


def test_timer_tick_advances(timer_factory):
    controller, scheduler, seen = _controller(timer_factory, MediaKind.PHOTO, MediaKind.PHOTO)
    controller.start()

    timer_factory.timers[SLIDESHOW_JOB_ID].fire()

    assert [r.media.media_id for r in seen] == [1, 2]
    assert controller.state is PresentationState.RUNNING


def test_paused_start_leaves_timer_idle(timer_factory):
    controller, _, seen = _controller(timer_factory, MediaKind.PHOTO, auto_advance=False)

    controller.start()

    assert controller.state is PresentationState.PAUSED
    assert not controller.timer_running
    assert len(seen) == 1


def test_video_enters_external_playback_and_stops_timer(timer_factory):
    controller, _, _ = _controller(timer_factory, MediaKind.PHOTO, MediaKind.VIDEO)
    controller.start()

    result = controller.advance()

    assert result.media.is_video
    assert controller.state is PresentationState.EXTERNAL_PLAYBACK
    assert not controller.timer_running


def test_playback_finished_advances_when_running(timer_factory):
    controller, _, seen = _controller(timer_factory, MediaKind.VIDEO, MediaKind.PHOTO)
    controller.start()

    controller.on_external_playback_finished()

    assert [r.media.media_id for r in seen] == [1, 2]
    assert controller.state is PresentationState.RUNNING
    assert controller.timer_running


def test_playback_finished_while_paused_waits(timer_factory):
    controller, scheduler, _ = _controller(timer_factory, MediaKind.VIDEO, auto_advance=False)
    controller.start()
    assert controller.state is PresentationState.EXTERNAL_PLAYBACK

    controller.on_external_playback_finished()

    assert controller.state is PresentationState.PAUSED
    assert scheduler.selections == 1
    assert not controller.timer_running


def test_playback_cancelled_rearms_timer_without_advancing(timer_factory):
    controller, scheduler, _ = _controller(timer_factory, MediaKind.VIDEO)
    controller.start()

    controller.on_external_playback_cancelled()

    assert controller.state is PresentationState.RUNNING
    assert controller.timer_running
    assert scheduler.selections == 1


def test_playback_events_outside_playback_are_ignored(timer_factory):
    controller, scheduler, _ = _controller(timer_factory, MediaKind.PHOTO)
    controller.start()

    controller.on_external_playback_finished()
    controller.on_external_playback_cancelled()

    assert scheduler.selections == 1
    assert controller.state is PresentationState.RUNNING


def test_toggle_pauses_and_resumes(timer_factory):
    controller, _, _ = _controller(timer_factory, MediaKind.PHOTO)
    controller.start()

    assert controller.toggle() is PresentationState.PAUSED
    assert not controller.timer_running
    assert not controller.auto_advance

    assert controller.toggle() is PresentationState.RUNNING
    assert controller.timer_running


def test_toggle_ignored_during_playback(timer_factory):
    controller, _, _ = _controller(timer_factory, MediaKind.VIDEO)
    controller.start()

    assert controller.toggle() is PresentationState.EXTERNAL_PLAYBACK
    assert controller.auto_advance


def test_manual_advance_while_paused_keeps_timer_stopped(timer_factory):
    controller, _, seen = _controller(timer_factory, MediaKind.PHOTO, MediaKind.PHOTO, auto_advance=False)
    controller.start()

    controller.advance()

    assert len(seen) == 2
    assert controller.state is PresentationState.PAUSED
    assert not controller.timer_running


def test_no_media_propagates_from_manual_advance(timer_factory):
    controller, _, _ = _controller(timer_factory)

    with pytest.raises(NoMediaAvailable):
        controller.advance()


def test_no_media_on_tick_is_logged_and_retried(timer_factory):
    controller, scheduler, _ = _controller(timer_factory, MediaKind.PHOTO)
    controller.start()
    timer = timer_factory.timers[SLIDESHOW_JOB_ID]

    timer.fire()
    timer.fire()

    assert scheduler.selections == 3
    assert timer.is_running


def test_screen_off_during_advance_skips_selection(timer_factory):
    probe = SwitchableProbe(True)
    screen = _screen(timer_factory, probe)
    controller, scheduler, seen = _controller(timer_factory, MediaKind.PHOTO, MediaKind.PHOTO, screen=screen)
    controller.start()

    probe.is_on = False
    assert controller.advance() is None

    assert controller.state is PresentationState.SCREEN_OFF
    assert not controller.timer_running
    assert timer_factory.timers[SCREEN_CHECK_JOB_ID].is_running
    assert scheduler.selections == 1
    assert len(seen) == 1
    assert controller.advance() is None


def test_screen_back_on_resumes_and_advances(timer_factory):
    probe = SwitchableProbe(False)
    screen = _screen(timer_factory, probe)
    controller, _, seen = _controller(timer_factory, MediaKind.PHOTO, screen=screen)
    assert controller.start() is None
    assert controller.state is PresentationState.SCREEN_OFF

    probe.is_on = True
    timer_factory.timers[SCREEN_CHECK_JOB_ID].fire()

    assert controller.state is PresentationState.RUNNING
    assert controller.timer_running
    assert not screen.is_polling
    assert [r.media.media_id for r in seen] == [1]


def test_screen_on_advances_even_when_paused(timer_factory):
    probe = SwitchableProbe(False)
    screen = _screen(timer_factory, probe)
    controller, _, seen = _controller(timer_factory, MediaKind.PHOTO, auto_advance=False, screen=screen)
    controller.start()

    probe.is_on = True
    timer_factory.timers[SCREEN_CHECK_JOB_ID].fire()

    assert controller.state is PresentationState.PAUSED
    assert not controller.timer_running
    assert len(seen) == 1


def test_screen_off_interrupts_playback(timer_factory):
    controller, _, _ = _controller(timer_factory, MediaKind.VIDEO)
    controller.start()

    controller.on_screen_off()
    controller.on_external_playback_finished()

    assert controller.state is PresentationState.SCREEN_OFF


def test_screen_on_outside_screen_off_is_ignored(timer_factory):
    controller, scheduler, _ = _controller(timer_factory, MediaKind.PHOTO, MediaKind.PHOTO)
    controller.start()

    controller.on_screen_on()

    assert scheduler.selections == 1


def test_status_reports_state_and_current(timer_factory):
    controller, _, _ = _controller(timer_factory, MediaKind.PHOTO)
    assert controller.status()["current"] is None
    controller.start()

    status = controller.status()

    assert status["state"] == "running"
    assert status["timer_running"] is True
    assert status["interval_seconds"] == 30
    assert status["current"]["media"]["id"] == 1


def test_refresh_library_delegates(timer_factory):
    controller, scheduler, _ = _controller(timer_factory)

    assert controller.refresh_library() == 3
    assert scheduler.refreshed == 1


def test_failed_advance_after_playback_keeps_timer_armed(timer_factory):
    controller, scheduler, _ = _controller(timer_factory, MediaKind.VIDEO)
    controller.start()
    timer = timer_factory.timers[SLIDESHOW_JOB_ID]
    assert not timer.is_running

    controller.on_external_playback_finished()

    assert controller.state is PresentationState.RUNNING
    assert timer.is_running
    assert scheduler.selections == 2

    scheduler.queue.append(scheduling_result(9))
    timer.fire()

    assert scheduler.current.media.media_id == 9
