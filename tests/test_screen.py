import sys

from reelframe.services.screen import SCREEN_CHECK_JOB_ID, CommandScreenProbe, ScreenMonitor


class ScriptedProbe:
    def __init__(self, *readings):
        self.readings = list(readings)

    def __call__(self):
        if len(self.readings) > 1:
            return self.readings.pop(0)
        return self.readings[0]


def _monitor(timer_factory, probe):
    monitor = ScreenMonitor(probe=probe, timer_factory=timer_factory, check_interval=45)
    events = []
    monitor.subscribe(events.append)
    monitor.initialize()
    return monitor, events


def test_check_now_only_reports_transitions(timer_factory):
    monitor, events = _monitor(timer_factory, ScriptedProbe(True, False, False, True, True))

    readings = [monitor.check_now() for _ in range(5)]

    assert readings == [True, False, False, True, True]
    assert events == [False, True]
    assert monitor.is_screen_on


def test_probe_errors_count_as_screen_on(timer_factory):
    def _broken():
        raise RuntimeError("plug offline")

    monitor, events = _monitor(timer_factory, _broken)

    assert monitor.check_now() is True
    assert events == []


def test_periodic_check_stops_once_screen_returns(timer_factory):
    probe = ScriptedProbe(False, False, True)
    monitor, events = _monitor(timer_factory, probe)
    monitor.check_now()
    monitor.start_periodic_check()
    timer = timer_factory.timers[SCREEN_CHECK_JOB_ID]
    assert timer.interval == 45

    timer.fire()
    assert monitor.is_polling
    timer.fire()

    assert events == [False, True]
    assert not monitor.is_polling
    assert monitor.is_screen_on


def test_start_periodic_check_is_idempotent(timer_factory):
    monitor, _ = _monitor(timer_factory, ScriptedProbe(False))

    monitor.start_periodic_check()
    monitor.start_periodic_check()

    assert timer_factory.timers[SCREEN_CHECK_JOB_ID].starts == 1


def test_initialize_can_override_interval(timer_factory):
    monitor = ScreenMonitor(probe=ScriptedProbe(True), timer_factory=timer_factory)

    monitor.initialize(check_interval=5)

    assert timer_factory.timers[SCREEN_CHECK_JOB_ID].interval == 5


def test_command_probe_uses_exit_status():
    assert CommandScreenProbe([sys.executable, "-c", "raise SystemExit(0)"])() is True
    assert CommandScreenProbe([sys.executable, "-c", "raise SystemExit(3)"])() is False


def test_command_probe_defaults_to_on():
    assert CommandScreenProbe(None)() is True
    assert CommandScreenProbe(["/nonexistent/reelframe-probe"])() is True


def test_command_probe_timeout_defaults_to_on():
    probe = CommandScreenProbe([sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.2)

    assert probe() is True
