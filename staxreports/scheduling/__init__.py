from staxreports.scheduling.calculator import ScheduleError, compute_next_run, next_run_for
from staxreports.scheduling.runner import ScheduledReportRunner, TickResult, build_runner

__all__ = ['ScheduleError', 'compute_next_run', 'next_run_for', 'ScheduledReportRunner', 'TickResult',
           'build_runner']
