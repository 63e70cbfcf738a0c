from .bench_stats import (
    BenchStats as BenchStats,
    StatsSnapshot as StatsSnapshot,
)
from .stats_reporter import StatsReporter as StatsReporter
