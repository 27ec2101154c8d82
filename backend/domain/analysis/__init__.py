"""domain.analysis sub-package — technical indicators and quarter math."""

from domain.analysis.quarters import (  # noqa: F401
    QuarterInfo,
    last_n_completed_quarters,
    make_quarter_info,
    quarter_display_label,
    quarter_end_date,
    quarter_end_date_range,
    quarter_for_date_string,
    quarter_identifier,
    quarter_of_month,
    quarter_range_id,
    quarter_start_timestamp,
)
from domain.analysis.technical import (  # noqa: F401
    SwingResult,
    analyze_swing,
    compute_ema,
    compute_rsi,
    count_weeks_below,
    detect_weekly_crossover,
)
