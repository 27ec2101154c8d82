"""application.backfill sub-package — background cache backfill."""

from application.backfill.scheduler import (  # noqa: F401
    BackfillCaches,
    BackfillRequest,
    BackfillScheduler,
    BackfillStatus,
)
