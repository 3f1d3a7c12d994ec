"""Headline metrics for the dashboard view."""

from collections import Counter
from typing import Any, Dict, Iterable

from core.row_model import ProjectRecord

UNSET_STATUS = '(none)'


def summarize(records: Iterable[ProjectRecord]) -> Dict[str, Any]:
    """
    Compute dashboard totals over a set of projects.

    Args:
        records: Projects to summarize

    Returns:
        Dict with project counts by status, budget totals, the number of
        over-budget projects and the average progress of projects that
        report one
    """
    records = list(records)
    by_status = Counter(record.status or UNSET_STATUS for record in records)
    progress = [r.progress_percent for r in records if r.progress_percent is not None]

    allocated = sum(r.budget_allocated for r in records if r.budget_allocated is not None)
    spent = sum(r.budget_spent for r in records if r.budget_spent is not None)

    return {
        'total_projects': len(records),
        'by_status': dict(sorted(by_status.items())),
        'non_canonical_status': sum(
            1 for r in records if r.status is not None and not r.is_canonical_status
        ),
        'budget_allocated_total': round(allocated, 2),
        'budget_spent_total': round(spent, 2),
        'over_budget': sum(1 for r in records if r.is_over_budget),
        'average_progress': round(sum(progress) / len(progress), 1) if progress else None,
    }
