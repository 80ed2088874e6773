"""Group resource records into per-label counts"""
from collections import Counter
from typing import Callable, Iterable, Optional
from .models import AggregatedCount, ResourceRecord, UNKNOWN_LABEL, UNLABELED


LabelSelector = Callable[[ResourceRecord], str]


def label_selector(field_name: str) -> LabelSelector:
    """Build a selector returning a record attribute as the label value"""
    def select(record: ResourceRecord) -> str:
        value = getattr(record, field_name, "")
        return str(value) if value else UNKNOWN_LABEL

    select.__name__ = f"select_{field_name}"
    return select


def aggregate(records: Iterable[ResourceRecord], selector: Optional[LabelSelector] = None) -> AggregatedCount:
    """Count records per label value.

    Without a selector every record falls in a single unlabeled bucket and
    the result always holds exactly one entry, even for an empty input. With
    a selector an empty input yields an empty mapping, so no label that does
    not exist is ever reported.
    """
    if selector is None:
        return {UNLABELED: sum(1 for _ in records)}

    return dict(Counter(selector(record) for record in records))
