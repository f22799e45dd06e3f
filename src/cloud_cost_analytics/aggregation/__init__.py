"""Aggregation of raw cost and usage records into per-period buckets"""

from .metric_aggregator import (
    MetricAggregator,
    AggregatedBucket,
    AggregationResult,
    GroupBy
)

__all__ = [
    'MetricAggregator',
    'AggregatedBucket',
    'AggregationResult',
    'GroupBy'
]
