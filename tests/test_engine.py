"""
Integration tests for the analytics engine
"""
import unittest
from datetime import date, timedelta
from decimal import Decimal

from cloud_cost_analytics import (
    AnalyticsEngine,
    BaselineStore,
    CostObservation,
    CostRecord,
    GroupBy,
    Period,
    ResourceRecord,
    StaticPricingCatalog,
    Trend,
    UsageRecord,
    Utilization
)
from cloud_cost_analytics.diagnostics import DiagnosticKind

JAN = Period(2024, 1)
FEB = Period(2024, 2)


def s3_records():
    costs = [
        CostRecord('Amazon S3', JAN, '450.00', 'aws', '111'),
        CostRecord('Amazon S3', FEB, '368.00', 'aws', '111'),
        CostRecord('AWS Support', FEB, '100.00', 'aws', '111'),
    ]
    usage = [
        UsageRecord('Amazon S3', JAN, '19500', 'GB-Mo', 'aws', '111'),
        UsageRecord('Amazon S3', FEB, '18400', 'GB-Mo', 'aws', '111'),
        UsageRecord('Amazon EC2', FEB, '720', 'Hrs', 'aws', '111'),
    ]
    return costs, usage


class TestAnalyticsEngine(unittest.TestCase):
    """End-to-end runs over in-memory records"""

    def setUp(self):
        self.engine = AnalyticsEngine(pricing_lookup=StaticPricingCatalog.default())

    def test_efficiency_report_for_period(self):
        costs, usage = s3_records()
        report = self.engine.efficiency_report(costs, usage, period=FEB)

        self.assertEqual([m.service_name for m in report.metrics], ['AWS Support', 'Amazon S3'])
        support, s3 = report.metrics
        self.assertFalse(support.is_computable)
        self.assertEqual(s3.efficiency, Decimal('0.02'))
        self.assertEqual(s3.trend, Trend.IMPROVING)
        # EC2 usage without cost is excluded and reported
        self.assertEqual(len(report.diagnostics.by_kind(DiagnosticKind.INPUT_DATA_ERROR)), 1)

    def test_run_collects_all_analyses(self):
        costs, usage = s3_records()
        resources = [
            ResourceRecord('i-1', 'web', 'Amazon EC2', 't3.large', 'us-east-1', '60.74',
                           Utilization(cpu_percent=4.0)),
            ResourceRecord('i-2', 'batch', 'Amazon EC2', 't3.large', 'us-east-1', '60.74'),
        ]
        observations = [
            CostObservation('Amazon S3', 'aws', '111', date(2024, 1, 1) + timedelta(days=n), '15')
            for n in range(31)
        ]
        store = BaselineStore()

        result = self.engine.run(costs, usage, resources, observations, store, GroupBy.SERVICE)

        self.assertEqual(len(result.efficiency.metrics), 3)
        self.assertEqual(result.rightsizing.recommendation_count, 1)
        self.assertEqual(result.rightsizing.insufficient_data, ['i-2'])
        self.assertEqual(result.anomalies.flags, [])
        self.assertEqual(len(store), 1)
        self.assertEqual(len(result.diagnostics), 3)
        self.assertTrue(result.has_issues)

        summary = result.summary()
        self.assertEqual(summary['recommendation_count'], 1)
        self.assertEqual(summary['anomalies_detected'], 0)
        self.assertIn('efficiency', result.to_dict())

    def test_run_skips_missing_inputs(self):
        result = self.engine.run(resource_records=[])

        self.assertIsNone(result.efficiency)
        self.assertIsNone(result.anomalies)
        self.assertEqual(result.rightsizing.recommendation_count, 0)

    def test_repeated_runs_are_identical(self):
        costs, usage = s3_records()
        first = self.engine.efficiency_report(costs, usage).to_dict()
        second = self.engine.efficiency_report(list(reversed(costs)), list(reversed(usage))).to_dict()

        self.assertEqual(first, second)

    def test_compute_efficiency_passthrough(self):
        costs, usage = s3_records()
        buckets = self.engine.aggregate(costs, usage).buckets
        s3 = [b for b in buckets if b.key == 'Amazon S3']

        metric = self.engine.compute_efficiency(s3[1], s3[0])
        self.assertEqual(metric.trend, Trend.IMPROVING)


if __name__ == '__main__':
    unittest.main()
