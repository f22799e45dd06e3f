"""Optimization module for rightsizing recommendations"""

from .rightsizing_analyzer import (
    RightsizingAnalyzer,
    RightsizingRecommendation,
    RightsizingResult,
    RecommendationAction,
    Priority,
    InstanceTier,
    StaticPricingCatalog
)

__all__ = [
    'RightsizingAnalyzer',
    'RightsizingRecommendation',
    'RightsizingResult',
    'RecommendationAction',
    'Priority',
    'InstanceTier',
    'StaticPricingCatalog'
]
