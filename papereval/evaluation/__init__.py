"""
Evaluation aggregation and scoring for machine-extracted paper data.

This module combines automated extraction scores with expert ratings and
aggregates them across papers, evaluators and components:
- Statistical primitives (weighted statistics, outliers, correlation)
- Confidence-weighted score combination with agreement bonus
- Three-way matching of ground truth, system output and user evaluations
- Multi-paper, multi-evaluator aggregation
- Inter-rater reliability (ICC, Fleiss' and Cohen's kappa, Cronbach's alpha, consensus)
- Content enrichment, temporal trends and a metrics store
"""

# Import key classes and functions for easy access
from .statistics import (
    Outlier,
    ScoreStats,
    mean,
    weighted_mean,
    variance,
    standard_deviation,
    median,
    distribution,
    detect_outliers,
    pearson_correlation,
    calculate_stats,
)

from .scoring import (
    ComponentScore,
    ScoreCombiner,
    automatic_confidence,
    fold_component_scores,
)

from .expertise import (
    WeightComponents,
    calculate_expertise_weight,
    get_expertise_weight,
    get_expertise_multiplier,
    expertise_to_multiplier,
    is_expert_evaluator,
)

from .extraction import (
    ComponentKind,
    ComponentData,
    ComponentReader,
    FIELD_DESCRIPTORS,
    extract_component_data,
    extract_component_score,
    extract_overall_score,
    extract_completeness,
    extract_paper_metadata,
)

from .matching import (
    MatchIndexEntry,
    MatchStatistics,
    OrphanReport,
    PaperFilters,
    RecordMatcher,
    normalize_identifier,
    build_match_index,
    calculate_match_statistics,
    find_orphaned_records,
    build_integrated_data,
    get_coverage_statistics,
    search_papers,
    advanced_search_papers,
)

from .enrichment import (
    EnrichmentOutcome,
    enrich_record_content,
)

from .aggregation import (
    AggregationResult,
    Aggregator,
    aggregate_all,
    empty_aggregation,
)

from .reliability import (
    ReliabilityAnalyzer,
    analyze_reliability,
    calculate_pairwise_agreement,
    calculate_simplified_icc,
    calculate_fleiss_kappa,
    calculate_cohens_kappa,
    calculate_cronbach_alpha,
    compare_quality_accuracy,
    interpret_kappa,
)

from .temporal import (
    TimelineTrend,
    build_timeline,
    calculate_timeline_trend,
)

from .storage import (
    MetricsStore,
    JsonMetricsStore,
)

from .cli_utils import (
    format_score,
    create_component_table,
    display_aggregation_summary,
    display_reliability_report,
)

__all__ = [
    # Statistics
    "Outlier",
    "ScoreStats",
    "mean",
    "weighted_mean",
    "variance",
    "standard_deviation",
    "median",
    "distribution",
    "detect_outliers",
    "pearson_correlation",
    "calculate_stats",
    # Scoring
    "ComponentScore",
    "ScoreCombiner",
    "automatic_confidence",
    "fold_component_scores",
    # Expertise
    "WeightComponents",
    "calculate_expertise_weight",
    "get_expertise_weight",
    "get_expertise_multiplier",
    "expertise_to_multiplier",
    "is_expert_evaluator",
    # Extraction
    "ComponentKind",
    "ComponentData",
    "ComponentReader",
    "FIELD_DESCRIPTORS",
    "extract_component_data",
    "extract_component_score",
    "extract_overall_score",
    "extract_completeness",
    "extract_paper_metadata",
    # Matching
    "MatchIndexEntry",
    "MatchStatistics",
    "OrphanReport",
    "PaperFilters",
    "RecordMatcher",
    "normalize_identifier",
    "build_match_index",
    "calculate_match_statistics",
    "find_orphaned_records",
    "build_integrated_data",
    "get_coverage_statistics",
    "search_papers",
    "advanced_search_papers",
    # Enrichment
    "EnrichmentOutcome",
    "enrich_record_content",
    # Aggregation
    "AggregationResult",
    "Aggregator",
    "aggregate_all",
    "empty_aggregation",
    # Reliability
    "ReliabilityAnalyzer",
    "analyze_reliability",
    "calculate_pairwise_agreement",
    "calculate_simplified_icc",
    "calculate_fleiss_kappa",
    "calculate_cohens_kappa",
    "calculate_cronbach_alpha",
    "compare_quality_accuracy",
    "interpret_kappa",
    # Temporal
    "TimelineTrend",
    "build_timeline",
    "calculate_timeline_trend",
    # Storage
    "MetricsStore",
    "JsonMetricsStore",
    # CLI utilities
    "format_score",
    "create_component_table",
    "display_aggregation_summary",
    "display_reliability_report",
]
