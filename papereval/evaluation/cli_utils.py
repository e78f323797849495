"""
CLI utilities for displaying aggregation results.

Provides rich formatting for the aggregate produced by ``Aggregator`` and
for the reliability report produced by ``analyze_reliability``.
"""

from typing import Any, Dict, Mapping, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .extraction import COMPONENTS


console = Console()


def _as_dict(aggregation: Any) -> Mapping[str, Any]:
    if hasattr(aggregation, "to_dict"):
        return aggregation.to_dict()
    return aggregation if isinstance(aggregation, Mapping) else {}


def format_score(score: Optional[float], std: Optional[float] = None) -> str:
    """
    Format a 0-1 score for display.

    Example:
        >>> format_score(0.8412, 0.05)
        '0.841 ± 0.050'
        >>> format_score(None)
        '-'
    """
    if score is None:
        return "-"
    text = f"{score:.3f}"
    if std is not None:
        text += f" ± {std:.3f}"
    return text


def _score_color(score: Optional[float]) -> str:
    if score is None:
        return "dim"
    if score > 0.7:
        return "green"
    if score >= 0.4:
        return "yellow"
    return "red"


def create_component_table(aggregation: Any) -> Table:
    """
    Create a rich table with one row per component.

    Args:
        aggregation: AggregationResult or its ``to_dict()`` form

    Returns:
        Rich Table object

    Example:
        ```python
        table = create_component_table(result)
        console.print(table)
        ```
    """
    data = _as_dict(aggregation)
    components = data.get("components") or {}
    coverage = (data.get("global_stats") or {}).get("coverage_by_component") or {}

    table = Table(title="Component Scores", show_header=True)
    table.add_column("Component", style="cyan")
    table.add_column("Evaluations", justify="right")
    table.add_column("Coverage", justify="right")
    table.add_column("Mean Score", style="bold")
    table.add_column("Median", justify="right")
    table.add_column("User Rating (0-1)", justify="right")

    for kind in COMPONENTS:
        aggregate = components.get(kind.value)
        rate = (coverage.get(kind.value) or {}).get("rate")
        rate_text = f"{rate * 100:.0f}%" if rate is not None else "-"

        if not aggregate:
            table.add_row(kind.value, "0", rate_text, "-", "-", "-")
            continue

        scores = aggregate.get("scores") or {}
        ratings = aggregate.get("user_ratings") or {}
        mean_score = scores.get("mean") if scores.get("min") is not None else None
        color = _score_color(mean_score)
        table.add_row(
            kind.value,
            str(aggregate.get("evaluation_count", 0)),
            rate_text,
            f"[{color}]{format_score(mean_score, scores.get('std') if mean_score is not None else None)}[/{color}]",
            format_score(scores.get("median") if mean_score is not None else None),
            format_score(ratings.get("mean")),
        )

    return table


def display_aggregation_summary(aggregation: Any, out: Optional[Console] = None) -> None:
    """
    Display an aggregation summary: totals, component table and papers.

    Example:
        ```python
        result = Aggregator().aggregate_all(evaluations)
        display_aggregation_summary(result)
        ```
    """
    out = out or console
    data = _as_dict(aggregation)
    stats = data.get("global_stats") or {}
    scores = stats.get("scores") or {}

    summary = (
        f"[bold]Evaluations:[/bold] {stats.get('total_evaluations', 0)}   "
        f"[bold]Papers:[/bold] {stats.get('total_papers', 0)}   "
        f"[bold]Evaluators:[/bold] {stats.get('total_evaluators', 0)}\n"
        f"[bold]Mean overall score:[/bold] {format_score(scores.get('mean'), scores.get('std'))}   "
        f"[bold]Completeness:[/bold] {format_score((stats.get('completeness') or {}).get('mean'))}"
    )
    skipped = (data.get("metadata") or {}).get("skipped_records", 0)
    if skipped:
        summary += f"\n[yellow]⚠️  {skipped} malformed record(s) skipped[/yellow]"
    enrichment = stats.get("enrichment") or {}
    if enrichment.get("applied"):
        summary += (
            f"\n[dim]Content enriched for {enrichment.get('papers_enriched', 0)} paper(s), "
            f"{enrichment.get('properties_enriched', 0)} properties[/dim]"
        )
    out.print(Panel(summary, title="Evaluation Aggregation", border_style="cyan"))

    if not stats.get("total_evaluations"):
        out.print("[dim]No evaluations to aggregate[/dim]")
        return

    out.print(create_component_table(data))

    papers = data.get("papers") or {}
    if papers:
        table = Table(title="Papers", show_header=True)
        table.add_column("Paper", style="cyan")
        table.add_column("Evaluations", justify="right")
        table.add_column("Difficulty")
        table.add_column("Mean Score", justify="right")
        table.add_column("Agreement", justify="right")

        for paper_id, paper in papers.items():
            difficulty = paper.get("difficulty") or {}
            irr = paper.get("inter_rater_reliability") or {}
            agreement = irr.get("agreement")
            title = (paper.get("metadata") or {}).get("title")
            table.add_row(
                f"{paper_id}\n[dim]{title}[/dim]" if title else paper_id,
                str(paper.get("evaluation_count", 0)),
                difficulty.get("level", "unknown"),
                format_score(difficulty.get("score") if difficulty.get("level") != "unknown" else None),
                f"{agreement * 100:.0f}%" if agreement is not None else "-",
            )
        out.print(table)

    trend = (data.get("temporal") or {}).get("trend")
    if trend:
        direction = trend.get("trend_direction", "insufficient_data")
        color = {"improving": "green", "declining": "red"}.get(direction, "yellow")
        out.print(
            f"[bold]Trend:[/bold] [{color}]{direction.replace('_', ' ').title()}[/{color}] "
            f"({trend.get('trend_slope', 0.0):+.3f} per day)"
        )


def display_reliability_report(report: Mapping[str, Any], out: Optional[Console] = None) -> None:
    """
    Display a reliability report from ``analyze_reliability``.

    Example:
        ```python
        display_reliability_report(analyze_reliability(result))
        ```
    """
    out = out or console
    overall: Dict[str, Any] = report.get("overall") or {}

    kappa = overall.get("fleiss_kappa")
    out.print("\n[bold cyan]Inter-Rater Reliability[/bold cyan]")
    out.print(
        f"[bold]Fleiss' kappa:[/bold] {format_score(kappa)} "
        f"({overall.get('kappa_interpretation', 'undefined')})"
    )
    out.print(
        f"[bold]Mean ICC:[/bold] {format_score(overall.get('mean_icc'))} "
        f"over {overall.get('papers_with_multiple_raters', 0)} paper(s) with 2+ raters"
    )

    comparison = (report.get("quality_vs_accuracy") or {}).get("overall") or {}
    if comparison.get("paired_count"):
        out.print(
            f"[bold]Quality vs accuracy:[/bold] {comparison['paired_count']} paired paper(s), "
            f"correlation {format_score(comparison.get('correlation'))}"
        )
        for finding in report["quality_vs_accuracy"].get("interpretation", []):
            out.print(f"  • {finding}")

    components = report.get("components") or {}
    if not components:
        return

    table = Table(title="Reliability by Component", show_header=True)
    table.add_column("Component", style="cyan")
    table.add_column("Fleiss' Kappa", justify="right")
    table.add_column("Interpretation")
    table.add_column("Pairwise Agreement", justify="right")
    table.add_column("Consensus")

    for name, entry in components.items():
        agreement = entry.get("pairwise_agreement")
        table.add_row(
            name,
            format_score(entry.get("fleiss_kappa")),
            entry.get("kappa_interpretation", "undefined"),
            f"{agreement * 100:.0f}%" if agreement is not None else "-",
            (entry.get("variance_agreement") or {}).get("consensus", "-"),
        )
    out.print(table)


__all__ = [
    "console",
    "format_score",
    "create_component_table",
    "display_aggregation_summary",
    "display_reliability_report",
]
