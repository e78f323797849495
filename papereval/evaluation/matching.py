"""
Three-way matching of ground truth, system output and user evaluations.

The three sources are keyed independently: ground truth carries ``doi`` and
``paper_id``, system output ``doi`` (or ``metadata.doi``) and ``paperId``,
and user evaluations ``paperDoi`` and ``paperId``. Records are indexed under
every identifier they carry: normalized DOI and raw paper id. A record with
neither identifier cannot be matched; it is left out of the index and the
orphan report and only counted as ``unidentified``.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from ..schemas import EvaluationRecord

logger = logging.getLogger(__name__)

DOI_URL_PREFIX = re.compile(r"^https?://(dx\.)?doi\.org/")

SOURCE_GROUND_TRUTH = "ground_truth"
SOURCE_SYSTEM = "system"
SOURCE_USER = "user"


def normalize_identifier(doi: Any) -> str:
    """
    Normalize a DOI for comparison.

    Lowercases, trims and strips a leading ``http(s)://(dx.)doi.org/``.

    Example:
        >>> normalize_identifier("HTTPS://DX.DOI.ORG/10.1/ABC")
        '10.1/abc'
    """
    if not doi:
        return ""
    return DOI_URL_PREFIX.sub("", str(doi).lower().strip())


def _get(record: Any, key: str) -> Any:
    return record.get(key) if isinstance(record, Mapping) else None


def ground_truth_doi(record: Any) -> str:
    return normalize_identifier(_get(record, "doi"))


def ground_truth_paper_id(record: Any) -> Optional[str]:
    value = _get(record, "paper_id") or _get(record, "paperId")
    return str(value) if value else None


def system_doi(record: Any) -> str:
    return normalize_identifier(_get(record, "doi") or _get(_get(record, "metadata"), "doi"))


def system_paper_id(record: Any) -> Optional[str]:
    value = _get(record, "paperId") or _get(record, "paper_id")
    return str(value) if value else None


def user_doi(record: Any) -> str:
    if isinstance(record, EvaluationRecord):
        return normalize_identifier(record.paper_doi)
    return normalize_identifier(_get(record, "paperDoi"))


def user_paper_id(record: Any) -> Optional[str]:
    if isinstance(record, EvaluationRecord):
        return record.paper_id
    value = _get(record, "paperId")
    return str(value) if value else None


@dataclass
class MatchIndexEntry:
    """All records reachable under one identifier."""

    key: str
    ground_truth: Optional[Mapping[str, Any]] = None
    system_analysis: Optional[Mapping[str, Any]] = None
    user_evaluations: List[Any] = field(default_factory=list)

    @property
    def source_count(self) -> int:
        return sum((
            self.ground_truth is not None,
            self.system_analysis is not None,
            bool(self.user_evaluations),
        ))

    @property
    def classification(self) -> str:
        """'complete', 'two-way' or 'one-source'."""
        count = self.source_count
        if count == 3:
            return "complete"
        if count == 2:
            return "two-way"
        return "one-source"


@dataclass
class MatchStatistics:
    """Counts of index entries by how many sources they join."""

    total: int = 0
    complete_matches: int = 0
    two_way_matches: int = 0
    one_source: int = 0
    unidentified: int = 0
    """Records dropped because they carry neither DOI nor paper id"""
    coverage_percentage: Dict[str, float] = field(default_factory=dict)


@dataclass
class OrphanReport:
    """Records that matched nothing from the other two sources."""

    ground_truth_only: List[Any] = field(default_factory=list)
    system_only: List[Any] = field(default_factory=list)
    user_only: List[Any] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.ground_truth_only) + len(self.system_only) + len(self.user_only)


def _record_keys(doi: str, paper_id: Optional[str]) -> List[str]:
    keys = []
    if doi:
        keys.append(doi)
    if paper_id and paper_id not in keys:
        keys.append(paper_id)
    return keys


def _percentage(count: int, total: int) -> float:
    return round(count / total * 100, 1) if total else 0.0


class RecordMatcher:
    """
    Index of ground-truth, system and user records by shared identifiers.

    Example:
        ```python
        matcher = RecordMatcher(
            ground_truth=[{"doi": "10.1/x"}],
            system_data=[{"doi": "https://doi.org/10.1/X"}],
        )
        matcher.get("10.1/x").classification  # "two-way"
        matcher.statistics().two_way_matches  # 1
        ```
    """

    def __init__(
        self,
        ground_truth: Optional[Sequence[Mapping[str, Any]]] = None,
        system_data: Optional[Sequence[Mapping[str, Any]]] = None,
        user_evaluations: Optional[Sequence[Any]] = None,
    ):
        self.ground_truth = list(ground_truth or [])
        self.system_data = list(system_data or [])
        self.user_evaluations = list(user_evaluations or [])

        self.index: Dict[str, MatchIndexEntry] = {}
        self.unidentified = 0
        # (source, record, keys) for orphan detection
        self._placements: List[tuple] = []
        self._build()

    def _entry(self, key: str) -> MatchIndexEntry:
        if key not in self.index:
            self.index[key] = MatchIndexEntry(key=key)
        return self.index[key]

    def _place(self, source: str, record: Any, keys: List[str]) -> None:
        if not keys:
            self.unidentified += 1
            logger.debug("Dropping %s record without DOI or paper id", source)
            return

        for key in keys:
            entry = self._entry(key)
            if source == SOURCE_GROUND_TRUTH:
                entry.ground_truth = record
            elif source == SOURCE_SYSTEM:
                entry.system_analysis = record
            else:
                entry.user_evaluations.append(record)
        self._placements.append((source, record, keys))

    def _build(self) -> None:
        for record in self.ground_truth:
            self._place(SOURCE_GROUND_TRUTH, record, _record_keys(ground_truth_doi(record), ground_truth_paper_id(record)))
        for record in self.system_data:
            self._place(SOURCE_SYSTEM, record, _record_keys(system_doi(record), system_paper_id(record)))
        for record in self.user_evaluations:
            self._place(SOURCE_USER, record, _record_keys(user_doi(record), user_paper_id(record)))

    def get(self, identifier: Any) -> Optional[MatchIndexEntry]:
        """Look up by DOI (any form) or raw paper id."""
        if not identifier:
            return None
        return self.index.get(normalize_identifier(identifier)) or self.index.get(str(identifier))

    def statistics(self) -> MatchStatistics:
        total = len(self.index)
        counts = {"complete": 0, "two-way": 0, "one-source": 0}
        for entry in self.index.values():
            counts[entry.classification] += 1

        return MatchStatistics(
            total=total,
            complete_matches=counts["complete"],
            two_way_matches=counts["two-way"],
            one_source=counts["one-source"],
            unidentified=self.unidentified,
            coverage_percentage={
                "complete": _percentage(counts["complete"], total),
                "two_way": _percentage(counts["two-way"], total),
                "one_source": _percentage(counts["one-source"], total),
            },
        )

    def orphans(self) -> OrphanReport:
        """Records whose every index entry holds only their own source."""
        report = OrphanReport()
        for source, record, keys in self._placements:
            if all(self.index[key].source_count == 1 for key in keys):
                if source == SOURCE_GROUND_TRUTH:
                    report.ground_truth_only.append(record)
                elif source == SOURCE_SYSTEM:
                    report.system_only.append(record)
                else:
                    report.user_only.append(record)
        return report


def build_match_index(
    ground_truth: Sequence[Mapping[str, Any]],
    system_data: Sequence[Mapping[str, Any]],
    user_evaluations: Sequence[Any],
) -> Dict[str, MatchIndexEntry]:
    return RecordMatcher(ground_truth, system_data, user_evaluations).index


def calculate_match_statistics(index: Mapping[str, MatchIndexEntry]) -> MatchStatistics:
    total = len(index)
    classes = [entry.classification for entry in index.values()]
    complete = classes.count("complete")
    two_way = classes.count("two-way")
    one_source = classes.count("one-source")
    return MatchStatistics(
        total=total,
        complete_matches=complete,
        two_way_matches=two_way,
        one_source=one_source,
        coverage_percentage={
            "complete": _percentage(complete, total),
            "two_way": _percentage(two_way, total),
            "one_source": _percentage(one_source, total),
        },
    )


def find_orphaned_records(
    ground_truth: Sequence[Mapping[str, Any]],
    system_data: Sequence[Mapping[str, Any]],
    user_evaluations: Sequence[Any],
) -> OrphanReport:
    return RecordMatcher(ground_truth, system_data, user_evaluations).orphans()


def _pairwise_equal(*values: Any) -> bool:
    present = [v for v in values if v]
    return any(a == b for i, a in enumerate(present) for b in present[i + 1:])


def match_by_doi(ground_truth: Any, system_record: Any, user_evaluation: Any) -> bool:
    """True when any two of the three records share a normalized DOI."""
    return _pairwise_equal(ground_truth_doi(ground_truth), system_doi(system_record), user_doi(user_evaluation))


def match_by_paper_id(ground_truth: Any, system_record: Any, user_evaluation: Any) -> bool:
    """True when any two of the three records share a paper id."""
    return _pairwise_equal(
        ground_truth_paper_id(ground_truth), system_paper_id(system_record), user_paper_id(user_evaluation),
    )


def find_ground_truth_match(system_record: Any, ground_truth: Iterable[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    doi = system_doi(system_record)
    if not doi:
        return None
    return next((gt for gt in ground_truth if ground_truth_doi(gt) == doi), None)


def find_system_analysis_match(user_evaluation: Any, system_data: Iterable[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    """Find the system record for a user evaluation, by DOI first, then paper id."""
    doi = user_doi(user_evaluation)
    if doi:
        return next((s for s in system_data if system_doi(s) == doi), None)

    paper_id = user_paper_id(user_evaluation)
    if paper_id:
        return next((s for s in system_data if system_paper_id(s) == paper_id), None)
    return None


def get_paper_identifier(paper: Any) -> str:
    """Preferred identifier: normalized DOI, then paper id, else 'unknown'."""
    return system_doi(paper) or ground_truth_paper_id(paper) or "unknown"


# ============================================================================
# INTEGRATED DATA
# ============================================================================

def build_integrated_data(
    ground_truth: Sequence[Mapping[str, Any]],
    evaluations: Sequence[Any],
    system_data_map: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Join the three sources into one list of papers.

    Each paper is ``{doi, paper_id, ground_truth, system_output, user_evaluations}``.
    System output is looked up in ``system_data_map`` by DOI, then by paper id.
    Evaluations and system outputs that match no ground-truth record become
    papers of their own.

    Example:
        ```python
        integrated = build_integrated_data(
            ground_truth=[{"doi": "10.1/x", "title": "Graph Mining"}],
            evaluations=[{"paperDoi": "10.1/X", "paperId": "p1"}],
            system_data_map={"10.1/x": {"metadata": {"title": "Graph Mining"}}},
        )
        integrated["papers"][0]["user_evaluations"]  # one evaluation
        ```
    """
    system_data_map = system_data_map or {}
    normalized_system = {normalize_identifier(k) or str(k): v for k, v in system_data_map.items()}

    papers: List[Dict[str, Any]] = []
    by_key: Dict[str, Dict[str, Any]] = {}

    def register(paper: Dict[str, Any]) -> None:
        papers.append(paper)
        for key in _record_keys(paper["doi"], paper["paper_id"]):
            by_key.setdefault(key, paper)

    for gt in ground_truth:
        doi = ground_truth_doi(gt)
        paper_id = ground_truth_paper_id(gt)
        system_output = normalized_system.get(doi) if doi else None
        if system_output is None and paper_id:
            system_output = normalized_system.get(paper_id)
        register({
            "doi": doi,
            "paper_id": paper_id,
            "ground_truth": gt,
            "system_output": system_output,
            "user_evaluations": [],
        })

    for evaluation in evaluations:
        keys = _record_keys(user_doi(evaluation), user_paper_id(evaluation))
        paper = next((by_key[k] for k in keys if k in by_key), None)
        if paper is None:
            if not keys:
                logger.debug("Skipping evaluation without DOI or paper id")
                continue
            doi = user_doi(evaluation)
            paper_id = user_paper_id(evaluation)
            paper = {
                "doi": doi,
                "paper_id": paper_id,
                "ground_truth": None,
                "system_output": normalized_system.get(doi) or normalized_system.get(paper_id or ""),
                "user_evaluations": [],
            }
            register(paper)
        paper["user_evaluations"].append(evaluation)

    matched_outputs = {id(p["system_output"]) for p in papers if p["system_output"] is not None}
    for key, system_output in normalized_system.items():
        if id(system_output) in matched_outputs or key in by_key:
            continue
        register({
            "doi": system_doi(system_output) or normalize_identifier(key),
            "paper_id": system_paper_id(system_output),
            "ground_truth": None,
            "system_output": system_output,
            "user_evaluations": [],
        })
        matched_outputs.add(id(system_output))

    return {"papers": papers}


def _papers(integrated_data: Optional[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    if not isinstance(integrated_data, Mapping):
        return []
    return list(integrated_data.get("papers") or [])


def get_coverage_statistics(integrated_data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Source availability counts and percentages over integrated papers."""
    papers = _papers(integrated_data)
    total = len(papers)

    with_gt = sum(1 for p in papers if p.get("ground_truth"))
    with_system = sum(1 for p in papers if p.get("system_output"))
    with_evals = sum(1 for p in papers if p.get("user_evaluations"))

    counts = {3: 0, 2: 0, 1: 0}
    for p in papers:
        sources = sum((bool(p.get("ground_truth")), bool(p.get("system_output")), bool(p.get("user_evaluations"))))
        if sources in counts:
            counts[sources] += 1

    return {
        "total": total,
        "with_ground_truth": with_gt,
        "with_system_output": with_system,
        "with_user_evaluations": with_evals,
        "complete_matches": counts[3],
        "two_way_matches": counts[2],
        "one_source": counts[1],
        "coverage_percentage": {
            "ground_truth": _percentage(with_gt, total),
            "system_output": _percentage(with_system, total),
            "user_evaluations": _percentage(with_evals, total),
            "complete": _percentage(counts[3], total),
            "two_way": _percentage(counts[2], total),
            "one_source": _percentage(counts[1], total),
        },
    }


def get_paper_by_doi(integrated_data: Optional[Mapping[str, Any]], doi: Any) -> Optional[Dict[str, Any]]:
    target = normalize_identifier(doi)
    if not target:
        return None
    return next((p for p in _papers(integrated_data) if normalize_identifier(p.get("doi")) == target), None)


def get_paper_by_id(integrated_data: Optional[Mapping[str, Any]], paper_id: Any) -> Optional[Dict[str, Any]]:
    if not paper_id:
        return None
    for paper in _papers(integrated_data):
        candidates = (
            paper.get("paper_id"),
            ground_truth_paper_id(paper.get("ground_truth")),
            system_paper_id(paper.get("system_output")),
        )
        if paper_id in candidates:
            return paper
    return None


# ============================================================================
# SEARCH
# ============================================================================

def _text(value: Any) -> str:
    return str(value).lower() if value else ""


def _nested(record: Any, *path: str) -> Any:
    node = record
    for key in path:
        node = _get(node, key)
    return node


def paper_title(paper: Mapping[str, Any]) -> str:
    return _text(_get(paper.get("ground_truth"), "title") or _nested(paper.get("system_output"), "metadata", "title"))


def paper_research_field(paper: Mapping[str, Any]) -> str:
    system_output = paper.get("system_output")
    return _text(
        _get(paper.get("ground_truth"), "research_field_name")
        or _nested(system_output, "researchFields", "selectedField", "label")
        or _nested(system_output, "researchFields", "selectedField", "name")
    )


def paper_research_problem(paper: Mapping[str, Any]) -> str:
    system_output = paper.get("system_output")
    return _text(
        _get(paper.get("ground_truth"), "research_problem_name")
        or _nested(system_output, "researchProblems", "selectedProblem", "label")
        or _nested(system_output, "researchProblems", "selectedProblem", "title")
    )


def paper_venue(paper: Mapping[str, Any]) -> str:
    return _text(_get(paper.get("ground_truth"), "venue") or _nested(paper.get("system_output"), "metadata", "venue"))


def paper_authors(paper: Mapping[str, Any]) -> List[str]:
    authors: List[str] = []
    ground_truth = paper.get("ground_truth")
    if isinstance(ground_truth, Mapping):
        authors.extend(_text(v) for k, v in ground_truth.items() if str(k).startswith("author") and v)

    system_authors = _nested(paper.get("system_output"), "metadata", "authors")
    if isinstance(system_authors, str):
        authors.append(_text(system_authors))
    elif isinstance(system_authors, list):
        authors.extend(_text(a) for a in system_authors if a)
    return authors


def paper_year(paper: Mapping[str, Any]) -> int:
    """Publication year from ground truth or the system's publication date; 0 if unknown."""
    raw = _get(paper.get("ground_truth"), "publication_year")
    if not raw:
        date = _nested(paper.get("system_output"), "metadata", "publicationDate")
        raw = str(date).split("-")[0] if date else None
    try:
        return int(str(raw).strip()) if raw else 0
    except ValueError:
        return 0


def search_papers(integrated_data: Optional[Mapping[str, Any]], search_term: Optional[str]) -> List[Dict[str, Any]]:
    """
    Case-insensitive substring search over integrated papers.

    Looks at DOI, title, authors, research field, research problem and venue.
    """
    term = (search_term or "").lower().strip()
    if not term:
        return []

    results = []
    for paper in _papers(integrated_data):
        haystacks = [
            normalize_identifier(paper.get("doi")),
            paper_title(paper),
            paper_research_field(paper),
            paper_research_problem(paper),
            paper_venue(paper),
            *paper_authors(paper),
        ]
        if any(term in text for text in haystacks if text):
            results.append(paper)
    return results


class PaperFilters(BaseModel):
    """Structured filters for ``advanced_search_papers``."""

    search_term: Optional[str] = Field(None, description="Free-text term passed to search_papers")
    research_field: Optional[str] = Field(None, description="Substring of the research field name")
    venue: Optional[str] = Field(None, description="Substring of the venue")
    year_from: Optional[int] = Field(None, description="Earliest publication year (inclusive)")
    year_to: Optional[int] = Field(None, description="Latest publication year (inclusive)")
    has_ground_truth: Optional[bool] = None
    has_system_output: Optional[bool] = None
    has_evaluations: Optional[bool] = None
    min_accuracy: Optional[float] = Field(None, ge=0, le=1)
    max_accuracy: Optional[float] = Field(None, ge=0, le=1)


def _accuracy(paper: Mapping[str, Any]) -> float:
    value = _nested(paper, "comparison", "overall", "accuracy")
    return float(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else 0.0


def advanced_search_papers(
    integrated_data: Optional[Mapping[str, Any]],
    filters: Optional[PaperFilters] = None,
) -> List[Dict[str, Any]]:
    """
    Apply the filters one after another (AND semantics).

    Example:
        ```python
        results = advanced_search_papers(
            integrated,
            PaperFilters(search_term="graph", year_from=2019, has_evaluations=True),
        )
        ```
    """
    filters = filters or PaperFilters()
    results = _papers(integrated_data)

    if filters.search_term:
        results = search_papers({"papers": results}, filters.search_term)

    if filters.research_field:
        term = filters.research_field.lower()
        results = [p for p in results if term in paper_research_field(p)]

    if filters.venue:
        term = filters.venue.lower()
        results = [p for p in results if term in paper_venue(p)]

    if filters.year_from or filters.year_to:
        def in_range(paper: Mapping[str, Any]) -> bool:
            year = paper_year(paper)
            if filters.year_from and year < filters.year_from:
                return False
            if filters.year_to and year > filters.year_to:
                return False
            return True

        results = [p for p in results if in_range(p)]

    if filters.has_ground_truth is not None:
        results = [p for p in results if bool(p.get("ground_truth")) == filters.has_ground_truth]

    if filters.has_system_output is not None:
        results = [p for p in results if bool(p.get("system_output")) == filters.has_system_output]

    if filters.has_evaluations is not None:
        results = [p for p in results if bool(p.get("user_evaluations")) == filters.has_evaluations]

    if filters.min_accuracy is not None:
        results = [p for p in results if _accuracy(p) >= filters.min_accuracy]

    if filters.max_accuracy is not None:
        results = [p for p in results if _accuracy(p) <= filters.max_accuracy]

    return results
