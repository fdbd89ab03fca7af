"""
Count reconciliation.

Every facet lists the sources it may be read from. The sources are ranked by
PRECEDENCE and the highest-ranked source that resolves wins:

  catalog   full-scan length from the external catalog; always overrides pages
  dom       count attribute on a page element; authoritative for page-local facets
  fragment  value in the page's global breakdown object; provisional
  dataset   field (or length) of a raw global dataset; provisional

Page-exposed values are validated before ranking. Missing values are
unresolved; present but invalid values abort the run.
"""

import math
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from pydantic import BaseModel

from ..config import FacetConfig, PipelineConfig, ProgramConfig, SourceConfig
from ..errors import DataIntegrityError, UnresolvedCountError
from ..models import Breakdown, PageSnapshot

PRECEDENCE = ("catalog", "dom", "fragment", "dataset")

DECIMAL_COUNT = re.compile(r"^\d+$")


def validate_dom_count(raw: Any, where: str) -> Optional[int]:
    """Attribute strings must be plain decimal counts. Absent or blank is unresolved."""
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    if not DECIMAL_COUNT.match(text):
        raise DataIntegrityError(f"{where}: attribute value {raw!r} is not a non-negative integer")
    return int(text)


def validate_number(raw: Any, where: str) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise DataIntegrityError(f"{where}: {raw!r} is not a number")
    if isinstance(raw, float) and (not math.isfinite(raw) or not raw.is_integer()):
        raise DataIntegrityError(f"{where}: {raw!r} is not a finite whole number")
    if raw < 0:
        raise DataIntegrityError(f"{where}: {raw!r} is negative")
    return int(raw)


def validate_dataset(raw: Any, where: str) -> Optional[int]:
    if isinstance(raw, list):
        return len(raw)
    return validate_number(raw, where)


def validate_catalog(raw: Any, where: str) -> Optional[int]:
    return validate_number(raw, where)


VALIDATORS: Dict[str, Callable[[Any, str], Optional[int]]] = {
    "catalog": validate_catalog,
    "dom": validate_dom_count,
    "fragment": validate_number,
    "dataset": validate_dataset,
}


class FacetPolicy(BaseModel):
    program: str
    facet: str
    sources: List[SourceConfig]
    required: bool = False


class FacetResolution(BaseModel):
    value: Optional[int] = None
    source: Optional[str] = None


class Reconciliation(BaseModel):
    breakdown: Breakdown
    total: int
    sources: Dict[str, Dict[str, Optional[str]]]


def build_policy(program: ProgramConfig, facet: str, cfg: FacetConfig) -> FacetPolicy:
    sources = []
    for source in sorted(cfg.sources, key=lambda s: PRECEDENCE.index(s.kind)):
        if source.kind != "catalog" and not source.page:
            source = source.model_copy(update={"page": program.page})
        sources.append(source)
    return FacetPolicy(program=program.key, facet=facet, sources=sources, required=cfg.required)


def build_policies(config: PipelineConfig) -> List[FacetPolicy]:
    return [
        build_policy(program, facet, cfg)
        for program in config.programs
        for facet, cfg in program.facets.items()
    ]


def read_source(
    policy: FacetPolicy,
    source: SourceConfig,
    snapshots: Mapping[str, PageSnapshot],
    catalog_counts: Mapping[str, int],
) -> Tuple[Any, str]:
    """Raw (unvalidated) value a source exposes for this facet, plus a label for messages."""
    where = f"{policy.program}.{policy.facet} via {source.kind}"
    if source.kind == "catalog":
        return catalog_counts.get(policy.program), where

    snapshot = snapshots.get(source.page)
    where = f"{where} on {source.page}"
    if snapshot is None:
        return None, where

    if source.kind == "dom":
        return snapshot.dom.get(source.dom_key), where

    if source.kind == "fragment":
        fragment = snapshot.fragment or {}
        program_part = fragment.get(source.program_key or policy.program)
        if not isinstance(program_part, dict):
            return None, where
        return program_part.get(source.facet_key or policy.facet), where

    value = snapshot.datasets.get(source.dataset)
    if source.value_key:
        value = value.get(source.value_key) if isinstance(value, dict) else None
    return value, where


def resolve_facet(
    policy: FacetPolicy,
    snapshots: Mapping[str, PageSnapshot],
    catalog_counts: Mapping[str, int],
) -> FacetResolution:
    """Validate every available source, then take the highest-ranked resolved one."""
    resolved = []
    for source in policy.sources:
        raw, where = read_source(policy, source, snapshots, catalog_counts)
        value = VALIDATORS[source.kind](raw, where)
        if value is not None:
            resolved.append((source.kind, value))

    if not resolved:
        return FacetResolution()
    kind, value = resolved[0]
    return FacetResolution(value=value, source=kind)


def reconcile(
    policies: List[FacetPolicy],
    snapshots: Mapping[str, PageSnapshot],
    catalog_counts: Mapping[str, int],
) -> Reconciliation:
    """
    Merge page snapshots (keyed by page path) and catalog full-scan counts
    (keyed by program) into one breakdown. Re-applying the same snapshot is a
    no-op because each facet is resolved from scratch.
    """
    breakdown: Breakdown = {}
    sources: Dict[str, Dict[str, Optional[str]]] = {}
    missing = []

    for policy in policies:
        resolution = resolve_facet(policy, snapshots, catalog_counts)
        breakdown.setdefault(policy.program, {})[policy.facet] = resolution.value
        sources.setdefault(policy.program, {})[policy.facet] = resolution.source
        if resolution.value is None and policy.required:
            missing.append(f"{policy.program}.{policy.facet}")

    if missing:
        raise UnresolvedCountError(f"required counts could not be resolved: {', '.join(missing)}")

    return Reconciliation(breakdown=breakdown, total=total_of(breakdown), sources=sources)


def total_of(breakdown: Breakdown) -> int:
    return sum(v for facets in breakdown.values() for v in facets.values() if v is not None)
