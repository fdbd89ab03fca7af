import yaml
from typing import Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel, Field, model_validator

from .models import Kind

SourceKind = Literal["catalog", "dom", "fragment", "dataset"]

DEFAULT_FRAGMENT_GLOBAL = "SITE_COUNTS.allShiurim.breakdown"


class SourceConfig(BaseModel):
    """One place a facet's count can be read from."""

    kind: SourceKind
    page: Optional[str] = None
    # dom
    selector: Optional[str] = None
    attribute: str = "data-total"
    # dataset
    dataset: Optional[str] = None
    value_key: Optional[str] = None
    # fragment (defaults to the owning program/facet names)
    program_key: Optional[str] = None
    facet_key: Optional[str] = None

    @model_validator(mode="after")
    def _check_kind_fields(self):
        if self.kind == "dom" and not self.selector:
            raise ValueError("dom source needs a selector")
        if self.kind == "dataset" and not self.dataset:
            raise ValueError("dataset source needs a dataset name")
        return self

    @property
    def dom_key(self) -> str:
        return f"{self.selector}@{self.attribute}"


class FacetConfig(BaseModel):
    sources: List[SourceConfig]
    # Unresolved required facets abort the run instead of counting as 0
    required: bool = False


class CatalogConfig(BaseModel):
    playlist_id: str
    kind: Kind = "video"
    description_contains: List[str] = []
    page_size: int = Field(50, ge=1, le=50)
    default_title: Optional[str] = None


class ItemSourceConfig(BaseModel):
    kind: Literal["catalog", "page_dataset", "data_file"]
    item_kind: Kind = "audio"
    default_title: Optional[str] = None
    # page_dataset
    page: Optional[str] = None
    globals: List[str] = []
    # data_file
    path: Optional[str] = None
    list_field: Optional[str] = None


class ProgramConfig(BaseModel):
    key: str
    label: str
    page: Optional[str] = None
    ready: Optional[str] = None
    facets: Dict[str, FacetConfig] = {}
    catalog: Optional[CatalogConfig] = None
    items: List[ItemSourceConfig] = []

    @model_validator(mode="after")
    def _check_sources(self):
        for facet, cfg in self.facets.items():
            for source in cfg.sources:
                if source.kind == "catalog" and self.catalog is None:
                    raise ValueError(f"{self.key}.{facet}: catalog source without a catalog block")
                if source.kind != "catalog" and not (source.page or self.page):
                    raise ValueError(f"{self.key}.{facet}: {source.kind} source has no page")
        for src in self.items:
            if src.kind == "catalog" and self.catalog is None:
                raise ValueError(f"{self.key}: catalog items without a catalog block")
            if src.kind == "page_dataset" and not (src.page or self.page):
                raise ValueError(f"{self.key}: page_dataset items have no page")
            if src.kind == "data_file" and not src.path:
                raise ValueError(f"{self.key}: data_file items need a path")
        return self

    def page_for(self, source: SourceConfig) -> Optional[str]:
        return source.page or self.page


class PageProbe(BaseModel):
    """What to read from one page: readiness predicate, globals and DOM attributes."""

    path: str
    ready: Optional[str] = None
    fragment_global: str = DEFAULT_FRAGMENT_GLOBAL
    datasets: List[str] = []
    dom: List[Tuple[str, str, str]] = []  # (key, selector, attribute)


class PipelineConfig(BaseModel):
    fragment_global: str = DEFAULT_FRAGMENT_GLOBAL
    recent_limit: int = 5
    program_recent_limit: int = 10
    programs: List[ProgramConfig]

    def program(self, key: str) -> ProgramConfig:
        for program in self.programs:
            if program.key == key:
                return program
        raise KeyError(key)

    @property
    def needs_catalog(self) -> bool:
        return any(p.catalog is not None for p in self.programs)

    def probes(self) -> Dict[str, PageProbe]:
        """Merge every page-backed source and item source into one probe per page path."""
        probes: Dict[str, PageProbe] = {}

        def probe_for(path: str) -> PageProbe:
            if path not in probes:
                probes[path] = PageProbe(path=path, fragment_global=self.fragment_global)
            return probes[path]

        for program in self.programs:
            if program.page:
                probe = probe_for(program.page)
                if program.ready and not probe.ready:
                    probe.ready = program.ready
            for cfg in program.facets.values():
                for source in cfg.sources:
                    if source.kind == "catalog":
                        continue
                    probe = probe_for(program.page_for(source))
                    if source.kind == "dom":
                        entry = (source.dom_key, source.selector, source.attribute)
                        if entry not in probe.dom:
                            probe.dom.append(entry)
                    elif source.kind == "dataset" and source.dataset not in probe.datasets:
                        probe.datasets.append(source.dataset)
            for src in program.items:
                if src.kind != "page_dataset":
                    continue
                probe = probe_for(src.page or program.page)
                for name in src.globals:
                    if name not in probe.datasets:
                        probe.datasets.append(name)
        return probes


def load_config(path: str) -> PipelineConfig:
    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}

    programs = []
    for key, body in (raw.get("programs") or {}).items():
        body = dict(body or {})
        body.setdefault("label", key)
        programs.append(ProgramConfig(key=key, **body))

    return PipelineConfig(
        fragment_global=raw.get("fragment_global", DEFAULT_FRAGMENT_GLOBAL),
        recent_limit=raw.get("recent_limit", 5),
        program_recent_limit=raw.get("program_recent_limit", 10),
        programs=programs,
    )
