import os
import sys
from datetime import datetime, timezone
from dotenv import load_dotenv
from typing import Callable, Dict, List, Mapping, Optional

from sitecounts.config import PipelineConfig, ProgramConfig, load_config
from sitecounts.errors import MissingCredentialError, PipelineError, SourceUnreachableError
from sitecounts.models import CountsDocument, CountsSummary, Item, PageSnapshot
from sitecounts.extract.server import ContentServer
from sitecounts.extract.renderer import PageRenderer
from sitecounts.extract.youtube import CatalogClient, CatalogScan, build_client, description_predicate, entries_to_items
from sitecounts.extract.datafile import fetch_data_file, items_from_records, records_from_document
from sitecounts.transform.flatten import flatten_categories
from sitecounts.transform.reconcile import Reconciliation, build_policies, reconcile
from sitecounts.transform.recency import build_index, build_recency
from sitecounts.load.artifacts import write_artifacts

# Load env
load_dotenv()

DRY_RUN = os.getenv("DRY_RUN", "False").lower() == "true"
SITE_ROOT = os.getenv("SITE_ROOT", ".")
OUTPUT_DIR = os.getenv("OUTPUT_DIR", "data")
PROGRAMS_CONFIG = os.getenv("PROGRAMS_CONFIG", "config/programs.yaml")
READY_TIMEOUT_MS = int(os.getenv("READY_TIMEOUT_MS", "8000"))
SERVER_PORT = int(os.getenv("SERVER_PORT", "4173"))


def make_catalog_clients(config: PipelineConfig, api_key: Optional[str], youtube=None) -> Dict[str, CatalogClient]:
    """One client per catalog-backed program. Fails before any request when the key is missing."""
    if config.needs_catalog and not api_key and youtube is None:
        raise MissingCredentialError("YOUTUBE_API_KEY is not set; catalog-backed counts cannot be resolved.")

    clients = {}
    for program in config.programs:
        if program.catalog is None:
            continue
        if youtube is not None:
            clients[program.key] = CatalogClient(youtube, program.catalog.playlist_id, program.catalog.page_size)
        else:
            clients[program.key] = build_client(api_key, program.catalog)
    return clients


def collect_snapshots(config: PipelineConfig, renderer) -> Dict[str, PageSnapshot]:
    """Render every page that any count or item source reads from, once each."""
    snapshots = {}
    for path, probe in config.probes().items():
        print(f"  - Rendering {path}...")
        try:
            snapshots[path] = renderer.render(probe)
        except SourceUnreachableError as e:
            print(f"    [Skipped] {e}")
    return snapshots


def scan_catalogs(config: PipelineConfig, clients: Mapping[str, CatalogClient]) -> Dict[str, CatalogScan]:
    scans = {}
    for key, client in clients.items():
        program = config.program(key)
        print(f"  - Scanning catalog for {program.label}...")
        try:
            scans[key] = client.scan(
                description_predicate(program.catalog.description_contains),
                recent_limit=config.program_recent_limit,
            )
        except SourceUnreachableError as e:
            print(f"    [Skipped] {e}")
    return scans


def _default_title(program: ProgramConfig, override: Optional[str]) -> str:
    return override or f"{program.label} Shiur"


def collect_items(
    config: PipelineConfig,
    snapshots: Mapping[str, PageSnapshot],
    scans: Mapping[str, CatalogScan],
    fetch_json: Callable[[str], object],
):
    """
    Returns (recent_inputs, index_items). Catalog programs feed only their
    bounded newest-first subset into recency, but every match into the index.
    """
    recent_inputs: Dict[str, List[Item]] = {}
    index_items: List[Item] = []

    for program in config.programs:
        program_items: List[Item] = []
        catalog_found = 0
        for src in program.items:
            title = _default_title(program, src.default_title)

            if src.kind == "catalog":
                scan = scans.get(program.key)
                if scan is None:
                    continue
                kind = program.catalog.kind
                page = program.page or "/"
                default = _default_title(program, program.catalog.default_title or src.default_title)
                recent_inputs.setdefault(program.key, []).extend(
                    entries_to_items(scan.recent, program.key, kind, page, default)
                )
                index_items.extend(entries_to_items(scan.items, program.key, kind, page, default))
                catalog_found += len(scan.items)
                continue

            if src.kind == "page_dataset":
                page = src.page or program.page
                snapshot = snapshots.get(page)
                if snapshot is None:
                    print(f"    [Skipped] {program.label}: no snapshot for {page}")
                    continue
                tree = next((snapshot.datasets.get(g) for g in src.globals if snapshot.datasets.get(g)), None)
                program_items.extend(flatten_categories(tree, program.key, src.item_kind, page, title))
            else:
                try:
                    document = fetch_json(src.path)
                except SourceUnreachableError as e:
                    print(f"    [Skipped] {program.label}: {e}")
                    continue
                records = records_from_document(document, src.list_field)
                page = program.page or src.path
                program_items.extend(items_from_records(records, program.key, src.item_kind, page, title))

        if program_items:
            recent_inputs.setdefault(program.key, []).extend(program_items)
            index_items.extend(program_items)
        found = len(program_items) + catalog_found
        print(f"  - {program.label}: {found} item(s)")

    return recent_inputs, index_items


def build_outputs(
    config: PipelineConfig,
    snapshots: Mapping[str, PageSnapshot],
    scans: Mapping[str, CatalogScan],
    fetch_json: Callable[[str], object],
    today: str,
):
    policies = build_policies(config)
    catalog_counts = {key: len(scan.items) for key, scan in scans.items()}
    result = reconcile(policies, snapshots, catalog_counts)

    recent_inputs, index_items = collect_items(config, snapshots, scans, fetch_json)
    overall, by_program = build_recency(
        recent_inputs,
        overall_limit=config.recent_limit,
        program_limit=config.program_recent_limit,
    )
    document = CountsDocument(
        all_shiurim=CountsSummary(total=result.total, breakdown=result.breakdown, updated=today),
        recent=overall,
        recent_by_program=by_program,
    )
    return result, document, build_index(index_items)


def run(
    config: PipelineConfig,
    renderer,
    clients: Mapping[str, CatalogClient],
    fetch_json: Callable[[str], object],
    output_dir: str,
    today: str,
    dry_run: bool = False,
):
    print("\n[Phase 1] Counts")
    snapshots = collect_snapshots(config, renderer)
    scans = scan_catalogs(config, clients)

    print("\n[Phase 2] Recency & search index")
    result, document, entries = build_outputs(config, snapshots, scans, fetch_json, today)

    print("\n[Phase 3] Write")
    if dry_run:
        print("[DRY_RUN] Skipping artifact write.")
    else:
        for path in write_artifacts(output_dir, document, entries):
            print(f"  - Wrote {path}")

    print_summary(result, document, len(entries))
    return result, document, entries


def print_summary(result: Reconciliation, document: CountsDocument, index_size: int):
    print("\n=========================")
    print("--- Counts Summary ---")
    print("=========================")
    for program, facets in result.breakdown.items():
        for facet, value in facets.items():
            source = result.sources[program][facet] or "unresolved"
            shown = "-" if value is None else value
            print(f"{program + '.' + facet:<24} {shown:>6}  ({source})")
    print("-------------------------")
    print(f"Total:           {result.total}")
    print(f"Recent items:    {len(document.recent)}")
    print(f"Index entries:   {index_size}")
    print("=========================")


def main():
    print(f"--- Site Counts Build Started (DRY_RUN={DRY_RUN}) ---")
    today = datetime.now(timezone.utc).date().isoformat()

    try:
        config = load_config(PROGRAMS_CONFIG)
        clients = make_catalog_clients(config, os.getenv("YOUTUBE_API_KEY"))
        with ContentServer(SITE_ROOT, port=SERVER_PORT) as server:
            with PageRenderer(server.base_url, ready_timeout_ms=READY_TIMEOUT_MS) as renderer:
                run(
                    config,
                    renderer,
                    clients,
                    lambda path: fetch_data_file(server.url(path)),
                    OUTPUT_DIR,
                    today,
                    dry_run=DRY_RUN,
                )
    except PipelineError as e:
        print(f"\n[FATAL] {type(e).__name__}: {e}")
        print("No artifacts were written.")
        sys.exit(1)

    print("\n--- Site Counts Build Finished ---")


if __name__ == "__main__":
    main()
