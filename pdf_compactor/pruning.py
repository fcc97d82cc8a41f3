"""
pruning.py - Removal of non-essential entries from the document graph.

The policy is a table of PruneRule rows. Each row names a target node
kind, the keys to drop from it, the condition under which it applies and
the pipeline stage that runs it. Applying the table is idempotent:
removing an absent key is a no-op.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, List, Optional, Tuple

from pikepdf import Dictionary, Name, Pdf, Stream

from .graph import catalog, page_resources, resolve_dictionary
from .models import CompressionOptions

logger = logging.getLogger(__name__)


class Target(str, Enum):
    """Node kinds the pruning table can address."""
    TRAILER = "trailer"
    CATALOG = "catalog"
    NAMES = "names"
    PAGE = "page"
    RESOURCES = "resources"


def _always(options: CompressionOptions) -> bool:
    return True


def _high(options: CompressionOptions) -> bool:
    return options.is_high


def _high_lossy(options: CompressionOptions) -> bool:
    return options.is_high and not options.preserve_quality


@dataclass(frozen=True)
class PruneRule:
    target: Target
    keys: Tuple[str, ...]
    applies: Callable[[CompressionOptions], bool]
    stage: str


# Stage names match pipeline.Stage values
STRIP_METADATA = "strip_metadata"
OPTIMIZE_CONTENT_STREAMS = "optimize_content_streams"
OPTIMIZE_STRUCTURE = "optimize_structure"

CATALOG_METADATA_KEYS = (
    "/Metadata", "/MarkInfo", "/Outlines", "/PageLabels", "/ViewerPreferences",
    "/PageLayout", "/PageMode", "/Threads", "/OpenAction",
)

PAGE_INTERACTIVE_KEYS = (
    "/Dur", "/Trans", "/AA", "/StructParents", "/PZ", "/SeparationInfo",
    "/Group", "/Tabs", "/TemplateInstantiated", "/PresSteps", "/UserUnit",
)

PRUNE_RULES: Tuple[PruneRule, ...] = (
    PruneRule(Target.TRAILER, ("/Info",), _always, STRIP_METADATA),
    PruneRule(Target.CATALOG, CATALOG_METADATA_KEYS, _always, STRIP_METADATA),
    PruneRule(Target.PAGE, ("/Thumb",), _always, STRIP_METADATA),
    PruneRule(Target.PAGE, ("/Annots",), _high_lossy, OPTIMIZE_CONTENT_STREAMS),
    PruneRule(Target.PAGE, PAGE_INTERACTIVE_KEYS, _high, OPTIMIZE_CONTENT_STREAMS),
    PruneRule(Target.RESOURCES, ("/ProcSet",), _high_lossy, OPTIMIZE_CONTENT_STREAMS),
    PruneRule(Target.CATALOG, ("/StructTreeRoot", "/OCProperties"), _high, OPTIMIZE_STRUCTURE),
    PruneRule(Target.NAMES, ("/EmbeddedFiles",), _always, OPTIMIZE_STRUCTURE),
)


@dataclass
class PruneSummary:
    """Counts for one application of the pruning table."""
    removed: int = 0
    nodes_visited: int = 0
    failures: List[str] = field(default_factory=list)

    def merge(self, other: "PruneSummary") -> None:
        self.removed += other.removed
        self.nodes_visited += other.nodes_visited
        self.failures.extend(other.failures)


def _key(key: str) -> Name:
    return Name(key if key.startswith("/") else "/" + key)


def delete_if_present(node, key: str) -> bool:
    """
    Remove *key* from *node* if it is there.

    Returns True if something was removed. Anything that is not a
    dictionary (or stream dictionary), including None, is left alone.
    """
    if not isinstance(node, (Dictionary, Stream)):
        return False
    name = _key(key)
    if name not in node:
        return False
    del node[name]
    return True


def _iter_targets(pdf: Pdf, target: Target) -> Iterator[Tuple[str, Optional[Dictionary]]]:
    """Yield (label, node) pairs for every node of kind *target*."""
    if target is Target.TRAILER:
        yield "trailer", pdf.trailer
    elif target is Target.CATALOG:
        yield "catalog", catalog(pdf)
    elif target is Target.NAMES:
        root = catalog(pdf)
        names = resolve_dictionary(root.get(Name.Names)) if root is not None else None
        yield "names", names
    elif target is Target.PAGE:
        for index, page in enumerate(pdf.pages):
            yield f"page {index + 1}", page.obj
    elif target is Target.RESOURCES:
        # Inherited resource dictionaries are shared; visit each once
        seen = set()
        for index, page in enumerate(pdf.pages):
            resources = page_resources(page.obj)
            if resources is not None and resources.is_indirect:
                if resources.objgen in seen:
                    continue
                seen.add(resources.objgen)
            yield f"page {index + 1} resources", resources


def apply_rule(pdf: Pdf, rule: PruneRule) -> PruneSummary:
    """Apply one rule to every node it targets, isolating failures per node."""
    summary = PruneSummary()
    targets = _iter_targets(pdf, rule.target)

    while True:
        try:
            label, node = next(targets)
        except StopIteration:
            break
        except Exception as e:
            # The target walk itself broke (e.g. a corrupt page tree)
            logger.warning(f"Could not enumerate {rule.target.value} nodes: {e}")
            summary.failures.append(f"{rule.target.value}: {e}")
            break

        if node is None:
            continue
        summary.nodes_visited += 1
        try:
            for key in rule.keys:
                if delete_if_present(node, key):
                    summary.removed += 1
                    logger.debug(f"Removed {key} from {label}")
        except Exception as e:
            logger.warning(f"Could not prune {label}: {e}")
            summary.failures.append(f"{label}: {e}")

    return summary


def rules_for(options: CompressionOptions, stage: Optional[str] = None) -> List[PruneRule]:
    return [
        rule for rule in PRUNE_RULES
        if (stage is None or rule.stage == stage) and rule.applies(options)
    ]


def apply_rules(
    pdf: Pdf,
    options: CompressionOptions,
    stage: Optional[str] = None
) -> PruneSummary:
    """
    Apply the pruning table.

    Args:
        pdf: Document to mutate in place
        options: Request options deciding which rows apply
        stage: Only apply rows for this stage (None = all rows)

    Returns:
        PruneSummary with removal and failure counts
    """
    summary = PruneSummary()
    for rule in rules_for(options, stage):
        summary.merge(apply_rule(pdf, rule))

    logger.debug(
        f"Pruning ({stage or 'all'}): removed {summary.removed} entries "
        f"from {summary.nodes_visited} nodes, {len(summary.failures)} failures"
    )
    return summary
