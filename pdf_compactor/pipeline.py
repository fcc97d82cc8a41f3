"""
pipeline.py - Single-request compression pipeline.

Stages, strictly in order:
1. Load                      (fatal on failure)
2. Strip metadata            (isolated)
3. Optimize content streams  (isolated)
4. Process images            (isolated)
5. Optimize structure        (isolated)
6. Save                      (fatal on failure)
7. Done

An isolated stage that fails leaves the document in whatever state it
reached and the pipeline moves on. Only Load and Save can end a request
with an error.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from pikepdf import Pdf

from .exceptions import LoadError, SaveError, StageError
from .graph import is_root_resolvable, load_document, page_resources, serialize
from .images import RECOMPRESSED, iter_image_xobjects, recompress_image
from .models import CompressionLevel, CompressionOptions, ProgressEvent
from .pruning import apply_rules
from .results import CompressionOutcome, package_error, package_result

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]
# advance(fraction) reports progress inside the running stage's band
StageFunc = Callable[[Pdf, CompressionOptions, Callable[[float], None]], Tuple[int, List[str]]]


class Stage(str, Enum):
    LOAD = "load"
    STRIP_METADATA = "strip_metadata"
    OPTIMIZE_CONTENT_STREAMS = "optimize_content_streams"
    PROCESS_IMAGES = "process_images"
    OPTIMIZE_STRUCTURE = "optimize_structure"
    SAVE = "save"
    DONE = "done"


FATAL_STAGES = frozenset({Stage.LOAD, Stage.SAVE})

INTERIOR_STAGES = (
    Stage.STRIP_METADATA,
    Stage.OPTIMIZE_CONTENT_STREAMS,
    Stage.PROCESS_IMAGES,
    Stage.OPTIMIZE_STRUCTURE,
)

ANALYZE_PROGRESS = (10, "Analyzing document structure...")

MILESTONES = {
    Stage.LOAD: (5, "Loading PDF document..."),
    Stage.STRIP_METADATA: (15, "Removing unnecessary metadata..."),
    Stage.OPTIMIZE_CONTENT_STREAMS: (25, "Optimizing content streams..."),
    Stage.PROCESS_IMAGES: (40, "Processing embedded images..."),
    Stage.OPTIMIZE_STRUCTURE: (70, "Optimizing document structure..."),
    Stage.SAVE: (85, "Finalizing compressed document..."),
    Stage.DONE: (100, "Compression complete!"),
}


@dataclass
class StageReport:
    """Statistics for one pipeline stage."""
    stage: str
    success: bool
    error: Optional[str] = None
    process_time: float = 0.0
    edits: int = 0
    failures: List[str] = field(default_factory=list)


class ProgressReporter:
    """
    Emits ProgressEvents that never go backwards.

    100 is reserved for complete(); everything else is capped at 99.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.last = 0
        self.events: List[ProgressEvent] = []

    def emit(self, percent: float, message: Optional[str] = None):
        value = max(self.last, min(int(percent), 99))
        self._send(ProgressEvent(value, message))

    def complete(self, message: Optional[str] = None):
        self._send(ProgressEvent(100, message))

    def _send(self, event: ProgressEvent):
        self.last = event.progress
        self.events.append(event)
        if self.callback:
            self.callback(event)


def strip_metadata(pdf: Pdf, options: CompressionOptions, advance) -> Tuple[int, List[str]]:
    """Drop document info, XMP metadata, outlines and page thumbnails."""
    summary = apply_rules(pdf, options, Stage.STRIP_METADATA.value)
    return summary.removed, summary.failures


def optimize_content_streams(pdf: Pdf, options: CompressionOptions, advance) -> Tuple[int, List[str]]:
    """
    Prune page-level interactive entries and unused resources.

    At medium and above, resources not referenced by a page's content
    stream are removed as well.
    """
    summary = apply_rules(pdf, options, Stage.OPTIMIZE_CONTENT_STREAMS.value)
    edits = summary.removed
    failures = list(summary.failures)

    if not options.compression_level.at_least(CompressionLevel.MEDIUM):
        return edits, failures

    pages = pdf.pages
    total = len(pages)
    for index, page in enumerate(pages):
        try:
            page.remove_unreferenced_resources()
            edits += 1
        except Exception as e:
            logger.warning(f"Page {index + 1}: could not remove unreferenced resources: {e}")
            failures.append(f"page {index + 1}: {e}")
        advance((index + 1) / total)

    return edits, failures


def process_images(pdf: Pdf, options: CompressionOptions, advance) -> Tuple[int, List[str]]:
    """Downsample and re-encode image XObjects page by page."""
    seen = set()
    recompressed = 0
    saved = 0
    failures: List[str] = []

    pages = pdf.pages
    total = len(pages)
    for index, page in enumerate(pages):
        try:
            resources = page_resources(page.obj)
            if resources is not None:
                for name, stream in iter_image_xobjects(resources, seen):
                    label = f"p{index + 1}{name}"
                    try:
                        report = recompress_image(stream, options, name=label)
                    except Exception as e:
                        logger.warning(f"Image {label} failed: {e}")
                        failures.append(f"{label}: {e}")
                        continue
                    if report.outcome == RECOMPRESSED:
                        recompressed += 1
                        saved += report.bytes_saved
                    elif report.reason:
                        logger.debug(f"Image {label} left as is: {report.reason}")
        except Exception as e:
            logger.warning(f"Page {index + 1}: image scan failed: {e}")
            failures.append(f"page {index + 1}: {e}")
        advance((index + 1) / total)

    logger.info(f"Images: {recompressed} recompressed, {saved:,} bytes saved")
    return recompressed, failures


def optimize_structure(pdf: Pdf, options: CompressionOptions, advance) -> Tuple[int, List[str]]:
    """Drop structure tree, optional content and embedded files."""
    summary = apply_rules(pdf, options, Stage.OPTIMIZE_STRUCTURE.value)
    return summary.removed, summary.failures


DEFAULT_STAGES: Tuple[Tuple[Stage, StageFunc], ...] = (
    (Stage.STRIP_METADATA, strip_metadata),
    (Stage.OPTIMIZE_CONTENT_STREAMS, optimize_content_streams),
    (Stage.PROCESS_IMAGES, process_images),
    (Stage.OPTIMIZE_STRUCTURE, optimize_structure),
)


class CompressionPipeline:
    """
    Runs one compression request over one document graph.

    Create a new instance per request; nothing is kept once run() returns.
    """

    def __init__(
        self,
        options: CompressionOptions,
        progress_callback: Optional[ProgressCallback] = None,
        stages: Optional[Sequence[Tuple[Stage, StageFunc]]] = None
    ):
        self.options = options
        self.stages = list(DEFAULT_STAGES if stages is None else stages)
        self.progress = ProgressReporter(progress_callback)
        self.reports: List[StageReport] = []

        order = [stage for stage, _ in self.stages]
        if any(stage in FATAL_STAGES for stage in order):
            raise ValueError("Load and save always run and cannot be configured")
        if any(stage not in INTERIOR_STAGES for stage in order):
            raise ValueError(f"Only interior stages can be configured, got {order}")
        if order != sorted(order, key=INTERIOR_STAGES.index):
            raise ValueError(f"Stages must run in pipeline order, got {order}")

    def _band(self, position: int) -> Callable[[float], None]:
        """advance(fraction) mapped onto this stage's share of the progress bar."""
        stage = self.stages[position][0]
        low = MILESTONES[stage][0]
        if position + 1 < len(self.stages):
            high = MILESTONES[self.stages[position + 1][0]][0]
        else:
            high = MILESTONES[Stage.SAVE][0]

        def advance(fraction: float):
            fraction = max(0.0, min(fraction, 1.0))
            self.progress.emit(low + (high - low) * fraction)

        return advance

    def _run_stage(self, position: int, pdf: Pdf) -> StageReport:
        stage, func = self.stages[position]
        report = StageReport(stage=stage.value, success=False)
        start = time.time()

        logger.debug(f"Stage {stage.value} started")
        try:
            edits, failures = func(pdf, self.options, self._band(position))
            report.edits = edits
            report.failures = list(failures)
            report.success = True
        except Exception as e:
            error = e if isinstance(e, StageError) else StageError(stage.value, str(e))
            report.error = str(error)
            logger.warning(f"Stage {stage.value} failed, continuing: {error}")

        report.process_time = time.time() - start
        logger.debug(
            f"Stage {stage.value} finished in {report.process_time:.2f}s: "
            f"{report.edits} edits, {len(report.failures)} node failures"
        )
        return report

    def run(self, document_bytes: bytes) -> CompressionOutcome:
        """
        Compress *document_bytes*.

        Returns:
            CompressionResult on success, CompressionFailure otherwise.
            Exactly one of the two, never both.
        """
        start_time = time.time()
        original_size = len(document_bytes)
        self.reports = []

        self.progress.emit(*MILESTONES[Stage.LOAD])
        try:
            pdf = load_document(document_bytes, ignore_encryption=self.options.ignore_encryption)
        except LoadError as e:
            logger.error(f"Load failed: {e}")
            return package_error(e)

        try:
            self.progress.emit(*ANALYZE_PROGRESS)
            logger.info(
                f"Compressing {original_size:,} bytes, {len(pdf.pages)} pages "
                f"(level={self.options.compression_level.value}, quality={self.options.quality}, "
                f"preserve_quality={self.options.preserve_quality})"
            )

            for position, (stage, _) in enumerate(self.stages):
                self.progress.emit(*MILESTONES[stage])
                self.reports.append(self._run_stage(position, pdf))
                if not is_root_resolvable(pdf):
                    raise SaveError(f"Document catalog became unreachable during {stage.value}")

            self.progress.emit(*MILESTONES[Stage.SAVE])
            output_bytes = serialize(
                pdf,
                pack_object_streams=True,
                recompress_flate=self.options.compression_level.at_least(CompressionLevel.MEDIUM),
            )
        except SaveError as e:
            logger.error(f"Save failed: {e}")
            return package_error(e)
        except Exception as e:
            logger.error(f"Pipeline failed: {e}")
            return package_error(f"Compression failed: {e}")
        finally:
            pdf.close()

        result = package_result(
            original_size,
            output_bytes,
            stage_reports=self.reports,
            total_time=time.time() - start_time,
        )
        self.progress.complete(MILESTONES[Stage.DONE][1])
        logger.info(f"\n{result.summary()}")
        return result


def compress_document(
    document_bytes: bytes,
    options: Optional[CompressionOptions] = None,
    progress_callback: Optional[ProgressCallback] = None
) -> CompressionOutcome:
    """
    Compress a PDF held in memory.

    Args:
        document_bytes: Raw PDF bytes
        options: Compression options (defaults if None)
        progress_callback: Optional callback(ProgressEvent)

    Returns:
        CompressionResult or CompressionFailure
    """
    pipeline = CompressionPipeline(options or CompressionOptions(), progress_callback)
    return pipeline.run(document_bytes)
