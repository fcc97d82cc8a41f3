import pikepdf
import pytest
from pikepdf import Dictionary, Name

from conftest import build_rich_pdf
from pdf_compactor import CompressionLevel, CompressionOptions
from pdf_compactor.pruning import (
    CATALOG_METADATA_KEYS,
    PAGE_INTERACTIVE_KEYS,
    apply_rules,
    delete_if_present,
    rules_for,
)


def _snapshot(pdf: pikepdf.Pdf):
    page = pdf.pages[0].obj
    resources = page.get(Name.Resources)
    names = pdf.Root.get(Name.Names)
    return (
        sorted(pdf.trailer.keys()),
        sorted(pdf.Root.keys()),
        sorted(page.keys()),
        sorted(resources.keys()) if resources is not None else None,
        sorted(names.keys()) if names is not None else None,
    )


def test_delete_if_present_reports_removal():
    node = Dictionary({'/Thumb': 1, '/Keep': 2})

    assert delete_if_present(node, "/Thumb") is True
    assert delete_if_present(node, "/Thumb") is False
    assert Name.Keep in node


def test_delete_if_present_accepts_bare_key():
    node = Dictionary({'/Metadata': 1})
    assert delete_if_present(node, "Metadata") is True
    assert len(node) == 0


@pytest.mark.parametrize("node", [None, 5, Name.Foo, pikepdf.Array([1, 2])])
def test_delete_if_present_ignores_non_dictionaries(node):
    assert delete_if_present(node, "/Anything") is False


def test_all_rules_at_high_level(rich_pdf):
    options = CompressionOptions(quality=50, compression_level=CompressionLevel.HIGH)
    summary = apply_rules(rich_pdf, options)

    assert summary.failures == []
    assert Name.Info not in rich_pdf.trailer
    for key in CATALOG_METADATA_KEYS + ("/StructTreeRoot", "/OCProperties"):
        assert key not in rich_pdf.Root

    names = rich_pdf.Root.Names
    assert Name.EmbeddedFiles not in names
    assert Name.Dests in names

    page = rich_pdf.pages[0].obj
    for key in PAGE_INTERACTIVE_KEYS + ("/Thumb", "/Annots"):
        assert key not in page
    assert Name.ProcSet not in page.Resources
    assert Name.MediaBox in page


def test_low_level_keeps_structural_entries(rich_pdf):
    options = CompressionOptions(quality=90, compression_level=CompressionLevel.LOW)
    apply_rules(rich_pdf, options)

    assert Name.Metadata not in rich_pdf.Root
    assert Name.Info not in rich_pdf.trailer
    assert Name.Thumb not in rich_pdf.pages[0].obj

    assert Name.StructTreeRoot in rich_pdf.Root
    assert Name.OCProperties in rich_pdf.Root
    page = rich_pdf.pages[0].obj
    assert Name.Annots in page
    assert Name.Trans in page
    assert Name.ProcSet in page.Resources


def test_preserve_quality_keeps_annotations_and_procset(rich_pdf):
    options = CompressionOptions(
        quality=50, compression_level=CompressionLevel.HIGH, preserve_quality=True
    )
    apply_rules(rich_pdf, options)

    page = rich_pdf.pages[0].obj
    assert Name.Annots in page
    assert Name.ProcSet in page.Resources
    assert Name.Trans not in page
    assert Name.StructTreeRoot not in rich_pdf.Root


def test_stage_filter_only_applies_that_stage(rich_pdf, high_options):
    apply_rules(rich_pdf, high_options, stage="optimize_structure")

    assert Name.StructTreeRoot not in rich_pdf.Root
    assert Name.Metadata in rich_pdf.Root
    assert Name.Thumb in rich_pdf.pages[0].obj


def test_rules_for_respects_conditions():
    medium = CompressionOptions(compression_level=CompressionLevel.MEDIUM)
    high = CompressionOptions(compression_level=CompressionLevel.HIGH)

    assert len(rules_for(high)) > len(rules_for(medium))
    assert all(rule.applies(medium) for rule in rules_for(medium))


def test_pruning_is_idempotent(rich_pdf, high_options):
    first = apply_rules(rich_pdf, high_options)
    after_first = _snapshot(rich_pdf)

    second = apply_rules(rich_pdf, high_options)

    assert first.removed > 0
    assert second.removed == 0
    assert second.failures == []
    assert _snapshot(rich_pdf) == after_first


def test_shared_inherited_resources_visited_once(high_options):
    pdf = build_rich_pdf(pages=3)
    shared = pdf.make_indirect(Dictionary({'/ProcSet': pikepdf.Array([Name.PDF])}))
    for page in pdf.pages:
        del page.obj[Name.Resources]
    pdf.Root.Pages.Resources = shared

    summary = apply_rules(pdf, high_options, stage="optimize_content_streams")

    assert Name.ProcSet not in pdf.Root.Pages.Resources
    assert summary.failures == []


def test_missing_names_tree_is_nothing_to_prune(high_options):
    pdf = build_rich_pdf()
    del pdf.Root[Name.Names]

    summary = apply_rules(pdf, high_options, stage="optimize_structure")

    assert summary.failures == []
    assert Name.Names not in pdf.Root
