import io
import zlib
from typing import Dict, Optional

import numpy as np
import pikepdf
import pytest
from PIL import Image
from pikepdf import Array, Dictionary, Name, Stream, String

from pdf_compactor import CompressionLevel, CompressionOptions


def _noise(width: int, height: int, seed: int = 7) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


def flate_image(pdf: pikepdf.Pdf, width: int, height: int) -> Stream:
    """Raw RGB noise, deflated. Compresses badly, so JPEG always wins."""
    image_dict = Dictionary({
        '/Type': Name.XObject,
        '/Subtype': Name.Image,
        '/Width': width,
        '/Height': height,
        '/ColorSpace': Name.DeviceRGB,
        '/BitsPerComponent': 8,
        '/Filter': Name.FlateDecode,
    })
    data = zlib.compress(_noise(width, height).tobytes())
    return pdf.make_indirect(Stream(pdf, data, image_dict))


def jpeg_image(pdf: pikepdf.Pdf, width: int, height: int, quality: int = 95) -> Stream:
    buffer = io.BytesIO()
    Image.fromarray(_noise(width, height)).save(buffer, format="JPEG", quality=quality)
    image_dict = Dictionary({
        '/Type': Name.XObject,
        '/Subtype': Name.Image,
        '/Width': width,
        '/Height': height,
        '/ColorSpace': Name.DeviceRGB,
        '/BitsPerComponent': 8,
        '/Filter': Name.DCTDecode,
    })
    return pdf.make_indirect(Stream(pdf, buffer.getvalue(), image_dict))


def _draw_image_content(pdf: pikepdf.Pdf, name: str = "/Im0") -> Stream:
    content = f"q 612 0 0 792 0 0 cm {name} Do Q".encode("latin-1")
    return pdf.make_indirect(Stream(pdf, content))


def build_rich_pdf(image: Optional[Stream] = None, pages: int = 1) -> pikepdf.Pdf:
    """A document carrying every entry the pruning table knows about."""
    pdf = pikepdf.new()
    for _ in range(pages):
        pdf.add_blank_page(page_size=(612, 792))

    pdf.docinfo["/Title"] = "Sample"
    pdf.docinfo["/Producer"] = "pdf-compactor-tests"

    root = pdf.Root
    root.Metadata = pdf.make_indirect(Stream(pdf, b"<x:xmpmeta xmlns:x='adobe:ns:meta/'/>"))
    root.MarkInfo = Dictionary({'/Marked': True})
    root.Outlines = pdf.make_indirect(Dictionary({'/Type': Name.Outlines, '/Count': 0}))
    root.PageLabels = Dictionary({'/Nums': Array([0, Dictionary({'/S': Name.D})])})
    root.ViewerPreferences = Dictionary({'/HideToolbar': True})
    root.PageLayout = Name.SinglePage
    root.PageMode = Name.UseNone
    root.Threads = Array([])
    root.OpenAction = Array([pdf.pages[0].obj, Name.Fit])
    root.StructTreeRoot = pdf.make_indirect(Dictionary({'/Type': Name.StructTreeRoot}))
    root.OCProperties = Dictionary({'/OCGs': Array([]), '/D': Dictionary({})})
    root.Names = Dictionary({
        '/EmbeddedFiles': Dictionary({'/Names': Array([])}),
        '/Dests': Dictionary({'/Names': Array([])}),
    })

    for page in pdf.pages:
        obj = page.obj
        obj.Thumb = pdf.make_indirect(Stream(pdf, b"thumbnail"))
        obj.Annots = Array([pdf.make_indirect(Dictionary({
            '/Type': Name.Annot,
            '/Subtype': Name.Text,
            '/Rect': Array([0, 0, 10, 10]),
            '/Contents': String("note"),
        }))])
        obj.Dur = 5
        obj.Trans = Dictionary({'/S': Name.Dissolve})
        obj.StructParents = 0
        obj.Group = Dictionary({'/S': Name.Transparency})
        obj.Tabs = Name.S
        obj.UserUnit = 1.0

        resources = Dictionary({'/ProcSet': Array([Name.PDF, Name.ImageC])})
        if image is not None:
            resources.XObject = Dictionary({'/Im0': image})
            obj.Contents = _draw_image_content(pdf)
        obj.Resources = resources

    return pdf


def to_bytes(pdf: pikepdf.Pdf, **save_kwargs) -> bytes:
    buffer = io.BytesIO()
    pdf.save(buffer, **save_kwargs)
    return buffer.getvalue()


def build_raw_pdf(objects: Dict[int, bytes], root: int = 1) -> bytes:
    """Serialize hand-written objects with a correct xref table."""
    out = io.BytesIO()
    out.write(b"%PDF-1.4\n")
    offsets = {}
    for number in sorted(objects):
        offsets[number] = out.tell()
        out.write(f"{number} 0 obj\n".encode() + objects[number] + b"\nendobj\n")

    size = max(objects) + 1
    xref = out.tell()
    out.write(f"xref\n0 {size}\n".encode())
    out.write(b"0000000000 65535 f \n")
    for number in range(1, size):
        if number in offsets:
            out.write(f"{offsets[number]:010d} 00000 n \n".encode())
        else:
            out.write(b"0000000000 65535 f \n")
    out.write(f"trailer\n<< /Size {size} /Root {root} 0 R >>\nstartxref\n{xref}\n%%EOF\n".encode())
    return out.getvalue()


@pytest.fixture()
def high_options() -> CompressionOptions:
    return CompressionOptions(quality=25, compression_level=CompressionLevel.HIGH)


@pytest.fixture()
def rich_pdf() -> pikepdf.Pdf:
    pdf = build_rich_pdf()
    yield pdf
    pdf.close()


@pytest.fixture()
def rich_pdf_bytes() -> bytes:
    with build_rich_pdf() as pdf:
        return to_bytes(pdf)


@pytest.fixture()
def image_pdf_bytes() -> bytes:
    pdf = pikepdf.new()
    pdf.add_blank_page(page_size=(612, 792))
    image = flate_image(pdf, 1200, 900)
    page = pdf.pages[0].obj
    page.Resources = Dictionary({'/XObject': Dictionary({'/Im0': image})})
    page.Contents = _draw_image_content(pdf)
    data = to_bytes(pdf)
    pdf.close()
    return data


@pytest.fixture()
def dangling_reference_bytes() -> bytes:
    """One page whose /XObject entry points at an object that does not exist."""
    return build_raw_pdf({
        1: b"<< /Type /Catalog /Pages 2 0 R /Metadata 5 0 R >>",
        2: b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        3: b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
           b"/Resources 7 0 R /Contents 4 0 R /Thumb 6 0 R >>",
        4: b"<< /Length 11 >>\nstream\nq /Im0 Do Q\nendstream",
        5: b"<< /Type /Metadata /Subtype /XML /Length 4 >>\nstream\n<x/>\nendstream",
        6: b"<< /Length 5 >>\nstream\nthumb\nendstream",
        7: b"<< /ProcSet [/PDF /ImageC] /XObject << /Im0 99 0 R >> >>",
    })
