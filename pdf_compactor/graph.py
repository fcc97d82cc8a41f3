"""
graph.py - Document graph access on top of pikepdf.

pikepdf parses the bytes, resolves indirect references and writes the
mutated graph back out. Everything else in the package goes through the
helpers here so that:

- a dangling or wrong-typed reference reads as ``None`` instead of raising
- parse failures surface as LoadError, write failures as SaveError
"""

import io
import logging
from typing import Optional

import pikepdf
from pikepdf import Dictionary, Name, Pdf, Stream

from .exceptions import LoadError, SaveError

logger = logging.getLogger(__name__)

# Guard against malformed page trees whose /Parent chain never ends
MAX_PARENT_DEPTH = 64


def load_document(data: bytes, ignore_encryption: bool = True) -> Pdf:
    """
    Parse raw bytes into a pikepdf document.

    Recoverable damage (broken xref tables, bad offsets) is repaired by
    qpdf. Documents encrypted with an empty user password open normally;
    their encryption is dropped on save unless ``ignore_encryption`` is
    False, in which case they are rejected.

    Raises:
        LoadError: if the bytes cannot be opened as a document
    """
    if not data:
        raise LoadError("Document is empty")

    try:
        pdf = pikepdf.open(io.BytesIO(data), password="")
    except pikepdf.PasswordError as e:
        raise LoadError("Document is password protected and cannot be opened") from e
    except pikepdf.PdfError as e:
        raise LoadError(f"Could not parse document: {e}") from e
    except Exception as e:
        raise LoadError(f"Could not load document: {e}") from e

    if pdf.is_encrypted:
        if not ignore_encryption:
            pdf.close()
            raise LoadError("Document is encrypted")
        logger.warning("Document is encrypted with an empty password; encryption will be removed")

    if catalog(pdf) is None:
        pdf.close()
        raise LoadError("Document has no readable catalog")

    try:
        page_count = len(pdf.pages)
    except Exception as e:
        pdf.close()
        raise LoadError(f"Could not read page tree: {e}") from e

    logger.debug(f"Loaded document: {len(data):,} bytes, {page_count} pages")
    return pdf


def resolve_dictionary(obj) -> Optional[Dictionary]:
    """Return *obj* if it is (or resolves to) a dictionary, else None."""
    if obj is None:
        return None
    if isinstance(obj, Dictionary):
        return obj
    return None


def resolve_stream(obj) -> Optional[Stream]:
    """Return *obj* if it is (or resolves to) a stream, else None."""
    if obj is None:
        return None
    if isinstance(obj, Stream):
        return obj
    return None


def catalog(pdf: Pdf) -> Optional[Dictionary]:
    """Follow Trailer -> /Root. None if the root is missing or not a dictionary."""
    try:
        root = pdf.trailer.get(Name.Root)
    except pikepdf.PdfError as e:
        logger.warning(f"Could not read trailer /Root: {e}")
        return None
    return resolve_dictionary(root)


def is_root_resolvable(pdf: Pdf) -> bool:
    return catalog(pdf) is not None


def page_resources(page: Dictionary) -> Optional[Dictionary]:
    """
    Find the resource dictionary that applies to *page*.

    /Resources is inheritable, so walk up the /Parent chain until one is
    found. Page trees are cyclic (kids point at parents and back), so
    visited nodes are tracked by object id.
    """
    node = page
    seen = set()
    depth = 0

    while node is not None and depth < MAX_PARENT_DEPTH:
        if node.is_indirect:
            if node.objgen in seen:
                break
            seen.add(node.objgen)

        if Name.Resources in node:
            # Present but unresolvable means there is nothing to work on
            return resolve_dictionary(node.get(Name.Resources))

        node = resolve_dictionary(node.get(Name.Parent))
        depth += 1

    return None


def primary_filter(stream: Stream) -> Optional[str]:
    """
    Name of the codec that produced a stream's payload, e.g. "/DCTDecode".

    With a filter chain the last entry is the image codec
    ([/FlateDecode /DCTDecode] is deflated JPEG data).
    """
    filters = stream.get(Name.Filter)
    if filters is None:
        return None
    if isinstance(filters, pikepdf.Array):
        if len(filters) == 0:
            return None
        filters = filters[len(filters) - 1]
    if isinstance(filters, Name):
        return str(filters)
    return None


def serialize(
    pdf: Pdf,
    pack_object_streams: bool = True,
    recompress_flate: bool = False
) -> bytes:
    """
    Write the document to bytes.

    qpdf only writes objects reachable from the trailer, so anything the
    pruning stages detached is dropped here. With ``pack_object_streams``
    small non-stream objects are packed into object streams.

    Raises:
        SaveError: if the writer rejects the document
    """
    mode = (
        pikepdf.ObjectStreamMode.generate
        if pack_object_streams
        else pikepdf.ObjectStreamMode.preserve
    )
    buffer = io.BytesIO()
    try:
        pdf.save(
            buffer,
            compress_streams=True,
            object_stream_mode=mode,
            recompress_flate=recompress_flate,
        )
    except Exception as e:
        raise SaveError(f"Could not write compressed document: {e}") from e

    data = buffer.getvalue()
    if not data:
        raise SaveError("Writer produced an empty document")

    logger.debug(f"Serialized document: {len(data):,} bytes (object streams: {pack_object_streams})")
    return data
