"""Resume text extraction from PDF using pymupdf (optional dependency)."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def extract_text_from_pdf(path: str | Path) -> str:
    """Extract plain text from a resume PDF.

    Args:
        path: Path to the PDF file.

    Returns:
        Text from all pages, one page per block, blank pages dropped.

    Raises:
        FileNotFoundError: If the PDF file does not exist.
        ImportError: If pymupdf is not installed.
        ValueError: If the document has no extractable text (e.g. a scan).
    """
    path = Path(path)
    if not path.exists():
        msg = f"Resume file not found: {path}"
        raise FileNotFoundError(msg)

    try:
        import pymupdf
    except ImportError:
        msg = (
            "pymupdf is required for resume extraction. "
            "Install with: pip install 'assessment-pipeline[resume]'"
        )
        raise ImportError(msg) from None

    with pymupdf.open(str(path)) as doc:
        pages = [page.get_text().strip() for page in doc]

    text = "\n\n".join(p for p in pages if p)
    if not text:
        msg = f"No extractable text in {path}"
        raise ValueError(msg)

    logger.debug("Extracted %d characters from %d pages of %s", len(text), len(pages), path)
    return text
