"""Text extraction: one plain-text Document per source file or URL."""

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Union
from urllib.parse import unquote, urlparse

import requests
from langchain_core.documents import Document as LCDocument
from langchain_community.document_loaders import (
    TextLoader,
    PyMuPDFLoader,
    WebBaseLoader,
)

from .models import Document

logger = logging.getLogger(__name__)

DEFAULT_MAX_DOCUMENTS = 10


def _is_url(s: str) -> bool:
    """Check if string is a URL."""
    p = urlparse(s)
    return p.scheme in ("http", "https") and bool(p.netloc)


def _join_pages(lc_docs: List[LCDocument]) -> str:
    return "\n".join((d.page_content or "").strip() for d in lc_docs if d.page_content)


def _load_url(url: str, timeout: float) -> List[LCDocument]:
    path = urlparse(url).path.lower()
    if not path.endswith(".pdf"):
        return WebBaseLoader(web_paths=[url]).load()

    # PyMuPDF needs a local file
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    fd, tmp_path = tempfile.mkstemp(suffix=".pdf")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(response.content)
        return PyMuPDFLoader(tmp_path).load()
    finally:
        os.unlink(tmp_path)


def load_document(source: str, *, timeout: float = 60.0) -> Optional[Document]:
    """
    Extract plain text from one file path or URL.

    Supported:
    - PDF files and PDF URLs (PyMuPDF)
    - HTML pages (BeautifulSoup-based WebBaseLoader)
    - Anything else is read as text with encoding autodetection

    Returns:
        The Document, or None when extraction fails or yields no text
    """
    try:
        if _is_url(source):
            lc_docs = _load_url(source, timeout)
            file_name = unquote(Path(urlparse(source).path).name) or source
            url = source
        else:
            path = Path(source)
            if not path.is_file():
                logger.warning(f"File not found: {source}")
                return None
            if path.suffix.lower() == ".pdf":
                lc_docs = PyMuPDFLoader(str(path)).load()
            else:
                lc_docs = TextLoader(str(path), autodetect_encoding=True).load()
            file_name = path.name
            url = None
    except Exception as e:
        logger.warning(f"Failed to extract text from {source}: {e}")
        return None

    text = _join_pages(lc_docs).strip()
    if not text:
        logger.warning(f"No text extracted from {source}; skipping")
        return None
    return Document.from_source(file_name, text, url=url)


def load_sources(
    sources: Union[str, Sequence[str]],
    *,
    max_documents: int = DEFAULT_MAX_DOCUMENTS,
    timeout: float = 60.0,
) -> List[Document]:
    """
    Load documents from mixed sources (URLs and files), skipping failures.

    Only the first ``max_documents`` sources are read.

    Args:
        sources: Single source or list of sources (URLs, paths)
        max_documents: Cap on sources read per request
        timeout: Per-download timeout in seconds

    Returns:
        List of Document objects
    """
    if isinstance(sources, str):
        sources = [sources]

    if len(sources) > max_documents:
        logger.info(f"Reading the first {max_documents} of {len(sources)} sources")

    out: List[Document] = []
    for src in list(sources)[:max_documents]:
        doc = load_document(src, timeout=timeout)
        if doc is not None:
            out.append(doc)
    return out
