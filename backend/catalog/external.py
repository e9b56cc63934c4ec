import logging
import re
import xml.etree.ElementTree as ET
from datetime import date

import requests

from . import config

logger = logging.getLogger(__name__)

BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils/"
CROSSREF_URL = "https://api.crossref.org/works/"

_DOI_PREFIXES = re.compile(
    r"^(?:https?://)?(?:dx\.)?(?:doi\.org/)|^doi:\s*",
    re.IGNORECASE,
)
_MONTHS = {m: i for i, m in enumerate(
    ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"], start=1
)}


class ExternalServiceError(Exception):
    """Raised when a bibliographic service fails or returns nothing usable."""


def normalize_doi(doi: str) -> str:
    doi = doi.strip()
    previous = None
    while previous != doi:
        previous = doi
        doi = _DOI_PREFIXES.sub("", doi).strip()
    return doi


def search_pubmed(query: str, limit: int = 5):
    params = {"db": "pubmed", "term": query, "retmode": "json", "retmax": limit}
    r = requests.get(BASE_URL + "esearch.fcgi", params=params, timeout=10)
    r.raise_for_status()
    ids = r.json()["esearchresult"].get("idlist", [])
    if not ids:
        return []
    r2 = requests.get(BASE_URL + "esummary.fcgi", params={"db": "pubmed", "id": ",".join(ids), "retmode": "json"}, timeout=10)
    r2.raise_for_status()
    data = r2.json()["result"]
    articles = []
    for _id in ids:
        info = data.get(_id)
        if not info:
            continue
        articles.append({"id": info["uid"], "title": info.get("title", "")})
    return articles


def _pubmed_date(article: ET.Element) -> date | None:
    pub_date = article.find(".//Journal/JournalIssue/PubDate")
    if pub_date is None:
        return None
    year = pub_date.findtext("Year")
    if not year:
        medline = pub_date.findtext("MedlineDate") or ""
        match = re.match(r"(\d{4})", medline)
        year = match.group(1) if match else None
    if not year:
        return None
    month_text = (pub_date.findtext("Month") or "1").strip().lower()
    month = _MONTHS.get(month_text[:3]) or (int(month_text) if month_text.isdigit() else 1)
    day = pub_date.findtext("Day")
    return date(int(year), month, int(day) if day and day.isdigit() else 1)


def fetch_pubmed(pubmed_id: int) -> dict:
    """Return title, abstract, journal, date, authors and DOI for a PubMed id."""

    try:
        r = requests.get(
            BASE_URL + "efetch.fcgi",
            params={"db": "pubmed", "id": str(pubmed_id), "retmode": "xml"},
            timeout=10,
        )
        r.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("PubMed fetch for %s failed: %s", pubmed_id, exc)
        raise ExternalServiceError("Failed to reach PubMed") from exc

    try:
        root = ET.fromstring(r.content)
    except ET.ParseError as exc:
        logger.warning("PubMed returned unreadable XML for %s: %s", pubmed_id, exc)
        raise ExternalServiceError("PubMed returned an unreadable response") from exc
    article = root.find(".//PubmedArticle/MedlineCitation/Article")
    if article is None:
        raise ExternalServiceError(f"No PubMed record found for id {pubmed_id}")

    authors = []
    for author in article.findall(".//AuthorList/Author"):
        last = author.findtext("LastName")
        first = author.findtext("ForeName") or author.findtext("Initials")
        if last:
            authors.append(" ".join(p for p in (first, last) if p))
    abstract = " ".join(
        "".join(node.itertext()).strip() for node in article.findall(".//Abstract/AbstractText")
    )
    doi = root.findtext(".//ArticleIdList/ArticleId[@IdType='doi']")
    return {
        "pubmed_id": int(pubmed_id),
        "title": "".join(article.find("ArticleTitle").itertext()).strip() if article.find("ArticleTitle") is not None else "",
        "abstract": abstract or None,
        "journal": article.findtext("Journal/Title"),
        "published_date": _pubmed_date(article),
        "authors": authors,
        "doi": doi,
    }


def fetch_crossref(doi: str) -> dict:
    """Return publication metadata for a DOI from the CrossRef works API."""

    doi = normalize_doi(doi)
    try:
        r = requests.get(CROSSREF_URL + doi, params={"mailto": config.crossref_email()}, timeout=10)
    except requests.RequestException as exc:
        logger.warning("CrossRef fetch for %s failed: %s", doi, exc)
        raise ExternalServiceError("Failed to reach CrossRef") from exc
    if r.status_code == 404:
        raise ExternalServiceError(f"Unable to get result for DOI {doi}")
    try:
        r.raise_for_status()
    except requests.HTTPError as exc:
        raise ExternalServiceError("Failed to reach CrossRef") from exc

    try:
        message = r.json().get("message", {})
    except ValueError as exc:
        logger.warning("CrossRef returned non-JSON for %s", doi)
        raise ExternalServiceError("CrossRef returned an unreadable response") from exc
    parts = (message.get("issued") or {}).get("date-parts") or [[]]
    published = None
    if parts and parts[0] and parts[0][0]:
        year, month, day = (list(parts[0]) + [1, 1])[:3]
        published = date(int(year), int(month), int(day))
    abstract = message.get("abstract")
    if abstract:
        abstract = re.sub(r"<[^>]+>", "", abstract).strip()
    return {
        "doi": doi,
        "title": (message.get("title") or [""])[0],
        "abstract": abstract,
        "journal": (message.get("container-title") or [None])[0],
        "published_date": published,
        "authors": [
            " ".join(p for p in (a.get("given"), a.get("family")) if p)
            for a in message.get("author", [])
            if a.get("family") or a.get("given")
        ],
    }
