"""
HTML parsing for search result and product pages.

Selectors come from ``config/selectors.yaml``; every extractor tries its
selectors in order and returns None when nothing usable is found.
"""

import re
from typing import Iterable, List, Optional

from bs4 import BeautifulSoup

from skuscout.utils.text_processing import contains_any, digits_only, first_number


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _first_text(soup: BeautifulSoup, selectors: Iterable[str]) -> Optional[str]:
    for selector in selectors:
        node = soup.select_one(selector)
        if node is not None:
            text = node.get_text(" ", strip=True)
            if text:
                return text
    return None


def _to_int(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    digits = value.replace(",", "")
    return int(digits) if digits.isdigit() else None


# --- Search pages ---


def has_no_results(html: str, search_selectors) -> bool:
    return _soup(html).select_one(search_selectors.no_results) is not None


def parse_search_results(html: str, search_selectors, limit: int = 3) -> List[str]:
    """
    Extract external ids from a search result page, in page order.

    Sponsored placements are skipped and duplicate ids dropped.

    Args:
        html: Search page body
        search_selectors: ``search`` section of selectors.yaml
        limit: Stop after this many ids

    Returns:
        List of external ids (at most ``limit``)
    """
    soup = _soup(html)
    id_attribute = search_selectors.id_attribute

    sponsored_nodes = {id(node) for selector in search_selectors.sponsored for node in soup.select(selector)}

    ids: List[str] = []
    for item in soup.select(search_selectors.result_item):
        if len(ids) >= limit:
            break
        if _is_sponsored(item, search_selectors, sponsored_nodes):
            continue
        external_id = (item.get(id_attribute) or "").strip()
        if external_id and external_id not in ids:
            ids.append(external_id)
    return ids


def _is_sponsored(item, search_selectors, sponsored_nodes: set) -> bool:
    if id(item) in sponsored_nodes:
        return True
    for selector in search_selectors.sponsored:
        if item.select_one(selector) is not None:
            return True
    return search_selectors.sponsored_text in item.get_text(" ", strip=True)


# --- Product pages ---


def is_not_found_page(html: str, product_selectors) -> bool:
    return contains_any(html, product_selectors.not_found_markers) is not None


def extract_brand(soup: BeautifulSoup, product_selectors) -> Optional[str]:
    for selector in product_selectors.brand:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = node.get_text(" ", strip=True)
        # "Visit the Acme Store" / "Brand: Acme"
        text = re.sub(r"^Visit the\s+", "", text, flags=re.IGNORECASE)
        text = re.sub(r"\s+Store$", "", text, flags=re.IGNORECASE)
        text = re.sub(r"^Brand:\s*", "", text, flags=re.IGNORECASE)
        if text:
            return text
    return None


def extract_rating(soup: BeautifulSoup, product_selectors) -> Optional[float]:
    for selector in product_selectors.rating:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = node.get_text(" ", strip=True)
        value = first_number(text, r"(\d+(?:\.\d+)?)\s*out of") or first_number(text, r"^(\d+(?:\.\d+)?)$")
        if value:
            return float(value)
    return None


def extract_review_count(soup: BeautifulSoup, product_selectors) -> Optional[int]:
    text = _first_text(soup, product_selectors.review_count)
    return _to_int(first_number(text, r"(\d[\d,]*)"))


def extract_code(soup: BeautifulSoup, product_selectors) -> Optional[str]:
    """Find a UPC/EAN/GTIN value in the product details tables or bullet lists."""
    labels = list(product_selectors.code_labels)

    for selector in product_selectors.details:
        for section in soup.select(selector):
            for row in section.find_all("tr"):
                header = row.find("th")
                cells = row.find_all("td")
                label_text = header.get_text(" ", strip=True) if header else (cells[0].get_text(" ", strip=True) if cells else "")
                if cells and contains_any(label_text, labels, case_sensitive=True):
                    value = re.sub(r"\s", "", cells[-1].get_text(" ", strip=True))
                    if value.isdigit():
                        return value
            for entry in section.find_all("li"):
                value = _labelled_digits(entry.get_text(" ", strip=True), labels)
                if value:
                    return value
    return None


def _labelled_digits(text: str, labels: List[str]) -> Optional[str]:
    for label in labels:
        match = re.search(rf"\b{re.escape(label)}\b[^\d]*?(\d[\d\s]*\d)", text)
        if match:
            return digits_only(match.group(1))
    return None


def extract_rank(soup: BeautifulSoup, product_selectors) -> Optional[int]:
    """Main-category rank from text like ``Best Sellers Rank: #1,234 in Tools (See Top 100)``."""
    for selector in product_selectors.rank:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = node.get_text(" ", strip=True)
        label_at = text.find(product_selectors.rank_label)
        if label_at >= 0:
            text = text[label_at:]
        rank = _to_int(first_number(text, r"#?(\d[\d,]*)\s+in\s"))
        if rank is not None:
            return rank
    return None


def parse_product_page(html: str, product_selectors) -> dict:
    """
    Extract product attributes from a product page.

    Returns:
        Dict with brand, title, rating_value, review_count, rank_value, extracted_code
        (any of which may be None)
    """
    soup = _soup(html)
    return {
        "brand": extract_brand(soup, product_selectors),
        "title": _first_text(soup, product_selectors.title),
        "rating_value": extract_rating(soup, product_selectors),
        "review_count": extract_review_count(soup, product_selectors),
        "rank_value": extract_rank(soup, product_selectors),
        "extracted_code": extract_code(soup, product_selectors),
    }
