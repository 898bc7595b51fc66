"""Best-effort listing detection from the host page markup"""
import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from bs4.element import Tag

from chatbuddy.widget.page import HostPage

logger = logging.getLogger(__name__)

LISTING_TYPES = {"RealEstateListing", "Product", "Residence", "Place", "Offer", "Apartment", "House", "SingleFamilyResidence"}

MAX_VALUE_LENGTH = 200

# Present on most pages; only used once something listing-specific was found
GENERIC_META = {"og:title", "twitter:title", "og:description", "description", "og:image", "twitter:image"}

META_FIELDS = [
    ("name", ["property:name", "og:title", "twitter:title"]),
    ("price", ["property:price", "product:price:amount", "og:price:amount"]),
    ("currency", ["product:price:currency", "og:price:currency"]),
    ("location", ["property:location", "geo.placename", "og:locality"]),
    ("description", ["og:description", "description"]),
    ("image", ["og:image", "twitter:image"]),
]

SELECTOR_FIELDS = [
    ("name", [".property-name", ".project-name", "[itemprop=name]"]),
    ("price", [".property-price", ".price", "[itemprop=price]"]),
    ("location", [".property-location", ".location", ".address", "[itemprop=address]"]),
    ("configuration", [".configuration", ".bhk"]),
]

_WHITESPACE = re.compile(r"\s+")


def _clean(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = _WHITESPACE.sub(" ", str(value)).strip()
    return text[:MAX_VALUE_LENGTH] if text else None


def _set(found: Dict[str, str], key: str, value: Any) -> None:
    cleaned = _clean(value)
    if cleaned and key not in found:
        found[key] = cleaned


def _json_ld_items(page: HostPage) -> Iterable[Dict[str, Any]]:
    for script in page.query_selector_all('script[type="application/ld+json"]'):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except ValueError:
            continue
        stack: List[Any] = [data]
        while stack:
            item = stack.pop(0)
            if isinstance(item, list):
                stack.extend(item)
            elif isinstance(item, dict):
                if "@graph" in item:
                    stack.extend(item["@graph"] if isinstance(item["@graph"], list) else [item["@graph"]])
                yield item


def _is_listing(item: Dict[str, Any]) -> bool:
    types = item.get("@type")
    if isinstance(types, str):
        types = [types]
    return any(t in LISTING_TYPES for t in (types or []) if isinstance(t, str))


def _address_text(address: Any) -> Optional[str]:
    if isinstance(address, str):
        return address
    if isinstance(address, dict):
        parts = [address.get(key) for key in ("streetAddress", "addressLocality", "addressRegion")]
        return ", ".join(str(part) for part in parts if part)
    return None


def _from_json_ld(page: HostPage, found: Dict[str, str]) -> bool:
    listing = False
    for item in _json_ld_items(page):
        if not _is_listing(item):
            continue
        listing = True
        _set(found, "name", item.get("name"))
        _set(found, "description", item.get("description"))

        offers = item.get("offers")
        if isinstance(offers, list):
            offers = offers[0] if offers else None
        if item.get("@type") == "Offer":
            offers = item
        if isinstance(offers, dict):
            _set(found, "price", offers.get("price") or offers.get("lowPrice"))
            _set(found, "currency", offers.get("priceCurrency"))

        address = item.get("address")
        if address is None and isinstance(item.get("location"), dict):
            address = item["location"].get("address")
        _set(found, "location", _address_text(address))

        image = item.get("image")
        if isinstance(image, list):
            image = image[0] if image else None
        if isinstance(image, dict):
            image = image.get("url")
        _set(found, "image", image)

        for brand_key in ("brand", "developer", "seller"):
            brand = item.get(brand_key)
            _set(found, "developer", brand.get("name") if isinstance(brand, dict) else brand)
    return listing


def _from_meta(page: HostPage, found: Dict[str, str]) -> bool:
    listing = False
    for key, names in META_FIELDS:
        for name in names:
            tag = page.query_selector(f'meta[property="{name}"]') or page.query_selector(f'meta[name="{name}"]')
            if tag is not None and tag.get("content"):
                _set(found, key, tag["content"])
                listing = listing or name not in GENERIC_META
                break
    return listing


def _from_data_attributes(page: HostPage, found: Dict[str, str]) -> bool:
    listing = False
    for tag in page.document.find_all(True):
        for attribute, value in tag.attrs.items():
            if not attribute.startswith("data-property-"):
                continue
            key = attribute[len("data-property-"):].replace("-", "_")
            if key:
                listing = True
                _set(found, key, value if isinstance(value, str) and value.strip() else tag.get_text())
    return listing


def _from_selectors(page: HostPage, found: Dict[str, str]) -> bool:
    listing = False
    for key, selectors in SELECTOR_FIELDS:
        for selector in selectors:
            tag = page.query_selector(selector)
            if isinstance(tag, Tag):
                listing = listing or bool(_clean(tag.get("content") or tag.get_text()))
                _set(found, key, tag.get("content") or tag.get_text())
                if key in found:
                    break

    # A bare heading is only trusted once the page looks like a listing
    if "name" not in found and ("price" in found or "location" in found):
        heading = page.query_selector("h1")
        if heading is not None:
            _set(found, "name", heading.get_text())
    return listing


def detect_property(page: HostPage) -> Dict[str, str]:
    """
    Listing attributes found on the page

    Sources, most trusted first: JSON-LD, meta tags, ``data-property-*``
    attributes, then common CSS selectors. A key found by an earlier source
    is never overwritten. Returns ``{}`` unless some source found a
    listing-specific signal; generic page metadata alone is not a listing.
    """
    found: Dict[str, str] = {}
    listing = False
    try:
        for source in (_from_json_ld, _from_meta, _from_data_attributes, _from_selectors):
            listing = source(page, found) or listing
    except Exception as e:
        logger.warning(f"Property detection failed: {e}")
    return found if listing else {}
