"""Instrument status XML → NormalizedMessage."""

from __future__ import annotations

import random
import re
import xml.etree.ElementTree as ET
from typing import Iterator, Optional

from instrument_status.core.logging import get_logger
from instrument_status.schemas.message import (
    UNKNOWN_MODULE,
    UNKNOWN_PACKAGE_ID,
    ModuleUpdate,
    NormalizedMessage,
)

log = get_logger("ingestion.xml_parser")

MODULE_STATES = ("Online", "Run", "NotReady", "Offline")
UNKNOWN_STATE = "UNKNOWN"

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>")


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> Iterator[ET.Element]:
    for child in element:
        if isinstance(child.tag, str) and _local_name(child.tag) == name:
            yield child


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    child = next(_children(element, name), None)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def _parse_fragment(text: str) -> ET.Element:
    # Declarations may name an encoding the already-decoded text no longer has
    return ET.fromstring(_XML_DECLARATION.sub("", text, count=1).strip())


class StatusXmlParser:
    """Parses ``PackageID``/``DeviceStatus`` documents.

    The module state comes from the ``ModuleState`` element of the XML fragment
    embedded in ``RapidControlStatus``. ``randomize_states`` restores the legacy
    behaviour of substituting a random state from MODULE_STATES.
    """

    def __init__(self, randomize_states: bool = False, rng: Optional[random.Random] = None):
        self.randomize_states = randomize_states
        self._rng = rng or random.Random()
        if randomize_states:
            log.warning("Parser randomizes module states; parsed ModuleState values are discarded")

    def parse(self, content: str) -> Optional[NormalizedMessage]:
        """Return the message for ``content``, or None when it is not a status document."""
        if not content or not content.strip():
            return None
        try:
            root = _parse_fragment(content)
        except ET.ParseError as exc:
            log.debug(f"Unparseable status XML: {exc}")
            return None

        package_id = _child_text(root, "PackageID") or UNKNOWN_PACKAGE_ID
        modules = [self._module_update(status) for status in _children(root, "DeviceStatus")]
        return NormalizedMessage(package_id=package_id, modules=modules)

    def _module_update(self, device_status: ET.Element) -> ModuleUpdate:
        category = _child_text(device_status, "ModuleCategoryID") or UNKNOWN_MODULE
        state = self._embedded_state(device_status) or UNKNOWN_STATE
        if self.randomize_states:
            state = self._rng.choice(MODULE_STATES)
        return ModuleUpdate(module_category_id=category, module_state=state)

    @staticmethod
    def _embedded_state(device_status: ET.Element) -> Optional[str]:
        fragment = _child_text(device_status, "RapidControlStatus")
        if not fragment:
            return None
        try:
            inner = _parse_fragment(fragment)
        except ET.ParseError:
            return None
        if _local_name(inner.tag) == "ModuleState":
            return (inner.text or "").strip() or None
        return _child_text(inner, "ModuleState") or None
