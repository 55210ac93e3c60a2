"""
Extractor Agent - turns a flattened LLM reply into field updates
"""
import json
import math
import re
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from schemas.canvas_schemas import ActionKind
from utils.exceptions import ActionUnavailable, ExtractionFailed, UnknownFieldsOnly
from utils.field_registry import FieldSchemaRegistry, field_registry
from utils.logger import logger


def _format_float(value: float) -> str:
    """Shortest round-trip digits laid out the way JSON serializers write numbers"""
    if not math.isfinite(value):
        return ""
    sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    digits = "".join(map(str, digits))
    size = len(digits)
    point = size + exponent  # position of the decimal point relative to the digits
    prefix = "-" if sign and digits != "0" else ""

    if size <= point <= 21:
        return prefix + digits + "0" * (point - size)
    if 0 < point <= 21:
        return prefix + digits[:point] + "." + digits[point:]
    if -6 < point <= 0:
        return prefix + "0." + "0" * -point + digits
    power = point - 1
    mantissa = digits if size == 1 else digits[0] + "." + digits[1:]
    return f"{prefix}{mantissa}e{'+' if power >= 0 else '-'}{abs(power)}"


def as_text(value: Any) -> str:
    """
    Coerce a JSON value to answer text

    Strings are trimmed, numbers and booleans rendered the way JSON writes them,
    objects and arrays serialized compactly; anything else is "".
    """
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return ""


def _balanced_span(text: str, open_char: str, close_char: str) -> Optional[str]:
    """First balanced open/close span, ignoring delimiters inside JSON strings"""
    start = text.find(open_char)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


class ExtractorAgent:
    """
    Agent responsible for extracting field updates from model replies

    Every kind shares the same JSON fallback order: the whole reply, then the
    first fenced code block, then the first ``{...}`` span (``[...]`` for kinds
    that accept arrays). Only the quantitative triple has a line-based fallback.
    """

    FENCED_BLOCK = re.compile(r"```(?:json)?[ \t]*\r?\n?([\s\S]*?)```", re.IGNORECASE)

    # Quantitative triple: slot names double as labels for the regex scan
    TRIPLE_SLOTS = ("tam", "sam", "som")
    LABELED_SECTION = re.compile(
        r"(TAM|SAM|SOM)[^:]*:\s*([\s\S]*?)(?=(?:TAM|SAM|SOM)[^:]*:|$)",
        re.IGNORECASE,
    )

    # Tabular list: ordered alias lists, first present key wins
    LIST_CONTAINER_KEYS = ("competitors", "competidores", "items", "results", "data", "entries", "rows")
    ENTITY_ATTRIBUTES = {
        "name": ("name", "nombre", "company", "empresa", "competitor", "competidor", "title"),
        "link": ("url", "link", "website", "sitio", "web", "enlace", "reference"),
        "description": ("description", "descripcion", "descripción", "summary", "resumen", "details"),
        "likelihood": (
            "likelihood", "probabilidad", "probability", "successLikelihood",
            "likelihoodOfSuccess", "chance", "outcome",
        ),
    }
    ENTITY_DEFAULTS = {
        "name": "Sin nombre",
        "link": "Sin enlace",
        "description": "Sin descripción",
        "likelihood": "Sin estimación",
    }
    TABLE_HEADERS = ("Competidor", "Enlace", "Descripción", "Probabilidad de éxito")

    # Fixed object: five competitive forces, in page declaration order
    FORCE_KEYS = (
        "competitiveRivalry",
        "threatOfNewEntrants",
        "threatOfSubstitutes",
        "supplierPower",
        "buyerPower",
    )

    # Open field map
    FIELD_CONTAINER_KEYS = ("fields", "answers", "updates", "items", "data", "results")
    FIELD_ID_KEYS = ("fieldId", "id", "field", "key")
    FIELD_VALUE_KEYS = ("value", "answer", "text", "content")
    MAX_REPARSE_DEPTH = 1

    def __init__(self, registry: Optional[FieldSchemaRegistry] = None):
        self.name = "ExtractorAgent"
        self.registry = registry or field_registry
        self._extractors: Dict[ActionKind, Callable[[str, Optional[int]], Dict[str, str]]] = {
            ActionKind.QUANTITATIVE_TRIPLE: self._extract_quantitative_triple,
            ActionKind.TABULAR_LIST: self._extract_tabular_list,
            ActionKind.FIXED_OBJECT: self._extract_fixed_object,
            ActionKind.FREE_TEXT_BLOCK: self._extract_free_text_block,
            ActionKind.OPEN_FIELD_MAP: self._extract_open_field_map,
        }
        logger.info(f"{self.name} initialized")

    def extract(self, kind: ActionKind, text: str, step_index: Optional[int] = None) -> Dict[str, str]:
        """
        Extract field updates for one action kind

        Args:
            kind: Extraction strategy
            text: Flattened model reply
            step_index: Target page (ignored by the open field map)

        Returns:
            Partial answer map keyed by field id

        Raises:
            ExtractionFailed: no tier produced a structurally valid result
            UnknownFieldsOnly: open field map referenced only non-form keys
            ActionUnavailable: target page declares too few fields
        """
        extractor = self._extractors[ActionKind(kind)]
        updates = extractor(text or "", step_index)
        logger.info(f"{self.name}: extraction complete", kind=ActionKind(kind).value, fields=len(updates))
        return updates

    # ==================== Shared tiers ====================

    def _json_candidates(self, text: str, allow_arrays: bool = False) -> Iterator[Tuple[str, Any]]:
        """Yield ``(tier, parsed)`` for every snippet that parses as JSON, in tier order"""
        trimmed = text.strip()
        if not trimmed:
            return

        snippets: List[Tuple[str, Optional[str]]] = [("direct", trimmed)]
        fenced = self.FENCED_BLOCK.search(trimmed)
        snippets.append(("fenced", fenced.group(1).strip() if fenced else None))
        snippets.append(("object_span", _balanced_span(trimmed, "{", "}")))
        first_brace, last_brace = trimmed.find("{"), trimmed.rfind("}")
        if first_brace != -1 and last_brace > first_brace:
            snippets.append(("object_span", trimmed[first_brace:last_brace + 1]))
        if allow_arrays:
            snippets.append(("array_span", _balanced_span(trimmed, "[", "]")))

        seen = set()
        for tier, snippet in snippets:
            if not snippet or snippet in seen:
                continue
            seen.add(snippet)
            try:
                yield tier, json.loads(snippet)
            except json.JSONDecodeError as e:
                logger.debug(f"{self.name}: {tier} tier is not JSON ({e.msg} at {e.pos})")

    def _first_valid(
        self,
        text: str,
        normalize: Callable[[Any], Any],
        allow_arrays: bool = False,
    ) -> Any:
        """Run ``normalize`` over each JSON tier until it returns a truthy result"""
        for tier, parsed in self._json_candidates(text, allow_arrays=allow_arrays):
            result = normalize(parsed)
            if result:
                logger.debug(f"{self.name}: parsed reply using {tier} tier")
                return result
        return None

    def _has_json_object(self, text: str) -> bool:
        return any(isinstance(parsed, dict) for _, parsed in self._json_candidates(text))

    def _map_positional(self, step_index: Optional[int], values: List[str]) -> Dict[str, str]:
        """Assign values to the first N fields of the target page, in declaration order"""
        field_ids = self.registry.page_field_ids(step_index) if step_index is not None else ()
        if len(field_ids) < len(values):
            raise ActionUnavailable(
                "No encontramos los campos necesarios en el formulario.",
                detail=f"step {step_index} declares {len(field_ids)} fields, {len(values)} required",
            )
        return dict(zip(field_ids, values))

    # ==================== Quantitative triple ====================

    def _normalize_triple(self, parsed: Any) -> Optional[List[str]]:
        if not isinstance(parsed, dict):
            return None
        values = []
        for slot in self.TRIPLE_SLOTS:
            raw = parsed.get(slot)
            if raw is None:
                raw = parsed.get(slot.upper())
            value = as_text(raw)
            if not value:
                return None
            values.append(value)
        return values

    def _scan_labeled_sections(self, text: str) -> Optional[List[str]]:
        """
        Regex fallback: ``<LABEL>...: <value>`` segments up to the next label

        Labels match case-insensitively; a repeated label keeps its last value.
        """
        sections = {slot: "" for slot in self.TRIPLE_SLOTS}
        for match in self.LABELED_SECTION.finditer(text.strip()):
            sections[match.group(1).lower()] = match.group(2).strip()
        if all(sections.values()):
            return [sections[slot] for slot in self.TRIPLE_SLOTS]
        return None

    def _extract_quantitative_triple(self, text: str, step_index: Optional[int]) -> Dict[str, str]:
        values = self._first_valid(text, self._normalize_triple)
        if values is None and self._has_json_object(text):
            # JSON syntax would be read as labels by the scan
            raise ExtractionFailed("JSON reply is missing a TAM, SAM or SOM value")
        if values is None:
            values = self._scan_labeled_sections(text)
            if values is not None:
                logger.debug(f"{self.name}: parsed reply using label_scan tier")
        if values is None:
            raise ExtractionFailed("TAM, SAM and SOM were not all present in the reply")
        return self._map_positional(step_index, values)

    # ==================== Tabular list ====================

    def _normalize_entity(self, entry: Any) -> Optional[Dict[str, str]]:
        if isinstance(entry, str):
            name = entry.strip()
            return dict(self.ENTITY_DEFAULTS, name=name) if name else None
        if not isinstance(entry, dict):
            return None

        entity = {}
        found_any = False
        for attribute, aliases in self.ENTITY_ATTRIBUTES.items():
            key = next((alias for alias in aliases if entry.get(alias) is not None), None)
            value = as_text(entry[key]) if key is not None else ""
            found_any = found_any or bool(value)
            entity[attribute] = value or self.ENTITY_DEFAULTS[attribute]
        return entity if found_any else None

    def _normalize_entity_list(self, parsed: Any) -> Optional[List[Dict[str, str]]]:
        if isinstance(parsed, dict):
            parsed = next(
                (parsed[key] for key in self.LIST_CONTAINER_KEYS if isinstance(parsed.get(key), list)),
                None,
            )
        if not isinstance(parsed, list):
            return None
        entities = [entity for entity in map(self._normalize_entity, parsed) if entity]
        return entities or None

    @staticmethod
    def _table_cell(value: str) -> str:
        return " ".join(value.split()).replace("|", "\\|")

    def render_table(self, entities: List[Dict[str, str]]) -> str:
        """Four-column pipe table: header, separator, one row per entity"""
        lines = [
            "| " + " | ".join(self.TABLE_HEADERS) + " |",
            "| " + " | ".join("---" for _ in self.TABLE_HEADERS) + " |",
        ]
        for entity in entities:
            cells = (entity[attribute] for attribute in self.ENTITY_ATTRIBUTES)
            lines.append("| " + " | ".join(self._table_cell(cell) for cell in cells) + " |")
        return "\n".join(lines)

    def _extract_tabular_list(self, text: str, step_index: Optional[int]) -> Dict[str, str]:
        entities = self._first_valid(text, self._normalize_entity_list, allow_arrays=True)
        if not entities:
            raise ExtractionFailed("reply did not contain a non-empty list of entities")
        return self._map_positional(step_index, [self.render_table(entities)])

    # ==================== Fixed object ====================

    def _normalize_forces(self, parsed: Any) -> Optional[List[str]]:
        if not isinstance(parsed, dict):
            return None
        values = []
        for key in self.FORCE_KEYS:
            value = parsed.get(key)
            if not isinstance(value, str) or not value.strip():
                return None
            values.append(value.strip())
        return values

    def _extract_fixed_object(self, text: str, step_index: Optional[int]) -> Dict[str, str]:
        values = self._first_valid(text, self._normalize_forces)
        if values is None:
            raise ExtractionFailed(
                "reply did not contain string values for " + ", ".join(self.FORCE_KEYS)
            )
        return self._map_positional(step_index, values)

    # ==================== Free text block ====================

    def _extract_free_text_block(self, text: str, step_index: Optional[int]) -> Dict[str, str]:
        block = text.strip()
        if not block:
            raise ExtractionFailed("reply text is empty")
        return self._map_positional(step_index, [block])

    # ==================== Open field map ====================

    def _parse_embedded(self, raw: str, depth: int) -> Any:
        """Parse a JSON string found where structure was expected; None past the depth cap"""
        if depth >= self.MAX_REPARSE_DEPTH:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    def _entry_pairs(self, entry: Any, depth: int) -> List[Tuple[str, Any]]:
        if isinstance(entry, str):
            parsed = self._parse_embedded(entry, depth)
            return self._entry_pairs(parsed, depth + 1) if isinstance(parsed, dict) else []
        if not isinstance(entry, dict):
            return []
        field_id = next(
            (entry[key] for key in self.FIELD_ID_KEYS if isinstance(entry.get(key), str)),
            None,
        )
        if field_id is None:
            return []
        value = next((entry[key] for key in self.FIELD_VALUE_KEYS if entry.get(key) is not None), None)
        return [(field_id.strip(), value)]

    def _mentions_form_field(self, pairs: List[Tuple[str, Any]]) -> bool:
        return any(key in self.registry for key, _ in pairs)

    def _collect_field_pairs(self, payload: Any, depth: int = 0) -> List[Tuple[str, Any]]:
        """
        Normalize the accepted open-map shapes to raw ``(key, value)`` pairs

        Lists hold ``{fieldId, value}`` entries; objects either nest such a list
        under a container key or are flat ``{fieldId: value}`` maps; a container
        without form field ids loses to flat keys that have them. A JSON
        string in place of a structure is re-parsed at most once.
        """
        if isinstance(payload, str):
            parsed = self._parse_embedded(payload, depth)
            return self._collect_field_pairs(parsed, depth + 1) if parsed is not None else []
        if isinstance(payload, list):
            pairs = []
            for entry in payload:
                pairs.extend(self._entry_pairs(entry, depth))
            return pairs
        if isinstance(payload, dict):
            nested: List[Tuple[str, Any]] = []
            for key in self.FIELD_CONTAINER_KEYS:
                if isinstance(payload.get(key), (list, dict, str)):
                    pairs = self._collect_field_pairs(payload[key], depth)
                    if self._mentions_form_field(pairs):
                        return pairs
                    nested = nested or pairs
            flat = [(key, value) for key, value in payload.items() if key not in self.FIELD_CONTAINER_KEYS]
            return flat if self._mentions_form_field(flat) or not nested else nested
        return []

    def _extract_open_field_map(self, text: str, step_index: Optional[int]) -> Dict[str, str]:
        pairs = self._first_valid(text, self._collect_field_pairs, allow_arrays=True)
        if not pairs:
            raise ExtractionFailed("reply did not contain any field entries")

        updates = {}
        known_keys = 0
        for key, raw_value in pairs:
            if key not in self.registry:
                logger.debug(f"{self.name}: dropping unknown field {key!r}")
                continue
            known_keys += 1
            value = as_text(raw_value)
            if value:
                updates[key] = value

        if not known_keys:
            raise UnknownFieldsOnly(detail=f"{len(pairs)} candidates, none in the form")
        if not updates:
            raise ExtractionFailed("every recognized field had an empty value")
        return updates


# Agent instance
extractor_agent = ExtractorAgent()
