"""Snapshot migration.

Upgrades any supported serialized shape into a current-version ``Snapshot``:

- version 1.x/2.x documents: ``{"version": ..., "data": {...}}``
- legacy flat documents: ``{"filaments": [...], "models": [...], "prints": [...]}``

Migration is idempotent: migrating its own output changes nothing. Problems
with individual records never abort a migration; they are reported as
human-readable warnings in ``SnapshotMigrator.report``.
"""

import copy
import json
import re
from typing import Any, Dict, List, Optional, Tuple

from printstack.errors import SchemaError
from printstack.schema.entities import (
    APPLICATION_ID,
    CURRENT_VERSION,
    DEFAULT_CATEGORIES,
    DEFAULT_COLOR_HEX,
    DEFAULT_MATERIAL_TYPES,
    OTHER,
    Difficulty,
    Filament,
    Model,
    Print,
    QualityRating,
    Snapshot,
)
from printstack.schema.identity import IdGenerator
from printstack.utils import get_logger, today

logger = get_logger("schema.migration")

LEGACY_FLAT = "legacy-flat"
UNKNOWN = "unknown"

DEFAULT_EXPECTED_WEIGHT = 20.0
DEFAULT_NOMINAL_WEIGHT = 1000.0

_ENTITY_KEYS = ("filaments", "models", "prints")

_MATERIAL_NAMES = {
    "pla": "PLA",
    "petg": "PETG",
    "abs": "ABS",
    "tpu": "TPU",
    "asa": "ASA",
    "pc": "Polycarbonate",
    "polycarbonate": "Polycarbonate",
    "nylon": "Nylon",
    "wood": "Wood",
    "metal": "Metal",
    "silk": "Silk",
    "glow": "Glow",
    "carbon fiber": "Carbon Fiber",
}

# Legacy numeric ratings (5 = best)
_NUMERIC_RATINGS = {
    5: QualityRating.EXCELLENT,
    4: QualityRating.GOOD,
    3: QualityRating.FAIR,
    2: QualityRating.POOR,
    1: QualityRating.POOR,
}

_TEMPERATURE_RANGE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*[-–~]\s*(\d+(?:\.\d+)?)")


def normalize_material(value: Any) -> str:
    """Map a material label to its canonical spelling."""
    text = str(value).strip()
    return _MATERIAL_NAMES.get(text.lower(), text)


def parse_blob(blob: Any) -> Any:
    """
    Turn an input blob into plain Python data.

    Args:
        blob: JSON text, bytes, a ``Snapshot`` or already-decoded data

    Returns:
        Decoded data

    Raises:
        SchemaError: If text cannot be decoded as JSON
    """
    if isinstance(blob, Snapshot):
        return blob.to_document(APPLICATION_ID)
    if isinstance(blob, bytes):
        try:
            blob = blob.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SchemaError(f"Snapshot is not valid UTF-8: {e}") from e
    if isinstance(blob, str):
        try:
            return json.loads(blob)
        except json.JSONDecodeError as e:
            raise SchemaError(f"Snapshot is not valid JSON: {e}") from e
    return blob


def detect_version(blob: Any) -> str:
    """
    Identify the shape of a serialized snapshot.

    Returns:
        The document's version tag, ``"legacy-flat"`` or ``"unknown"``
    """
    try:
        data = parse_blob(blob)
    except SchemaError:
        return UNKNOWN

    if not isinstance(data, dict):
        return UNKNOWN
    if data.get("version") is not None and isinstance(data.get("data"), dict):
        return str(data["version"])
    if any(isinstance(data.get(key), list) for key in _ENTITY_KEYS):
        return LEGACY_FLAT
    return UNKNOWN


def _is_supported(version: str) -> bool:
    major = version.split(".", 1)[0]
    if not major.isdigit():
        return False
    return 1 <= int(major) <= int(CURRENT_VERSION.split(".", 1)[0])


def _rename(record: Dict[str, Any], old: str, new: str) -> None:
    """Move a legacy field to its canonical name, keeping an existing canonical value."""
    if old not in record:
        return
    value = record.pop(old)
    if record.get(new) in (None, "") and value not in (None, ""):
        record[new] = value


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().rstrip("%").strip()
        if not value:
            return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_records(value: Any) -> List[Any]:
    return list(value) if isinstance(value, list) else []


class SnapshotMigrator:
    """
    Upgrades serialized snapshots to the current shape.

    A migrator collects warnings for the most recent ``migrate`` call in
    ``report``.
    """

    def __init__(self, id_generator: Optional[IdGenerator] = None):
        self.id_generator = id_generator or IdGenerator()
        self.report: List[str] = []

    def warn(self, message: str) -> None:
        self.report.append(message)
        logger.warning(message)

    def migrate(self, blob: Any) -> Snapshot:
        """
        Produce a current-version snapshot.

        Args:
            blob: JSON text, decoded document or a ``Snapshot``

        Returns:
            Migrated snapshot

        Raises:
            SchemaError: If the blob cannot be parsed or recognised
        """
        self.report = []
        data = parse_blob(blob)
        version = detect_version(data)

        if version == UNKNOWN:
            raise SchemaError("Unrecognised snapshot shape")
        if version == LEGACY_FLAT:
            body = data
        else:
            if not _is_supported(version):
                raise SchemaError(f"Unsupported snapshot version {version}")
            body = data["data"]

        body = copy.deepcopy(body)
        filaments = self._migrate_filaments(_as_records(body.get("filaments")))
        models = self._migrate_models(_as_records(body.get("models")), filaments)
        prints = self._migrate_prints(_as_records(body.get("prints")), filaments, models)

        raw_categories = body.get("categories")
        if raw_categories is None:
            raw_categories = body.get("modelCategories")

        snapshot = Snapshot(
            version=CURRENT_VERSION,
            filaments=filaments,
            models=models,
            prints=prints,
            material_types=self._material_types(body.get("materialTypes"), filaments),
            categories=self._categories(raw_categories, models),
            saved_at=data.get("savedAt") or data.get("exportDate") or data.get("exportedAt"),
        )
        logger.info(
            f"Migrated {version} snapshot: {len(filaments)} filaments, "
            f"{len(models)} models, {len(prints)} prints, {len(self.report)} warnings"
        )
        return snapshot

    # -- identities -------------------------------------------------------

    def _assign_ids(self, records: List[Dict[str, Any]], kind: str) -> None:
        seen = set()
        for record in records:
            current = record.get("id")
            key = None if current in (None, "") or isinstance(current, bool) else str(current)
            if key is None or key in seen:
                new_id = self.id_generator.next_unused(seen | {str(r.get("id")) for r in records})
                if key is None:
                    self.warn(f"{kind} without identity was assigned id {new_id}")
                else:
                    self.warn(f"Duplicate {kind} id {current!r} reissued as {new_id}")
                record["id"] = new_id
                key = new_id
            seen.add(key)

    # -- filaments --------------------------------------------------------

    def _migrate_filaments(self, raw: List[Any]) -> List[Filament]:
        records = [copy.copy(r) for r in raw if isinstance(r, dict)]
        if len(records) != len(raw):
            self.warn(f"Skipped {len(raw) - len(records)} malformed filament entries")

        for record in records:
            _rename(record, "material", "materialType")
            _rename(record, "type", "materialType")
            _rename(record, "color", "colorName")
            _rename(record, "weight", "nominalWeight")
            _rename(record, "remaining", "remainingWeight")
            _rename(record, "cost", "purchasePrice")
            _rename(record, "price", "purchasePrice")
            _rename(record, "description", "notes")
            _rename(record, "addedAt", "createdAt")
            _rename(record, "modifiedAt", "updatedAt")
            self._backfill_filament(record)

        self._assign_ids(records, "filament")

        filaments = []
        for record in records:
            try:
                filaments.append(Filament.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                self.warn(f"Dropped unreadable filament {record.get('id')!r}: {e}")
        return filaments

    def _backfill_filament(self, record: Dict[str, Any]) -> None:
        if record.get("materialType") in (None, ""):
            record["materialType"] = "PLA"
            self.warn(f"Filament {record.get('id')!r} had no material; assumed PLA")
        else:
            record["materialType"] = normalize_material(record["materialType"])

        if not record.get("brand"):
            record["brand"] = "Unknown"
        if not record.get("colorName"):
            record["colorName"] = "Unknown"
        if not record.get("colorHex"):
            record["colorHex"] = DEFAULT_COLOR_HEX

        diameter = _to_float(record.get("diameter"))
        record["diameter"] = diameter if diameter else 1.75

        nominal = _to_float(record.get("nominalWeight"))
        if nominal is None or nominal <= 0:
            self.warn(f"Filament {record.get('id')!r} had no spool weight; assumed {DEFAULT_NOMINAL_WEIGHT:g}g")
            nominal = DEFAULT_NOMINAL_WEIGHT
        record["nominalWeight"] = nominal

        remaining = _to_float(record.get("remainingWeight"))
        record["remainingWeight"] = nominal if remaining is None else max(remaining, 0.0)

        record["purchasePrice"] = _to_float(record.get("purchasePrice"))

        temperature = record.pop("temperature", None)
        if record.get("tempMin") is None and record.get("tempMax") is None and temperature:
            match = _TEMPERATURE_RANGE.match(str(temperature))
            if match:
                record["tempMin"] = float(match.group(1))
                record["tempMax"] = float(match.group(2))
        record["tempMin"] = _to_float(record.get("tempMin"))
        record["tempMax"] = _to_float(record.get("tempMax"))

        if record.get("inStock") is None:
            record["inStock"] = True

    # -- models -----------------------------------------------------------

    def _migrate_models(self, raw: List[Any], filaments: List[Filament]) -> List[Model]:
        records = [copy.copy(r) for r in raw if isinstance(r, dict)]
        if len(records) != len(raw):
            self.warn(f"Skipped {len(raw) - len(records)} malformed model entries")

        for index, record in enumerate(records):
            _rename(record, "title", "name")
            _rename(record, "complexity", "difficulty")
            _rename(record, "printTime", "estimatedPrintTime")
            _rename(record, "estimatedTime", "estimatedPrintTime")
            _rename(record, "infill", "infillPercent")
            _rename(record, "supports", "supportsRequired")
            _rename(record, "link", "externalLink")
            _rename(record, "url", "externalLink")
            _rename(record, "description", "notes")
            _rename(record, "createdAt", "addedDate")
            _rename(record, "addedAt", "addedDate")
            _rename(record, "modifiedAt", "updatedAt")
            self._backfill_model(record, index)

        self._assign_ids(records, "model")

        models = []
        for record in records:
            record["requirements"] = [
                self._migrate_requirement(r, record["name"], filaments)
                for r in _as_records(record.get("requirements"))
                if isinstance(r, dict)
            ]
            if not record["requirements"]:
                self.warn(f"Model '{record['name']}' has no filament requirements")
            try:
                models.append(Model.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                self.warn(f"Dropped unreadable model {record.get('id')!r}: {e}")
        return models

    def _backfill_model(self, record: Dict[str, Any], index: int) -> None:
        if not record.get("name"):
            record["name"] = f"Model {index + 1}"
            self.warn(f"Model without a name was called '{record['name']}'")

        if not record.get("category"):
            record["category"] = OTHER

        difficulty = str(record.get("difficulty") or "").strip().capitalize()
        if difficulty not in {d.value for d in Difficulty}:
            if record.get("difficulty"):
                self.warn(f"Model '{record['name']}' had unknown difficulty {record['difficulty']!r}")
            difficulty = Difficulty.MEDIUM.value
        record["difficulty"] = difficulty

        for key in ("estimatedPrintTime", "layerHeight", "infillPercent"):
            record[key] = _to_float(record.get(key))

        added = record.get("addedDate")
        record["addedDate"] = str(added)[:10] if added else today()
        record["supportsRequired"] = bool(record.get("supportsRequired", False))

    def _migrate_requirement(
        self,
        raw: Dict[str, Any],
        model_name: str,
        filaments: List[Filament],
    ) -> Dict[str, Any]:
        requirement = dict(raw)
        _rename(requirement, "material", "materialType")
        _rename(requirement, "color", "colorName")
        _rename(requirement, "filamentId", "filamentRef")
        _rename(requirement, "weight", "expectedWeight")
        _rename(requirement, "tolerance", "tolerancePercent")
        _rename(requirement, "quantity", "requiredCount")
        if requirement.get("materialType"):
            requirement["materialType"] = normalize_material(requirement["materialType"])

        expected = _to_float(requirement.get("expectedWeight"))
        if expected is None:
            expected = DEFAULT_EXPECTED_WEIGHT
            self.warn(f"Requirement of '{model_name}' had no expected weight; assumed {expected:g}g")
        elif expected <= 0:
            self.warn(f"Requirement of '{model_name}' has non-positive expected weight {expected:g}g")
        requirement["expectedWeight"] = expected

        tolerance = _to_float(requirement.get("tolerancePercent"))
        requirement["tolerancePercent"] = 10.0 if tolerance is None else tolerance

        count = _to_float(requirement.get("requiredCount"))
        requirement["requiredCount"] = int(count) if count and count >= 1 else 1

        ref = requirement.get("filamentRef")
        filament = _find_filament(filaments, ref)
        if filament is None and ref not in (None, ""):
            self.warn(f"Requirement of '{model_name}' references missing filament {ref!r}")
        elif filament is None:
            filament = _match_filament(filaments, requirement.get("colorName"), requirement.get("materialType"))
            if filament is not None:
                requirement["filamentRef"] = filament.id
            else:
                self.warn(f"Requirement of '{model_name}' could not be bound to a filament")

        if filament is not None:
            requirement.setdefault("materialType", filament.material_type)
            requirement.setdefault("colorName", filament.color_name)
            if requirement["materialType"] is None:
                requirement["materialType"] = filament.material_type
            if requirement["colorName"] is None:
                requirement["colorName"] = filament.color_name
        return requirement

    # -- prints -----------------------------------------------------------

    def _migrate_prints(
        self,
        raw: List[Any],
        filaments: List[Filament],
        models: List[Model],
    ) -> List[Print]:
        # analytics imports the schema package, so resolve variance helpers lazily
        from printstack.analytics.variance import compute_variance, match_model

        records = [copy.copy(r) for r in raw if isinstance(r, dict)]
        if len(records) != len(raw):
            self.warn(f"Skipped {len(raw) - len(records)} malformed print entries")

        for record in records:
            _rename(record, "date", "printDate")
            _rename(record, "notes", "printNotes")
            _rename(record, "duration", "durationHours")
            _rename(record, "rating", "qualityRating")
            _rename(record, "quality", "qualityRating")
            if isinstance(record.get("model"), str):
                _rename(record, "model", "modelName")
            if not record.get("modelName"):
                record["modelName"] = "Unknown Model"
                self.warn(f"Print {record.get('id')!r} did not name a model")

            record["qualityRating"] = self._quality(record.get("qualityRating")).value
            record["durationHours"] = _to_float(record.get("durationHours"))
            record["filamentUsages"] = self._usages(record, filaments)
            record.pop("totalWeight", None)
            self._backfill_dates(record)

        self._assign_ids(records, "print")

        prints = []
        for record in records:
            try:
                print_record = Print.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                self.warn(f"Dropped unreadable print {record.get('id')!r}: {e}")
                continue
            if print_record.usage_variance is None:
                model = match_model(models, print_record.model_name)
                print_record.usage_variance = compute_variance(model, print_record.total_weight)
            prints.append(print_record)
        return prints

    def _quality(self, value: Any) -> QualityRating:
        if value is None or value == "":
            return QualityRating.UNSET
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return _NUMERIC_RATINGS.get(int(value), QualityRating.UNSET)
        text = str(value).strip().lower()
        if text.isdigit():
            return _NUMERIC_RATINGS.get(int(text), QualityRating.UNSET)
        try:
            return QualityRating(text)
        except ValueError:
            self.warn(f"Unknown quality rating {value!r} reset to unset")
            return QualityRating.UNSET

    def _usages(self, record: Dict[str, Any], filaments: List[Filament]) -> List[Dict[str, Any]]:
        legacy = {
            "filamentRef": record.pop("filamentRef", None),
            "filamentId": record.pop("filamentId", None),
            "materialType": record.pop("materialType", None),
            "material": record.pop("material", None),
            "colorName": record.pop("colorName", None),
            "color": record.pop("color", None),
            "actualWeight": record.pop("actualWeight", None),
            "weight": record.pop("weight", None),
            "weightUsed": record.pop("weightUsed", None),
            "filamentUsed": record.pop("filamentUsed", None),
        }
        usages = [dict(u) for u in _as_records(record.get("filamentUsages")) if isinstance(u, dict)]

        if not usages and any(v not in (None, "") for v in legacy.values()):
            usages = [legacy]
            self.warn(f"Print of '{record['modelName']}' converted from single-colour shape")

        migrated = []
        for usage in usages:
            _rename(usage, "filamentId", "filamentRef")
            _rename(usage, "material", "materialType")
            _rename(usage, "color", "colorName")
            _rename(usage, "weight", "actualWeight")
            _rename(usage, "weightUsed", "actualWeight")
            _rename(usage, "filamentUsed", "actualWeight")
            if usage.get("materialType"):
                usage["materialType"] = normalize_material(usage["materialType"])

            ref = usage.get("filamentRef")
            filament = _find_filament(filaments, ref)
            if ref in (None, ""):
                filament = _match_filament(filaments, usage.get("colorName"), usage.get("materialType"))
                usage["filamentRef"] = filament.id if filament is not None else None

            if filament is not None:
                if not usage.get("materialType"):
                    usage["materialType"] = filament.material_type
                if not usage.get("colorName"):
                    usage["colorName"] = filament.color_name
                if not usage.get("colorHex"):
                    usage["colorHex"] = filament.color_hex
            usage.setdefault("materialType", "")
            usage.setdefault("colorName", "")
            if not usage.get("colorHex"):
                usage["colorHex"] = DEFAULT_COLOR_HEX

            weight = _to_float(usage.get("actualWeight"))
            if weight is None:
                self.warn(f"Usage in print of '{record['modelName']}' had no weight; recorded as 0g")
                weight = 0.0
            usage["actualWeight"] = weight
            migrated.append(usage)
        return migrated

    def _backfill_dates(self, record: Dict[str, Any]) -> None:
        print_date = record.get("printDate")
        timestamp = record.get("timestamp")
        if print_date:
            record["printDate"] = str(print_date)[:10]
        elif timestamp:
            record["printDate"] = str(timestamp)[:10]
        else:
            record["printDate"] = today()
            self.warn(f"Print of '{record['modelName']}' had no date; assumed {record['printDate']}")

        if not timestamp:
            record["timestamp"] = f"{record['printDate']}T12:00:00"

    # -- label sets -------------------------------------------------------

    def _material_types(self, raw: Any, filaments: List[Filament]) -> List[str]:
        labels = _labels(raw) if isinstance(raw, list) else list(DEFAULT_MATERIAL_TYPES)
        labels = [label for label in labels if label != OTHER]
        for filament in filaments:
            _add_label(labels, filament.material_type)
        return labels

    def _categories(self, raw: Any, models: List[Model]) -> List[str]:
        labels = _labels(raw) if isinstance(raw, list) else list(DEFAULT_CATEGORIES)
        for model in models:
            _add_label(labels, model.category)
        _add_label(labels, OTHER)
        return labels


def _labels(raw: List[Any]) -> List[str]:
    labels: List[str] = []
    for item in raw:
        name = item.get("name") if isinstance(item, dict) else item
        if isinstance(name, str) and name.strip():
            _add_label(labels, name.strip())
    return labels


def _add_label(labels: List[str], label: str) -> None:
    if label and label.lower() not in {existing.lower() for existing in labels}:
        labels.append(label)


def _find_filament(filaments: List[Filament], ref: Any) -> Optional[Filament]:
    if ref in (None, ""):
        return None
    for filament in filaments:
        if str(filament.id) == str(ref):
            return filament
    return None


def _match_filament(
    filaments: List[Filament],
    color_name: Optional[str],
    material_type: Optional[str],
) -> Optional[Filament]:
    """Match by (colour, material); by colour alone when the material is unknown."""
    if not color_name:
        return None
    color = str(color_name).strip().lower()
    material = str(material_type).strip().lower() if material_type else None
    for filament in filaments:
        if filament.color_name.strip().lower() != color:
            continue
        if material is None or filament.material_type.strip().lower() == material:
            return filament
    return None


def migrate(blob: Any) -> Snapshot:
    """Migrate a blob with a fresh migrator, discarding the report."""
    return SnapshotMigrator().migrate(blob)


def migrate_with_report(blob: Any) -> Tuple[Snapshot, List[str]]:
    """Migrate a blob and return the snapshot with its warnings."""
    migrator = SnapshotMigrator()
    snapshot = migrator.migrate(blob)
    return snapshot, migrator.report
