"""Ability catalog and formatter registry.

Ability ids are opaque strings (``"CoinFinderII"``). The registry maps each id
to a display name, optional base parameters, a detail formatter used by the
ability log and a value extractor used by the per-ability stats.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_logger = logging.getLogger(__name__)

Formatter = Callable[[str, Mapping[str, Any], Mapping[str, Any]], str]
"""``(ability_id, data, base_parameters) -> detail``"""
ValueExtractor = Callable[[str, Mapping[str, Any], Mapping[str, Any]], float]

_LEVEL_SUFFIX_RE = re.compile(r"(?:\s+|-)?(?:I|II|III|IV|V|VI|VII|VIII|IX|X)\s*$")
_LEVEL_SUFFIX_CI_RE = re.compile(r"(?:\s+|-)?(?:i|ii|iii|iv|v|vi|vii|viii|ix|x)\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class AbilityDefinition:
    name: str
    description: str = ""
    base_parameters: Mapping[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Number formatting helpers
# ---------------------------------------------------------------------------


def _num(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def fmt_int(value: Any) -> str:
    parsed = _num(value)
    return f"{round(parsed):,}" if parsed is not None else "0"


def fmt_pct0(value: Any) -> str:
    parsed = _num(value)
    return f"{parsed:.0f}%" if parsed is not None else "0%"


def fmt_min1(value: Any) -> str:
    parsed = _num(value)
    return f"{parsed:.1f} min" if parsed is not None else "0.0 min"


def _label(value: Any, fallback: str) -> str:
    text = value.strip() if isinstance(value, str) else ""
    return text or fallback


def _first(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def _crop_name(data: Mapping[str, Any]) -> str:
    slot = data.get("growSlot")
    species = slot.get("species") if isinstance(slot, Mapping) else None
    fallback = species.strip().capitalize() if isinstance(species, str) and species.strip() else "crop"
    return _label(data.get("cropName"), fallback)


# ---------------------------------------------------------------------------
# Built-in formatters
# ---------------------------------------------------------------------------


def _coin_finder(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    coins = _first(d, "coinsFound", "coins", default=base.get("baseMaxCoinsFindable"))
    return f"+ {fmt_int(coins)} coins" if coins is not None else "Coins found"


def _seed_finder(_aid: str, d: Mapping[str, Any], _base: Mapping[str, Any]) -> str:
    return f"x1 {_label(d.get('seedName'), 'seed')}"


def _hunger_restore(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    who = _label(d.get("petName"), "pet")
    amount = d.get("hungerRestoreAmount")
    if amount is not None:
        return f"{who}: +{fmt_int(amount)} hunger"
    pct = _first(d, "hungerRestoredPercentage", default=base.get("hungerRestorePercentage"))
    return f"{who}: {fmt_pct0(pct)}" if pct is not None else f"{who}: Hunger restored"


def _double_harvest(_aid: str, d: Mapping[str, Any], _base: Mapping[str, Any]) -> str:
    return f"+1 {_label(d.get('cropName'), 'crop')}"


def _double_hatch(_aid: str, d: Mapping[str, Any], _base: Mapping[str, Any]) -> str:
    return f"+1 {_label(d.get('petName'), 'pet')}"


def _produce_eater(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    name = _label(d.get("cropName"), "crop")
    if d.get("sellPrice") is not None:
        return f"Sold {name}: +{fmt_int(d['sellPrice'])} coins"
    pct = base.get("cropSellPriceIncreasePercentage")
    return f"Eaten: {name} (+{fmt_pct0(pct)} value)" if pct is not None else f"Eaten: {name}"


def _produce_refund(_aid: str, d: Mapping[str, Any], _base: Mapping[str, Any]) -> str:
    n = _first(d, "numCropsRefunded", "numItemsRefunded")
    return f"+ {fmt_int(n)} crop(s)" if n is not None else "Crops refunded"


def _sell_boost(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    if d.get("bonusCoins") is not None:
        return f"Sale bonus: +{fmt_int(d['bonusCoins'])} coins"
    pct = base.get("cropSellPriceIncreasePercentage")
    return f"+ {fmt_pct0(pct)}" if pct is not None else "Sale bonus"


def _granter(_aid: str, d: Mapping[str, Any], _base: Mapping[str, Any]) -> str:
    return _crop_name(d)


def _rain_dance(_aid: str, d: Mapping[str, Any], _base: Mapping[str, Any]) -> str:
    crop = _crop_name(d)
    mutations = d.get("mutations")
    if not isinstance(mutations, list):
        slot = d.get("growSlot")
        mutations = slot.get("mutations") if isinstance(slot, Mapping) else None
    frozen = isinstance(mutations, list) and any(isinstance(m, str) and m.lower() == "frozen" for m in mutations)
    return f"{crop}: Chilled + Frozen" if frozen else f"{crop}: Wet"


def _scale_boost(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    inc = _first(
        d,
        "scaleIncreasePercentage",
        "cropScaleIncreasePercentage",
        default=base.get("scaleIncreasePercentage"),
    )
    return f"+ {fmt_pct0(inc)}" if inc is not None else "Crop size boosted"


def _mutation_boost(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    inc = _first(d, "mutationChanceIncreasePercentage", default=base.get("mutationChanceIncreasePercentage"))
    return f"+ {fmt_pct0(inc)} mutation chance" if inc is not None else "Mutation chance up"


def _egg_growth(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    mins = _first(
        d,
        "minutesReduced",
        "eggGrowthTimeReductionMinutes",
        default=base.get("eggGrowthTimeReductionMinutes"),
    )
    return f"- {fmt_min1(mins)}" if mins is not None else "Egg growth reduced"


def _plant_growth(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    mins = _first(d, "minutesReduced", "reductionMinutes", default=base.get("plantGrowthReductionMinutes"))
    return f"- {fmt_min1(mins)}" if mins is not None else "Plant growth reduced"


def _xp_boost(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    return f"+ {fmt_int(_first(d, 'bonusXp', default=base.get('bonusXp')))} XP"


def _age_boost(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    xp = _first(d, "bonusXp", default=base.get("bonusXp"))
    return f"+ {fmt_int(xp)} XP ({_label(d.get('petName'), 'pet')})"


def _hatch_size(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    who = _label(d.get("petName"), "pet")
    if d.get("strengthIncrease") is not None:
        return f"+{fmt_int(d['strengthIncrease'])} strength ({who})"
    pct = base.get("maxStrengthIncreasePercentage")
    return f"+ {fmt_pct0(pct)} ({who})" if pct is not None else f"Strength increased ({who})"


def _hunger_boost(_aid: str, _d: Mapping[str, Any], base: Mapping[str, Any]) -> str:
    pct = base.get("hungerDepletionRateDecreasePercentage")
    return f"- {fmt_pct0(pct)} hunger drain" if pct is not None else "Hunger reduced"


def _pet_refund(_aid: str, d: Mapping[str, Any], _base: Mapping[str, Any]) -> str:
    egg = _label(d.get("eggName"), "")
    return f"x1 {egg}" if egg else "Pet refunded as egg"


def _constant(text: str) -> Formatter:
    def _format(_aid: str, _d: Mapping[str, Any], _base: Mapping[str, Any]) -> str:
        return text

    return _format


# ---------------------------------------------------------------------------
# Built-in value extractors (stats)
# ---------------------------------------------------------------------------


def _non_negative(value: Any) -> float:
    parsed = _num(value)
    return max(0.0, parsed) if parsed is not None else 0.0


def _value_from(*keys: str, base_key: str | None = None, scale: float = 1.0) -> ValueExtractor:
    def _extract(_aid: str, d: Mapping[str, Any], base: Mapping[str, Any]) -> float:
        default = base.get(base_key) if base_key else None
        return _non_negative(_first(d, *keys, default=default)) * scale

    return _extract


_MINUTE_MS = 60 * 1000

_BUILTIN_FORMATTERS: dict[tuple[str, ...], Formatter] = {
    ("CoinFinderI", "CoinFinderII", "CoinFinderIII"): _coin_finder,
    ("SeedFinderI", "SeedFinderII", "SeedFinderIII", "SeedFinderIV"): _seed_finder,
    ("HungerRestore", "HungerRestoreII"): _hunger_restore,
    ("DoubleHarvest",): _double_harvest,
    ("DoubleHatch",): _double_hatch,
    ("ProduceEater",): _produce_eater,
    ("ProduceRefund",): _produce_refund,
    ("SellBoostI", "SellBoostII", "SellBoostIII", "SellBoostIV"): _sell_boost,
    ("GoldGranter", "RainbowGranter"): _granter,
    ("RainDance",): _rain_dance,
    ("ProduceScaleBoost", "ProduceScaleBoostII"): _scale_boost,
    (
        "ProduceMutationBoost",
        "ProduceMutationBoostII",
        "PetMutationBoost",
        "PetMutationBoostII",
    ): _mutation_boost,
    ("EggGrowthBoost", "EggGrowthBoostII", "EggGrowthBoostII_NEW"): _egg_growth,
    ("PlantGrowthBoost", "PlantGrowthBoostII"): _plant_growth,
    ("PetXpBoost", "PetXpBoostII"): _xp_boost,
    ("PetAgeBoost", "PetAgeBoostII"): _age_boost,
    ("PetHatchSizeBoost", "PetHatchSizeBoostII"): _hatch_size,
    ("HungerBoost", "HungerBoostII"): _hunger_boost,
    ("PetRefund", "PetRefundII"): _pet_refund,
    ("Copycat",): _constant("Copied another ability"),
    ("MoonKisser",): _constant("Amber mutations empowered"),
    ("DawnKisser",): _constant("Dawn mutations empowered"),
}

_BUILTIN_EXTRACTORS: dict[tuple[str, ...], ValueExtractor] = {
    ("CoinFinderI", "CoinFinderII", "CoinFinderIII"): _value_from("coinsFound", "coins"),
    ("SellBoostI", "SellBoostII", "SellBoostIII", "SellBoostIV"): _value_from("bonusCoins", "coinsEarned"),
    ("ProduceEater",): _value_from("sellPrice"),
    ("EggGrowthBoost", "EggGrowthBoostII", "EggGrowthBoostII_NEW"): _value_from(
        "eggGrowthTimeReductionMinutes",
        "minutesReduced",
        "reductionMinutes",
        base_key="eggGrowthTimeReductionMinutes",
        scale=_MINUTE_MS,
    ),
    ("PlantGrowthBoost", "PlantGrowthBoostII"): _value_from(
        "minutesReduced",
        "reductionMinutes",
        "plantGrowthReductionMinutes",
        base_key="plantGrowthReductionMinutes",
        scale=_MINUTE_MS,
    ),
    ("PetXpBoost", "PetXpBoostII", "PetAgeBoost", "PetAgeBoostII"): _value_from("bonusXp", base_key="bonusXp"),
    ("PetHatchSizeBoost", "PetHatchSizeBoostII"): _value_from("strengthIncrease"),
    ("HungerRestore", "HungerRestoreII"): _value_from(
        "hungerRestoreAmount",
        "hungerRestoredPercentage",
        base_key="hungerRestorePercentage",
    ),
}


class AbilityRegistry:
    """Lookup of ability names, formatters and value extractors."""

    def __init__(self, definitions: Mapping[str, AbilityDefinition] | None = None) -> None:
        self._definitions: dict[str, AbilityDefinition] = dict(definitions or {})
        self._formatters: dict[str, Formatter] = {}
        self._extractors: dict[str, ValueExtractor] = {}

    @classmethod
    def default(cls, definitions: Mapping[str, AbilityDefinition] | None = None) -> AbilityRegistry:
        """Registry preloaded with the built-in formatters and extractors."""
        registry = cls(definitions)
        for ability_ids, formatter in _BUILTIN_FORMATTERS.items():
            registry.register_formatter(formatter, *ability_ids)
        for ability_ids, extractor in _BUILTIN_EXTRACTORS.items():
            registry.register_value_extractor(extractor, *ability_ids)
        return registry

    @classmethod
    def from_json_file(cls, path: Path | str) -> AbilityRegistry:
        """Load a catalog ``{ability_id: {name, description, baseParameters}}``."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        definitions: dict[str, AbilityDefinition] = {}
        if isinstance(raw, dict):
            for ability_id, entry in raw.items():
                if not isinstance(entry, dict):
                    continue
                name = entry.get("name")
                params = entry.get("baseParameters")
                definitions[str(ability_id)] = AbilityDefinition(
                    name=name if isinstance(name, str) and name.strip() else str(ability_id),
                    description=str(entry.get("description") or ""),
                    base_parameters=params if isinstance(params, dict) else {},
                )
        _logger.debug("Loaded %d ability definitions from %s", len(definitions), path)
        return cls.default(definitions)

    def define(self, ability_id: str, definition: AbilityDefinition) -> None:
        self._definitions[ability_id] = definition

    def register_formatter(self, formatter: Formatter, *ability_ids: str) -> None:
        for ability_id in ability_ids:
            self._formatters[ability_id] = formatter

    def register_value_extractor(self, extractor: ValueExtractor, *ability_ids: str) -> None:
        for ability_id in ability_ids:
            self._extractors[ability_id] = extractor

    def definition(self, ability_id: str) -> AbilityDefinition | None:
        return self._definitions.get(ability_id)

    def display_name(self, ability_id: str) -> str:
        definition = self._definitions.get(ability_id)
        if definition is not None and definition.name.strip():
            return definition.name
        return ability_id

    def name_without_level(self, ability_id: str) -> str:
        """Display name with a trailing roman-numeral level removed."""
        return _LEVEL_SUFFIX_RE.sub("", self.display_name(ability_id)).strip()

    def format_detail(self, ability_id: str, data: Mapping[str, Any] | None) -> str:
        payload: Mapping[str, Any] = data if isinstance(data, Mapping) else {}
        definition = self._definitions.get(ability_id)
        base = definition.base_parameters if definition is not None else {}
        formatter = self._formatters.get(ability_id)
        if formatter is not None:
            return formatter(ability_id, payload, base)
        if payload:
            return json.dumps(dict(payload), separators=(",", ":"), default=str)
        return definition.description if definition is not None and definition.description else "—"

    def extract_value(self, ability_id: str, data: Mapping[str, Any] | None) -> float:
        extractor = self._extractors.get(ability_id)
        if extractor is None:
            return 0.0
        payload: Mapping[str, Any] = data if isinstance(data, Mapping) else {}
        definition = self._definitions.get(ability_id)
        return extractor(ability_id, payload, definition.base_parameters if definition is not None else {})


def strip_level(name: str) -> str:
    """Lower-case *name* and drop a trailing roman-numeral level."""
    return _LEVEL_SUFFIX_CI_RE.sub("", name.strip().lower()).strip()
