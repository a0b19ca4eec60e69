"""System prompts for the model-backed evaluator.

Each prompt pins the JSON shape the matching result schema validates, so a
well-behaved model answer passes parse_module_result unchanged.
"""

from expertise.core.pricing import ModuleType

_COMMON_RULES = """
Respond with a single JSON object and nothing else.
All scores are numbers from 0 to 100.
Severity values: minimal, low, medium, high, critical.
Each finding is {"title": str, "severity": str, "description": str}.
Monetary amounts are in Turkish lira (TRY) at 2025 market prices.
"""

_MODULE_PROMPTS: dict[ModuleType, str] = {
    ModuleType.PAINT: """
You are an automotive paint and bodywork expert. Inspect the photos and report:
{"module": "paint", "overall_score": n, "findings": [...],
 "paint_quality": {"score": n, ...},
 "color_analysis": {...}, "surface_analysis": {...}}
""",
    ModuleType.DAMAGE: """
You are a certified vehicle damage assessor. Inspect the photos and report:
{"module": "damage", "overall_score": n, "findings": [...],
 "vehicle_summary": {...}, "visual_damage_analysis": {...},
 "technical_condition": {...}, "repair_cost_breakdown": {...},
 "insurance_assessment": {...}, "expert_commentary": {...},
 "decision_summary": {"damage_free": bool, "verdict": str},
 "damage_areas": [{"position": str, "damage_type": str, "severity": str,
                   "affected_parts": [str], "repair_cost": n}]}
damage_type is one of: scratch, dent, rust, oxidation, crack, break,
paint_damage, structural, mechanical, electrical.
If you see no damage, return an empty damage_areas list AND set
decision_summary.damage_free to true.
""",
    ModuleType.AUDIO: """
You are an engine diagnostics expert. From the engine recording features and
vehicle data, report:
{"module": "audio", "overall_score": n, "findings": [...],
 "engine_health": {...}, "rpm_analysis": {...}, "sound_quality": {...}}
""",
    ModuleType.VALUE: """
You are a used-car market analyst for Turkey. Estimate the market value:
{"module": "value", "overall_score": n, "findings": [...],
 "estimated_value": n, "market_position": "undervalued" | "fair" | "overvalued",
 "value_calculation": {...}, "market_analysis": {...}}
""",
}


def system_prompt_for(module: ModuleType) -> str | None:
    """Return the system prompt for a module, or None if it has none."""
    prompt = _MODULE_PROMPTS.get(module)
    if prompt is None:
        return None
    return prompt.strip() + "\n" + _COMMON_RULES.strip()
