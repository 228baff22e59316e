"""
Base models and exceptions for the character import system.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..models import ABILITIES, Character


class ImportError(Exception):
    """Raised when a character import fails.

    Provides a user-facing message explaining what went wrong
    and, where possible, how to fix it.
    """


class ImportedField(BaseModel):
    """A field that was successfully imported."""

    name: str = Field(description="Field name")
    summary: str = Field(default="", description="Brief summary of the imported value")


class ImportWarning(BaseModel):
    """A warning generated during import."""

    field: str = Field(description="Field that triggered the warning")
    message: str = Field(description="Human-readable warning message")
    suggestion: str = Field(default="", description="Actionable suggestion to resolve the warning")


class NotImported(BaseModel):
    """A field that could not be imported."""

    field: str = Field(description="Field name that was not imported")
    reason: str = Field(description="Reason why the field was not imported")


class ImportReport(BaseModel):
    """Structured import report with status, imported fields, warnings, and suggestions."""

    status: str = Field(description='Import status: "success", "success_with_warnings", or "failed"')
    character_name: str = Field(description="Name of the imported character")
    source: str = Field(default="external", description="Format the character was imported from")
    imported_fields: list[ImportedField] = Field(default_factory=list)
    warnings: list[ImportWarning] = Field(default_factory=list)
    not_imported: list[NotImported] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    def format(self) -> str:
        """Format the report as a readable text block."""
        lines: list[str] = []

        lines.append(f"Character Import Report ({self.source}) - {self.character_name}")
        lines.append(f"Status: {self.status.upper().replace('_', ' ')}")
        lines.append("")

        if self.imported_fields:
            lines.append(f"Imported ({len(self.imported_fields)} fields):")
            categories: dict[str, list[ImportedField]] = {}
            for field in self.imported_fields:
                categories.setdefault(_categorize_field(field.name), []).append(field)
            for cat_name, fields in categories.items():
                summaries = [f.summary if f.summary else f.name for f in fields]
                lines.append(f"  {cat_name}: {', '.join(summaries)}")
            lines.append("")

        if self.warnings:
            lines.append(f"Warnings ({len(self.warnings)}):")
            for w in self.warnings:
                line = f"  - {w.message}"
                if w.suggestion:
                    line += f" ({w.suggestion})"
                lines.append(line)
            lines.append("")

        if self.not_imported:
            lines.append(f"Not Imported ({len(self.not_imported)}):")
            for ni in self.not_imported:
                lines.append(f"  - {ni.field}: {ni.reason}")
            lines.append("")

        if self.suggestions:
            lines.append("Suggestions:")
            for s in self.suggestions:
                lines.append(f"  - {s}")
            lines.append("")

        return "\n".join(lines).rstrip()


FIELD_CATEGORIES: dict[str, tuple[str, ...]] = {
    "Identity": ("name", "player_name", "race", "character_class", "subclass", "level", "background", "alignment"),
    "Abilities": ("abilities",),
    "Combat": ("armor_class", "max_hit_points", "hit_points", "speed"),
    "Proficiencies": ("saving_throws", "skills"),
    "Story": ("personality_traits", "ideals", "bonds", "flaws", "features"),
    "Gear": ("equipment", "weapons", "gold_pieces"),
    "Resources": ("resources",),
}


def _categorize_field(field_name: str) -> str:
    for category, names in FIELD_CATEGORIES.items():
        if field_name in names:
            return category
    return "Other"


# Builder sections the companion does not model
EXTERNAL_UNSUPPORTED_FIELDS: dict[str, str] = {
    "spells": "Prepared spells and spellbook (link spells from the compendium instead)",
    "subInfo": "Age, height, weight and appearance details (not supported)",
    "attunementsList": "Attunement slots (not supported)",
    "conditions": "Active conditions (add them as active effects)",
}


class ImportResult(BaseModel):
    """Result of a character import operation."""

    character: Character = Field(description="The created Character")
    mapped_fields: list[str] = Field(default_factory=list)
    unmapped_fields: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    source: str = Field(default="external", description='Import source: "native" or "external"')

    def build_report(self) -> ImportReport:
        """Build a structured ImportReport from this ImportResult.

        Returns:
            ImportReport with status, structured fields, warnings, and suggestions.
        """
        char = self.character

        imported = [
            ImportedField(name=name, summary=_summarize_field(name, char))
            for name in self.mapped_fields
        ]
        structured_warnings = [_parse_warning(text) for text in self.warnings]
        not_imported = [
            NotImported(field=name, reason=f"Could not map '{name}' from source data")
            for name in self.unmapped_fields
        ]
        if self.source == "external":
            not_imported.extend(
                NotImported(field=name, reason=reason)
                for name, reason in EXTERNAL_UNSUPPORTED_FIELDS.items()
            )

        if self.unmapped_fields and not self.mapped_fields:
            status = "failed"
        elif self.warnings or self.unmapped_fields:
            status = "success_with_warnings"
        else:
            status = "success"

        return ImportReport(
            status=status,
            character_name=char.name,
            source=self.source,
            imported_fields=imported,
            warnings=structured_warnings,
            not_imported=not_imported,
            suggestions=_generate_suggestions(char, self.unmapped_fields),
        )


def _summarize_field(field_name: str, char: Character) -> str:
    """Generate a brief summary for an imported field."""
    if field_name == "abilities":
        return ", ".join(f"{ability[:3].upper()} {char.score(ability)}" for ability in ABILITIES)
    if field_name == "character_class":
        return char.class_string() or "None"
    if field_name in ("max_hit_points", "hit_points"):
        return f"{char.hit_points}/{char.max_hit_points} HP"
    if field_name == "speed":
        return f"{char.speed} ft"
    if field_name == "skills":
        return f"{sum(1 for level in char.skills.values() if level)} skills"
    if field_name == "saving_throws":
        return ", ".join(char.saving_throws) if char.saving_throws else "None"
    if field_name in ("equipment", "weapons", "features", "resources"):
        return f"{len(getattr(char, field_name))} {field_name}"
    if field_name == "gold_pieces":
        return f"{char.gold_pieces} gp"
    value = getattr(char, field_name, None)
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        return str(value) if value != "" else "None"
    return field_name


def _parse_warning(warning_text: str) -> ImportWarning:
    """Parse a raw warning string into a structured ImportWarning."""
    field = "general"
    suggestion = ""

    lower = warning_text.lower()

    if "speed" in lower:
        field = "speed"
        suggestion = "Speed defaulted to 30 ft; check the sheet"
    elif "weapon" in lower:
        field = "weapons"
    elif "resource" in lower:
        field = "resources"
    elif "text" in lower or "personality" in lower:
        field = "story"

    return ImportWarning(field=field, message=warning_text, suggestion=suggestion)


def _generate_suggestions(char: Character, unmapped: list[str]) -> list[str]:
    suggestions: list[str] = []

    if unmapped:
        suggestions.append(f"Re-enter these fields by hand: {', '.join(unmapped)}")
    if not char.player_name:
        suggestions.append("No player name assigned; set it on the character sheet")
    if not char.saving_throws:
        suggestions.append("No saving throw proficiencies found; toggle them on the sheet")

    return suggestions
